"""
Configuration module for the BioShield vulnerability triage pipeline.

Loads configuration from environment variables and .env file,
validates required settings, and provides typed access to configuration values.
"""

import os
import sys
from pathlib import Path
from typing import Optional, List
from dataclasses import dataclass, field
from dotenv import load_dotenv


@dataclass
class Config:
    """Application configuration loaded from environment variables."""

    # NVD API Configuration
    nvd_api_key: Optional[str] = None
    nvd_base_url: str = "https://services.nvd.nist.gov/rest/json/cves/2.0"
    nvd_days_back: int = 7
    nvd_results_per_page: int = 100

    # CISA KEV Configuration
    kev_feed_url: str = "https://www.cisa.gov/sites/default/files/feeds/known_exploited_vulnerabilities.json"
    kev_cache_hours: int = 24
    kev_courtesy_delay_seconds: float = 2.0

    # Ollama Configuration
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "llama3.1:8b"
    ollama_timeout_seconds: float = 30.0
    ollama_temperature: float = 0.3

    # Scheduler Configuration
    ingestion_interval_hours: int = 12
    analysis_interval_minutes: int = 30
    analysis_batch_size: int = 10
    analysis_delay_seconds: float = 0.5

    # Database Configuration
    database_path: str = "./data/bioshield.db"

    # Logging Configuration
    log_level: str = "INFO"
    log_file: str = "./logs/bioshield.log"

    # Keyword Configuration
    keyword_config_path: str = "./bio_keywords.yaml"
    extra_bio_keywords: List[str] = field(default_factory=list)


def load_config(env_path: Optional[str] = None) -> Config:
    """
    Load configuration from environment variables and optional .env file.

    Args:
        env_path: Optional path to .env file. If not provided, searches
                  current directory and parent directories.

    Returns:
        Config object with loaded values.
    """
    if env_path:
        load_dotenv(env_path)
    else:
        env_file = Path(".env")
        if env_file.exists():
            load_dotenv(env_file)
        else:
            for parent in Path.cwd().parents:
                env_file = parent / ".env"
                if env_file.exists():
                    load_dotenv(env_file)
                    break

    config = Config(
        # NVD
        nvd_api_key=os.getenv("NVD_API_KEY") or None,
        nvd_days_back=int(os.getenv("NVD_DAYS_BACK", "7")),

        # Ollama
        ollama_base_url=os.getenv("OLLAMA_BASE_URL", "http://localhost:11434"),
        ollama_model=os.getenv("OLLAMA_MODEL", "llama3.1:8b"),
        ollama_timeout_seconds=float(os.getenv("OLLAMA_TIMEOUT_SECONDS", "30")),
        ollama_temperature=float(os.getenv("OLLAMA_TEMPERATURE", "0.3")),

        # Scheduler
        ingestion_interval_hours=int(os.getenv("INGESTION_INTERVAL_HOURS", "12")),
        analysis_interval_minutes=int(os.getenv("ANALYSIS_INTERVAL_MINUTES", "30")),
        analysis_batch_size=int(os.getenv("ANALYSIS_BATCH_SIZE", "10")),

        # Database
        database_path=os.getenv("DATABASE_PATH", "./data/bioshield.db"),

        # Logging
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_file=os.getenv("LOG_FILE", "./logs/bioshield.log"),

        # Keywords
        keyword_config_path=os.getenv("KEYWORD_CONFIG_PATH", "./bio_keywords.yaml"),
    )

    config.extra_bio_keywords = load_extra_keywords(config.keyword_config_path)

    return config


def load_extra_keywords(config_path: str) -> List[str]:
    """
    Load additional bio keywords from a YAML file.

    The file holds a single ``keywords`` list. A missing or unreadable
    file yields no extra keywords; the built-in vocabulary still applies.

    Args:
        config_path: Path to the keyword YAML file.

    Returns:
        List of keyword strings.
    """
    keyword_path = Path(config_path)

    if not keyword_path.exists():
        return []

    try:
        import yaml

        with open(keyword_path) as f:
            data = yaml.safe_load(f) or {}

        return [str(k).strip() for k in data.get("keywords", []) if str(k).strip()]

    except Exception as e:
        print(f"Warning: Failed to load bio keywords from {config_path}: {e}", file=sys.stderr)
        print(f"  Error type: {e.__class__.__name__}", file=sys.stderr)
        return []


def validate_config(config: Config) -> List[str]:
    """
    Validate that required configuration values are present.

    Args:
        config: Configuration object to validate.

    Returns:
        List of validation error messages. Empty if valid.
    """
    errors = []

    # NVD_API_KEY is optional; without it NVD applies a stricter public rate limit
    if not config.ollama_base_url.startswith(("http://", "https://")):
        errors.append("OLLAMA_BASE_URL must be an http(s) URL")

    if config.nvd_days_back < 1 or config.nvd_days_back > 120:
        errors.append("NVD_DAYS_BACK must be between 1 and 120")
    if config.ingestion_interval_hours < 1:
        errors.append("INGESTION_INTERVAL_HOURS must be at least 1")
    if config.analysis_interval_minutes < 1:
        errors.append("ANALYSIS_INTERVAL_MINUTES must be at least 1")
    if config.analysis_batch_size < 1 or config.analysis_batch_size > 50:
        errors.append("ANALYSIS_BATCH_SIZE must be between 1 and 50")
    if config.ollama_timeout_seconds <= 0:
        errors.append("OLLAMA_TIMEOUT_SECONDS must be positive")
    if config.ollama_temperature < 0 or config.ollama_temperature > 2:
        errors.append("OLLAMA_TEMPERATURE must be between 0 and 2")

    return errors
