"""
BioShield Vulnerability Triage - Main Entry Point

Wires the feed clients, store, analyzer and scorer together and runs two
scheduled jobs: periodic feed ingestion and batch analysis of anything
not yet scored.
"""

import sys
import signal
import logging
from pathlib import Path
from typing import Dict, Any

import structlog
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger
from apscheduler.events import EVENT_JOB_ERROR

from .config import Config, load_config, validate_config
from .collector.nvd import NVDClient
from .collector.kev import KEVClient
from .collector.models import CombinedIngestionResult
from .analysis import BioImpactAnalyzer, BioKeywordFilter, OllamaClient, PromptSafetyFilter
from .ingestion import IngestionOrchestrator
from .pipeline import AnalysisPipeline
from .recommendations import RecommendationService
from .scoring import CompositeScorer
from .storage import VulnerabilityStore
from .throttle import Pacer


def configure_logging(config: Config) -> structlog.BoundLogger:
    """
    Configure structured logging.

    Args:
        config: Application configuration.

    Returns:
        Configured logger.
    """
    log_level = getattr(logging, config.log_level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.dev.ConsoleRenderer() if sys.stdout.isatty() else structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=log_level,
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(config.log_file, encoding="utf-8")
        ]
    )

    return structlog.get_logger("bioshield")


class BioShieldService:
    """
    Owns every pipeline component for one process.

    Built once at startup; the scheduled jobs and the one-shot runner
    call into it.
    """

    def __init__(self, config: Config, logger: structlog.BoundLogger):
        """
        Initialize all components.

        Args:
            config: Application configuration.
            logger: Configured logger instance.
        """
        self.config = config
        self.logger = logger

        self.store = VulnerabilityStore(config.database_path)
        self.nvd_client = NVDClient(config)
        self.kev_client = KEVClient(config)
        self.ollama_client = OllamaClient(config)

        self.ingestion = IngestionOrchestrator(
            self.store,
            self.nvd_client,
            self.kev_client,
            pacer=Pacer(config.kev_courtesy_delay_seconds, name="feed_courtesy")
        )

        analyzer = BioImpactAnalyzer(
            self.ollama_client,
            keyword_filter=BioKeywordFilter(config.extra_bio_keywords),
            safety_filter=PromptSafetyFilter(),
            temperature=config.ollama_temperature
        )
        self.pipeline = AnalysisPipeline(
            self.store,
            analyzer,
            CompositeScorer(model_version=config.ollama_model),
            RecommendationService(self.store),
            pacer=Pacer(config.analysis_delay_seconds, name="analysis_batch")
        )

        self.logger.info("service_initialized", model=config.ollama_model)

    def run_ingestion(self) -> CombinedIngestionResult:
        """Run a full NVD + KEV ingestion."""
        return self.ingestion.run_full(nvd_days_back=self.config.nvd_days_back)

    def run_analysis(self) -> Dict[str, Any]:
        """Process one batch of unscored vulnerabilities."""
        if not self.ollama_client.is_available():
            self.logger.warning("ollama_not_reachable", base_url=self.config.ollama_base_url)
        return self.pipeline.process_unanalyzed(limit=self.config.analysis_batch_size)

    def cleanup(self):
        """Clean up resources."""
        self.nvd_client.close()
        self.kev_client.close()
        self.ollama_client.close()
        self.store.close()
        self.logger.info("service_cleanup_complete")


def run_scheduled_ingestion(service: BioShieldService):
    """Wrapper function for scheduled ingestion."""
    try:
        result = service.run_ingestion()
        service.logger.info("scheduled_ingestion_finished", message=result.message)
    except Exception as e:
        service.logger.error("scheduled_ingestion_failed", error=str(e))


def run_scheduled_analysis(service: BioShieldService):
    """Wrapper function for scheduled batch analysis."""
    try:
        summary = service.run_analysis()
        service.logger.info(
            "scheduled_analysis_finished",
            processed=summary["processed"],
            failed=summary["failed"]
        )
    except Exception as e:
        service.logger.error("scheduled_analysis_failed", error=str(e))


def prepare(config: Config) -> structlog.BoundLogger:
    """
    Validate configuration, create directories and configure logging.

    Exits the process on configuration errors.
    """
    errors = validate_config(config)
    if errors:
        print("Configuration errors:")
        for error in errors:
            print(f"  - {error}")
        print()
        print("Please check your .env file and try again.")
        sys.exit(1)

    Path(config.database_path).parent.mkdir(parents=True, exist_ok=True)
    Path(config.log_file).parent.mkdir(parents=True, exist_ok=True)

    return configure_logging(config)


def main():
    """Main entry point."""
    print("=" * 60)
    print("  BioShield Vulnerability Triage")
    print("  Cyberbiosecurity CVE Prioritization")
    print("=" * 60)
    print()

    config = load_config()
    logger = prepare(config)
    logger.info("bioshield_starting", version="1.0.0")

    service = BioShieldService(config, logger)

    shutdown_flag = False

    def signal_handler(signum, frame):
        nonlocal shutdown_flag
        if shutdown_flag:
            logger.warning("forced_shutdown")
            sys.exit(1)
        shutdown_flag = True
        logger.info("shutdown_requested")
        raise KeyboardInterrupt

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    scheduler = BlockingScheduler()

    def job_listener(event):
        if event.exception:
            logger.error("job_failed", exception=str(event.exception))

    scheduler.add_listener(job_listener, EVENT_JOB_ERROR)

    scheduler.add_job(
        run_scheduled_ingestion,
        trigger=IntervalTrigger(hours=config.ingestion_interval_hours),
        args=[service],
        id="feed_ingestion_job",
        name="NVD + CISA KEV Ingestion",
        replace_existing=True,
        max_instances=1
    )
    scheduler.add_job(
        run_scheduled_analysis,
        trigger=IntervalTrigger(minutes=config.analysis_interval_minutes),
        args=[service],
        id="bio_analysis_job",
        name="Bio Impact Analysis",
        replace_existing=True,
        max_instances=1
    )

    logger.info(
        "scheduler_configured",
        ingestion_interval_hours=config.ingestion_interval_hours,
        analysis_interval_minutes=config.analysis_interval_minutes,
        batch_size=config.analysis_batch_size
    )

    # Run ingestion immediately on startup
    logger.info("running_initial_ingestion")
    run_scheduled_ingestion(service)

    logger.info("starting_scheduler")
    print()
    print(f"Scheduler started. Ingesting every {config.ingestion_interval_hours} hours, "
          f"analyzing every {config.analysis_interval_minutes} minutes.")
    print("Press Ctrl+C to stop.")
    print()

    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("shutting_down")
    finally:
        if scheduler.running:
            scheduler.shutdown(wait=False)
        service.cleanup()
        logger.info("bioshield_stopped")


if __name__ == "__main__":
    main()
