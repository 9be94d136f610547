"""
Local Ollama completion client.

The analyzer only depends on the CompletionClient protocol, so tests and
alternative backends can stand in for the Ollama server.
"""

from typing import Optional, Protocol

import httpx
import structlog

from ..config import Config
from ..errors import ModelUnavailableError

logger = structlog.get_logger(__name__)


class CompletionClient(Protocol):
    """Anything that turns a prompt into completion text."""

    def generate_completion(self, prompt: str, temperature: float = 0.3) -> str:
        """
        Generate a completion.

        Raises:
            ModelUnavailableError: If no completion could be produced.
        """
        ...


class OllamaClient:
    """Synchronous client for the Ollama /api/generate endpoint."""

    def __init__(self, config: Config, client: Optional[httpx.Client] = None):
        """
        Initialize the Ollama client.

        Args:
            config: Application configuration.
            client: Optional preconfigured httpx client.
        """
        self.base_url = config.ollama_base_url.rstrip("/")
        self.model = config.ollama_model
        self.timeout = config.ollama_timeout_seconds
        self.client = client or httpx.Client(timeout=self.timeout)

        logger.info("ollama_client_initialized", base_url=self.base_url, model=self.model)

    def generate_completion(self, prompt: str, temperature: float = 0.3) -> str:
        """
        Request a non-streaming completion.

        Args:
            prompt: Full prompt text.
            temperature: Sampling temperature.

        Returns:
            The ``response`` text from Ollama.

        Raises:
            ModelUnavailableError: On timeout, transport failure, non-2xx
                status or an empty response.
        """
        payload = {
            "model": self.model,
            "prompt": prompt,
            "temperature": temperature,
            "stream": False,
        }

        logger.info("ollama_request", model=self.model, temperature=temperature)

        try:
            response = self.client.post(f"{self.base_url}/api/generate", json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            logger.error("ollama_timeout", timeout_seconds=self.timeout)
            raise ModelUnavailableError(f"Ollama request timed out after {self.timeout} seconds") from e
        except httpx.HTTPStatusError as e:
            logger.error(
                "ollama_http_error",
                status_code=e.response.status_code,
                detail=e.response.text[:200]
            )
            raise ModelUnavailableError(f"Ollama API error: {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error("ollama_request_failed", error=str(e))
            raise ModelUnavailableError(f"Ollama request failed: {e}") from e
        except ValueError as e:
            logger.error("ollama_invalid_json", error=str(e))
            raise ModelUnavailableError("Ollama returned invalid JSON") from e

        text = data.get("response") if isinstance(data, dict) else None
        if not text or not text.strip():
            logger.warning("ollama_empty_response")
            raise ModelUnavailableError("Empty response from Ollama")

        logger.info("ollama_completion_received", length=len(text))
        return text

    def is_available(self) -> bool:
        """Check whether the Ollama server answers on /api/tags."""
        try:
            response = self.client.get(f"{self.base_url}/api/tags", timeout=5.0)
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.warning("ollama_unavailable", error=str(e))
            return False

    def close(self):
        """Close the HTTP client."""
        self.client.close()
