"""
Error types for the BioShield pipeline.

Every error raised across a component boundary derives from
BioShieldError, which can render itself as the structured payload
handed to callers (message and timestamp, no internals).
"""

from datetime import datetime, timezone
from typing import Any, Dict


class BioShieldError(Exception):
    """Base class for pipeline errors."""

    error = "BioShield error"

    def to_payload(self) -> Dict[str, Any]:
        """Render the error as a caller-visible payload."""
        return error_payload(self.error, self)


class FeedUnavailableError(BioShieldError):
    """A feed could not be reached, or retries were exhausted."""

    error = "Feed unavailable"


class MalformedFeedError(BioShieldError):
    """A feed returned a body that could not be decoded."""

    error = "Malformed feed response"


class ModelUnavailableError(BioShieldError):
    """The generative model timed out, failed, or returned nothing."""

    error = "Model unavailable"


class VulnerabilityNotFoundError(BioShieldError):
    """No stored vulnerability matches the identifier."""

    error = "Vulnerability not found"

    def __init__(self, cve_id: str):
        super().__init__(f"Vulnerability {cve_id} not found")
        self.cve_id = cve_id


class AnalysisRequiredError(BioShieldError):
    """Recommendations were requested before the vulnerability was scored."""

    error = "Analysis required"

    def __init__(self, cve_id: str):
        super().__init__(
            f"Vulnerability {cve_id} must be analyzed before generating recommendations"
        )
        self.cve_id = cve_id


class ScoreExistsError(BioShieldError):
    """A bio impact score already exists and replacement was not requested."""

    error = "Score already exists"

    def __init__(self, cve_id: str):
        super().__init__(f"Vulnerability {cve_id} already has a bio impact score")
        self.cve_id = cve_id


def error_payload(error: str, exc: BaseException) -> Dict[str, Any]:
    """
    Build a structured error payload.

    Args:
        error: Short error category.
        exc: The exception being reported.

    Returns:
        Dict with error, message and an ISO timestamp.
    """
    return {
        "error": error,
        "message": str(exc),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
