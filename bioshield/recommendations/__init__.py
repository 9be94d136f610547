"""Priority-based remediation recommendations."""

from .service import RecommendationService
from .templates import recommendations_for

__all__ = ["RecommendationService", "recommendations_for"]
