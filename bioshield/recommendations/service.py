"""
Recommendation generation for scored vulnerabilities.
"""

from typing import List

import structlog

from ..errors import AnalysisRequiredError, VulnerabilityNotFoundError
from ..models import ActionRecommendation
from ..storage import VulnerabilityStore
from .templates import recommendations_for

logger = structlog.get_logger(__name__)


class RecommendationService:
    """Creates and stores priority-based remediation actions."""

    def __init__(self, store: VulnerabilityStore):
        self.store = store

    def generate(self, cve_id: str) -> List[ActionRecommendation]:
        """
        Generate recommendations for a scored vulnerability.

        Generation is idempotent: once recommendations exist for an
        identifier they are returned unchanged.

        Args:
            cve_id: CVE identifier.

        Returns:
            Stored recommendations.

        Raises:
            VulnerabilityNotFoundError: If the vulnerability is not stored.
            AnalysisRequiredError: If it has no bio impact score yet.
        """
        vulnerability = self.store.get_vulnerability(cve_id)
        if vulnerability is None:
            raise VulnerabilityNotFoundError(cve_id)

        score = self.store.get_score(cve_id)
        if score is None:
            raise AnalysisRequiredError(cve_id)

        existing = self.store.get_recommendations(cve_id)
        if existing:
            logger.info("recommendations_already_exist", cve_id=cve_id, count=len(existing))
            return existing

        recommendations = recommendations_for(score.priority_level, vulnerability)
        saved = self.store.save_recommendations(recommendations)

        logger.info(
            "recommendations_generated",
            cve_id=cve_id,
            priority=score.priority_level.value,
            count=len(saved)
        )
        return saved
