"""
Composite bio impact scoring.

Combines the four sub-scores with fixed weights and maps the result to a
priority level.
"""

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Optional

import structlog

from ..collector.models import Vulnerability
from ..models import BioImpactScore, BioRelevanceAnalysis, PriorityLevel
from .scorers import (
    score_exploitability,
    score_human_safety,
    score_patch_availability,
    score_supply_chain,
)

logger = structlog.get_logger(__name__)


HUMAN_SAFETY_WEIGHT = Decimal("0.40")
SUPPLY_CHAIN_WEIGHT = Decimal("0.25")
EXPLOITABILITY_WEIGHT = Decimal("0.20")
PATCH_AVAILABILITY_WEIGHT = Decimal("0.15")

CRITICAL_THRESHOLD = 85
HIGH_THRESHOLD = 70
MEDIUM_THRESHOLD = 50


def composite_score(
    human_safety: int,
    supply_chain: int,
    exploitability: int,
    patch_availability: int
) -> float:
    """Weighted sum of the sub-scores, rounded to 2 decimals."""
    total = (
        human_safety * HUMAN_SAFETY_WEIGHT
        + supply_chain * SUPPLY_CHAIN_WEIGHT
        + exploitability * EXPLOITABILITY_WEIGHT
        + patch_availability * PATCH_AVAILABILITY_WEIGHT
    )
    return float(total.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def priority_for_score(score: float) -> PriorityLevel:
    """Map a composite score to its priority level."""
    if score >= CRITICAL_THRESHOLD:
        return PriorityLevel.CRITICAL
    if score >= HIGH_THRESHOLD:
        return PriorityLevel.HIGH
    if score >= MEDIUM_THRESHOLD:
        return PriorityLevel.MEDIUM
    return PriorityLevel.LOW


class CompositeScorer:
    """Builds BioImpactScore records from an analysis."""

    def __init__(self, model_version: str, clock: Optional[Callable[[], datetime]] = None):
        """
        Initialize the scorer.

        Args:
            model_version: Model name recorded on each score.
            clock: Returns the current UTC time for the patch availability
                sub-score; injectable for tests.
        """
        self.model_version = model_version
        self._clock = clock

    def score(self, vulnerability: Vulnerability, analysis: BioRelevanceAnalysis) -> BioImpactScore:
        """
        Score a vulnerability.

        Args:
            vulnerability: Vulnerability being scored.
            analysis: Its bio-relevance analysis.

        Returns:
            Unsaved BioImpactScore.
        """
        now = self._clock() if self._clock else None

        human_safety = score_human_safety(vulnerability, analysis)
        supply_chain = score_supply_chain(vulnerability, analysis)
        exploitability = score_exploitability(vulnerability, analysis)
        patch_availability = score_patch_availability(vulnerability, analysis, now=now)

        composite = composite_score(human_safety, supply_chain, exploitability, patch_availability)
        priority = priority_for_score(composite)

        logger.info(
            "composite_score_calculated",
            cve_id=vulnerability.cve_id,
            human_safety=human_safety,
            supply_chain=supply_chain,
            exploitability=exploitability,
            patch_availability=patch_availability,
            composite=composite,
            priority=priority.value
        )

        return BioImpactScore(
            cve_id=vulnerability.cve_id,
            human_safety_score=human_safety,
            supply_chain_score=supply_chain,
            exploitability_score=exploitability,
            patch_availability_score=patch_availability,
            composite_score=composite,
            priority_level=priority,
            confidence=analysis.confidence,
            affected_sectors=list(analysis.affected_sectors),
            ai_analysis=analysis.model_dump_json(),
            model_version=self.model_version,
        )
