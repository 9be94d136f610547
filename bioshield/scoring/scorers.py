"""
Sub-scorers feeding the composite bio impact score.

Each function maps a vulnerability and its bio-relevance analysis to an
integer in [0, 100].
"""

from datetime import datetime, timezone
from typing import Optional

import structlog

from ..collector.models import Vulnerability
from ..models import BioRelevanceAnalysis, BioSector, SafetyImpact

logger = structlog.get_logger(__name__)


SAFETY_IMPACT_SCORES = {
    SafetyImpact.HIGH: 100,
    SafetyImpact.MEDIUM: 75,
    SafetyImpact.LOW: 50,
}

CRITICAL_CARE_SECTORS = (BioSector.HOSPITALS.value, BioSector.CLINICAL_LABS.value)
SUPPLY_CHAIN_SECTORS = (BioSector.BIOMANUFACTURING.value, BioSector.PHARMACEUTICAL.value)


def _any_sector(analysis: BioRelevanceAnalysis, names) -> bool:
    return any(
        name.lower() in sector.lower()
        for sector in analysis.affected_sectors
        for name in names
    )


def score_human_safety(vulnerability: Vulnerability, analysis: BioRelevanceAnalysis) -> int:
    """HIGH/MEDIUM/LOW impact map to 100/75/50; +10 for hospitals or clinical labs."""
    score = SAFETY_IMPACT_SCORES.get(analysis.human_safety_impact)
    if score is None:
        score = min(analysis.bio_relevance_score, 100)

    if _any_sector(analysis, CRITICAL_CARE_SECTORS):
        score = min(score + 10, 100)

    logger.debug("human_safety_scored", cve_id=vulnerability.cve_id, score=score)
    return score


def score_supply_chain(vulnerability: Vulnerability, analysis: BioRelevanceAnalysis) -> int:
    """Breadth of affected sectors, +20 for biomanufacturing or pharmaceutical."""
    count = len(analysis.affected_sectors)
    if count >= 4:
        score = 80
    elif count == 3:
        score = 60
    elif count == 2:
        score = 50
    else:
        score = 40

    if _any_sector(analysis, SUPPLY_CHAIN_SECTORS):
        score = min(score + 20, 100)

    logger.debug("supply_chain_scored", cve_id=vulnerability.cve_id, score=score)
    return score


def score_exploitability(vulnerability: Vulnerability, analysis: BioRelevanceAnalysis) -> int:
    """CVSS band, +20 when the vulnerability is known to be exploited."""
    cvss = vulnerability.cvss_score
    if cvss is None:
        score = 50
    elif cvss >= 9.0:
        score = 90
    elif cvss >= 7.0:
        score = 70
    elif cvss >= 4.0:
        score = 50
    elif cvss > 0:
        score = 30
    else:
        score = 50

    if vulnerability.known_exploited:
        score = min(score + 20, 100)

    logger.debug("exploitability_scored", cve_id=vulnerability.cve_id, score=score)
    return score


def score_patch_availability(
    vulnerability: Vulnerability,
    analysis: BioRelevanceAnalysis,
    now: Optional[datetime] = None
) -> int:
    """
    Urgency from age since publication.

    Fresh, severe vulnerabilities are the least likely to have a patch
    deployed, so they score highest.

    Args:
        vulnerability: Vulnerability being scored.
        analysis: Bio-relevance analysis (unused, kept for a uniform signature).
        now: Reference time; defaults to the current UTC time.

    Returns:
        Score in {20, 40, 60, 80, 100}; 60 when the publication date is unknown.
    """
    published = vulnerability.published_date
    if published is None:
        return 60

    now = now or datetime.now(timezone.utc)
    if published.tzinfo is None:
        published = published.replace(tzinfo=timezone.utc)
    days = (now - published).days
    cvss = vulnerability.cvss_score

    if days < 7 and cvss is not None and cvss >= 9.0:
        score = 100
    elif days < 14 and cvss is not None and cvss >= 7.0:
        score = 80
    elif days < 30:
        score = 60
    elif days < 90:
        score = 40
    else:
        score = 20

    logger.debug("patch_availability_scored", cve_id=vulnerability.cve_id, days=days, score=score)
    return score
