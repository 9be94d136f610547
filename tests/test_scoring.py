"""Unit tests for the bio impact sub-scorers and composite score."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from bioshield.models import BioRelevanceAnalysis, PriorityLevel, SafetyImpact
from bioshield.scoring import CompositeScorer, composite_score, priority_for_score
from bioshield.scoring.composite import (
    EXPLOITABILITY_WEIGHT,
    HUMAN_SAFETY_WEIGHT,
    PATCH_AVAILABILITY_WEIGHT,
    SUPPLY_CHAIN_WEIGHT,
)
from bioshield.scoring.scorers import (
    score_exploitability,
    score_human_safety,
    score_patch_availability,
    score_supply_chain,
)

from conftest import make_vulnerability


NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def _analysis(impact=SafetyImpact.LOW, sectors=None, score=0):
    return BioRelevanceAnalysis(
        bio_relevant=True,
        bio_relevance_score=score,
        affected_sectors=sectors or [],
        human_safety_impact=impact,
        confidence=0.8,
    )


def _published(days_ago):
    return make_vulnerability(cvss_score=None, published_days_ago=None).model_copy(
        update={"published_date": NOW - timedelta(days=days_ago)}
    )


# ---------------------------------------------------------------------------
# Human safety
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "impact,expected",
    [(SafetyImpact.HIGH, 100), (SafetyImpact.MEDIUM, 75), (SafetyImpact.LOW, 50)],
)
def test_human_safety_impact_levels(impact, expected):
    assert score_human_safety(make_vulnerability(), _analysis(impact=impact)) == expected


def test_human_safety_none_uses_relevance_score():
    assert score_human_safety(make_vulnerability(), _analysis(impact=SafetyImpact.NONE, score=35)) == 35


def test_human_safety_critical_sector_boost():
    vuln = make_vulnerability()
    assert score_human_safety(vuln, _analysis(SafetyImpact.MEDIUM, ["Clinical Labs"])) == 85
    assert score_human_safety(vuln, _analysis(SafetyImpact.HIGH, ["Hospitals"])) == 100
    assert score_human_safety(vuln, _analysis(SafetyImpact.LOW, ["Research Labs"])) == 50


# ---------------------------------------------------------------------------
# Supply chain
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "sectors,expected",
    [
        ([], 40),
        (["Hospitals"], 40),
        (["Hospitals", "Clinical Labs"], 50),
        (["Hospitals", "Clinical Labs", "Research Labs"], 60),
        (["Hospitals", "Clinical Labs", "Research Labs", "Food/Agriculture"], 80),
        (["Pharmaceutical"], 60),
        (["Hospitals", "Clinical Labs", "Research Labs", "Biomanufacturing"], 100),
    ],
)
def test_supply_chain(sectors, expected):
    assert score_supply_chain(make_vulnerability(), _analysis(sectors=sectors)) == expected


# ---------------------------------------------------------------------------
# Exploitability
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "cvss,exploited,expected",
    [
        (9.8, False, 90),
        (9.0, True, 100),
        (7.0, False, 70),
        (6.9, False, 50),
        (4.0, True, 70),
        (2.1, False, 30),
        (None, False, 50),
        (None, True, 70),
    ],
)
def test_exploitability(cvss, exploited, expected):
    vuln = make_vulnerability(cvss_score=cvss, known_exploited=exploited)
    assert score_exploitability(vuln, _analysis()) == expected


# ---------------------------------------------------------------------------
# Patch availability
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "days,cvss,expected",
    [
        (2, 9.8, 100),
        (2, 8.0, 80),
        (10, 9.8, 80),
        (10, 5.0, 60),
        (20, 9.8, 60),
        (45, 9.8, 40),
        (200, 9.8, 20),
        (2, None, 60),
    ],
)
def test_patch_availability(days, cvss, expected):
    vuln = _published(days).model_copy(update={"cvss_score": cvss})
    assert score_patch_availability(vuln, _analysis(), now=NOW) == expected


def test_patch_availability_without_date():
    vuln = make_vulnerability(published_days_ago=None)
    assert score_patch_availability(vuln, _analysis(), now=NOW) == 60


# ---------------------------------------------------------------------------
# Composite
# ---------------------------------------------------------------------------

def test_weights_are_pinned():
    assert (HUMAN_SAFETY_WEIGHT, SUPPLY_CHAIN_WEIGHT, EXPLOITABILITY_WEIGHT, PATCH_AVAILABILITY_WEIGHT) == (
        Decimal("0.40"), Decimal("0.25"), Decimal("0.20"), Decimal("0.15")
    )
    assert composite_score(100, 100, 100, 100) == 100.0
    assert composite_score(0, 0, 0, 0) == 0.0
    assert composite_score(100, 50, 90, 100) == 85.5
    assert composite_score(75, 40, 70, 60) == 63.0
    assert composite_score(51, 43, 17, 33) == 39.5


@pytest.mark.parametrize(
    "score,expected",
    [
        (100, PriorityLevel.CRITICAL),
        (85, PriorityLevel.CRITICAL),
        (84.99, PriorityLevel.HIGH),
        (70, PriorityLevel.HIGH),
        (69.99, PriorityLevel.MEDIUM),
        (50, PriorityLevel.MEDIUM),
        (49.99, PriorityLevel.LOW),
        (0, PriorityLevel.LOW),
    ],
)
def test_priority_boundaries(score, expected):
    assert priority_for_score(score) == expected


def test_composite_scorer_builds_score():
    vuln = _published(1).model_copy(update={"cvss_score": 9.8, "description": "Medical device flaw"})
    analysis = _analysis(SafetyImpact.HIGH, ["Hospitals", "Clinical Labs"], score=90)

    score = CompositeScorer(model_version="llama3.1:8b", clock=lambda: NOW).score(vuln, analysis)

    assert score.human_safety_score == 100
    assert score.supply_chain_score == 50
    assert score.exploitability_score == 90
    assert score.patch_availability_score == 100
    assert score.composite_score == 85.5
    assert score.priority_level == PriorityLevel.CRITICAL
    assert score.model_version == "llama3.1:8b"
    assert score.confidence == 0.8
    assert score.affected_sectors == ["Hospitals", "Clinical Labs"]
    assert score.human_reviewed is False
