"""Tests for the SQLite vulnerability store."""

import pytest

from bioshield.errors import ScoreExistsError, VulnerabilityNotFoundError
from bioshield.models import ActionRecommendation, BioImpactScore, PriorityLevel, RecommendationType

from conftest import make_vulnerability


def _score(cve_id, composite=72.5, priority=PriorityLevel.HIGH):
    return BioImpactScore(
        cve_id=cve_id,
        human_safety_score=75,
        supply_chain_score=50,
        exploitability_score=70,
        patch_availability_score=80,
        composite_score=composite,
        priority_level=priority,
        confidence=0.7,
        affected_sectors=["Hospitals"],
        model_version="llama3.1:8b",
    )


def test_upsert_reports_new_then_existing(store):
    vuln = make_vulnerability(vendor_name="Acme", references=["https://a.example"])

    assert store.upsert_vulnerability(vuln) is True
    assert store.upsert_vulnerability(vuln) is False
    assert store.count_vulnerabilities() == 1

    loaded = store.get_vulnerability(vuln.cve_id)
    assert loaded.vendor_name == "Acme"
    assert loaded.references == ["https://a.example"]
    assert loaded.published_date == vuln.published_date
    assert loaded.id is not None


def test_upsert_never_clears_known_exploited(store):
    store.upsert_vulnerability(make_vulnerability(known_exploited=True))
    store.upsert_vulnerability(make_vulnerability(known_exploited=False, description="Updated text"))

    loaded = store.get_vulnerability("CVE-2024-0001")
    assert loaded.known_exploited is True
    assert loaded.description == "Updated text"


def test_upsert_keeps_original_source(store):
    store.upsert_vulnerability(make_vulnerability(source_name="CISA_KEV"))
    store.upsert_vulnerability(make_vulnerability(source_name="NVD"))
    assert store.get_vulnerability("CVE-2024-0001").source_name == "CISA_KEV"


def test_insert_if_absent_and_mark_exploited(store):
    vuln = make_vulnerability()
    assert store.insert_if_absent(vuln) is True
    assert store.insert_if_absent(vuln) is False

    assert store.mark_known_exploited(vuln.cve_id) is True
    assert store.mark_known_exploited("CVE-2099-0001") is False
    assert store.count_known_exploited() == 1


def test_list_unanalyzed_is_newest_first_and_excludes_scored(store):
    for n in range(1, 5):
        store.upsert_vulnerability(make_vulnerability(cve_id=f"CVE-2024-000{n}"))
    store.save_score(_score("CVE-2024-0003"))

    pending = [v.cve_id for v in store.list_unanalyzed(limit=10)]
    assert pending == ["CVE-2024-0004", "CVE-2024-0002", "CVE-2024-0001"]
    assert len(store.list_unanalyzed(limit=2)) == 2


def test_save_score_refuses_overwrite_unless_replace(store):
    store.upsert_vulnerability(make_vulnerability())
    saved = store.save_score(_score("CVE-2024-0001"))

    assert saved.id is not None
    assert saved.priority_level == PriorityLevel.HIGH
    assert saved.affected_sectors == ["Hospitals"]

    with pytest.raises(ScoreExistsError):
        store.save_score(_score("CVE-2024-0001", composite=90.0, priority=PriorityLevel.CRITICAL))

    replaced = store.save_score(
        _score("CVE-2024-0001", composite=90.0, priority=PriorityLevel.CRITICAL), replace=True
    )
    assert replaced.composite_score == 90.0
    assert store.get_score("CVE-2024-0001").priority_level == PriorityLevel.CRITICAL


def test_save_score_requires_vulnerability(store):
    with pytest.raises(VulnerabilityNotFoundError):
        store.save_score(_score("CVE-2024-0404"))


def test_recommendations_round_trip_in_order(store):
    store.upsert_vulnerability(make_vulnerability())
    recs = [
        ActionRecommendation(
            cve_id="CVE-2024-0001",
            recommendation_type=RecommendationType.MONITOR,
            action_text=f"Step {n}",
            requires_tier2=(n == 2),
        )
        for n in range(3)
    ]

    saved = store.save_recommendations(recs)

    assert [r.action_text for r in saved] == ["Step 0", "Step 1", "Step 2"]
    assert [r.requires_tier2 for r in saved] == [False, False, True]
    assert store.save_recommendations([]) == []


def test_stats(store):
    store.upsert_vulnerability(make_vulnerability(cve_id="CVE-2024-0001", cvss_score=9.8, known_exploited=True))
    store.upsert_vulnerability(make_vulnerability(cve_id="CVE-2024-0002", cvss_score=7.5))
    store.upsert_vulnerability(make_vulnerability(cve_id="CVE-2024-0003", cvss_score=5.0))
    store.upsert_vulnerability(make_vulnerability(cve_id="CVE-2024-0004", cvss_score=None))
    store.save_score(_score("CVE-2024-0001", composite=90.0, priority=PriorityLevel.CRITICAL))
    store.save_score(_score("CVE-2024-0002", composite=60.0, priority=PriorityLevel.MEDIUM))

    stats = store.get_stats()

    assert stats["total_vulnerabilities"] == 4
    assert stats["analyzed_vulnerabilities"] == 2
    assert stats["unanalyzed_vulnerabilities"] == 2
    assert stats["known_exploited"] == 1
    assert stats["priority_breakdown"] == {"CRITICAL": 1, "HIGH": 0, "MEDIUM": 1, "LOW": 0}
    assert stats["cvss_distribution"] == {"critical": 1, "high": 1, "medium": 1, "low": 0, "unknown": 1}
    assert stats["average_composite_score"] == 75.0


def test_replacing_score_discards_its_recommendations(store):
    store.upsert_vulnerability(make_vulnerability())
    store.save_score(_score("CVE-2024-0001"))
    store.save_recommendations([
        ActionRecommendation(
            cve_id="CVE-2024-0001",
            recommendation_type=RecommendationType.SCHEDULED,
            action_text="Patch next cycle",
        )
    ])

    store.save_score(_score("CVE-2024-0001", composite=90.0, priority=PriorityLevel.CRITICAL), replace=True)

    assert store.get_recommendations("CVE-2024-0001") == []
