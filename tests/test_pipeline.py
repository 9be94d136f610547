"""End-to-end tests for the analysis pipeline over a real store."""

import json

import pytest

from bioshield.analysis import BioImpactAnalyzer
from bioshield.errors import VulnerabilityNotFoundError
from bioshield.models import AnalysisMethod, PriorityLevel, RecommendationType
from bioshield.pipeline import AnalysisPipeline
from bioshield.recommendations import RecommendationService
from bioshield.scoring import CompositeScorer
from bioshield.throttle import Pacer

from conftest import FakeCompletionClient, make_vulnerability


HOSPITAL_REPLY = json.dumps({
    "bioRelevant": True,
    "bioRelevanceScore": 92,
    "affectedBioSectors": ["Hospitals", "Clinical Labs"],
    "humanSafetyImpact": "HIGH",
    "keyConcern": "Compromise of hospital laboratory devices",
    "recommendedPriority": "CRITICAL",
    "confidenceLevel": 0.9,
})


def _pipeline(store, client, fake_clock):
    return AnalysisPipeline(
        store,
        BioImpactAnalyzer(client),
        CompositeScorer(model_version="llama3.1:8b"),
        RecommendationService(store),
        pacer=Pacer(0.5, clock=fake_clock, sleep=fake_clock.sleep),
    )


def test_medical_device_example_is_critical(store, fake_clock):
    store.upsert_vulnerability(make_vulnerability(
        cve_id="CVE-2024-7777",
        description="Medical device vulnerability in hospital laboratory equipment",
        cvss_score=9.8,
        published_days_ago=1,
        known_exploited=False,
    ))
    pipeline = _pipeline(store, FakeCompletionClient(reply=HOSPITAL_REPLY), fake_clock)

    score = pipeline.analyze_and_score("CVE-2024-7777")

    assert score.human_safety_score == 100
    assert score.composite_score >= 85
    assert score.composite_score == 85.5
    assert score.priority_level == PriorityLevel.CRITICAL
    assert json.loads(score.ai_analysis)["method"] == AnalysisMethod.AI.value

    recs = pipeline.recommendations.generate("CVE-2024-7777")
    assert len(recs) == 5
    escalations = [r for r in recs if r.recommendation_type == RecommendationType.ESCALATE]
    assert len(escalations) == 1 and escalations[0].requires_tier2


def test_existing_score_is_returned_unless_reanalyzed(store, fake_clock):
    store.upsert_vulnerability(make_vulnerability(description="Hospital portal flaw", cvss_score=9.8))
    client = FakeCompletionClient(reply=HOSPITAL_REPLY)
    pipeline = _pipeline(store, client, fake_clock)

    first = pipeline.analyze_and_score("CVE-2024-0001")
    second = pipeline.analyze_and_score("CVE-2024-0001")
    assert len(client.prompts) == 1
    assert second.id == first.id

    client.reply = "no json today"
    redone = pipeline.analyze_and_score("CVE-2024-0001", reanalyze=True)
    assert len(client.prompts) == 2
    assert redone.composite_score != first.composite_score


def test_unknown_vulnerability(store, fake_clock):
    pipeline = _pipeline(store, FakeCompletionClient(reply=HOSPITAL_REPLY), fake_clock)
    with pytest.raises(VulnerabilityNotFoundError):
        pipeline.analyze_and_score("CVE-2024-0404")


def test_batch_processes_newest_first_with_pacing(store, fake_clock):
    for n in range(1, 4):
        store.upsert_vulnerability(make_vulnerability(cve_id=f"CVE-2024-000{n}", description="Infusion pump flaw"))
    pipeline = _pipeline(store, FakeCompletionClient(reply=HOSPITAL_REPLY), fake_clock)

    summary = pipeline.process_unanalyzed(limit=2)

    assert summary["processed"] == 2
    assert summary["failed"] == 0
    assert [r["cve_id"] for r in summary["results"]] == ["CVE-2024-0003", "CVE-2024-0002"]
    assert all(r["recommendations"] > 0 for r in summary["results"])
    assert fake_clock.sleeps == [0.5]
    assert [v.cve_id for v in store.list_unanalyzed()] == ["CVE-2024-0001"]


def test_batch_limit_is_clamped(store, fake_clock):
    pipeline = _pipeline(store, FakeCompletionClient(reply=HOSPITAL_REPLY), fake_clock)
    assert pipeline.process_unanalyzed(limit=500)["requested"] == 50
    assert pipeline.process_unanalyzed(limit=0)["requested"] == 1


def test_batch_records_item_failures_and_continues(store, fake_clock, monkeypatch):
    for n in range(1, 3):
        store.upsert_vulnerability(make_vulnerability(cve_id=f"CVE-2024-000{n}", description="Clinic server flaw"))
    pipeline = _pipeline(store, FakeCompletionClient(reply=HOSPITAL_REPLY), fake_clock)

    original = pipeline.scorer.score

    def flaky_score(vulnerability, analysis):
        if vulnerability.cve_id == "CVE-2024-0002":
            raise RuntimeError("disk full")
        return original(vulnerability, analysis)

    monkeypatch.setattr(pipeline.scorer, "score", flaky_score)

    summary = pipeline.process_unanalyzed(limit=10)

    assert summary["processed"] == 1
    assert summary["failed"] == 1
    failure = summary["errors"][0]
    assert failure["cve_id"] == "CVE-2024-0002"
    assert failure["message"] == "disk full"
    assert set(failure) == {"cve_id", "error", "message", "timestamp"}


def test_model_outage_still_scores_with_heuristic(store, fake_clock):
    store.upsert_vulnerability(make_vulnerability(description="Ventilator control flaw", cvss_score=7.0))
    client = FakeCompletionClient(error=ConnectionError("refused"))
    pipeline = _pipeline(store, client, fake_clock)

    summary = pipeline.process_unanalyzed()

    assert summary["processed"] == 1
    score = store.get_score("CVE-2024-0001")
    assert json.loads(score.ai_analysis)["method"] == AnalysisMethod.HEURISTIC.value
    assert score.confidence == 0.5


class _SlowCompletionClient(FakeCompletionClient):
    """Completion client whose calls take `duration` seconds of fake time."""

    def __init__(self, clock, duration, reply):
        super().__init__(reply=reply)
        self.clock = clock
        self.duration = duration
        self.started = []
        self.finished = []

    def generate_completion(self, prompt, temperature=0.3):
        self.started.append(self.clock.now)
        self.clock.now += self.duration
        self.finished.append(self.clock.now)
        return super().generate_completion(prompt, temperature)


def test_batch_delay_follows_slow_model_calls(store, fake_clock):
    for n in range(1, 4):
        store.upsert_vulnerability(make_vulnerability(cve_id=f"CVE-2024-000{n}", description="Infusion pump flaw"))
    client = _SlowCompletionClient(fake_clock, duration=5.0, reply=HOSPITAL_REPLY)
    pipeline = _pipeline(store, client, fake_clock)

    summary = pipeline.process_unanalyzed(limit=3)

    assert summary["processed"] == 3
    assert fake_clock.sleeps == [0.5, 0.5]
    gaps = [start - end for end, start in zip(client.finished, client.started[1:])]
    assert all(gap >= 0.5 for gap in gaps)


def test_reanalysis_replaces_stale_recommendations(store, fake_clock):
    store.upsert_vulnerability(make_vulnerability(
        cve_id="CVE-2024-7777",
        description="Medical device vulnerability in hospital laboratory equipment",
        cvss_score=9.8,
        published_days_ago=1,
    ))
    client = FakeCompletionClient(reply=HOSPITAL_REPLY)
    pipeline = _pipeline(store, client, fake_clock)

    pipeline.analyze_and_score("CVE-2024-7777")
    critical = pipeline.recommendations.generate("CVE-2024-7777")
    assert any(r.recommendation_type == RecommendationType.ESCALATE for r in critical)

    # Heuristic re-run: 4 keyword matches + CVSS 9.8 -> composite 79.5
    client.reply = "no json today"
    rescored = pipeline.analyze_and_score("CVE-2024-7777", reanalyze=True)
    assert rescored.priority_level == PriorityLevel.HIGH

    assert store.get_recommendations("CVE-2024-7777") == []
    high = pipeline.recommendations.generate("CVE-2024-7777")
    assert len(high) == 5
    assert not any(r.recommendation_type == RecommendationType.ESCALATE for r in high)
