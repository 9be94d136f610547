"""
Analysis pipeline: analyze, score, persist and recommend.
"""

from typing import Optional, Dict, Any

import structlog

from .analysis import BioImpactAnalyzer
from .errors import BioShieldError, VulnerabilityNotFoundError, error_payload
from .models import BioImpactScore
from .recommendations import RecommendationService
from .scoring import CompositeScorer
from .storage import VulnerabilityStore
from .throttle import Pacer

logger = structlog.get_logger(__name__)


MIN_BATCH_SIZE = 1
MAX_BATCH_SIZE = 50


class AnalysisPipeline:
    """Turns stored vulnerabilities into scores and recommendations."""

    def __init__(
        self,
        store: VulnerabilityStore,
        analyzer: BioImpactAnalyzer,
        scorer: CompositeScorer,
        recommendations: RecommendationService,
        pacer: Optional[Pacer] = None
    ):
        """
        Initialize the pipeline.

        Args:
            store: Vulnerability store.
            analyzer: Bio-relevance analyzer.
            scorer: Composite scorer.
            recommendations: Recommendation service.
            pacer: Delay between the end of one batch item and the start
                of the next (0.5 seconds by default).
        """
        self.store = store
        self.analyzer = analyzer
        self.scorer = scorer
        self.recommendations = recommendations
        self.pacer = pacer or Pacer(0.5, name="analysis_batch")

    def analyze_and_score(self, cve_id: str, reanalyze: bool = False) -> BioImpactScore:
        """
        Analyze and score one stored vulnerability.

        Args:
            cve_id: CVE identifier.
            reanalyze: Replace an existing score instead of returning it.

        Returns:
            The stored BioImpactScore.

        Raises:
            VulnerabilityNotFoundError: If the vulnerability is not stored.
        """
        vulnerability = self.store.get_vulnerability(cve_id)
        if vulnerability is None:
            raise VulnerabilityNotFoundError(cve_id)

        if not reanalyze:
            existing = self.store.get_score(cve_id)
            if existing is not None:
                logger.info("score_already_exists", cve_id=cve_id)
                return existing

        analysis = self.analyzer.analyze(vulnerability)
        score = self.scorer.score(vulnerability, analysis)
        return self.store.save_score(score, replace=reanalyze)

    def process_unanalyzed(self, limit: int = 10) -> Dict[str, Any]:
        """
        Analyze, score and recommend for the newest unscored vulnerabilities.

        A failing item is recorded and the batch moves on.

        Args:
            limit: Batch size, clamped to 1-50.

        Returns:
            Dict with counts, per-item results and per-item error payloads.
        """
        limit = max(MIN_BATCH_SIZE, min(limit, MAX_BATCH_SIZE))
        pending = self.store.list_unanalyzed(limit=limit)

        logger.info("analysis_batch_started", pending=len(pending), limit=limit)

        results = []
        failures = []
        self.pacer.reset()

        for vulnerability in pending:
            self.pacer.wait()
            cve_id = vulnerability.cve_id
            try:
                score = self.analyze_and_score(cve_id)
                recommendations = self.recommendations.generate(cve_id)
                results.append({
                    "cve_id": cve_id,
                    "composite_score": score.composite_score,
                    "priority_level": score.priority_level.value,
                    "recommendations": len(recommendations),
                })
            except BioShieldError as e:
                logger.error("analysis_item_failed", cve_id=cve_id, error=str(e))
                failures.append({"cve_id": cve_id, **e.to_payload()})
            except Exception as e:
                logger.error("analysis_item_failed", cve_id=cve_id, error=str(e), error_type=type(e).__name__)
                failures.append({"cve_id": cve_id, **error_payload("Analysis failed", e)})
            finally:
                # The next item's delay counts from the end of this one
                self.pacer.mark()

        logger.info("analysis_batch_completed", processed=len(results), failed=len(failures))

        return {
            "requested": limit,
            "processed": len(results),
            "failed": len(failures),
            "results": results,
            "errors": failures,
        }
