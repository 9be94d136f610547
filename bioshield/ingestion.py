"""
Feed ingestion orchestration.

Pulls recent CVEs from NVD and the CISA KEV catalog into the store. The
KEV stage only ever raises the known-exploited flag; a vulnerability that
later drops out of the catalog keeps it.
"""

from datetime import datetime, timezone
from typing import Optional, Union, Dict, Any

import structlog

from .collector.kev import KEVClient
from .collector.models import CombinedIngestionResult, IngestionResult
from .collector.nvd import NVDClient
from .storage import VulnerabilityStore
from .throttle import Pacer

logger = structlog.get_logger(__name__)


AnyIngestionResult = Union[IngestionResult, CombinedIngestionResult]


class IngestionStatus:
    """
    Outcome of the most recent ingestion run.

    Set when a run completes (successfully or not) and read by status
    queries; it belongs to one orchestrator rather than the process.
    """

    def __init__(self):
        self.last_result: Optional[AnyIngestionResult] = None
        self.last_completed_at: Optional[datetime] = None

    def record(self, result: AnyIngestionResult):
        self.last_result = result
        self.last_completed_at = datetime.now(timezone.utc)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "last_completed_at": self.last_completed_at.isoformat() if self.last_completed_at else None,
            "last_result": self.last_result.model_dump(mode="json") if self.last_result else None,
        }


class IngestionOrchestrator:
    """Runs NVD and KEV ingestion against a VulnerabilityStore."""

    def __init__(
        self,
        store: VulnerabilityStore,
        nvd_client: NVDClient,
        kev_client: KEVClient,
        pacer: Optional[Pacer] = None,
        status: Optional[IngestionStatus] = None
    ):
        """
        Initialize the orchestrator.

        Args:
            store: Vulnerability store.
            nvd_client: NVD feed client.
            kev_client: KEV catalog client.
            pacer: Courtesy pause between the NVD and KEV stages (2 seconds by default).
            status: Holder for the last run outcome.
        """
        self.store = store
        self.nvd_client = nvd_client
        self.kev_client = kev_client
        self.pacer = pacer or Pacer(2.0, name="feed_courtesy")
        self.status = status or IngestionStatus()

    def _ingest_nvd(self, days_back: int) -> IngestionResult:
        vulnerabilities = self.nvd_client.fetch_recent(days_back=days_back)
        result = IngestionResult(total_fetched=len(vulnerabilities))

        for vuln in vulnerabilities:
            try:
                if self.store.upsert_vulnerability(vuln):
                    result.new_added += 1
                else:
                    result.duplicates_skipped += 1
            except Exception as e:
                result.errors += 1
                logger.error("nvd_store_failed", cve_id=vuln.cve_id, error=str(e))

        result.message = (
            f"NVD ingestion completed: {result.new_added} new, "
            f"{result.duplicates_skipped} updated, {result.errors} errors"
        )
        result.ingested_at = datetime.now(timezone.utc)
        logger.info(
            "nvd_ingestion_completed",
            fetched=result.total_fetched,
            new=result.new_added,
            duplicates=result.duplicates_skipped,
            errors=result.errors
        )
        return result

    def _ingest_kev(self) -> IngestionResult:
        entries = self.kev_client.fetch_catalog()
        result = IngestionResult(total_fetched=len(entries))

        for entry in entries:
            try:
                if self.store.exists(entry.cve_id):
                    self.store.mark_known_exploited(entry.cve_id)
                    result.duplicates_skipped += 1
                elif self.store.insert_if_absent(entry.to_vulnerability()):
                    result.new_added += 1
                else:
                    # Inserted concurrently since the existence check
                    self.store.mark_known_exploited(entry.cve_id)
                    result.duplicates_skipped += 1
            except Exception as e:
                result.errors += 1
                logger.error("kev_store_failed", cve_id=entry.cve_id, error=str(e))

        result.message = (
            f"CISA KEV ingestion completed: {result.new_added} new, "
            f"{result.duplicates_skipped} marked exploited, {result.errors} errors"
        )
        result.ingested_at = datetime.now(timezone.utc)
        logger.info(
            "kev_ingestion_completed",
            fetched=result.total_fetched,
            new=result.new_added,
            marked_exploited=result.duplicates_skipped,
            errors=result.errors
        )
        return result

    def ingest_nvd(self, days_back: int = 7) -> IngestionResult:
        """
        Ingest CVEs published in the last ``days_back`` days.

        Raises:
            FeedUnavailableError: If NVD cannot be reached after retries.
        """
        result = self._ingest_nvd(days_back)
        self.status.record(result)
        return result

    def ingest_kev(self) -> IngestionResult:
        """
        Ingest the CISA KEV catalog.

        Raises:
            FeedUnavailableError: If the catalog cannot be fetched.
            MalformedFeedError: If the catalog cannot be decoded.
        """
        result = self._ingest_kev()
        self.status.record(result)
        return result

    def run_full(self, nvd_days_back: int = 7) -> CombinedIngestionResult:
        """
        Run NVD then KEV ingestion.

        Never raises: a failure is reported in the result message along
        with whatever stage results were gathered before it.

        Args:
            nvd_days_back: NVD published-date window in days.

        Returns:
            CombinedIngestionResult.
        """
        combined = CombinedIngestionResult()

        try:
            logger.info("full_ingestion_started", nvd_days_back=nvd_days_back)

            combined.nvd_results = self._ingest_nvd(nvd_days_back)
            self.pacer.mark()

            self.pacer.wait()
            combined.kev_results = self._ingest_kev()

            combined.total_vulnerabilities = self.store.count_vulnerabilities()
            combined.total_known_exploited = self.store.count_known_exploited()
            combined.completed_at = datetime.now(timezone.utc)
            combined.message = (
                f"Full ingestion completed. NVD: {combined.nvd_results.new_added} new, "
                f"KEV: {combined.kev_results.new_added} new, "
                f"{combined.kev_results.duplicates_skipped} marked exploited"
            )

            logger.info(
                "full_ingestion_completed",
                total_vulnerabilities=combined.total_vulnerabilities,
                known_exploited=combined.total_known_exploited
            )

        except Exception as e:
            logger.error("full_ingestion_failed", error=str(e), error_type=type(e).__name__)
            combined.completed_at = datetime.now(timezone.utc)
            combined.message = f"Full ingestion failed: {e}"

        self.status.record(combined)
        return combined

    def get_status(self) -> Dict[str, Any]:
        """Get the outcome of the most recent ingestion run."""
        return self.status.as_dict()
