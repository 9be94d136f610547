"""
NVD (National Vulnerability Database) API client.

Fetches recently published CVEs for a day window, retrying transient
failures and rate limiting with exponential backoff, and normalizes each
record into the canonical Vulnerability model.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, List, Dict, Any

import requests
import backoff
import structlog

from ..config import Config
from ..errors import FeedUnavailableError, MalformedFeedError
from ..throttle import Pacer
from .models import Vulnerability

logger = structlog.get_logger(__name__)


MAX_ATTEMPTS = 3

# NVD allows 5 requests per 30 seconds without an API key, 50 with one
PUBLIC_REQUEST_INTERVAL = 30.0 / 5
KEYED_REQUEST_INTERVAL = 30.0 / 50


class TransientFeedError(Exception):
    """A retryable NVD response (429 or 5xx)."""

    def __init__(self, status_code: int):
        super().__init__(f"NVD API returned status code {status_code}")
        self.status_code = status_code


def _log_backoff(details: Dict[str, Any]):
    logger.warning(
        "nvd_retry_scheduled",
        attempt=details["tries"],
        wait_seconds=details["wait"],
        error=str(details.get("exception"))
    )


class NVDClient:
    """
    Client for the NVD CVE 2.0 API.

    Builds a published-date window query, follows pagination, and
    returns normalized Vulnerability values. Nothing is persisted here.
    """

    BASE_URL = "https://services.nvd.nist.gov/rest/json/cves/2.0"
    DEFAULT_PAGE_SIZE = 100

    def __init__(self, config: Config, pacer: Optional[Pacer] = None):
        """
        Initialize the NVD client.

        Args:
            config: Application configuration.
            pacer: Spacing between page requests; sized from the NVD rate
                limit for keyed or public access by default.
        """
        self.config = config
        self.api_key = config.nvd_api_key
        self.base_url = config.nvd_base_url or self.BASE_URL
        self.page_size = config.nvd_results_per_page or self.DEFAULT_PAGE_SIZE

        self.session = requests.Session()
        self.session.headers.update({
            "User-Agent": "BioShield-Triage/1.0",
            "Accept": "application/json"
        })
        if self.api_key:
            self.session.headers["apiKey"] = self.api_key

        request_interval = KEYED_REQUEST_INTERVAL if self.api_key else PUBLIC_REQUEST_INTERVAL
        self.pacer = pacer or Pacer(request_interval, name="nvd_requests")

        logger.info(
            "nvd_client_initialized",
            has_api_key=bool(self.api_key),
            request_interval=self.pacer.interval_seconds
        )

    # Waits 2s then 4s between the three attempts
    @backoff.on_exception(
        backoff.expo,
        (requests.ConnectionError, requests.Timeout, TransientFeedError),
        max_tries=MAX_ATTEMPTS,
        jitter=None,
        factor=2,
        on_backoff=_log_backoff
    )
    def _make_request(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """
        Make a request to the NVD API.

        Args:
            params: Query parameters.

        Returns:
            JSON response data.

        Raises:
            TransientFeedError: On 429/5xx after the final attempt.
            requests.RequestException: On other HTTP failures.
            MalformedFeedError: If the body is not a JSON object.
        """
        logger.debug("nvd_request", params=params)

        response = self.session.get(self.base_url, params=params, timeout=60)

        if response.status_code == 429 or response.status_code >= 500:
            logger.warning("nvd_transient_status", status_code=response.status_code)
            raise TransientFeedError(response.status_code)

        response.raise_for_status()

        try:
            data = response.json()
        except ValueError as e:
            raise MalformedFeedError(f"NVD response is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise MalformedFeedError("NVD response is not a JSON object")

        return data

    def _format_datetime(self, dt: datetime) -> str:
        """Format datetime for NVD API (UTC, millisecond precision, no offset)."""
        if dt.tzinfo is not None:
            dt = dt.astimezone(timezone.utc)
        return dt.strftime("%Y-%m-%dT%H:%M:%S.000")

    def fetch_recent(self, days_back: int = 7, now: Optional[datetime] = None) -> List[Vulnerability]:
        """
        Fetch CVEs published in the last ``days_back`` days.

        Args:
            days_back: Size of the published-date window in days.
            now: End of the window; defaults to the current UTC time.

        Returns:
            List of Vulnerability objects. Items that fail to map are
            logged and skipped.

        Raises:
            FeedUnavailableError: If a page cannot be fetched after retries.
        """
        end_date = now or datetime.now(timezone.utc)
        start_date = end_date - timedelta(days=days_back)

        params: Dict[str, Any] = {
            "pubStartDate": self._format_datetime(start_date),
            "pubEndDate": self._format_datetime(end_date),
            "resultsPerPage": self.page_size,
            "startIndex": 0,
        }

        logger.info("nvd_fetch_started", days_back=days_back, start_date=params["pubStartDate"])

        vulnerabilities: List[Vulnerability] = []
        total_results: Optional[int] = None

        while True:
            self.pacer.wait()
            try:
                data = self._make_request(params)
            except (requests.RequestException, TransientFeedError) as e:
                logger.error("nvd_request_failed", error=str(e))
                raise FeedUnavailableError(
                    f"Failed to fetch from NVD API after {MAX_ATTEMPTS} attempts: {e}"
                ) from e

            if total_results is None:
                total_results = data.get("totalResults", 0) or 0

            items = data.get("vulnerabilities") or []
            if not items:
                break

            for item in items:
                try:
                    vulnerabilities.append(Vulnerability.from_nvd_response(item))
                except Exception as e:
                    cve_id = (item.get("cve") or {}).get("id", "unknown") if isinstance(item, dict) else "unknown"
                    logger.warning("nvd_item_mapping_failed", cve_id=cve_id, error=str(e))

            results_per_page = data.get("resultsPerPage") or len(items)
            start_index = data.get("startIndex", params["startIndex"]) or 0

            if start_index + results_per_page >= total_results:
                break

            params["startIndex"] = start_index + results_per_page
            logger.debug("nvd_fetch_progress", fetched=params["startIndex"], total=total_results)

        logger.info("nvd_fetch_completed", mapped=len(vulnerabilities), total_available=total_results)
        return vulnerabilities

    def close(self):
        """Close the HTTP session."""
        self.session.close()
