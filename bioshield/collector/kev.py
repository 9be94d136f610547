"""
CISA Known Exploited Vulnerabilities (KEV) catalog client.

Fetches the KEV catalog JSON feed and caches it in memory for a day.
The catalog is a single authoritative snapshot, so failures are not
retried; they surface to the caller immediately.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, List, Dict, Any

import requests
import structlog

from ..config import Config
from ..errors import FeedUnavailableError, MalformedFeedError
from .models import KEVEntry

logger = structlog.get_logger(__name__)


class KEVClient:
    """
    Client for the CISA KEV catalog.

    The KEV catalog is a JSON feed of vulnerabilities with known
    active exploitation, maintained by CISA.
    """

    DEFAULT_FEED_URL = "https://www.cisa.gov/sites/default/files/feeds/known_exploited_vulnerabilities.json"
    CACHE_KEY = "CISA_KEV_CATALOG"

    def __init__(self, config: Config, clock: Optional[Callable[[], datetime]] = None):
        """
        Initialize the KEV client.

        Args:
            config: Application configuration.
            clock: Returns the current UTC time; injectable for tests.
        """
        self.config = config
        self.feed_url = config.kev_feed_url or self.DEFAULT_FEED_URL
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self.session = requests.Session()
        self.session.headers.update({
            "User-Agent": "BioShield-Triage/1.0",
            "Accept": "application/json"
        })

        # Cache entries: key -> (fetched_at, entries)
        self._cache: Dict[str, tuple] = {}
        self._cache_ttl = timedelta(hours=config.kev_cache_hours or 24)

        logger.info("kev_client_initialized", feed_url=self.feed_url)

    def _fetch(self) -> Dict[str, Any]:
        """
        Fetch the KEV catalog document from CISA.

        Raises:
            FeedUnavailableError: On any network or HTTP failure.
            MalformedFeedError: If the body cannot be decoded.
        """
        logger.debug("kev_fetch_started", url=self.feed_url)

        try:
            response = self.session.get(self.feed_url, timeout=60)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error("kev_fetch_failed", error=str(e))
            raise FeedUnavailableError(f"CISA KEV catalog unavailable: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            logger.error("kev_deserialization_failed", error=str(e))
            raise MalformedFeedError(f"CISA KEV catalog is not valid JSON: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get("vulnerabilities"), list):
            logger.error("kev_unexpected_shape")
            raise MalformedFeedError("CISA KEV catalog has no vulnerabilities list")

        logger.info(
            "kev_fetch_completed",
            catalog_version=data.get("catalogVersion"),
            count=data.get("count")
        )
        return data

    def fetch_catalog(self) -> List[KEVEntry]:
        """
        Get the KEV catalog, from cache when fresh.

        Returns:
            List of KEVEntry objects. Entries that fail to parse are skipped.

        Raises:
            FeedUnavailableError: If the catalog cannot be fetched.
            MalformedFeedError: If the catalog cannot be decoded.
        """
        now = self._clock()
        cached = self._cache.get(self.CACHE_KEY)
        if cached is not None:
            fetched_at, entries = cached
            if now - fetched_at < self._cache_ttl:
                logger.info("kev_cache_hit", entries=len(entries))
                return list(entries)

        data = self._fetch()

        entries = []
        for vuln in data["vulnerabilities"]:
            try:
                entries.append(KEVEntry.from_kev_data(vuln))
            except Exception as e:
                cve_id = vuln.get("cveID", "unknown") if isinstance(vuln, dict) else "unknown"
                logger.warning("kev_parse_error", cve_id=cve_id, error=str(e))

        self._cache[self.CACHE_KEY] = (now, entries)
        logger.info("kev_cache_loaded", entries=len(entries))

        return list(entries)

    def get_catalog_stats(self) -> Dict[str, Any]:
        """
        Get statistics about the KEV catalog.

        Returns:
            Dict with total and ransomware-associated entry counts.
        """
        entries = self.fetch_catalog()
        return {
            "total_entries": len(entries),
            "ransomware_associated": sum(1 for e in entries if e.ransomware_associated),
        }

    def clear_cache(self):
        """Clear the KEV cache to force a refresh."""
        self._cache.pop(self.CACHE_KEY, None)
        logger.info("kev_cache_cleared")

    def close(self):
        """Close the HTTP session."""
        self.session.close()
