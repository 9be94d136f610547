"""Collector package for the NVD and CISA KEV feeds."""

from .models import (
    CVSSMetrics,
    Vulnerability,
    KEVEntry,
    IngestionResult,
    CombinedIngestionResult,
    is_valid_cve_id,
)

__all__ = [
    "CVSSMetrics",
    "Vulnerability",
    "KEVEntry",
    "IngestionResult",
    "CombinedIngestionResult",
    "is_valid_cve_id",
]
