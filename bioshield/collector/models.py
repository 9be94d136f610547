"""
Data models for vulnerability records from the NVD and CISA KEV feeds.

These Pydantic models normalize both feed shapes into one canonical
Vulnerability record and carry the per-run ingestion statistics.
"""

import json
import re
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any, Tuple
from pydantic import BaseModel, Field, field_validator


CVE_ID_PATTERN = re.compile(r"CVE-\d{4}-\d+", re.ASCII)

NO_DESCRIPTION = "No description available"

SOURCE_NVD = "NVD"
SOURCE_KEV = "CISA_KEV"


def is_valid_cve_id(cve_id: str) -> bool:
    """Check whether a string is a well-formed CVE identifier."""
    return bool(cve_id) and CVE_ID_PATTERN.fullmatch(cve_id) is not None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an NVD/KEV timestamp, assuming UTC when no offset is given."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, TypeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class CVSSMetrics(BaseModel):
    """CVSS base score and vector for one metric version."""

    version: str = Field(default="3.1", description="CVSS version")
    vector_string: Optional[str] = Field(default=None, description="CVSS vector string")
    base_score: float = Field(default=0.0, ge=0.0, le=10.0, description="Base CVSS score")

    @classmethod
    def from_nvd_metrics(cls, metrics_data: Dict[str, Any], version: str = "3.1") -> "CVSSMetrics":
        """Create CVSSMetrics from one NVD cvssMetricV* entry."""
        cvss_data = metrics_data.get("cvssData", {})
        return cls(
            version=cvss_data.get("version", version),
            vector_string=cvss_data.get("vectorString"),
            base_score=cvss_data.get("baseScore", 0.0),
        )


# Preferred order when a record carries several CVSS versions
CVSS_METRIC_KEYS: List[Tuple[str, str]] = [
    ("cvssMetricV31", "3.1"),
    ("cvssMetricV30", "3.0"),
    ("cvssMetricV2", "2.0"),
]


def select_cvss(metrics: Optional[Dict[str, Any]]) -> Optional[CVSSMetrics]:
    """
    Pick the CVSS metrics to use for a record.

    Version 3.1 wins over 3.0, which wins over 2.0. Within a version the
    ``Primary`` entry is preferred, otherwise the first one listed.

    Args:
        metrics: The ``metrics`` object of an NVD CVE record.

    Returns:
        CVSSMetrics or None when the record has no score.
    """
    if not metrics:
        return None

    for key, version in CVSS_METRIC_KEYS:
        entries = metrics.get(key) or []
        if not entries:
            continue
        chosen = next((m for m in entries if m.get("type") == "Primary"), entries[0])
        return CVSSMetrics.from_nvd_metrics(chosen, version)

    return None


def select_description(descriptions: List[Dict[str, Any]]) -> str:
    """Get the English description, else the first available, else a placeholder."""
    for desc in descriptions:
        if desc.get("lang") == "en" and desc.get("value"):
            return desc["value"]
    for desc in descriptions:
        if desc.get("value"):
            return desc["value"]
    return NO_DESCRIPTION


def _cpe_names(cve: Dict[str, Any]) -> Tuple[List[str], List[str]]:
    """Extract vendor and product names from vulnerable CPE matches."""
    vendors = set()
    products = set()

    for config in cve.get("configurations", []):
        for node in config.get("nodes", []):
            for match_data in node.get("cpeMatch", []):
                if not match_data.get("vulnerable", True):
                    continue
                # cpe:2.3:a:vendor:product:version:...
                parts = match_data.get("criteria", "").split(":")
                if len(parts) >= 5:
                    if parts[3] not in ("*", "-", ""):
                        vendors.add(parts[3].replace("_", " "))
                    if parts[4] not in ("*", "-", ""):
                        products.add(parts[4].replace("_", " "))

    return sorted(vendors), sorted(products)


class Vulnerability(BaseModel):
    """Canonical vulnerability record shared by both feeds."""

    id: Optional[int] = Field(default=None, description="Storage row id")
    cve_id: str = Field(description="CVE identifier (e.g., CVE-2024-1234)")
    description: str = Field(default=NO_DESCRIPTION, description="Vulnerability description")
    source_name: str = Field(default=SOURCE_NVD, description="Feed that produced the record")

    # Scoring
    cvss_score: Optional[float] = Field(default=None, ge=0.0, le=10.0, description="CVSS base score")
    cvss_vector: Optional[str] = Field(default=None, description="CVSS vector string")

    published_date: Optional[datetime] = Field(default=None, description="Date CVE was published")

    # Affected products
    vendor_name: Optional[str] = Field(default=None, description="Vendor or project name")
    affected_products: Optional[str] = Field(default=None, description="Affected product names")

    known_exploited: bool = Field(default=False, description="Listed in CISA KEV")

    references: List[str] = Field(default_factory=list, description="Reference URLs")
    raw_data: Optional[str] = Field(default=None, description="Raw source payload for audit")

    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @field_validator("cve_id")
    @classmethod
    def _validate_cve_id(cls, value: str) -> str:
        if not is_valid_cve_id(value):
            raise ValueError(f"Invalid CVE identifier: {value!r}")
        return value

    @property
    def nvd_url(self) -> str:
        """Canonical advisory lookup URL."""
        return f"https://nvd.nist.gov/vuln/detail/{self.cve_id}"

    @property
    def search_text(self) -> str:
        """Description, vendor and products joined for keyword matching."""
        return " ".join(
            part for part in (self.description, self.vendor_name, self.affected_products) if part
        )

    @classmethod
    def from_nvd_response(cls, vuln_data: Dict[str, Any]) -> "Vulnerability":
        """Create a Vulnerability from one item of the NVD ``vulnerabilities`` array."""
        cve = vuln_data.get("cve")
        if not isinstance(cve, dict):
            raise ValueError("NVD item has no cve object")

        cvss = select_cvss(cve.get("metrics"))
        vendors, products = _cpe_names(cve)

        return cls(
            cve_id=cve.get("id", ""),
            description=select_description(cve.get("descriptions", [])),
            source_name=SOURCE_NVD,
            cvss_score=cvss.base_score if cvss else None,
            cvss_vector=cvss.vector_string if cvss else None,
            published_date=_parse_timestamp(cve.get("published")),
            vendor_name=", ".join(vendors) or None,
            affected_products=", ".join(products) or None,
            references=[ref.get("url", "") for ref in cve.get("references", []) if ref.get("url")],
            raw_data=json.dumps(cve),
        )


class KEVEntry(BaseModel):
    """CISA Known Exploited Vulnerability catalog entry."""

    cve_id: str = Field(description="CVE identifier")
    vendor_project: str = Field(default="", description="Vendor or project name")
    product: str = Field(default="", description="Affected product name")
    vulnerability_name: str = Field(default="", description="Vulnerability title")
    date_added: Optional[datetime] = Field(default=None, description="Date added to KEV catalog")
    short_description: str = Field(default="", description="Brief vulnerability description")
    required_action: str = Field(default="", description="Required remediation action")
    due_date: Optional[datetime] = Field(default=None, description="Remediation due date")
    known_ransomware_use: str = Field(default="Unknown", description="Known ransomware campaign use")
    notes: str = Field(default="", description="Additional notes")

    @classmethod
    def from_kev_data(cls, data: Dict[str, Any]) -> "KEVEntry":
        """Create KEVEntry from CISA KEV catalog JSON data."""
        return cls(
            cve_id=data.get("cveID", ""),
            vendor_project=data.get("vendorProject", ""),
            product=data.get("product", ""),
            vulnerability_name=data.get("vulnerabilityName", ""),
            date_added=_parse_timestamp(data.get("dateAdded")),
            short_description=data.get("shortDescription", ""),
            required_action=data.get("requiredAction", ""),
            due_date=_parse_timestamp(data.get("dueDate")),
            known_ransomware_use=data.get("knownRansomwareCampaignUse", "Unknown"),
            notes=data.get("notes", ""),
        )

    @property
    def ransomware_associated(self) -> bool:
        return self.known_ransomware_use.lower() == "known"

    def to_vulnerability(self) -> Vulnerability:
        """Build the synthetic KEV-sourced Vulnerability for an unseen identifier."""
        return Vulnerability(
            cve_id=self.cve_id,
            description=self.short_description or self.vulnerability_name or NO_DESCRIPTION,
            source_name=SOURCE_KEV,
            published_date=self.date_added,
            vendor_name=self.vendor_project or None,
            affected_products=self.product or None,
            known_exploited=True,
            raw_data=self.model_dump_json(),
        )


class IngestionResult(BaseModel):
    """Statistics for one feed ingestion run."""

    total_fetched: int = 0
    new_added: int = 0
    duplicates_skipped: int = 0
    errors: int = 0
    message: str = ""
    ingested_at: datetime = Field(default_factory=_utcnow)


class CombinedIngestionResult(BaseModel):
    """Statistics for a full NVD + KEV ingestion run."""

    nvd_results: IngestionResult = Field(default_factory=IngestionResult)
    kev_results: IngestionResult = Field(default_factory=IngestionResult)
    total_vulnerabilities: int = 0
    total_known_exploited: int = 0
    completed_at: datetime = Field(default_factory=_utcnow)
    message: str = ""
