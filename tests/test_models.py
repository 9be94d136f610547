"""Tests for the vulnerability data models and NVD/KEV mapping."""

import json

import pytest
from pydantic import ValidationError

from bioshield.collector.models import (
    KEVEntry,
    NO_DESCRIPTION,
    SOURCE_KEV,
    Vulnerability,
    is_valid_cve_id,
    select_cvss,
)


@pytest.mark.parametrize("cve_id", ["CVE-2024-1234", "CVE-1999-0001", "CVE-2023-1234567"])
def test_valid_cve_ids_accepted(cve_id):
    assert is_valid_cve_id(cve_id)
    assert Vulnerability(cve_id=cve_id).cve_id == cve_id


@pytest.mark.parametrize(
    "cve_id",
    ["", "CVE-24-1234", "cve-2024-1234", "CVE-2024-", "CVE-2024-12a4", "GHSA-2024-1234", "CVE-2024-1234 extra"],
)
def test_invalid_cve_ids_rejected(cve_id):
    assert not is_valid_cve_id(cve_id)
    with pytest.raises(ValidationError):
        Vulnerability(cve_id=cve_id)


@pytest.mark.parametrize("cve_id", [" CVE-2024-1234 ", "CVE-2024-1234\n", "\tCVE-2024-1234"])
def test_surrounding_whitespace_is_rejected_not_trimmed(cve_id):
    assert not is_valid_cve_id(cve_id)
    with pytest.raises(ValidationError):
        Vulnerability(cve_id=cve_id)


def _metric(score, vector, kind="Primary"):
    return {"type": kind, "cvssData": {"baseScore": score, "vectorString": vector}}


def test_cvss_prefers_v31_over_older_versions():
    metrics = {
        "cvssMetricV2": [_metric(5.0, "AV:N/AC:L")],
        "cvssMetricV30": [_metric(7.0, "CVSS:3.0/AV:N")],
        "cvssMetricV31": [_metric(9.8, "CVSS:3.1/AV:N")],
    }
    chosen = select_cvss(metrics)
    assert chosen.base_score == 9.8
    assert chosen.vector_string == "CVSS:3.1/AV:N"


def test_cvss_falls_back_to_v2_and_prefers_primary():
    metrics = {
        "cvssMetricV2": [
            _metric(4.3, "AV:N/AC:M", kind="Secondary"),
            _metric(6.8, "AV:N/AC:L", kind="Primary"),
        ]
    }
    assert select_cvss(metrics).base_score == 6.8


def test_cvss_absent():
    assert select_cvss({}) is None
    assert select_cvss(None) is None


def test_from_nvd_response_maps_fields():
    item = {
        "cve": {
            "id": "CVE-2024-5555",
            "published": "2024-03-01T10:15:00.000",
            "descriptions": [
                {"lang": "es", "value": "Desbordamiento"},
                {"lang": "en", "value": "Overflow in infusion pump firmware"},
            ],
            "metrics": {"cvssMetricV31": [_metric(8.1, "CVSS:3.1/AV:A")]},
            "configurations": [{
                "nodes": [{
                    "cpeMatch": [
                        {"vulnerable": True, "criteria": "cpe:2.3:h:acme_medical:pump_x:1.0:*:*:*:*:*:*:*"},
                    ]
                }]
            }],
            "references": [{"url": "https://vendor.example/advisory"}],
        }
    }

    vuln = Vulnerability.from_nvd_response(item)

    assert vuln.cve_id == "CVE-2024-5555"
    assert vuln.description == "Overflow in infusion pump firmware"
    assert vuln.cvss_score == 8.1
    assert vuln.cvss_vector == "CVSS:3.1/AV:A"
    assert vuln.vendor_name == "acme medical"
    assert vuln.affected_products == "pump x"
    assert vuln.references == ["https://vendor.example/advisory"]
    assert vuln.published_date.year == 2024
    assert vuln.published_date.tzinfo is not None
    assert json.loads(vuln.raw_data)["id"] == "CVE-2024-5555"
    assert not vuln.known_exploited


def test_description_fallbacks():
    first_language = Vulnerability.from_nvd_response({
        "cve": {"id": "CVE-2024-0002", "descriptions": [{"lang": "fr", "value": "Faille"}]}
    })
    assert first_language.description == "Faille"

    none_at_all = Vulnerability.from_nvd_response({"cve": {"id": "CVE-2024-0003", "descriptions": []}})
    assert none_at_all.description == NO_DESCRIPTION
    assert none_at_all.cvss_score is None


def test_from_nvd_response_requires_cve_object():
    with pytest.raises(ValueError):
        Vulnerability.from_nvd_response({"not_cve": {}})


def test_kev_entry_to_vulnerability():
    entry = KEVEntry.from_kev_data({
        "cveID": "CVE-2023-9999",
        "vendorProject": "Acme",
        "product": "LabServer",
        "vulnerabilityName": "Acme LabServer RCE",
        "dateAdded": "2024-01-15",
        "shortDescription": "Remote code execution in LabServer.",
        "knownRansomwareCampaignUse": "Known",
    })

    vuln = entry.to_vulnerability()

    assert entry.ransomware_associated
    assert vuln.source_name == SOURCE_KEV
    assert vuln.known_exploited
    assert vuln.description == "Remote code execution in LabServer."
    assert vuln.vendor_name == "Acme"
    assert vuln.affected_products == "LabServer"
    assert vuln.published_date.date().isoformat() == "2024-01-15"
    assert vuln.nvd_url == "https://nvd.nist.gov/vuln/detail/CVE-2023-9999"
