"""Shared fixtures for the BioShield test suite."""

import json
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest
import requests

from bioshield.collector.models import Vulnerability
from bioshield.config import Config
from bioshield.storage import VulnerabilityStore


class FakeCompletionClient:
    """Completion client returning canned replies (or raising) and recording prompts."""

    def __init__(self, reply: Optional[str] = None, error: Optional[Exception] = None):
        self.reply = reply
        self.error = error
        self.prompts: List[str] = []
        self.temperatures: List[float] = []

    def generate_completion(self, prompt: str, temperature: float = 0.3) -> str:
        self.prompts.append(prompt)
        self.temperatures.append(temperature)
        if self.error is not None:
            raise self.error
        return self.reply


class FakeClock:
    """Monotonic clock whose sleep advances time instantly."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds


def make_response(status_code: int, payload=None, text: Optional[str] = None) -> requests.Response:
    """Build a real requests.Response with the given status and body."""
    response = requests.Response()
    response.status_code = status_code
    if payload is not None:
        response._content = json.dumps(payload).encode("utf-8")
    else:
        response._content = (text or "").encode("utf-8")
    response.url = "https://example.test/feed"
    response.encoding = "utf-8"
    return response


def make_vulnerability(
    cve_id: str = "CVE-2024-0001",
    description: str = "Buffer overflow in a web server",
    cvss_score: Optional[float] = 7.5,
    published_days_ago: Optional[int] = 3,
    **kwargs
) -> Vulnerability:
    published = None
    if published_days_ago is not None:
        published = datetime.now(timezone.utc) - timedelta(days=published_days_ago)
    return Vulnerability(
        cve_id=cve_id,
        description=description,
        cvss_score=cvss_score,
        published_date=published,
        **kwargs
    )


@pytest.fixture
def config(tmp_path):
    return Config(
        nvd_api_key="test-key",
        database_path=str(tmp_path / "bioshield.db"),
        log_file=str(tmp_path / "bioshield.log"),
        keyword_config_path=str(tmp_path / "missing.yaml"),
    )


@pytest.fixture
def store(tmp_path):
    s = VulnerabilityStore(str(tmp_path / "bioshield.db"))
    yield s
    s.close()


@pytest.fixture
def fake_clock():
    return FakeClock()
