"""Persistent storage for ingested vulnerabilities and their analyses."""

from .store import VulnerabilityStore

__all__ = ["VulnerabilityStore"]
