"""
BioShield - Cyberbiosecurity Vulnerability Triage

This package ingests newly published vulnerabilities from NVD and the
CISA KEV catalog, assesses their relevance to biosecurity-sensitive
sectors with a local language model, scores their bio impact and
produces priority-based remediation actions.
"""

__version__ = "1.0.0"
__author__ = "Security Automation"
