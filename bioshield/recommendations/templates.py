"""
Remediation action templates per priority level.

Every action here is safe to implement without vendor coordination;
only the critical escalation step needs tier-2 (Bio-ISAC) involvement.
"""

from typing import Callable, Dict, List

from ..collector.models import Vulnerability
from ..models import ActionRecommendation, PriorityLevel, RecommendationType


def _action(
    vulnerability: Vulnerability,
    recommendation_type: RecommendationType,
    text: str,
    requires_tier2: bool = False
) -> ActionRecommendation:
    return ActionRecommendation(
        cve_id=vulnerability.cve_id,
        recommendation_type=recommendation_type,
        action_text=text,
        safe_to_implement=True,
        requires_tier2=requires_tier2,
    )


def critical_recommendations(vulnerability: Vulnerability) -> List[ActionRecommendation]:
    """Immediate defensive actions that do not disrupt operations."""
    nvd_url = vulnerability.nvd_url
    return [
        _action(
            vulnerability, RecommendationType.IMMEDIATE,
            "Enable Enhanced Monitoring: Increase log collection frequency to every 15 minutes "
            "for affected systems. Review logs daily for suspicious activity patterns."
        ),
        _action(
            vulnerability, RecommendationType.IMMEDIATE,
            "Network Segmentation Review: Verify that affected systems are properly isolated from "
            "critical production networks and patient data systems. Document current network topology."
        ),
        _action(
            vulnerability, RecommendationType.IMMEDIATE,
            "Access Control Audit: Review and remove unnecessary user permissions on affected systems. "
            "Enforce multi-factor authentication (MFA) for all administrative access immediately."
        ),
        _action(
            vulnerability, RecommendationType.ESCALATE,
            "Request Tier-2 Guidance: Escalate to Bio-ISAC analyst for specialized cyberbiosecurity "
            f"review and remediation planning. Reference CVE: {vulnerability.cve_id}",
            requires_tier2=True
        ),
        _action(
            vulnerability, RecommendationType.IMMEDIATE,
            "Review Complete Vendor Advisory: Access the full technical details and vendor-specific "
            f"guidance at {nvd_url}. Document all affected product versions."
        ),
    ]


def high_recommendations(vulnerability: Vulnerability) -> List[ActionRecommendation]:
    """Planned remediation with testing and stakeholder coordination."""
    nvd_url = vulnerability.nvd_url
    return [
        _action(
            vulnerability, RecommendationType.IMMEDIATE,
            "Review Vendor Advisory: Examine complete vulnerability details and vendor recommendations "
            f"at {nvd_url}. Check for available security patches."
        ),
        _action(
            vulnerability, RecommendationType.IMMEDIATE,
            "Inventory Affected Assets: Identify all systems, devices, and applications using the "
            "vulnerable software version. Document software versions and configurations."
        ),
        _action(
            vulnerability, RecommendationType.SCHEDULED,
            "Test Patch in Non-Production: If vendor patch available, deploy to development/test "
            "environment first. Validate functionality of critical workflows for minimum 48 hours."
        ),
        _action(
            vulnerability, RecommendationType.SCHEDULED,
            "Schedule Maintenance Window: Plan remediation within 7 days. Notify all stakeholders "
            "48 hours in advance. Prepare rollback procedures before implementation."
        ),
        _action(
            vulnerability, RecommendationType.MONITOR,
            "Enhanced Monitoring: Configure alerts for unusual network traffic or authentication "
            "attempts on affected systems. Review security logs weekly."
        ),
    ]


def medium_recommendations(vulnerability: Vulnerability) -> List[ActionRecommendation]:
    """Regular maintenance cycle with monitoring."""
    nvd_url = vulnerability.nvd_url
    return [
        _action(
            vulnerability, RecommendationType.SCHEDULED,
            "Review During Next Maintenance: Add to 30-day maintenance schedule. Coordinate with "
            "vendor support for recommended remediation approach."
        ),
        _action(
            vulnerability, RecommendationType.MONITOR,
            "Monitor for Exploitation: Subscribe to threat intelligence feeds for this vulnerability. "
            "Check CISA KEV catalog weekly for exploitation activity."
        ),
        _action(
            vulnerability, RecommendationType.IMMEDIATE,
            "Document Vulnerability Details: Record CVE information and potentially affected systems "
            f"in asset management system. Reference: {nvd_url}"
        ),
        _action(
            vulnerability, RecommendationType.MONITOR,
            "Verify Existing Controls: Confirm that network segmentation, firewalls, and access "
            "controls provide adequate defense-in-depth against this vulnerability class."
        ),
    ]


def low_recommendations(vulnerability: Vulnerability) -> List[ActionRecommendation]:
    """Awareness and inclusion in regular updates."""
    nvd_url = vulnerability.nvd_url
    return [
        _action(
            vulnerability, RecommendationType.MONITOR,
            "Awareness Only: Include in monthly security bulletin. No immediate action required "
            "unless threat landscape changes."
        ),
        _action(
            vulnerability, RecommendationType.SCHEDULED,
            "Include in Regular Updates: Address during next quarterly patch cycle if vendor patch "
            "becomes available. Document in maintenance tracking system."
        ),
        _action(
            vulnerability, RecommendationType.MONITOR,
            f"Reference for Future Planning: Bookmark CVE details at {nvd_url}. Reassess if CVSS "
            "score increases or exploitation is detected."
        ),
    ]


TEMPLATES: Dict[PriorityLevel, Callable[[Vulnerability], List[ActionRecommendation]]] = {
    PriorityLevel.CRITICAL: critical_recommendations,
    PriorityLevel.HIGH: high_recommendations,
    PriorityLevel.MEDIUM: medium_recommendations,
    PriorityLevel.LOW: low_recommendations,
}


def recommendations_for(priority, vulnerability: Vulnerability) -> List[ActionRecommendation]:
    """
    Build the template actions for a priority level.

    Args:
        priority: PriorityLevel or its string value.
        vulnerability: Vulnerability the actions refer to.

    Returns:
        Unsaved recommendations; unrecognized priorities get the MEDIUM set.
    """
    try:
        level = PriorityLevel(priority)
    except ValueError:
        level = PriorityLevel.MEDIUM
    return TEMPLATES[level](vulnerability)
