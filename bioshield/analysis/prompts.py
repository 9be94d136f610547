"""
Prompt template for bio-relevance analysis.

The model is asked for a single JSON object so the analyzer can decode it
directly; everything interpolated here has already been sanitized.
"""

from typing import Optional

from ..models import BioSector


VALID_SECTORS = ", ".join(sector.value for sector in BioSector)


ANALYSIS_PROMPT_TEMPLATE = """You are a cyberbiosecurity expert analyzing vulnerability {cve_id}.

Task: Determine if this vulnerability affects biosecurity/healthcare systems and assess its bio-impact.

Vulnerability Description:
{description}

Vendor: {vendor}
CVSS Score: {cvss}

Analyze this vulnerability for biosecurity relevance. Consider:
1. Does it affect medical devices, laboratory equipment, hospital systems, or biomanufacturing?
2. Could it impact patient safety, lab operations, or biological research?
3. What are the specific risks to healthcare/bio sectors?

Respond ONLY with valid JSON in this exact format (no markdown, no extra text):
{{
  "bioRelevant": true or false,
  "bioRelevanceScore": 0-100,
  "affectedBioSectors": ["Clinical Labs", "Hospitals", etc],
  "humanSafetyImpact": "HIGH" or "MEDIUM" or "LOW" or "NONE",
  "keyConcern": "one sentence explaining the main concern",
  "recommendedPriority": "CRITICAL" or "HIGH" or "MEDIUM" or "LOW",
  "confidenceLevel": 0.0 to 1.0
}}

Valid sectors: {sectors}
"""


def build_analysis_prompt(
    cve_id: str,
    description: str,
    vendor: str,
    cvss_score: Optional[float]
) -> str:
    """
    Build the bio-relevance analysis prompt.

    Args:
        cve_id: CVE identifier.
        description: Sanitized description.
        vendor: Sanitized vendor name.
        cvss_score: CVSS base score, if known.

    Returns:
        Prompt text.
    """
    return ANALYSIS_PROMPT_TEMPLATE.format(
        cve_id=cve_id,
        description=description,
        vendor=vendor,
        cvss=cvss_score if cvss_score is not None else "N/A",
        sectors=VALID_SECTORS,
    )
