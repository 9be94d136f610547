"""
Bio keyword filtering for vulnerabilities.

Gates vulnerabilities on a fixed biosecurity vocabulary (optionally
extended from bio_keywords.yaml) and derives a coarse relevance score and
sector list from the keywords that match.
"""

import re
from typing import List, Optional

import structlog

from ..models import BioSector


logger = structlog.get_logger(__name__)


BIO_KEYWORDS: List[str] = [
    # Medical devices
    "medical", "hospital", "clinical", "patient", "diagnostic", "infusion",
    "ventilator", "MRI", "CT scan", "ultrasound", "defibrillator", "pacemaker",
    "insulin pump", "dialysis", "anesthesia", "surgical", "implantable", "prosthetic",

    # Laboratory equipment
    "laboratory", "lab", "centrifuge", "microscope", "sequencer", "PCR",
    "spectrometer", "analyzer", "assay", "plate reader", "incubator", "autoclave",
    "pipette", "thermal cycler", "electrophoresis",

    # Biomanufacturing
    "bioreactor", "fermentation", "chromatography", "lyophilizer", "bioprocess",
    "pharmaceutical", "vaccine", "biologics", "biotech", "biotechnology",
    "cell culture", "upstream", "downstream", "purification",

    # Information systems
    "LIMS", "EHR", "EMR", "laboratory information", "health records", "biobank",
    "specimen", "pathology", "radiology", "PACS", "health information",
    "medical records", "patient data",

    # Food and agriculture
    "food safety", "pasteurization", "sterilization", "food processing",
    "agriculture", "farming", "irrigation", "greenhouse", "livestock",

    # Healthcare facilities
    "healthcare", "clinic", "urgent care", "emergency room", "ICU",
    "surgery center", "pharmacy", "blood bank", "medical center",

    # Life sciences
    "genome", "DNA", "RNA", "protein", "enzyme", "antibody", "bacteria",
    "virus", "pathogen", "microorganism", "biological", "bio-safety",
]

# Substring rules applied to matched keywords, in sector order
SECTOR_RULES = [
    (("hospital", "clinical", "patient"), BioSector.HOSPITALS),
    (("lab", "diagnostic", "specimen"), BioSector.CLINICAL_LABS),
    (("research", "biobank"), BioSector.RESEARCH_LABS),
    (("pharmaceutical", "drug"), BioSector.PHARMACEUTICAL),
    (("bioreactor", "bioprocess", "fermentation"), BioSector.BIOMANUFACTURING),
    (("food", "agriculture", "farming"), BioSector.FOOD_AGRICULTURE),
]


class BioKeywordFilter:
    """Matches vulnerability text against the bio keyword vocabulary."""

    def __init__(self, extra_keywords: Optional[List[str]] = None):
        """
        Initialize the keyword filter.

        Args:
            extra_keywords: Additional keywords appended to the built-in list.
        """
        self.keywords: List[str] = list(BIO_KEYWORDS)
        for keyword in extra_keywords or []:
            if keyword and keyword.lower() not in (k.lower() for k in self.keywords):
                self.keywords.append(keyword)

        # Left boundary only: "lab" matches "laboratory" but not "collaborate"
        self._patterns = [
            (keyword, re.compile(r"(?<![a-z0-9])" + re.escape(keyword.lower())))
            for keyword in self.keywords
        ]

        logger.info("bio_keyword_filter_initialized", keywords=len(self.keywords))

    def get_matched_keywords(self, text: str) -> List[str]:
        """
        Get every vocabulary keyword that occurs in the text.

        Args:
            text: Text to search (case-insensitive).

        Returns:
            Matched keywords in vocabulary order.
        """
        if not text:
            return []

        lower_text = text.lower()
        return [keyword for keyword, pattern in self._patterns if pattern.search(lower_text)]

    def has_bio_keywords(self, text: str) -> bool:
        """Check whether the text contains at least one bio keyword."""
        if not text:
            return False
        lower_text = text.lower()
        return any(pattern.search(lower_text) for _, pattern in self._patterns)

    def quick_relevance_score(self, text: str) -> int:
        """
        Bucket the number of keyword matches into a 0-75 relevance score.

        0 matches -> 0, 1-2 -> 25, 3-4 -> 50, 5 or more -> 75.
        """
        matches = len(self.get_matched_keywords(text))
        if matches == 0:
            return 0
        if matches <= 2:
            return 25
        if matches <= 4:
            return 50
        return 75


def sectors_for_keywords(keywords: List[str]) -> List[str]:
    """
    Derive affected sectors from matched keywords.

    Args:
        keywords: Keywords returned by get_matched_keywords.

    Returns:
        Sector names without duplicates, in sector order.
    """
    sectors = []
    lowered = [k.lower() for k in keywords]
    for needles, sector in SECTOR_RULES:
        if any(needle in keyword for keyword in lowered for needle in needles):
            sectors.append(sector.value)
    return sectors
