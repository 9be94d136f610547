"""
Analysis, scoring and recommendation models.

These are produced downstream of ingestion: the relevance analyzer emits
BioRelevanceAnalysis, the composite scorer emits BioImpactScore, and the
recommendation generator emits ActionRecommendation records.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List
from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PriorityLevel(str, Enum):
    """Remediation priority derived from the composite score."""
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class SafetyImpact(str, Enum):
    """Human safety impact level reported by the analyzer."""
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    NONE = "NONE"


class RecommendationType(str, Enum):
    """Kind of remediation action."""
    IMMEDIATE = "IMMEDIATE"
    SCHEDULED = "SCHEDULED"
    MONITOR = "MONITOR"
    ESCALATE = "ESCALATE"


class BioSector(str, Enum):
    """Biosecurity-sensitive sectors an analysis may flag."""
    CLINICAL_LABS = "Clinical Labs"
    HOSPITALS = "Hospitals"
    RESEARCH_LABS = "Research Labs"
    BIOMANUFACTURING = "Biomanufacturing"
    FOOD_AGRICULTURE = "Food/Agriculture"
    PHARMACEUTICAL = "Pharmaceutical"


class AnalysisMethod(str, Enum):
    """Which analyzer stage produced a verdict."""
    KEYWORD_GATE = "keyword_gate"
    AI = "ai"
    REGEX_SALVAGE = "regex_salvage"
    HEURISTIC = "heuristic"


class BioRelevanceAnalysis(BaseModel):
    """Structured bio-relevance verdict for one vulnerability."""

    bio_relevant: bool = False
    bio_relevance_score: int = Field(default=0, ge=0, le=100)
    affected_sectors: List[str] = Field(default_factory=list)
    human_safety_impact: SafetyImpact = SafetyImpact.NONE
    key_concern: str = ""
    recommended_priority: PriorityLevel = PriorityLevel.LOW
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    raw_ai_response: str = ""
    method: AnalysisMethod = AnalysisMethod.HEURISTIC


class BioImpactScore(BaseModel):
    """Composite bio impact score for one vulnerability."""

    id: Optional[int] = None
    cve_id: str
    human_safety_score: int = Field(ge=0, le=100)
    supply_chain_score: int = Field(ge=0, le=100)
    exploitability_score: int = Field(ge=0, le=100)
    patch_availability_score: int = Field(ge=0, le=100)
    composite_score: float = Field(ge=0.0, le=100.0)
    priority_level: PriorityLevel
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    affected_sectors: List[str] = Field(default_factory=list)
    ai_analysis: Optional[str] = None
    model_version: Optional[str] = None
    human_reviewed: bool = False
    reviewer_notes: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)


class ActionRecommendation(BaseModel):
    """One remediation action for a vulnerability."""

    id: Optional[int] = None
    cve_id: str
    recommendation_type: RecommendationType
    action_text: str
    safe_to_implement: bool = True
    requires_tier2: bool = False
    created_at: datetime = Field(default_factory=_utcnow)
