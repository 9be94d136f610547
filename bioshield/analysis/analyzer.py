"""
Bio-relevance analyzer.

Runs a fixed cascade for each vulnerability: keyword gate, input
screening, model analysis, partial extraction from a malformed model
reply, and finally a keyword/CVSS heuristic. Every path produces a fully
populated BioRelevanceAnalysis; analyze() never raises.
"""

import json
import re
from typing import Any, List, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..collector.models import Vulnerability
from ..models import (
    AnalysisMethod,
    BioRelevanceAnalysis,
    BioSector,
    PriorityLevel,
    SafetyImpact,
)
from .keywords import BioKeywordFilter, sectors_for_keywords
from .ollama import CompletionClient
from .prompts import build_analysis_prompt
from .safety import PromptSafetyFilter

logger = structlog.get_logger(__name__)


ANALYSIS_TEMPERATURE = 0.3

SKIPPED_RESPONSE = "Skipped - no bio keywords detected"
HEURISTIC_RESPONSE = "Fallback heuristic analysis used (AI unavailable or failed)"

_BIO_RELEVANT_RE = re.compile(r'"bioRelevant":\s*(true|false)', re.IGNORECASE)
_SCORE_RE = re.compile(r'"bioRelevanceScore":\s*(\d+)')

# Lowercased sector label -> canonical BioSector value
_SECTORS_BY_NAME = {sector.value.lower(): sector.value for sector in BioSector}


class _ModelVerdict(BaseModel):
    """Shape of the JSON object the model is asked to return."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    bio_relevant: bool = Field(default=False, alias="bioRelevant")
    bio_relevance_score: float = Field(default=0, alias="bioRelevanceScore")
    affected_sectors: Optional[List[Any]] = Field(default=None, alias="affectedBioSectors")
    human_safety_impact: Optional[str] = Field(default=None, alias="humanSafetyImpact")
    key_concern: Optional[str] = Field(default=None, alias="keyConcern")
    recommended_priority: Optional[str] = Field(default=None, alias="recommendedPriority")
    confidence_level: float = Field(default=0.0, alias="confidenceLevel")


def extract_json_object(text: str) -> Optional[str]:
    """
    Find the first balanced ``{...}`` block in free text.

    Braces inside JSON strings are ignored.

    Args:
        text: Model output, possibly wrapped in prose or code fences.

    Returns:
        The object text, or None if no balanced block exists.
    """
    open_positions: List[int] = []
    best = None
    in_string = False
    escaped = False

    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"' and open_positions:
            in_string = True
        elif ch == "{":
            open_positions.append(i)
        elif ch == "}" and open_positions:
            start = open_positions.pop()
            if not open_positions:
                return text[start:i + 1]
            # Inside an unclosed outer brace; remember the earliest complete block
            if best is None or start < best[0]:
                best = (start, i + 1)

    return text[best[0]:best[1]] if best else None


def _validate_enum(value: Optional[str], enum_cls, default):
    if not value or not str(value).strip():
        return default
    try:
        return enum_cls(str(value).strip().upper())
    except ValueError:
        return default


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


class BioImpactAnalyzer:
    """Assesses how a vulnerability bears on biosecurity-sensitive sectors."""

    def __init__(
        self,
        completion_client: CompletionClient,
        keyword_filter: Optional[BioKeywordFilter] = None,
        safety_filter: Optional[PromptSafetyFilter] = None,
        temperature: float = ANALYSIS_TEMPERATURE
    ):
        """
        Initialize the analyzer.

        Args:
            completion_client: Model backend.
            keyword_filter: Bio keyword filter (built-in vocabulary by default).
            safety_filter: Prompt safety filter.
            temperature: Sampling temperature for analysis prompts.
        """
        self.completion_client = completion_client
        self.keyword_filter = keyword_filter or BioKeywordFilter()
        self.safety_filter = safety_filter or PromptSafetyFilter()
        self.temperature = temperature

    def analyze(self, vulnerability: Vulnerability) -> BioRelevanceAnalysis:
        """
        Analyze a vulnerability for bio-relevance.

        Args:
            vulnerability: Vulnerability to analyze.

        Returns:
            BioRelevanceAnalysis; the ``method`` field records which stage
            produced it.
        """
        cve_id = vulnerability.cve_id
        try:
            logger.info("bio_analysis_started", cve_id=cve_id)

            if not self.keyword_filter.has_bio_keywords(vulnerability.search_text):
                logger.info("bio_keywords_absent", cve_id=cve_id)
                return BioRelevanceAnalysis(
                    bio_relevant=False,
                    bio_relevance_score=0,
                    human_safety_impact=SafetyImpact.NONE,
                    key_concern="Not bio-relevant based on keyword analysis",
                    recommended_priority=PriorityLevel.LOW,
                    confidence=0.95,
                    raw_ai_response=SKIPPED_RESPONSE,
                    method=AnalysisMethod.KEYWORD_GATE,
                )

            description = vulnerability.description or ""
            vendor = vulnerability.vendor_name or ""

            if self.safety_filter.is_suspicious(description) or self.safety_filter.is_suspicious(vendor):
                logger.warning("suspicious_input_fallback", cve_id=cve_id)
                return self.heuristic_analysis(vulnerability)

            prompt = build_analysis_prompt(
                cve_id,
                self.safety_filter.sanitize(description),
                self.safety_filter.sanitize(vendor),
                vulnerability.cvss_score,
            )

            response = self.completion_client.generate_completion(prompt, temperature=self.temperature)
            analysis = self._parse_response(response, vulnerability)

            logger.info(
                "bio_analysis_completed",
                cve_id=cve_id,
                bio_relevant=analysis.bio_relevant,
                score=analysis.bio_relevance_score,
                method=analysis.method.value
            )
            return analysis

        except Exception as e:
            logger.error("bio_analysis_failed", cve_id=cve_id, error=str(e), error_type=type(e).__name__)
            return self.heuristic_analysis(vulnerability)

    def _parse_response(self, response: str, vulnerability: Vulnerability) -> BioRelevanceAnalysis:
        """Decode the model reply, salvaging fields when it is not valid JSON."""
        json_text = extract_json_object(response)
        if json_text is not None:
            try:
                verdict = _ModelVerdict.model_validate(json.loads(json_text))
            except (ValueError, ValidationError) as e:
                logger.warning("model_json_invalid", cve_id=vulnerability.cve_id, error=str(e))
            else:
                sectors = [
                    _SECTORS_BY_NAME[s.strip().lower()]
                    for s in (verdict.affected_sectors or [])
                    if isinstance(s, str) and s.strip().lower() in _SECTORS_BY_NAME
                ]
                return BioRelevanceAnalysis(
                    bio_relevant=verdict.bio_relevant,
                    bio_relevance_score=int(_clamp(verdict.bio_relevance_score, 0, 100)),
                    affected_sectors=list(dict.fromkeys(sectors)),
                    human_safety_impact=_validate_enum(
                        verdict.human_safety_impact, SafetyImpact, SafetyImpact.NONE
                    ),
                    key_concern=verdict.key_concern or "No specific concern identified",
                    recommended_priority=_validate_enum(
                        verdict.recommended_priority, PriorityLevel, PriorityLevel.LOW
                    ),
                    confidence=_clamp(verdict.confidence_level, 0.0, 1.0),
                    raw_ai_response=response,
                    method=AnalysisMethod.AI,
                )

        return self._salvage(response, vulnerability)

    def _salvage(self, response: str, vulnerability: Vulnerability) -> BioRelevanceAnalysis:
        """Pull bioRelevant/bioRelevanceScore out of a malformed reply."""
        relevant_match = _BIO_RELEVANT_RE.search(response)
        score_match = _SCORE_RE.search(response)

        if relevant_match is None and score_match is None:
            logger.warning("model_reply_unusable", cve_id=vulnerability.cve_id)
            return self.heuristic_analysis(vulnerability)

        if score_match is not None:
            score = min(int(score_match.group(1)), 100)
        else:
            score = self.keyword_filter.quick_relevance_score(vulnerability.search_text)

        logger.warning("model_reply_salvaged", cve_id=vulnerability.cve_id)
        return BioRelevanceAnalysis(
            bio_relevant=relevant_match is not None and relevant_match.group(1).lower() == "true",
            bio_relevance_score=score,
            human_safety_impact=SafetyImpact.MEDIUM,
            key_concern="Analysis completed with partial data extraction",
            recommended_priority=PriorityLevel.HIGH if score > 60 else PriorityLevel.MEDIUM,
            confidence=0.6,
            raw_ai_response=response,
            method=AnalysisMethod.REGEX_SALVAGE,
        )

    def heuristic_analysis(self, vulnerability: Vulnerability) -> BioRelevanceAnalysis:
        """
        Score from keyword matches and CVSS alone.

        Args:
            vulnerability: Vulnerability to score.

        Returns:
            BioRelevanceAnalysis with confidence 0.5.
        """
        logger.info("heuristic_analysis_used", cve_id=vulnerability.cve_id)

        text = vulnerability.search_text
        matched = self.keyword_filter.get_matched_keywords(text)
        score = self.keyword_filter.quick_relevance_score(text)

        cvss = vulnerability.cvss_score
        if cvss is not None:
            if cvss >= 9.0:
                score += 10
            elif cvss >= 7.0:
                score += 5
        score = min(score, 100)

        if score > 70:
            priority = PriorityLevel.HIGH
        elif score > 40:
            priority = PriorityLevel.MEDIUM
        else:
            priority = PriorityLevel.LOW

        return BioRelevanceAnalysis(
            bio_relevant=len(matched) > 0,
            bio_relevance_score=score,
            affected_sectors=sectors_for_keywords(matched),
            human_safety_impact=SafetyImpact.MEDIUM if score > 50 else SafetyImpact.LOW,
            key_concern=f"Heuristic analysis based on {len(matched)} bio keyword matches",
            recommended_priority=priority,
            confidence=0.5,
            raw_ai_response=HEURISTIC_RESPONSE,
            method=AnalysisMethod.HEURISTIC,
        )
