"""Bio-relevance analysis: keyword gate, input screening and model analysis."""

from .analyzer import BioImpactAnalyzer
from .keywords import BioKeywordFilter
from .ollama import CompletionClient, OllamaClient
from .safety import PromptSafetyFilter

__all__ = [
    "BioImpactAnalyzer",
    "BioKeywordFilter",
    "CompletionClient",
    "OllamaClient",
    "PromptSafetyFilter",
]
