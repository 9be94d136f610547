"""Bio impact scoring."""

from .composite import CompositeScorer, composite_score, priority_for_score

__all__ = ["CompositeScorer", "composite_score", "priority_for_score"]
