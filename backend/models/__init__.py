"""Data models for the procurement analysis engine."""
from .chunk import Chunk, ScoredChunk
from .evaluation import EvaluationCriterion, CriterionResult, PenaltyBreakdown, EvaluationResult
from .extraction import (
    RfpContext,
    ExtractedField,
    ExtractedFields,
    AspectSuggestions,
    SuggestionReport,
)

__all__ = [
    "Chunk",
    "ScoredChunk",
    "EvaluationCriterion",
    "CriterionResult",
    "PenaltyBreakdown",
    "EvaluationResult",
    "RfpContext",
    "ExtractedField",
    "ExtractedFields",
    "AspectSuggestions",
    "SuggestionReport",
]
