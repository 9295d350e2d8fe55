"""Listing extraction and two-stage screening."""

from .extractor import (
    ContentExtractor,
    DetailExtraction,
    listing_identity,
    normalize_listing,
)
from .evaluator import (
    TwoStageEvaluator,
    EvaluationOutcome,
    parse_result,
)
from .completion import (
    TextCompletionService,
    LangChainCompletionService,
)
from .heuristics import HeuristicScorer
from .answers import AnswerGenerator

__all__ = [
    "ContentExtractor",
    "DetailExtraction",
    "listing_identity",
    "normalize_listing",
    "TwoStageEvaluator",
    "EvaluationOutcome",
    "parse_result",
    "TextCompletionService",
    "LangChainCompletionService",
    "HeuristicScorer",
    "AnswerGenerator",
]
