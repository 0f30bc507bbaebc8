"""Internal application services."""

from .validation import ValidationError, validate_set_scores
from .rating import RatingUpdate, update_ratings
from .completion import (
    CompletionOutcome,
    complete_live_match,
    handle_match_completion,
)

__all__ = [
    "validate_set_scores",
    "ValidationError",
    "RatingUpdate",
    "update_ratings",
    "CompletionOutcome",
    "complete_live_match",
    "handle_match_completion",
]
