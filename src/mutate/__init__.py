"""Guarded mutations: replace, range replace and rename."""

from mutate.engine import (
    MutationEngine,
    MutationFailure,
    MutationRequest,
    MutationResult,
    run_mutation,
)
from mutate.guards import GuardReport
from mutate.newlines import NewlineStats, detect_newlines, normalize_newlines

__all__ = [
    "GuardReport",
    "MutationEngine",
    "MutationFailure",
    "MutationRequest",
    "MutationResult",
    "NewlineStats",
    "detect_newlines",
    "normalize_newlines",
    "run_mutation",
]
