"""Context windows and dependency slices."""

from slicing.context import (
    DEFAULT_PADDING,
    ContextResult,
    build_context,
    compute_context_range,
    select_context_span,
)
from slicing.dependency import DependencySlice, build_dependency_slice, free_identifiers

__all__ = [
    "DEFAULT_PADDING",
    "ContextResult",
    "DependencySlice",
    "build_context",
    "build_dependency_slice",
    "compute_context_range",
    "free_identifiers",
    "select_context_span",
]
