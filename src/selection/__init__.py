"""Selector engine for spanguard-core."""

from selection.candidates import MatchKind, build_selector_set, expand_candidates
from selection.grammar import Selector, SelectorFilter, parse_selector
from selection.resolve import match_records, resolve_matches, resolve_one

__all__ = [
    "MatchKind",
    "Selector",
    "SelectorFilter",
    "build_selector_set",
    "expand_candidates",
    "match_records",
    "parse_selector",
    "resolve_matches",
    "resolve_one",
]
