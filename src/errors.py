"""Exception taxonomy for spanguard-core."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence


class SpanguardError(Exception):
    """Base class for every failure raised by the engine."""

    code = "ERROR"


class ParseFailure(SpanguardError):
    """Raised when source text cannot be turned into a clean syntax tree."""

    code = "PARSE_FAILURE"

    def __init__(self, message: str, *, line: int | None = None, column: int | None = None):
        super().__init__(message)
        self.line = line
        self.column = column


class NoMatch(SpanguardError):
    """Raised when a selector resolves to no records."""

    code = "NO_MATCH"

    def __init__(self, selector: str, message: str | None = None):
        super().__init__(message or f'No match for selector "{selector}"')
        self.selector = selector


class AmbiguousMatch(SpanguardError):
    """Raised when a selector resolves to several records without opting in."""

    code = "AMBIGUOUS_MATCH"
    MAX_LISTED = 5

    def __init__(self, selector: str, names: Sequence[str], total: int):
        listed = list(names[: self.MAX_LISTED])
        more = f" (+{total - len(listed)} more)" if total > len(listed) else ""
        super().__init__(
            f'Selector "{selector}" matched {total} records: '
            f"{', '.join(listed)}{more}. "
            "Refine the selector, use select/select_path, or allow_multiple."
        )
        self.selector = selector
        self.candidates = listed
        self.total = total


class InvalidSelector(SpanguardError):
    """Raised when a selector string does not follow the selector grammar."""

    code = "INVALID_SELECTOR"


class GuardViolation(SpanguardError):
    """Raised when a mutation pre-condition does not hold."""

    code = "GUARD_VIOLATION"


class PathDrift(SpanguardError):
    """Raised when the mutated target can no longer be found by path signature."""

    code = "PATH_DRIFT"


class InvalidResult(SpanguardError):
    """Raised when a mutated buffer no longer parses."""

    code = "INVALID_RESULT"


class TokenInvalid(SpanguardError):
    """Raised when a continuation token fails decoding or validation."""

    code = "TOKEN_INVALID"

    def __init__(self, message: str, *, reason: str = "invalid"):
        super().__init__(message)
        self.reason = reason


__all__ = [
    "AmbiguousMatch",
    "GuardViolation",
    "InvalidResult",
    "InvalidSelector",
    "NoMatch",
    "ParseFailure",
    "PathDrift",
    "SpanguardError",
    "TokenInvalid",
]
