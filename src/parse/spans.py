"""Canonical half-open byte spans.

Every offset the engine stores is a ``[start, end)`` byte range into one
immutable UTF-8 buffer. Tree-sitter already reports byte ranges in that form;
callers may still hand in character offsets or inclusive ends, which are
converted here and nowhere else.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict, model_validator

if TYPE_CHECKING:
    from tree_sitter import Node

SpanUnit = Literal["byte", "char"]


class Span(BaseModel):
    """Half-open ``[start, end)`` byte range."""

    model_config = ConfigDict(frozen=True)

    start: int
    end: int

    @model_validator(mode="after")
    def _check_order(self) -> Span:
        if self.start < 0:
            msg = f"span start must be >= 0 (got {self.start})"
            raise ValueError(msg)
        if self.end < self.start:
            msg = f"span end {self.end} precedes start {self.start}"
            raise ValueError(msg)
        return self

    @property
    def length(self) -> int:
        return self.end - self.start

    def contains(self, other: Span) -> bool:
        return self.start <= other.start and other.end <= self.end

    def shift(self, delta: int) -> Span:
        return Span(start=self.start + delta, end=self.end + delta)

    def slice(self, source: bytes) -> bytes:
        return source[self.start : self.end]

    def text(self, source: bytes) -> str:
        return self.slice(source).decode("utf-8", errors="replace")

    def as_tuple(self) -> tuple[int, int]:
        return (self.start, self.end)

    @classmethod
    def from_node(cls, node: Node) -> Span:
        return cls(start=node.start_byte, end=node.end_byte)


def char_to_byte_offset(text: str, char_offset: int) -> int:
    """Convert a character offset in ``text`` to a UTF-8 byte offset."""
    clamped = max(0, min(char_offset, len(text)))
    return len(text[:clamped].encode("utf-8"))


def byte_to_char_offset(source: bytes, byte_offset: int) -> int:
    """Convert a UTF-8 byte offset to a character offset."""
    clamped = max(0, min(byte_offset, len(source)))
    return len(source[:clamped].decode("utf-8", errors="replace"))


def _coerce_pair(value: Any) -> tuple[int, int]:
    if isinstance(value, Span):
        return value.start, value.end
    if isinstance(value, dict):
        try:
            return int(value["start"]), int(value["end"])
        except KeyError as exc:
            msg = f"span mapping is missing {exc.args[0]!r}"
            raise ValueError(msg) from exc
    if isinstance(value, (tuple, list)) and len(value) == 2:
        return int(value[0]), int(value[1])
    if isinstance(value, str):
        start_text, sep, end_text = value.partition(":")
        if not sep:
            start_text, sep, end_text = value.partition("-")
        if not sep:
            msg = f"cannot parse span from {value!r} (expected start:end)"
            raise ValueError(msg)
        return int(start_text), int(end_text)
    if hasattr(value, "start_byte") and hasattr(value, "end_byte"):
        return int(value.start_byte), int(value.end_byte)
    msg = f"cannot interpret {type(value).__name__} as a span"
    raise TypeError(msg)


def normalize_span(
    value: Any,
    *,
    source: bytes | None = None,
    unit: SpanUnit = "byte",
    inclusive_end: bool = False,
) -> Span:
    """Normalize any supported range representation into a canonical Span.

    Accepts a Span, a ``{"start", "end"}`` mapping, a 2-sequence, a
    ``"start:end"`` string, or a tree-sitter node. Character offsets require
    ``source`` so they can be re-expressed in bytes.
    """
    start, end = _coerce_pair(value)
    if inclusive_end:
        end += 1
    if unit == "char":
        if source is None:
            msg = "character offsets need the source buffer for conversion"
            raise ValueError(msg)
        text = source.decode("utf-8", errors="replace")
        start = char_to_byte_offset(text, start)
        end = char_to_byte_offset(text, end)
    if source is not None and end > len(source):
        msg = f"span end {end} is past the end of the buffer ({len(source)} bytes)"
        raise ValueError(msg)
    return Span(start=start, end=end)


def clip_span(start: int, end: int, length: int) -> Span:
    """Clip a possibly out-of-range window to ``[0, length]``."""
    clipped_start = max(0, min(start, length))
    clipped_end = max(clipped_start, min(end, length))
    return Span(start=clipped_start, end=clipped_end)


def aggregate_span(spans: list[Span]) -> Span | None:
    """Smallest span covering every input span, or None for an empty list."""
    if not spans:
        return None
    return Span(start=min(s.start for s in spans), end=max(s.end for s in spans))


__all__ = [
    "Span",
    "SpanUnit",
    "aggregate_span",
    "byte_to_char_offset",
    "char_to_byte_offset",
    "clip_span",
    "normalize_span",
]
