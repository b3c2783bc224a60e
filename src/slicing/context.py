"""Padded context windows around extracted records.

Padding is counted in characters, the unit a reader sees, then mapped back
to byte offsets so the window can be sliced out of the original buffer.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, ConfigDict

from extract.hashing import compact_digest
from extract.records import EnclosingContext
from parse.spans import Span, byte_to_char_offset, char_to_byte_offset

if TYPE_CHECKING:
    from collections.abc import Sequence

    from extract.records import Record

EnclosingMode = Literal["exact", "class", "function"]

DEFAULT_PADDING = 512


class ContextRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: int
    end: int
    applied_before: int
    applied_after: int


class ContextEntry(BaseModel):
    """One record with the window of source around it."""

    model_config = ConfigDict(frozen=True)

    name: str
    entity: Literal["function", "variable"]
    kind: str
    line: int
    column: int
    span: Span
    effective_span: Span
    selected_context: EnclosingContext | None = None
    enclosing_contexts: tuple[EnclosingContext, ...] = ()
    path_signature: str
    scope_chain: tuple[str, ...]
    context_range: ContextRange
    base_start: int
    base_end: int
    context: str
    base: str
    context_hash: str
    hash: str


class ContextResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    file: str | None = None
    selector: str | None = None
    requested_before: int
    requested_after: int
    enclosing_mode: EnclosingMode
    entries: tuple[ContextEntry, ...] = ()


def compute_context_range(
    source: bytes,
    span: Span,
    before: int = DEFAULT_PADDING,
    after: int = DEFAULT_PADDING,
    *,
    text: str | None = None,
) -> ContextRange:
    """Pad ``span`` by ``before``/``after`` characters, clipped to the buffer."""
    decoded = text if text is not None else source.decode("utf-8", errors="replace")
    start_char = byte_to_char_offset(source, span.start)
    end_char = byte_to_char_offset(source, span.end)
    window_start = max(0, start_char - max(0, before))
    window_end = min(len(decoded), end_char + max(0, after))
    return ContextRange(
        start=char_to_byte_offset(decoded, window_start),
        end=char_to_byte_offset(decoded, window_end),
        applied_before=start_char - window_start,
        applied_after=window_end - end_char,
    )


def select_context_span(
    record: Record, mode: EnclosingMode = "exact"
) -> tuple[Span, EnclosingContext | None]:
    """Span to pad around: the record itself, or its nearest enclosing class/function."""
    if mode == "exact":
        return record.span, None
    for context in reversed(record.enclosing_contexts):
        if context.kind == mode:
            return context.span, context
    return record.span, None


def build_context_entry(
    record: Record,
    source: bytes,
    *,
    before: int = DEFAULT_PADDING,
    after: int = DEFAULT_PADDING,
    enclosing: EnclosingMode = "exact",
    text: str | None = None,
) -> ContextEntry:
    effective, selected = select_context_span(record, enclosing)
    window = compute_context_range(source, effective, before, after, text=text)
    snippet = source[window.start : window.end]
    base_start = max(0, record.span.start - window.start)
    return ContextEntry(
        name=record.display_name,
        entity=record.entity,
        kind=record.kind,
        line=record.line,
        column=record.column,
        span=record.span,
        effective_span=effective,
        selected_context=selected,
        enclosing_contexts=record.enclosing_contexts,
        path_signature=record.path_signature,
        scope_chain=record.scope_chain,
        context_range=window,
        base_start=base_start,
        base_end=base_start + record.span.length,
        context=snippet.decode("utf-8", errors="replace"),
        base=record.span.text(source),
        context_hash=compact_digest(snippet),
        hash=record.hash,
    )


def build_context(
    records: Sequence[Record],
    source: bytes,
    *,
    before: int = DEFAULT_PADDING,
    after: int = DEFAULT_PADDING,
    enclosing: EnclosingMode = "exact",
    file: str | None = None,
    selector: str | None = None,
) -> ContextResult:
    """Build padded context entries for each record, in the given order."""
    before = max(0, before)
    after = max(0, after)
    text = source.decode("utf-8", errors="replace")
    entries = tuple(
        build_context_entry(
            record, source, before=before, after=after, enclosing=enclosing, text=text
        )
        for record in records
    )
    return ContextResult(
        file=file,
        selector=selector,
        requested_before=before,
        requested_after=after,
        enclosing_mode=enclosing,
        entries=entries,
    )


__all__ = [
    "DEFAULT_PADDING",
    "ContextEntry",
    "ContextRange",
    "ContextResult",
    "EnclosingMode",
    "build_context",
    "build_context_entry",
    "compute_context_range",
    "select_context_span",
]
