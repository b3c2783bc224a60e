"""Flat listings of records and code extraction by hash."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

from errors import AmbiguousMatch, NoMatch
from extract.hashing import hashes_match
from parse.spans import Span

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from extract.records import ExtractionResult, FunctionRecord, Record


class ListingEntry(BaseModel):
    """One row of ``list`` output."""

    model_config = ConfigDict(frozen=True)

    index: int
    name: str
    canonical_name: str
    kind: str
    export_kind: str
    replaceable: bool
    line: int
    column: int
    end_line: int
    span: Span
    hash: str
    path_signature: str
    scope_chain: tuple[str, ...]


class HashExtraction(BaseModel):
    model_config = ConfigDict(frozen=True)

    hash: str
    canonical_name: str
    kind: str
    line: int
    span: Span
    code: str


def _entry(record: Record) -> ListingEntry:
    return ListingEntry(
        index=record.index,
        name=record.name,
        canonical_name=record.display_name,
        kind=record.kind,
        export_kind=record.export_kind,
        replaceable=record.replaceable,
        line=record.line,
        column=record.column,
        end_line=record.end_line,
        span=record.span,
        hash=record.hash,
        path_signature=record.path_signature,
        scope_chain=record.scope_chain,
    )


def _filtered(
    records: Iterable[Record], *, exported_only: bool, kinds: Sequence[str]
) -> list[ListingEntry]:
    return [
        _entry(record)
        for record in records
        if (not exported_only or record.exported) and (not kinds or record.kind in kinds)
    ]


def list_functions(
    extraction: ExtractionResult,
    *,
    exported_only: bool = False,
    kinds: Sequence[str] = (),
) -> list[ListingEntry]:
    return _filtered(extraction.functions, exported_only=exported_only, kinds=kinds)


def list_variables(
    extraction: ExtractionResult,
    *,
    exported_only: bool = False,
    kinds: Sequence[str] = (),
) -> list[ListingEntry]:
    return _filtered(extraction.variables, exported_only=exported_only, kinds=kinds)


def extract_by_hashes(
    extraction: ExtractionResult, source: bytes, hashes: Sequence[str]
) -> list[HashExtraction]:
    """Code for each hash, in request order.

    Every hash must identify exactly one function; raises NoMatch or
    AmbiguousMatch on the first one that does not.
    """
    found: list[HashExtraction] = []
    for value in hashes:
        matches: list[FunctionRecord] = [
            fn for fn in extraction.functions if hashes_match(value, fn.hash, fn.full_hash)
        ]
        if not matches:
            raise NoMatch(value, f'No function with hash "{value}"')
        if len(matches) > 1:
            raise AmbiguousMatch(value, [fn.display_name for fn in matches], len(matches))
        fn = matches[0]
        found.append(
            HashExtraction(
                hash=fn.hash,
                canonical_name=fn.display_name,
                kind=fn.kind,
                line=fn.line,
                span=fn.span,
                code=fn.span.text(source),
            )
        )
    return found


__all__ = [
    "HashExtraction",
    "ListingEntry",
    "extract_by_hashes",
    "list_functions",
    "list_variables",
]
