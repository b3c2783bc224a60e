"""Workspace search over extracted records."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from collections.abc import Sequence

    from extract.records import Record
    from relations.session import AnalysisSession

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 20


class SearchOptions(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    entity: Literal["function", "variable"] = "function"
    exported_only: bool = False
    kinds: tuple[str, ...] = ()
    limit: int = Field(default=DEFAULT_LIMIT, ge=0)


class SearchMatch(BaseModel):
    model_config = ConfigDict(frozen=True)

    file: str
    name: str
    canonical_name: str
    kind: str
    export_kind: str
    exported: bool
    line: int
    column: int
    hash: str
    path_signature: str
    score: int
    matched_terms: tuple[str, ...]


class SearchResult(BaseModel):
    """Ranked matches; ``total`` counts every hit before ``limit`` is applied."""

    model_config = ConfigDict(frozen=True)

    terms: tuple[str, ...]
    options: SearchOptions
    matches: tuple[SearchMatch, ...] = ()
    total: int = 0
    truncated: bool = False
    files_scanned: int = 0


def normalize_terms(terms: str | Sequence[str]) -> tuple[str, ...]:
    if isinstance(terms, str):
        return tuple(part for part in re.split(r"\s+", terms.strip()) if part)
    return tuple(term.strip() for term in terms if term and term.strip())


def _term_score(term: str, record: Record) -> int:
    needle = term.lower()
    name = record.name.lower()
    canonical = record.canonical_name.lower()
    if needle == name or needle == canonical:
        return 3
    if name.startswith(needle) or canonical.startswith(needle):
        return 2
    if needle in name or needle in canonical:
        return 1
    return 0


def score_record(terms: Sequence[str], record: Record) -> int:
    """Sum of per-term scores; 0 unless every term hits."""
    total = 0
    for term in terms:
        score = _term_score(term, record)
        if not score:
            return 0
        total += score
    return total


def search_workspace(
    session: AnalysisSession,
    terms: str | Sequence[str],
    options: SearchOptions | None = None,
) -> SearchResult:
    """Search every workspace file for records whose names contain all terms.

    Ranked by score, then relative path, then source position.
    """
    opts = options or SearchOptions()
    normalized = normalize_terms(terms)
    files = session.files()
    hits: list[SearchMatch] = []
    if normalized:
        for path in files:
            extraction = session.extraction(path)
            pool = extraction.functions if opts.entity == "function" else extraction.variables
            rel = session.relative(path)
            for record in pool:
                if opts.exported_only and not record.exported:
                    continue
                if opts.kinds and record.kind not in opts.kinds:
                    continue
                score = score_record(normalized, record)
                if not score:
                    continue
                hits.append(
                    SearchMatch(
                        file=rel,
                        name=record.name,
                        canonical_name=record.canonical_name,
                        kind=record.kind,
                        export_kind=record.export_kind,
                        exported=record.exported,
                        line=record.line,
                        column=record.column,
                        hash=record.hash,
                        path_signature=record.path_signature,
                        score=score,
                        matched_terms=normalized,
                    )
                )
    hits.sort(key=lambda m: (-m.score, m.file, m.line, m.column))
    limited = hits[: opts.limit] if opts.limit else hits
    logger.debug("search %r: %d hits in %d files", " ".join(normalized), len(hits), len(files))
    return SearchResult(
        terms=normalized,
        options=opts,
        matches=tuple(limited),
        total=len(hits),
        truncated=len(limited) < len(hits),
        files_scanned=len(files),
    )


__all__ = [
    "DEFAULT_LIMIT",
    "SearchMatch",
    "SearchOptions",
    "SearchResult",
    "normalize_terms",
    "score_record",
    "search_workspace",
]
