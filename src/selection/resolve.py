"""Selector resolution with disambiguation and uniqueness rules."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from errors import AmbiguousMatch, InvalidSelector, NoMatch
from extract.hashing import hashes_match
from selection.candidates import MatchKind, build_selector_set, expand_candidates
from selection.grammar import EntityType, Selector, parse_selector

if TYPE_CHECKING:
    from collections.abc import Sequence

    from extract.records import ExtractionResult, Record

logger = logging.getLogger(__name__)


def match_records(selector: Selector, records: Sequence[Record]) -> list[Record]:
    """Pure ``(Selector, records) -> records`` matching, before disambiguation.

    Only records whose best match kind equals the best kind seen anywhere
    are kept, then every filter is applied.
    """
    if selector.is_wildcard:
        hits = list(records)
    else:
        candidates = expand_candidates(selector.base)
        ranked: list[tuple[MatchKind, Record]] = []
        for record in records:
            kind = build_selector_set(record).best_match(candidates)
            if kind is not None:
                ranked.append((kind, record))
        if not ranked:
            return []
        best = min(kind for kind, _ in ranked)
        hits = [record for kind, record in ranked if kind == best]
    return sorted(
        (record for record in hits if selector.accepts(record)),
        key=lambda record: record.index,
    )


def _apply_select(
    matches: list[Record], select: int | str | None, selector: str
) -> list[Record]:
    if select is None or select == "":
        return matches
    if isinstance(select, str):
        text = select.strip()
        if text.lower().startswith("hash:"):
            return [m for m in matches if hashes_match(text, m.hash, m.full_hash)]
        if not text.isdigit():
            msg = f"select expects a 1-based index or hash:<value>, got {select!r}"
            raise InvalidSelector(msg)
        select = int(text)
    if select < 1 or select > len(matches):
        raise NoMatch(
            selector,
            f"select index {select} is out of range for {len(matches)} match(es) of \"{selector}\"",
        )
    return [matches[select - 1]]


def resolve_matches(
    records: ExtractionResult | Sequence[Record],
    selector: str | Selector,
    *,
    entity: EntityType = "function",
    allow_multiple: bool = False,
    select: int | str | None = None,
    select_path: str | None = None,
    select_hash: str | None = None,
) -> list[Record]:
    """Resolve a selector to records in source order.

    Disambiguators apply in order: ``select`` index (1-based, or
    ``hash:<h>``), then ``select_path``, then ``select_hash``. Raises
    NoMatch when nothing is left and AmbiguousMatch when more than one
    record remains without ``allow_multiple``.
    """
    parsed = parse_selector(selector, entity) if isinstance(selector, str) else selector
    kind = parsed.entity or entity
    if isinstance(records, (list, tuple)):
        pool = [record for record in records if record.entity == kind]
    elif kind == "variable":
        pool = list(records.variables)
    else:
        pool = list(records.functions)

    matches = match_records(parsed, pool)
    matches = _apply_select(matches, select, parsed.raw)
    if select_path:
        matches = [m for m in matches if m.path_signature == select_path]
    if select_hash:
        matches = [m for m in matches if hashes_match(select_hash, m.hash, m.full_hash)]

    if not matches:
        raise NoMatch(parsed.raw)
    if len(matches) > 1 and not allow_multiple:
        logger.debug("selector %r is ambiguous (%d matches)", parsed.raw, len(matches))
        raise AmbiguousMatch(parsed.raw, [m.display_name for m in matches], len(matches))
    return matches


def resolve_one(
    records: ExtractionResult | Sequence[Record],
    selector: str | Selector,
    *,
    entity: EntityType = "function",
    select: int | str | None = None,
    select_path: str | None = None,
    select_hash: str | None = None,
) -> Record:
    return resolve_matches(
        records,
        selector,
        entity=entity,
        select=select,
        select_path=select_path,
        select_hash=select_hash,
    )[0]


__all__ = ["match_records", "resolve_matches", "resolve_one"]
