"""Typed selector sets and candidate expansion.

Every record exposes the strings it can be selected by, grouped by
``MatchKind``. A lower enum value wins: a canonical-name hit always beats a
scope alias, so ``prefer canonical over alias`` is a property of the enum
order rather than of lookup order.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import IntEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from extract.records import Record


class MatchKind(IntEnum):
    """How a selector candidate matched a record, best first."""

    CANONICAL_NAME = 0
    HASH = 1
    PATH_SIGNATURE = 2
    SCOPE_ALIAS = 3

    @property
    def case_sensitive(self) -> bool:
        return self in (MatchKind.HASH, MatchKind.PATH_SIGNATURE)


SEPARATORS = (".", "#", "::", " > ")
_SPLIT = re.compile(r"\s*(?:::|>|#|\.)\s*")

_PREFIX_KINDS: dict[str, frozenset[MatchKind]] = {
    "hash:": frozenset({MatchKind.HASH}),
    "path:": frozenset({MatchKind.PATH_SIGNATURE}),
    "name:": frozenset({MatchKind.CANONICAL_NAME, MatchKind.SCOPE_ALIAS}),
}


@dataclass(frozen=True)
class SelectorSet:
    """Strings a record answers to, keyed by match kind."""

    entries: dict[MatchKind, frozenset[str]]

    def best_match(self, candidates: Candidates) -> MatchKind | None:
        for kind in MatchKind:
            if candidates.kinds is not None and kind not in candidates.kinds:
                continue
            values = self.entries.get(kind, frozenset())
            pool = candidates.exact if kind.case_sensitive else candidates.folded
            if not values.isdisjoint(pool):
                return kind
        return None


@dataclass(frozen=True)
class Candidates:
    """Expanded forms of one selector base."""

    exact: frozenset[str]
    folded: frozenset[str]
    kinds: frozenset[MatchKind] | None = None


def _member_aliases(chain: tuple[str, ...]) -> list[str]:
    """Alternate spellings for class and object members."""
    if len(chain) < 2 or "exports" in chain:
        return []
    last = chain[-1]
    if last.startswith("#"):
        owner, member = chain[-2], last[1:]
        return [f"{owner}#{member}", f"{owner}::{member}", f"{owner}.{member}"]
    if "static" in chain[:-1]:
        position = chain.index("static")
        if position == 0:
            return []
        owner = chain[position - 1]
        return [f"{owner}.{last}", f"{owner}::{last}"]
    if chain[-2] in ("get", "set") and len(chain) >= 3:
        owner = chain[-3]
        return [f"{owner}::{last}", f"{owner}.{last}", f"{owner}.{chain[-2]} {last}"]
    owner = chain[-2]
    return [f"{owner}.{last}", f"{owner}#{last}"]


def build_selector_set(record: Record) -> SelectorSet:
    """Precompute the typed selector set of a record."""
    canonical = {record.canonical_name.lower()}
    hashes = {record.hash, record.full_hash}
    paths = {record.path_signature}
    aliases = {record.name.lower()}

    if record.scope_chain:
        aliases.add(" > ".join(record.scope_chain).lower())
    aliases.update(alias.lower() for alias in _member_aliases(record.scope_chain))
    if record.canonical_name.startswith("exports.") and record.entity == "function":
        aliases.add(record.canonical_name[len("exports.") :].lower())

    if record.entity == "variable":
        hashes.update({record.binding_hash, record.declaration_hash})
        paths.update({record.binding_path_signature, record.declaration_path_signature})

    return SelectorSet(
        entries={
            MatchKind.CANONICAL_NAME: frozenset(canonical),
            MatchKind.HASH: frozenset(hashes),
            MatchKind.PATH_SIGNATURE: frozenset(paths),
            MatchKind.SCOPE_ALIAS: frozenset(aliases - canonical),
        }
    )


def _separator_variants(base: str) -> list[str]:
    if base.startswith("#") or base.startswith("<"):
        return []
    segments = [segment for segment in _SPLIT.split(base) if segment]
    if len(segments) < 2:
        return []
    head, last = segments[:-1], segments[-1]
    variants: list[str] = []
    for sep in SEPARATORS:
        variants.append(sep.join(segments))
        variants.append(".".join(head) + sep + last)
    return variants


def expand_candidates(base: str) -> Candidates:
    """Expand a selector base into every spelling it may be stored under.

    A ``hash:``, ``path:`` or ``name:`` prefix restricts matching to the
    corresponding kinds.
    """
    raw = base.strip()
    kinds: frozenset[MatchKind] | None = None
    forms = [raw]
    for prefix, prefix_kinds in _PREFIX_KINDS.items():
        if raw.lower().startswith(prefix):
            stripped = raw[len(prefix) :].strip()
            forms = [stripped]
            kinds = prefix_kinds
            break

    if kinds is None or MatchKind.CANONICAL_NAME in kinds:
        for form in list(forms):
            forms.extend(_separator_variants(form))

    exact = frozenset(form for form in forms if form)
    return Candidates(
        exact=exact,
        folded=frozenset(form.lower() for form in exact),
        kinds=kinds,
    )


def selector_sets(records: Iterable[Record]) -> list[tuple[Record, SelectorSet]]:
    return [(record, build_selector_set(record)) for record in records]


__all__ = [
    "SEPARATORS",
    "Candidates",
    "MatchKind",
    "SelectorSet",
    "build_selector_set",
    "expand_candidates",
    "selector_sets",
]
