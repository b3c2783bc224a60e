"""Selector grammar: ``[function:|variable:]<base>(@<filter>)*``.

Filters:

- ``@range=L1-L2``: the record lies within lines ``L1..L2`` (1-based,
  inclusive). A single line ``@range=L`` keeps records that span line ``L``.
- ``@bytes=S-E``: the record span lies within ``[S, E)``. A single offset
  keeps records whose span contains it.
- ``@kind=a|b``, ``@export=a|b``, ``@hash=a|b``: membership tests.
- ``@path=<signature>``: exact path-signature match.
- ``@replaceable`` or ``@replaceable=false``.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, ConfigDict

from errors import InvalidSelector
from extract.hashing import hashes_match

if TYPE_CHECKING:
    from extract.records import Record

EntityType = Literal["function", "variable"]
FilterName = Literal["range", "bytes", "kind", "export", "hash", "path", "replaceable"]

FILTER_NAMES: tuple[FilterName, ...] = (
    "range",
    "bytes",
    "kind",
    "export",
    "hash",
    "path",
    "replaceable",
)

_FILTER_START = re.compile(r"@(?=(?:" + "|".join(FILTER_NAMES) + r")(?:[=:]|@|$))")
_ENTITY_PREFIX = re.compile(r"^(function|variable):")
_TRUE_VALUES = frozenset({"", "true", "yes", "1"})
_FALSE_VALUES = frozenset({"false", "no", "0"})


class SelectorFilter(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: FilterName
    values: tuple[str, ...] = ()
    low: int | None = None
    high: int | None = None
    flag: bool = True

    def matches(self, record: Record) -> bool:
        if self.name == "range":
            return _range_matches(self, record.line, record.end_line)
        if self.name == "bytes":
            span = record.span
            if self.high is None:
                return span.start <= (self.low or 0) < max(span.end, span.start + 1)
            return (self.low or 0) <= span.start and span.end <= self.high
        if self.name == "kind":
            return record.kind in self.values
        if self.name == "export":
            exported = record.export_kind != "none"
            return any(
                record.export_kind == value or (value == "exported" and exported)
                for value in self.values
            )
        if self.name == "hash":
            hashes = _record_hashes(record)
            return any(hashes_match(value, *hashes) for value in self.values)
        if self.name == "path":
            return any(value in _record_paths(record) for value in self.values)
        return record.replaceable is self.flag


class Selector(BaseModel):
    """A parsed selector: optional entity type, base expression, filters."""

    model_config = ConfigDict(frozen=True)

    raw: str
    entity: EntityType | None = None
    base: str
    filters: tuple[SelectorFilter, ...] = ()

    @property
    def is_wildcard(self) -> bool:
        return self.base in ("", "*")

    def accepts(self, record: Record) -> bool:
        return all(flt.matches(record) for flt in self.filters)


def _range_matches(flt: SelectorFilter, line: int, end_line: int) -> bool:
    low = flt.low or 0
    if flt.high is None:
        return line <= low <= end_line
    return low <= line and end_line <= flt.high


def _record_hashes(record: Record) -> tuple[str, str]:
    return record.hash, record.full_hash


def _record_paths(record: Record) -> tuple[str, ...]:
    if record.entity == "variable":
        return (
            record.path_signature,
            record.binding_path_signature,
            record.declaration_path_signature,
        )
    return (record.path_signature,)


def _parse_bounds(name: str, value: str) -> tuple[int, int | None]:
    match = re.fullmatch(r"\s*(\d+)\s*(?:[-:,]\s*(\d+)\s*)?", value)
    if match is None:
        msg = f"@{name} expects N or N-M, got {value!r}"
        raise InvalidSelector(msg)
    low = int(match.group(1))
    high = int(match.group(2)) if match.group(2) is not None else None
    if high is not None and high < low:
        msg = f"@{name} range {low}-{high} is reversed"
        raise InvalidSelector(msg)
    return low, high


def parse_filter(text: str) -> SelectorFilter:
    """Parse one ``name[=value]`` filter body (without the leading ``@``)."""
    name, _, value = _split_filter(text)
    if name not in FILTER_NAMES:
        msg = f"unknown selector filter @{name}"
        raise InvalidSelector(msg)
    value = value.strip()

    if name in ("range", "bytes"):
        if not value:
            msg = f"@{name} needs a value"
            raise InvalidSelector(msg)
        low, high = _parse_bounds(name, value)
        return SelectorFilter(name=name, low=low, high=high)
    if name == "replaceable":
        lowered = value.lower()
        if lowered in _TRUE_VALUES:
            return SelectorFilter(name=name, flag=True)
        if lowered in _FALSE_VALUES:
            return SelectorFilter(name=name, flag=False)
        msg = f"@replaceable expects true or false, got {value!r}"
        raise InvalidSelector(msg)
    if name == "path":
        if not value:
            msg = "@path needs a value"
            raise InvalidSelector(msg)
        return SelectorFilter(name=name, values=(value,))

    values = tuple(part.strip() for part in re.split(r"[|,]", value) if part.strip())
    if not values:
        msg = f"@{name} needs at least one value"
        raise InvalidSelector(msg)
    return SelectorFilter(name=name, values=values)


def _split_filter(text: str) -> tuple[str, str, str]:
    match = re.match(r"([a-z]+)\s*(?:([=:])(.*))?$", text, re.DOTALL)
    if match is None:
        return text, "", ""
    return match.group(1), match.group(2) or "", match.group(3) or ""


def parse_selector(text: str, entity: EntityType | None = None) -> Selector:
    """Compile a selector string.

    The ``function:``/``variable:`` prefix, when present, overrides ``entity``.
    """
    raw = text
    stripped = text.strip()
    if not stripped:
        msg = "selector is empty"
        raise InvalidSelector(msg)

    prefix = _ENTITY_PREFIX.match(stripped)
    if prefix is not None:
        entity = prefix.group(1)  # type: ignore[assignment]
        stripped = stripped[prefix.end() :]

    starts = [m.start() for m in _FILTER_START.finditer(stripped)]
    base = stripped[: starts[0]] if starts else stripped
    bounds = [*starts, len(stripped)]
    filters = tuple(
        parse_filter(stripped[bounds[i] + 1 : bounds[i + 1]].strip())
        for i in range(len(starts))
    )
    return Selector(raw=raw, entity=entity, base=base.strip(), filters=filters)


__all__ = [
    "FILTER_NAMES",
    "EntityType",
    "FilterName",
    "Selector",
    "SelectorFilter",
    "parse_filter",
    "parse_selector",
]
