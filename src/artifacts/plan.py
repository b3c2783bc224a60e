"""Plan artifacts: durable snapshots of what an operation targeted."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, ConfigDict, ValidationError

from artifacts.utils import _load_json, _write_json
from parse.spans import Span

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from extract.records import Record

logger = logging.getLogger(__name__)

PLAN_VERSION = 1


class PlanMatch(BaseModel):
    model_config = ConfigDict(frozen=True)

    canonical_name: str
    entity: Literal["function", "variable"] = "function"
    kind: str
    export_kind: str
    replaceable: bool
    scope_chain: tuple[str, ...]
    path_signature: str
    span: Span
    identifier_span: Span | None = None
    line: int
    column: int
    hash: str
    expected_hash: str
    expected_span: Span | None = None


class PlanSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    match_count: int
    allow_multiple: bool
    span_range: Span | None = None
    expected_hashes: tuple[str, ...] = ()


class PlanArtifact(BaseModel):
    """What a locate/replace/rename run resolved its selector to."""

    model_config = ConfigDict(frozen=True)

    version: int = PLAN_VERSION
    generated_at: str
    operation: str
    file: str
    selector: str
    summary: PlanSummary
    matches: tuple[PlanMatch, ...]


def _plan_match(record: Record) -> PlanMatch:
    return PlanMatch(
        canonical_name=record.display_name,
        entity=record.entity,
        kind=record.kind,
        export_kind=record.export_kind,
        replaceable=record.replaceable,
        scope_chain=record.scope_chain,
        path_signature=record.path_signature,
        span=record.span,
        identifier_span=record.identifier_span,
        line=record.line,
        column=record.column,
        hash=record.hash,
        expected_hash=record.hash,
        expected_span=record.span,
    )


def build_plan(
    records: Sequence[Record],
    *,
    operation: str,
    file: str,
    selector: str,
    allow_multiple: bool = False,
    generated_at: datetime | None = None,
) -> PlanArtifact:
    matches = tuple(_plan_match(record) for record in records)
    span_range = None
    if matches:
        span_range = Span(
            start=min(m.span.start for m in matches),
            end=max(m.span.end for m in matches),
        )
    stamp = (generated_at or datetime.now(timezone.utc)).isoformat()
    return PlanArtifact(
        generated_at=stamp,
        operation=operation,
        file=file,
        selector=selector,
        summary=PlanSummary(
            match_count=len(matches),
            allow_multiple=allow_multiple,
            span_range=span_range,
            expected_hashes=tuple(m.expected_hash for m in matches),
        ),
        matches=matches,
    )


def write_plan(path: Path, plan: PlanArtifact) -> Path:
    _write_json(path, plan)
    logger.info("wrote plan for %s (%d matches) to %s", plan.selector, len(plan.matches), path)
    return path


def load_plan(path: Path) -> PlanArtifact:
    """Read a plan file; raises ValueError when it is not a valid plan."""
    payload = _load_json(path)
    try:
        return PlanArtifact.model_validate(payload)
    except ValidationError as exc:
        msg = f"{path} is not a valid plan artifact: {exc.error_count()} field error(s)"
        raise ValueError(msg) from exc


__all__ = [
    "PLAN_VERSION",
    "PlanArtifact",
    "PlanMatch",
    "PlanSummary",
    "build_plan",
    "load_plan",
    "write_plan",
]
