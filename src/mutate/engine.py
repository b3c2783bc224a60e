"""Guarded replace/rename state machine.

Stages run in a fixed order::

    resolve -> pre_guard -> transform -> apply -> reparse -> post_guard -> commit

Each stage either advances or raises a ``SpanguardError``. ``MutationEngine.run``
catches the failure, records ``{stage, code, message}`` and returns the guard
report as filled in so far. The original buffer is never modified; the file
on disk is written only by the commit stage and only when ``apply`` is set.
"""

from __future__ import annotations

import difflib
import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, ConfigDict, model_validator

from artifacts.utils import write_bytes_atomic
from errors import GuardViolation, InvalidResult, ParseFailure, PathDrift, SpanguardError
from extract.hashing import FULL_HASH_LENGTH, compact_digest, full_digest, hashes_match
from extract.records import VariableTargetMode  # noqa: TC001
from extract.walker import extract_entities
from mutate.guards import (
    GuardReport,
    HashGuard,
    NewlineGuard,
    PathGuard,
    ResultGuard,
    SpanGuard,
    SyntaxGuard,
)
from mutate.newlines import detect_newlines, normalize_newlines
from parse.spans import Span
from parse.treesitter_js import parse_source
from selection.resolve import resolve_one

if TYPE_CHECKING:
    from extract.records import ExtractionResult, Record
    from parse.treesitter_js import Dialect

logger = logging.getLogger(__name__)

MutationKind = Literal["replace", "replace_range", "rename"]
Stage = Literal["resolve", "pre_guard", "transform", "apply", "reparse", "post_guard", "commit"]

_IDENTIFIER = re.compile(r"^#?[A-Za-z_$][A-Za-z0-9_$]*$")


class MutationRequest(BaseModel):
    """What to change, where, and under which guards."""

    model_config = ConfigDict(frozen=True)

    selector: str
    kind: MutationKind = "replace"
    entity: Literal["function", "variable"] = "function"
    variable_target: VariableTargetMode = "declarator"
    replacement: str | None = None
    range: Span | None = None
    new_name: str | None = None
    expect_hash: str | None = None
    expect_span: Span | None = None
    select: int | str | None = None
    select_path: str | None = None
    select_hash: str | None = None
    force: bool = False
    apply: bool = False

    @model_validator(mode="after")
    def _check_operands(self) -> MutationRequest:
        if self.kind in ("replace", "replace_range") and self.replacement is None:
            msg = f"{self.kind} needs replacement text"
            raise ValueError(msg)
        if self.kind == "replace_range" and self.range is None:
            msg = "replace_range needs a range relative to the target span"
            raise ValueError(msg)
        if self.kind == "rename" and not self.new_name:
            msg = "rename needs new_name"
            raise ValueError(msg)
        return self


class MutationFailure(BaseModel):
    model_config = ConfigDict(frozen=True)

    stage: Stage
    code: str
    message: str


class MutationTarget(BaseModel):
    model_config = ConfigDict(frozen=True)

    canonical_name: str
    entity: Literal["function", "variable"]
    kind: str
    span: Span
    identifier_span: Span | None = None
    path_signature: str
    hash: str
    line: int


class MutationResult(BaseModel):
    """Outcome of one mutation run, successful or not."""

    model_config = ConfigDict(frozen=True)

    ok: bool
    file: str | None = None
    selector: str
    operation: MutationKind
    applied: bool = False
    stage: Stage
    target: MutationTarget | None = None
    guard: GuardReport
    failure: MutationFailure | None = None
    diff: str | None = None
    output_hash: str | None = None


class _Failed(Exception):
    """Carries a stage failure out of the stage pipeline."""

    def __init__(self, stage: Stage, error: SpanguardError):
        super().__init__(str(error))
        self.stage = stage
        self.error = error


class MutationEngine:
    """Guarded mutation over one immutable source buffer."""

    def __init__(
        self,
        source: bytes,
        *,
        path: str | None = None,
        dialect: Dialect | None = None,
        file_path: Path | None = None,
    ) -> None:
        self.source = source
        self.path = path
        self.dialect = dialect
        self.file_path = file_path

    @classmethod
    def from_file(cls, file_path: Path, *, display_path: str | None = None) -> MutationEngine:
        return cls(
            file_path.read_bytes(),
            path=display_path or str(file_path),
            file_path=file_path,
        )

    # --- stages -------------------------------------------------------------

    def _resolve(self, request: MutationRequest) -> tuple[ExtractionResult, Record]:
        parsed = parse_source(self.source, dialect=self.dialect, path=self.path)
        extraction = extract_entities(parsed)
        record = resolve_one(
            extraction,
            request.selector,
            entity=request.entity,
            select=request.select,
            select_path=request.select_path,
            select_hash=request.select_hash,
        )
        return extraction, record

    def _target_span(self, record: Record, request: MutationRequest) -> tuple[Span, str]:
        if record.entity == "variable":
            mode = request.variable_target
            return record.target_span(mode), record.target_path_signature(mode)
        return record.span, record.path_signature

    def _pre_guard(
        self, record: Record, span: Span, signature: str, request: MutationRequest
    ) -> GuardReport:
        report = GuardReport(path=PathGuard(status="pending", signature=signature))

        if not record.replaceable:
            if not request.force:
                msg = f"{record.display_name} is not a replaceable form (use force to override)"
                raise GuardViolation(msg)
            logger.info("forcing mutation of non-replaceable %s", record.display_name)

        span_status = "ok"
        expected = request.expect_span
        if expected is not None and expected.as_tuple() != span.as_tuple():
            span_status = "bypass" if request.force else "mismatch"
        report = report.model_copy(
            update={
                "span": SpanGuard(
                    status=span_status,
                    start=span.start,
                    end=span.end,
                    expected_start=expected.start if expected else None,
                    expected_end=expected.end if expected else None,
                )
            }
        )
        if span_status == "mismatch":
            self._partial = report
            msg = (
                f"span mismatch for {record.display_name}: expected "
                f"{expected.start}-{expected.end}, found {span.start}-{span.end}"
            )
            raise GuardViolation(msg)

        data = span.slice(self.source)
        compact, full = compact_digest(data), full_digest(data)
        expected_hash = request.expect_hash or compact
        if expected_hash.startswith("hash:"):
            expected_hash = expected_hash[len("hash:") :]
        actual = full if len(expected_hash) == FULL_HASH_LENGTH else compact
        hash_status = "ok"
        if not hashes_match(expected_hash, compact, full):
            hash_status = "bypass" if request.force else "mismatch"
        report = report.model_copy(
            update={"hash": HashGuard(status=hash_status, expected=expected_hash, actual=actual)}
        )
        if hash_status == "mismatch":
            self._partial = report
            msg = (
                f"hash mismatch for {record.display_name}: expected {expected_hash}, "
                f"found {actual}; the target changed since it was inspected"
            )
            raise GuardViolation(msg)
        return report

    def _transform(
        self, record: Record, span: Span, request: MutationRequest
    ) -> tuple[Span, bytes, NewlineGuard]:
        """Work out which absolute byte range is replaced and by what."""
        text = self.source.decode("utf-8", errors="replace")
        file_stats = detect_newlines(text)
        original_stats = detect_newlines(span.text(self.source))

        if request.kind == "rename":
            identifier = record.identifier_span
            if identifier is None:
                msg = f"{record.display_name} has no identifier to rename"
                raise GuardViolation(msg)
            new_name = request.new_name or ""
            if not _IDENTIFIER.match(new_name):
                msg = f"{new_name!r} is not a valid identifier"
                raise GuardViolation(msg)
            guard = NewlineGuard(status="ok", file=file_stats, original=original_stats)
            return identifier, new_name.encode("utf-8"), guard

        snippet = request.replacement or ""
        snippet_stats = detect_newlines(snippet)
        normalized_style = None
        if file_stats.style != "none" and snippet_stats.style not in ("none", file_stats.style):
            normalized_style = file_stats.style
            snippet = normalize_newlines(snippet, file_stats.style)
        elif file_stats.style != "none" and snippet_stats.mixed:
            normalized_style = file_stats.style
            snippet = normalize_newlines(snippet, file_stats.style)
        guard = NewlineGuard(
            status="ok",
            file=file_stats,
            original=original_stats,
            replacement=snippet_stats,
            normalized_style=normalized_style,
        )

        if request.kind == "replace_range":
            relative = request.range
            assert relative is not None
            if relative.end > span.length:
                msg = (
                    f"range {relative.start}-{relative.end} is outside the "
                    f"{span.length}-byte target {record.display_name}"
                )
                raise GuardViolation(msg)
            return relative.shift(span.start), snippet.encode("utf-8"), guard

        return span, snippet.encode("utf-8"), guard

    def _post_guard(
        self,
        new_source: bytes,
        signature: str,
        record: Record,
        request: MutationRequest,
        report: GuardReport,
    ) -> GuardReport:
        parsed = parse_source(new_source, dialect=self.dialect, path=self.path)
        extraction = extract_entities(parsed)
        found = extraction.find_by_path(signature, record.entity)
        if found is None:
            if not request.force:
                self._partial = report.model_copy(
                    update={"path": PathGuard(status="mismatch", signature=signature)}
                )
                msg = f"no {record.entity} remains at {signature} after the edit"
                raise PathDrift(msg)
            return report.model_copy(
                update={
                    "path": PathGuard(status="bypass", signature=signature),
                    "result": ResultGuard(status="changed", before=record.hash, after=None),
                }
            )
        if found.entity == "variable":
            after = found.target_span(request.variable_target).slice(new_source)
            before_hash = compact_digest(
                record.target_span(request.variable_target).slice(self.source)
            )
            after_hash = compact_digest(after)
        else:
            before_hash, after_hash = record.hash, found.hash
        status = "changed" if before_hash != after_hash else "unchanged"
        return report.model_copy(
            update={
                "path": PathGuard(status="ok", signature=signature),
                "result": ResultGuard(status=status, before=before_hash, after=after_hash),
            }
        )

    # --- driver -------------------------------------------------------------

    def _diff(self, new_source: bytes) -> str:
        label = self.path or "buffer"
        before = self.source.decode("utf-8", errors="replace").splitlines(keepends=True)
        after = new_source.decode("utf-8", errors="replace").splitlines(keepends=True)
        return "".join(
            difflib.unified_diff(before, after, fromfile=f"a/{label}", tofile=f"b/{label}")
        )

    def run(self, request: MutationRequest) -> MutationResult:
        """Run every stage, capturing the first failure into the result."""
        self._partial: GuardReport | None = None
        report = GuardReport()
        target: MutationTarget | None = None
        stage: Stage = "resolve"
        try:
            try:
                _, record = self._resolve(request)
            except SpanguardError as exc:
                raise _Failed("resolve", exc) from exc
            span, signature = self._target_span(record, request)
            target = MutationTarget(
                canonical_name=record.display_name,
                entity=record.entity,
                kind=record.kind,
                span=span,
                identifier_span=record.identifier_span,
                path_signature=signature,
                hash=compact_digest(span.slice(self.source)),
                line=record.line,
            )

            stage = "pre_guard"
            try:
                report = self._pre_guard(record, span, signature, request)
            except SpanguardError as exc:
                report = self._partial or report
                raise _Failed(stage, exc) from exc

            stage = "transform"
            try:
                replaced, payload, newline = self._transform(record, span, request)
            except SpanguardError as exc:
                raise _Failed(stage, exc) from exc

            stage = "apply"
            new_source = self.source[: replaced.start] + payload + self.source[replaced.end :]
            report = report.model_copy(
                update={
                    "newline": newline.model_copy(
                        update={"byte_delta": len(new_source) - len(self.source)}
                    )
                }
            )

            stage = "reparse"
            try:
                parse_source(new_source, dialect=self.dialect, path=self.path)
            except ParseFailure as exc:
                report = report.model_copy(
                    update={"syntax": SyntaxGuard(status="mismatch", message=str(exc))}
                )
                error = InvalidResult(f"edit produces invalid syntax: {exc}")
                raise _Failed(stage, error) from exc
            report = report.model_copy(update={"syntax": SyntaxGuard(status="ok")})

            stage = "post_guard"
            try:
                report = self._post_guard(new_source, signature, record, request, report)
            except SpanguardError as exc:
                report = self._partial or report
                raise _Failed(stage, exc) from exc

            diff = self._diff(new_source)
            applied = False
            if request.apply:
                stage = "commit"
                if self.file_path is None:
                    msg = "cannot apply an edit to a buffer with no file path"
                    raise _Failed(stage, GuardViolation(msg))
                write_bytes_atomic(self.file_path, new_source)
                applied = True
                logger.info("applied %s to %s in %s", request.kind, record.display_name, self.path)
        except _Failed as failed:
            logger.info(
                "%s failed at %s: %s", request.kind, failed.stage, failed.error
            )
            return MutationResult(
                ok=False,
                file=self.path,
                selector=request.selector,
                operation=request.kind,
                stage=failed.stage,
                target=target,
                guard=report,
                failure=MutationFailure(
                    stage=failed.stage, code=failed.error.code, message=str(failed.error)
                ),
            )

        return MutationResult(
            ok=True,
            file=self.path,
            selector=request.selector,
            operation=request.kind,
            applied=applied,
            stage=stage,
            target=target,
            guard=report,
            diff=diff,
            output_hash=full_digest(new_source),
        )


def run_mutation(
    file_path: Path, request: MutationRequest, *, display_path: str | None = None
) -> MutationResult:
    """Load ``file_path`` and run one guarded mutation against it."""
    engine = MutationEngine.from_file(Path(file_path), display_path=display_path)
    return engine.run(request)


__all__ = [
    "MutationEngine",
    "MutationFailure",
    "MutationKind",
    "MutationRequest",
    "MutationResult",
    "MutationTarget",
    "Stage",
    "run_mutation",
]
