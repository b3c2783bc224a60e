"""Guard report models for guarded mutations."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict

from mutate.newlines import NewlineStats, NewlineStyle

GuardStatus = Literal["ok", "mismatch", "bypass", "pending"]
ResultStatus = Literal["changed", "unchanged", "pending"]


class SpanGuard(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: GuardStatus = "pending"
    start: int | None = None
    end: int | None = None
    expected_start: int | None = None
    expected_end: int | None = None


class HashGuard(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: GuardStatus = "pending"
    expected: str | None = None
    actual: str | None = None


class PathGuard(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: GuardStatus = "pending"
    signature: str | None = None


class SyntaxGuard(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: GuardStatus = "pending"
    message: str | None = None


class ResultGuard(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: ResultStatus = "pending"
    before: str | None = None
    after: str | None = None


class NewlineGuard(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: GuardStatus = "pending"
    file: NewlineStats | None = None
    original: NewlineStats | None = None
    replacement: NewlineStats | None = None
    normalized_style: NewlineStyle | None = None
    byte_delta: int = 0


class GuardReport(BaseModel):
    """Outcome of every guard check, filled in stage by stage."""

    model_config = ConfigDict(frozen=True)

    span: SpanGuard = SpanGuard()
    hash: HashGuard = HashGuard()
    path: PathGuard = PathGuard()
    syntax: SyntaxGuard = SyntaxGuard()
    result: ResultGuard = ResultGuard()
    newline: NewlineGuard = NewlineGuard()

    def summary_rows(self) -> list[dict[str, str]]:
        """Check/status/details rows for a human-readable table."""
        span = self.span
        span_details = f"{span.start}-{span.end}"
        if span.expected_start is not None:
            span_details += f" (expected {span.expected_start}-{span.expected_end})"
        if self.hash.status == "ok":
            hash_details = self.hash.expected or ""
        else:
            hash_details = f"expected {self.hash.expected} received {self.hash.actual}"
        if self.syntax.status == "ok":
            syntax_details = "Re-parse successful"
        else:
            syntax_details = self.syntax.message or ""
        if self.result.status == "changed":
            result_details = self.result.after or ""
        else:
            result_details = f"{self.result.after} (unchanged)"
        return [
            {"check": "Span", "status": span.status.upper(), "details": span_details},
            {"check": "Hash", "status": self.hash.status.upper(), "details": hash_details},
            {"check": "Path", "status": self.path.status.upper(), "details": self.path.signature or ""},
            {"check": "Syntax", "status": self.syntax.status.upper(), "details": syntax_details},
            {"check": "Result Hash", "status": self.result.status.upper(), "details": result_details},
            {"check": "Newlines", "status": self.newline.status.upper(), "details": _newline_details(self.newline)},
        ]


def _newline_details(guard: NewlineGuard) -> str:
    segments: list[str] = []
    if guard.file is not None:
        suffix = " (mixed)" if guard.file.mixed else ""
        segments.append(f"file {guard.file.style.upper()}{suffix}")
    if guard.replacement is not None:
        suffix = " (mixed)" if guard.replacement.mixed else ""
        target = f" -> {guard.normalized_style.upper()}" if guard.normalized_style else ""
        segments.append(f"snippet {guard.replacement.style.upper()}{suffix}{target}")
    elif guard.original is not None:
        suffix = " (mixed)" if guard.original.mixed else ""
        segments.append(f"snippet {guard.original.style.upper()}{suffix}")
    sign = "+" if guard.byte_delta >= 0 else ""
    segments.append(f"byte delta {sign}{guard.byte_delta}")
    return " | ".join(segments)


__all__ = [
    "GuardReport",
    "GuardStatus",
    "HashGuard",
    "NewlineGuard",
    "PathGuard",
    "ResultGuard",
    "ResultStatus",
    "SpanGuard",
    "SyntaxGuard",
]
