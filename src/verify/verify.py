"""Re-check plan artifacts against the current state of their file."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from artifacts.plan import load_plan
from extract.walker import extract_file

if TYPE_CHECKING:
    from artifacts.plan import PlanArtifact, PlanMatch
    from extract.records import ExtractionResult, Record


@dataclass(frozen=True)
class PlanCheckResult:
    ok: bool
    file: str
    checked: int = 0
    mismatches: tuple[str, ...] = field(default_factory=tuple)
    missing: tuple[str, ...] = field(default_factory=tuple)
    moved: tuple[str, ...] = field(default_factory=tuple)


def _lookup(extraction: ExtractionResult, match: PlanMatch) -> tuple[Record | None, bool]:
    """Record at the planned path signature, else the record with the planned hash.

    The flag is True when the record was found by hash only.
    """
    record = extraction.find_by_path(match.path_signature, match.entity)
    if record is not None:
        return record, False
    pool = extraction.functions if match.entity == "function" else extraction.variables
    for candidate in pool:
        if candidate.hash == match.expected_hash:
            return candidate, True
    return None, False


def verify_plan(
    *,
    root: Path,
    plan_path: Path | None = None,
    plan: PlanArtifact | None = None,
) -> PlanCheckResult:
    """Verify that every match in a plan still holds.

    Re-extracts the plan's file and looks each match up by path signature.
    A match whose hash differs is a mismatch; one that only turns up by hash
    at another location, or whose span shifted, is moved; one that is gone
    is missing. Only mismatches and missing matches fail the check.

    Args:
        root: Workspace root the plan's file path is relative to.
        plan_path: Plan file to load, when ``plan`` is not given.
        plan: An already-loaded plan.

    Returns:
        PlanCheckResult with ok status and the display names of mismatched,
        missing and moved matches.

    Raises:
        FileNotFoundError: If the plan file or the planned source file does not exist.
    """
    if plan is None:
        if plan_path is None:
            msg = "verify_plan needs plan or plan_path"
            raise ValueError(msg)
        if not plan_path.is_file():
            msg = f"Plan file does not exist: {plan_path}"
            raise FileNotFoundError(msg)
        plan = load_plan(plan_path)

    file_path = Path(plan.file)
    if not file_path.is_absolute():
        file_path = root / file_path
    if not file_path.is_file():
        msg = f"Planned file does not exist: {file_path}"
        raise FileNotFoundError(msg)

    extraction = extract_file(file_path, plan.file)

    mismatches: list[str] = []
    missing: list[str] = []
    moved: list[str] = []
    for match in plan.matches:
        record, by_hash = _lookup(extraction, match)
        if record is None:
            missing.append(match.canonical_name)
        elif record.hash != match.expected_hash:
            mismatches.append(match.canonical_name)
        elif by_hash or (match.expected_span is not None and record.span != match.expected_span):
            moved.append(match.canonical_name)

    ok = not missing and not mismatches
    return PlanCheckResult(
        ok=ok,
        file=plan.file,
        checked=len(plan.matches),
        mismatches=tuple(mismatches),
        missing=tuple(missing),
        moved=tuple(moved),
    )


__all__ = ["PlanCheckResult", "verify_plan"]
