from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING

import pytest

from artifacts.plan import PLAN_VERSION, build_plan, load_plan, write_plan
from extract.walker import extract_file
from verify.verify import verify_plan

if TYPE_CHECKING:
    from pathlib import Path

APP_JS = """\
function keep() {
  return 1;
}
function edit() {
  return 2;
}
function drop() {}
"""


def _write_js_file(root: Path, content: str) -> Path:
    path = root / "app.js"
    path.write_text(content, encoding="utf-8")
    return path


def _plan_file(root: Path, names: tuple[str, ...] = ("keep", "edit", "drop")) -> Path:
    path = _write_js_file(root, APP_JS)
    records = [fn for fn in extract_file(path, "app.js").functions if fn.name in names]
    plan = build_plan(
        records,
        operation="locate",
        file="app.js",
        selector="*",
        allow_multiple=True,
        generated_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )
    return write_plan(root / ".spanguard" / "locate-app.json", plan)


def test_build_plan_summarizes_matches(tmp_path: Path) -> None:
    plan = load_plan(_plan_file(tmp_path))

    assert plan.version == PLAN_VERSION
    assert plan.generated_at == "2024-01-01T00:00:00+00:00"
    assert plan.summary.match_count == 3
    assert plan.summary.allow_multiple
    assert [m.canonical_name for m in plan.matches] == ["keep", "edit", "drop"]
    assert plan.summary.span_range is not None
    assert plan.summary.span_range.start == 0
    assert plan.summary.span_range.end == len(APP_JS) - 1
    assert plan.summary.expected_hashes == tuple(m.hash for m in plan.matches)


def test_plan_file_is_stable_json(tmp_path: Path) -> None:
    path = _plan_file(tmp_path)
    first = path.read_bytes()

    _plan_file(tmp_path)

    assert path.read_bytes() == first
    assert first.endswith(b"\n")


def test_verify_unchanged_file(tmp_path: Path) -> None:
    result = verify_plan(root=tmp_path, plan_path=_plan_file(tmp_path))

    assert result.ok
    assert result.checked == 3
    assert result.mismatches == ()
    assert result.moved == ()


def test_verify_reports_mismatch_and_missing(tmp_path: Path) -> None:
    plan_path = _plan_file(tmp_path)
    _write_js_file(tmp_path, APP_JS.replace("return 2;", "return 3;").replace("function drop() {}\n", ""))

    result = verify_plan(root=tmp_path, plan_path=plan_path)

    assert not result.ok
    assert result.mismatches == ("edit",)
    assert result.missing == ("drop",)


def test_verify_shifted_spans_are_moved_not_failed(tmp_path: Path) -> None:
    plan_path = _plan_file(tmp_path)
    _write_js_file(tmp_path, "\n" + APP_JS)

    result = verify_plan(root=tmp_path, plan_path=plan_path)

    assert result.ok
    assert result.moved == ("keep", "edit", "drop")


def test_verify_finds_relocated_match_by_hash(tmp_path: Path) -> None:
    plan_path = _plan_file(tmp_path, names=("keep",))
    _write_js_file(tmp_path, "const first = 1;\n" + APP_JS)

    result = verify_plan(root=tmp_path, plan_path=plan_path)

    assert result.ok
    assert result.moved == ("keep",)


def test_verify_missing_and_invalid_plans(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        verify_plan(root=tmp_path, plan_path=tmp_path / "nope.json")

    bad = tmp_path / "bad.json"
    bad.write_text('{"version": 1}', encoding="utf-8")
    with pytest.raises(ValueError, match="not a valid plan"):
        verify_plan(root=tmp_path, plan_path=bad)

    plan_path = _plan_file(tmp_path)
    (tmp_path / "app.js").unlink()
    with pytest.raises(FileNotFoundError):
        verify_plan(root=tmp_path, plan_path=plan_path)
