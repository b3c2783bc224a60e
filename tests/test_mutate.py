from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from extract.walker import extract_source
from mutate.engine import MutationEngine, MutationRequest, run_mutation
from mutate.newlines import detect_newlines, normalize_newlines
from parse.spans import Span

if TYPE_CHECKING:
    from pathlib import Path

SOURCE = """\
function greet(name) {
  return "hi " + name;
}
function other() {}
const limit = 3;
items.map(function () {});
"""

NEW_GREET = """\
function greet(name) {
  return "hello " + name;
}"""


def _write_js_file(root: Path, name: str, content: str | bytes) -> Path:
    path = root / name
    if isinstance(content, bytes):
        path.write_bytes(content)
    else:
        path.write_text(content, encoding="utf-8")
    return path


def _engine(source: str = SOURCE) -> MutationEngine:
    return MutationEngine(source.encode("utf-8"), path="greet.js")


def test_request_requires_operands() -> None:
    with pytest.raises(ValueError, match="needs replacement"):
        MutationRequest(selector="greet")
    with pytest.raises(ValueError, match="needs new_name"):
        MutationRequest(selector="greet", kind="rename")
    with pytest.raises(ValueError, match="needs a range"):
        MutationRequest(selector="greet", kind="replace_range", replacement="x")


def test_dry_run_reports_every_guard_and_is_repeatable() -> None:
    engine = _engine()
    request = MutationRequest(selector="greet", replacement=NEW_GREET)

    first = engine.run(request)
    second = engine.run(request)

    assert first.ok
    assert not first.applied
    assert first.guard.span.status == "ok"
    assert first.guard.hash.status == "ok"
    assert first.guard.syntax.status == "ok"
    assert first.guard.path.status == "ok"
    assert first.guard.result.status == "changed"
    assert '-  return "hi " + name;' in first.diff
    assert '+  return "hello " + name;' in first.diff
    assert first.output_hash == second.output_hash
    assert engine.source == SOURCE.encode("utf-8")


def test_apply_writes_the_file(tmp_path: Path) -> None:
    path = _write_js_file(tmp_path, "greet.js", SOURCE)

    result = run_mutation(
        path, MutationRequest(selector="greet", replacement=NEW_GREET, apply=True)
    )

    assert result.ok
    assert result.applied
    assert result.stage == "commit"
    assert path.read_text(encoding="utf-8") == SOURCE.replace('"hi "', '"hello "')


def test_dry_run_leaves_the_file_alone(tmp_path: Path) -> None:
    path = _write_js_file(tmp_path, "greet.js", SOURCE)

    result = run_mutation(path, MutationRequest(selector="greet", replacement=NEW_GREET))

    assert result.ok
    assert not result.applied
    assert path.read_text(encoding="utf-8") == SOURCE


def test_hash_guard_blocks_stale_edits_unless_forced() -> None:
    engine = _engine()

    blocked = engine.run(
        MutationRequest(selector="greet", replacement=NEW_GREET, expect_hash="AAAAAAAA")
    )
    assert not blocked.ok
    assert blocked.stage == "pre_guard"
    assert blocked.failure is not None
    assert blocked.failure.code == "GUARD_VIOLATION"
    assert blocked.guard.hash.status == "mismatch"
    assert blocked.diff is None

    forced = engine.run(
        MutationRequest(
            selector="greet", replacement=NEW_GREET, expect_hash="AAAAAAAA", force=True
        )
    )
    assert forced.ok
    assert forced.guard.hash.status == "bypass"


def test_hash_guard_accepts_full_digest() -> None:
    record = extract_source(SOURCE, path="greet.js").functions[0]

    result = _engine().run(
        MutationRequest(selector="greet", replacement=NEW_GREET, expect_hash=record.full_hash)
    )

    assert result.ok
    assert result.guard.hash.actual == record.full_hash


def test_span_guard_mismatch() -> None:
    result = _engine().run(
        MutationRequest(
            selector="greet", replacement=NEW_GREET, expect_span=Span(start=1, end=5)
        )
    )

    assert not result.ok
    assert result.stage == "pre_guard"
    assert result.guard.span.status == "mismatch"
    assert result.guard.span.expected_start == 1


def test_invalid_syntax_cannot_be_forced() -> None:
    result = _engine().run(
        MutationRequest(selector="greet", replacement="function greet( {", force=True)
    )

    assert not result.ok
    assert result.stage == "reparse"
    assert result.failure is not None
    assert result.failure.code == "INVALID_RESULT"
    assert result.guard.syntax.status == "mismatch"


def test_path_drift_detected_after_structural_change() -> None:
    engine = _engine()

    drifted = engine.run(MutationRequest(selector="other", replacement="const other = 1;"))
    assert not drifted.ok
    assert drifted.stage == "post_guard"
    assert drifted.failure is not None
    assert drifted.failure.code == "PATH_DRIFT"
    assert drifted.guard.path.status == "mismatch"

    forced = engine.run(
        MutationRequest(selector="other", replacement="const other = 1;", force=True)
    )
    assert forced.ok
    assert forced.guard.path.status == "bypass"


def test_identical_replacement_is_unchanged() -> None:
    result = _engine().run(MutationRequest(selector="other", replacement="function other() {}"))

    assert result.ok
    assert result.guard.result.status == "unchanged"
    assert result.diff == ""


def test_rename_touches_only_the_identifier(tmp_path: Path) -> None:
    path = _write_js_file(tmp_path, "greet.js", SOURCE)

    result = run_mutation(
        path, MutationRequest(selector="greet", kind="rename", new_name="welcome", apply=True)
    )

    assert result.ok
    assert path.read_text(encoding="utf-8") == SOURCE.replace("function greet", "function welcome")
    assert result.guard.newline.byte_delta == len("welcome") - len("greet")


def test_rename_rejects_invalid_identifier() -> None:
    result = _engine().run(MutationRequest(selector="greet", kind="rename", new_name="1abc"))

    assert not result.ok
    assert result.stage == "transform"


def test_replace_range_is_relative_to_target() -> None:
    target = extract_source(SOURCE, path="greet.js").functions[0]
    text = target.span.text(SOURCE.encode("utf-8"))
    offset = text.index('"hi "')

    result = _engine().run(
        MutationRequest(
            selector="greet",
            kind="replace_range",
            replacement='"yo "',
            range=Span(start=offset, end=offset + len('"hi "')),
        )
    )
    assert result.ok
    assert '+  return "yo " + name;' in result.diff

    outside = _engine().run(
        MutationRequest(
            selector="greet",
            kind="replace_range",
            replacement="x",
            range=Span(start=0, end=target.span.length + 1),
            force=True,
        )
    )
    assert not outside.ok
    assert outside.stage == "transform"


def test_anonymous_function_needs_force() -> None:
    anonymous = next(
        fn for fn in extract_source(SOURCE, path="greet.js").functions if not fn.replaceable
    )
    replacement = "function () { return 1; }"

    blocked = _engine().run(
        MutationRequest(selector=f"hash:{anonymous.hash}", replacement=replacement)
    )
    assert not blocked.ok
    assert blocked.stage == "pre_guard"

    forced = _engine().run(
        MutationRequest(selector=f"hash:{anonymous.hash}", replacement=replacement, force=True)
    )
    assert forced.ok


def test_variable_declarator_replacement() -> None:
    result = _engine().run(
        MutationRequest(selector="limit", entity="variable", replacement="limit = 4")
    )

    assert result.ok
    assert result.target is not None
    assert result.target.entity == "variable"
    assert "+const limit = 4;" in result.diff


def test_resolution_failures_are_reported() -> None:
    result = _engine().run(MutationRequest(selector="missing", replacement="x"))

    assert not result.ok
    assert result.stage == "resolve"
    assert result.failure is not None
    assert result.failure.code == "NO_MATCH"


def test_replacement_newlines_follow_the_file(tmp_path: Path) -> None:
    crlf = SOURCE.replace("\n", "\r\n").encode("utf-8")
    path = _write_js_file(tmp_path, "greet.js", crlf)

    result = run_mutation(
        path, MutationRequest(selector="greet", replacement=NEW_GREET, apply=True)
    )

    assert result.ok
    assert result.guard.newline.normalized_style == "crlf"
    written = path.read_bytes()
    assert b"\n" not in written.replace(b"\r\n", b"")
    assert b'"hello "' in written


def test_detect_and_normalize_newlines() -> None:
    assert detect_newlines("a\r\nb\r\nc\n").style == "crlf"
    assert detect_newlines("a\r\nb\r\nc\n").mixed
    assert detect_newlines("plain").style == "none"
    assert normalize_newlines("a\nb\r\nc\rd", "lf") == "a\nb\nc\nd"
    assert normalize_newlines("a\nb", "none") == "a\nb"
