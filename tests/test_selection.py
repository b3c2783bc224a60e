from __future__ import annotations

import pytest

from errors import AmbiguousMatch, InvalidSelector, NoMatch
from extract.walker import extract_source
from selection.candidates import MatchKind, build_selector_set, expand_candidates
from selection.grammar import parse_selector
from selection.resolve import resolve_matches, resolve_one

SOURCE = """\
function run() {}
class Task {
  run() {}
}
function a() {
  function helper() {}
}
function b() {
  function helper() {}
}
const limit = 3;
"""


@pytest.fixture
def extraction():
    return extract_source(SOURCE, path="tasks.js")


def _names(records) -> list[str]:
    return [record.canonical_name for record in records]


def test_parse_selector_splits_prefix_base_and_filters() -> None:
    selector = parse_selector("variable:config@kind=const|let@range=3-9@replaceable")

    assert selector.entity == "variable"
    assert selector.base == "config"
    assert [flt.name for flt in selector.filters] == ["kind", "range", "replaceable"]
    assert selector.filters[0].values == ("const", "let")
    assert (selector.filters[1].low, selector.filters[1].high) == (3, 9)


@pytest.mark.parametrize("text", ["", "   ", "run@range=9-3", "run@bytes=", "run@replaceable=maybe"])
def test_parse_selector_rejects_bad_input(text: str) -> None:
    with pytest.raises(InvalidSelector):
        parse_selector(text)


def test_expand_candidates_generates_separator_variants() -> None:
    candidates = expand_candidates("Task.run")

    assert {"Task.run", "Task#run", "Task::run", "Task > run"} <= candidates.exact
    assert "task#run" in candidates.folded
    assert candidates.kinds is None

    hashed = expand_candidates("hash:abcdEFGH")
    assert hashed.exact == frozenset({"abcdEFGH"})
    assert hashed.kinds == frozenset({MatchKind.HASH})


def test_canonical_name_beats_scope_alias(extraction) -> None:
    assert _names(resolve_matches(extraction, "run")) == ["run"]

    method = next(fn for fn in extraction.functions if fn.canonical_name == "Task#run")
    assert build_selector_set(method).best_match(expand_candidates("run")) is MatchKind.SCOPE_ALIAS


@pytest.mark.parametrize("selector", ["Task#run", "Task.run", "Task::run", "task > run"])
def test_member_spellings_resolve_to_the_method(extraction, selector: str) -> None:
    assert resolve_one(extraction, selector).canonical_name == "Task#run"


def test_ambiguous_selector_lists_candidates(extraction) -> None:
    with pytest.raises(AmbiguousMatch) as excinfo:
        resolve_matches(extraction, "helper")

    assert excinfo.value.total == 2
    assert excinfo.value.candidates == ["helper", "helper"]


def test_disambiguation_by_index_path_and_range(extraction) -> None:
    helpers = resolve_matches(extraction, "helper", allow_multiple=True)
    assert [fn.line for fn in helpers] == [6, 9]

    assert resolve_one(extraction, "helper", select=2).line == 9
    assert resolve_one(extraction, "helper", select="2").line == 9
    assert resolve_one(extraction, "helper", select_path=helpers[0].path_signature).line == 6
    assert resolve_one(extraction, "helper@range=8-10").line == 9

    with pytest.raises(NoMatch):
        resolve_one(extraction, "helper", select=3)
    with pytest.raises(InvalidSelector):
        resolve_one(extraction, "helper", select="second")


def test_hash_and_path_prefixes(extraction) -> None:
    method = next(fn for fn in extraction.functions if fn.canonical_name == "Task#run")

    assert resolve_one(extraction, f"hash:{method.hash}").canonical_name == "Task#run"
    assert resolve_one(extraction, f"path:{method.path_signature}").canonical_name == "Task#run"
    assert resolve_one(extraction, "name:run").canonical_name == "run"


def test_wildcard_with_filters(extraction) -> None:
    assert _names(resolve_matches(extraction, "*@kind=class-method")) == ["Task#run"]
    assert _names(resolve_matches(extraction, "*@kind=class", allow_multiple=True)) == ["Task"]


def test_entity_prefix_switches_pool(extraction) -> None:
    record = resolve_one(extraction, "variable:limit")

    assert record.entity == "variable"
    assert record.binding_kind == "const"

    with pytest.raises(NoMatch):
        resolve_one(extraction, "limit")
