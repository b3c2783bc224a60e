from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from errors import NoMatch
from graph.algos import bfs_layers, build_adjacency, find_cycles, reverse_adjacency
from relations.callgraph import (
    MODULE_NODE,
    build_call_graph,
    build_callee_graph,
    call_cycles,
    dead_code,
    find_start_node,
    hot_paths,
    node_id,
    traverse,
)
from relations.session import AnalysisSession

if TYPE_CHECKING:
    from pathlib import Path

    from relations.callgraph import CallGraph

MATH_JS = """\
export function add(a, b) {
  return a + b;
}
export function mul(a, b) {
  return a * b;
}
export function unused() {}
"""

APP_JS = """\
import { add } from "./math";
import * as m from "./math.js";
import lodash from "lodash";
export function run() {
  const x = add(1, 2);
  const y = m.mul(x, 3);
  return lodash.sum([x, y]) + helper();
}
function helper() {
  return add(0, 0);
}
function orphan() {}
run();
"""

CJS_JS = """\
const math = require("./math");
function go() {
  return math.add(2, 2);
}
module.exports = { go };
"""

WIDGET_JS = """\
class Widget {
  constructor() {
    this.render();
  }
  render() {}
  get size() {
    return 1;
  }
  stale() {}
  remote() {}
}
function use(obj) {
  obj.remote();
  return new Widget();
}
"""

RECURSIVE_JS = """\
function ping(n) {
  return n && pong(n - 1);
}
function pong(n) {
  return n && ping(n - 1);
}
function fact(n) {
  return n <= 1 ? 1 : n * fact(n - 1);
}
function lone() {
  return 1;
}
"""


def _write_js_file(root: Path, rel: str, content: str) -> None:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def _graph(root: Path, files: dict[str, str]) -> CallGraph:
    for rel, content in files.items():
        _write_js_file(root, rel, content)
    return build_call_graph(AnalysisSession(root))


def _workspace_graph(root: Path) -> CallGraph:
    return _graph(root, {"src/math.js": MATH_JS, "src/app.js": APP_JS, "src/cjs.js": CJS_JS})


ADD = node_id("src/math.js", "exports.add")
MUL = node_id("src/math.js", "exports.mul")
RUN = node_id("src/app.js", "exports.run")
HELPER = node_id("src/app.js", "helper")
GO = node_id("src/cjs.js", "module.exports.go")
APP_MODULE = node_id("src/app.js", MODULE_NODE)


def test_build_call_graph_resolves_bindings(tmp_path: Path) -> None:
    graph = _workspace_graph(tmp_path)

    edges = {(edge.source_id, edge.target_id): edge.count for edge in graph.edges}
    assert edges == {
        (APP_MODULE, RUN): 1,
        (RUN, HELPER): 1,
        (RUN, ADD): 1,
        (RUN, MUL): 1,
        (HELPER, ADD): 1,
        (GO, ADD): 1,
    }
    assert [(call.call, call.source_id) for call in graph.unresolved] == [("lodash.sum", RUN)]


def test_nested_functions_sharing_a_name_are_one_node(tmp_path: Path) -> None:
    source = "".join(f"function o{i}() {{\n  function h() {{}}\n  h();\n}}\n" for i in range(3))
    graph = _graph(tmp_path, {"a.js": source})

    ids = [node.id for node in graph.nodes]
    assert len(ids) == len(set(ids))
    assert ids == ["a.js::h", "a.js::o0", "a.js::o1", "a.js::o2"]
    assert {(edge.source_id, edge.target_id) for edge in graph.edges} == {
        (f"a.js::o{i}", "a.js::h") for i in range(3)
    }


def test_module_node_only_for_files_with_top_level_calls(tmp_path: Path) -> None:
    graph = _workspace_graph(tmp_path)

    module_nodes = [node.id for node in graph.nodes if node.kind == "module"]
    assert module_nodes == [APP_MODULE]
    assert graph.node(APP_MODULE) is not None
    assert not graph.node(APP_MODULE).replaceable


def test_this_calls_resolve_within_class(tmp_path: Path) -> None:
    graph = _graph(tmp_path, {"widget.js": WIDGET_JS})

    edges = {(edge.source_id, edge.target_id) for edge in graph.edges}
    assert edges == {
        (node_id("widget.js", "Widget#constructor"), node_id("widget.js", "Widget#render")),
        (node_id("widget.js", "use"), node_id("widget.js", "Widget")),
    }
    assert [call.call for call in graph.unresolved] == ["obj.remote"]


def test_find_start_node(tmp_path: Path) -> None:
    graph = _workspace_graph(tmp_path)

    assert find_start_node(graph, RUN).id == RUN
    assert find_start_node(graph, "exports.add").id == ADD
    assert find_start_node(graph, "add").id == ADD
    assert find_start_node(graph, "helper", file="src/app.js").id == HELPER
    with pytest.raises(NoMatch):
        find_start_node(graph, "helper", file="src/math.js")


def test_traverse_callees(tmp_path: Path) -> None:
    result = traverse(_workspace_graph(tmp_path), "run")

    assert result.start == RUN
    assert [(node.id, node.depth) for node in result.nodes] == [
        (RUN, 0),
        (HELPER, 1),
        (ADD, 1),
        (MUL, 1),
    ]
    assert len(result.edges) == 4
    assert [call.call for call in result.unresolved] == ["lodash.sum"]


def test_callee_graph_only_expands_reached_files(tmp_path: Path) -> None:
    _workspace_graph(tmp_path)
    session = AnalysisSession(tmp_path)

    partial = build_callee_graph(session, "run")

    assert {node.file for node in partial.nodes} == {"src/app.js", "src/math.js"}
    assert partial.node(GO) is None
    assert traverse(partial, "run") == traverse(build_call_graph(session), "run")

    from_go = build_callee_graph(session, "go")
    assert {node.file for node in from_go.nodes} == {"src/cjs.js", "src/math.js"}
    assert [node.id for node in traverse(from_go, "go").nodes] == [GO, ADD]

    with pytest.raises(NoMatch):
        build_callee_graph(session, "nope")


def test_traverse_callers_with_depth(tmp_path: Path) -> None:
    graph = _workspace_graph(tmp_path)

    shallow = traverse(graph, "add", direction="callers", max_depth=1)
    assert [node.id for node in shallow.nodes] == [ADD, RUN, HELPER, GO]
    assert shallow.unresolved == ()

    full = traverse(graph, "add", direction="callers")
    assert (APP_MODULE, 2) in [(node.id, node.depth) for node in full.nodes]


def test_hot_paths_rank_by_inbound_calls(tmp_path: Path) -> None:
    ranked = hot_paths(_workspace_graph(tmp_path), limit=2)

    assert [(hot.id, hot.inbound_calls, hot.callers) for hot in ranked] == [
        (ADD, 3, 3),
        (RUN, 1, 1),
    ]


def test_dead_code_skips_exports_unless_asked(tmp_path: Path) -> None:
    graph = _workspace_graph(tmp_path)

    assert [entry.name for entry in dead_code(graph)] == ["orphan"]
    assert [entry.name for entry in dead_code(graph, include_exported=True)] == [
        "orphan",
        "module.exports.go",
        "exports.unused",
    ]


def test_dead_code_treats_implicit_methods_as_reachable(tmp_path: Path) -> None:
    graph = _graph(tmp_path, {"widget.js": WIDGET_JS})

    assert [entry.name for entry in dead_code(graph)] == ["Widget#stale", "use"]


def test_call_cycles_include_self_recursion(tmp_path: Path) -> None:
    graph = _graph(tmp_path, {"rec.js": RECURSIVE_JS})

    assert call_cycles(graph) == [
        ["rec.js::fact"],
        ["rec.js::ping", "rec.js::pong"],
    ]


def test_graph_algorithms() -> None:
    graph = build_adjacency([("a", "b"), ("b", "c"), ("a", "b"), ("c", "a"), ("d", "d")])

    assert graph == {"a": {"b"}, "b": {"c"}, "c": {"a"}, "d": {"d"}}
    assert reverse_adjacency(graph)["a"] == {"c"}
    assert bfs_layers(graph, "a") == {"a": 0, "b": 1, "c": 2}
    assert bfs_layers(graph, "a", max_depth=1) == {"a": 0, "b": 1}
    assert find_cycles(graph) == [["a", "b", "c"], ["d"]]
    assert find_cycles({"x": {"y"}}) == []
