from __future__ import annotations

from typing import TYPE_CHECKING

from relations.analyzer import RelationshipAnalyzer, impact_level, risk_level
from relations.session import AnalysisSession
from rules.config import RiskConfig, SpanguardConfig

if TYPE_CHECKING:
    from pathlib import Path

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
import { add, mul } from "./math";
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

INDEX_JS = 'export { add } from "./math";\n'

TOP_JS = 'import { run } from "./app";\n'


def _write_js_file(root: Path, rel: str, content: str) -> None:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def _analyzer(root: Path, config: SpanguardConfig | None = None) -> RelationshipAnalyzer:
    _write_js_file(root, "src/math.js", MATH_JS)
    _write_js_file(root, "src/app.js", APP_JS)
    _write_js_file(root, "src/cjs.js", CJS_JS)
    _write_js_file(root, "src/index.js", INDEX_JS)
    _write_js_file(root, "src/top.js", TOP_JS)
    return RelationshipAnalyzer(AnalysisSession(root, config=config))


def test_risk_and_impact_levels() -> None:
    assert [risk_level(n) for n in (0, 5, 6, 20, 21)] == ["LOW", "LOW", "MEDIUM", "MEDIUM", "HIGH"]
    assert [impact_level(n) for n in (0, 1, 2, 3, 10, 11)] == [
        "NONE",
        "LOW",
        "LOW",
        "MEDIUM",
        "MEDIUM",
        "HIGH",
    ]


def test_what_imports_lists_importers_and_summary(tmp_path: Path) -> None:
    result = _analyzer(tmp_path).what_imports("src/math.js")

    assert result.warning is None
    assert result.target == "src/math.js"
    assert [entry.file for entry in result.importers] == [
        "src/app.js",
        "src/cjs.js",
        "src/index.js",
    ]
    assert [entry.count for entry in result.importers] == [2, 1, 1]
    assert result.importer_count == 3
    assert result.total_import_count == 4
    assert result.import_summary == {"*": 1, "add": 2, "module.exports": 1, "mul": 1}

    require_use = result.importers[1].imports[0]
    assert require_use.kind == "require"
    assert require_use.names == ("module.exports",)


def test_what_imports_missing_target(tmp_path: Path) -> None:
    result = _analyzer(tmp_path).what_imports("src/nope.js")

    assert result.warning == "Target not found: src/nope.js"
    assert result.importers == ()


def test_what_calls_splits_internal_and_external(tmp_path: Path) -> None:
    result = _analyzer(tmp_path).what_calls("run", file="src/app.js")

    assert result.warning is None
    assert result.function == "exports.run"
    assert result.call_count == 4
    assert [c.callee for c in result.internal_calls] == ["helper"]
    assert sorted(c.callee for c in result.external_calls) == ["add", "lodash.sum", "m.mul"]
    sources = {c.callee: c.source for c in result.external_calls}
    assert sources == {"add": "./math", "m.mul": "./math.js", "lodash.sum": "lodash"}


def test_what_calls_searches_workspace_without_file(tmp_path: Path) -> None:
    analyzer = _analyzer(tmp_path)

    found = analyzer.what_calls("helper")
    assert found.file == "src/app.js"
    assert [c.callee for c in found.callees] == ["add"]

    missing = analyzer.what_calls("nope")
    assert missing.warning == "Function not found: nope"


def test_export_usage_follows_named_export(tmp_path: Path) -> None:
    result = _analyzer(tmp_path).export_usage("src/math.js", name="add")

    usage = result.usage
    assert [entry.file for entry in usage.direct_imports] == [
        "src/app.js",
        "src/cjs.js",
        "src/index.js",
    ]
    assert usage.reexports == ("src/index.js",)
    calls = {entry.file: [call.name for call in entry.calls] for entry in usage.function_calls}
    assert calls == {"src/app.js": ["add", "add"], "src/cjs.js": ["math.add"]}
    assert usage.function_calls[1].calls[0].context == "return math.add(2, 2);"
    assert result.total_usage_count == 7
    assert result.risk_level == "MEDIUM"


def test_export_usage_ignores_other_exports(tmp_path: Path) -> None:
    result = _analyzer(tmp_path).export_usage("src/math.js", name="mul")

    assert [entry.file for entry in result.usage.direct_imports] == ["src/app.js", "src/cjs.js"]
    assert [call.name for entry in result.usage.function_calls for call in entry.calls] == [
        "m.mul"
    ]
    assert result.total_usage_count == 3
    assert result.risk_level == "LOW"


def test_export_usage_uses_configured_thresholds(tmp_path: Path) -> None:
    config = SpanguardConfig(risk=RiskConfig(medium_threshold=1, high_threshold=3))

    result = _analyzer(tmp_path, config).export_usage("src/math.js", name="add")

    assert result.risk_level == "HIGH"
    assert result.recommendation.startswith("High usage")


def test_transitive_dependencies_respects_depth(tmp_path: Path) -> None:
    analyzer = _analyzer(tmp_path)

    full = analyzer.transitive_dependencies("src/top.js", max_depth=0)
    assert [(d.file, d.depth) for d in full.dependencies] == [("src/app.js", 1), ("src/math.js", 2)]
    assert full.dependencies[1].chain == ("src/top.js", "src/app.js", "src/math.js")
    assert full.external == ("lodash",)
    assert full.depth == 2

    shallow = analyzer.transitive_dependencies("src/top.js", max_depth=1)
    assert [d.file for d in shallow.dependencies] == ["src/app.js"]
    assert shallow.external == ()


def test_impact_preview_counts_each_export(tmp_path: Path) -> None:
    result = _analyzer(tmp_path).impact_preview("src/math.js")

    by_name = {e.name: e for e in result.exports}
    assert list(by_name) == ["add", "mul", "unused"]
    assert by_name["add"].usage_count == 3
    assert by_name["add"].used_by == ("src/app.js", "src/index.js")
    assert by_name["add"].risk == "MEDIUM"
    assert by_name["mul"].risk == "LOW"
    assert by_name["unused"].usage_count == 1
    assert result.summary.medium_risk == 1
    assert result.summary.low_risk == 2
    assert result.recommendations == ()


def test_impact_preview_of_unimported_file(tmp_path: Path) -> None:
    result = _analyzer(tmp_path).impact_preview("src/index.js")

    assert result.summary.safe_to_modify == ("add",)
    assert [r.type for r in result.recommendations] == ["info", "info"]
    assert "no external consumers" in result.recommendations[1].message

    assert _analyzer(tmp_path).impact_preview("src/gone.js").warning == "File not found: src/gone.js"
