from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from errors import ParseFailure
from extract.walker import extract_entities
from parse.calls import calls_within, extract_calls
from parse.imports import (
    build_module_table,
    extract_module_table,
    is_relative_specifier,
    resolve_import_path,
)
from parse.treesitter_js import dialect_for_path, parse_source

if TYPE_CHECKING:
    from pathlib import Path

MODULE_SOURCE = """\
import fs from "fs";
import * as path from "path";
import { a, b as c } from "./util";
import "./side";
const x = require("./x");
const { y, z: w } = require("./yz");
const q = require("./q").q;
export { r } from "./r";
export * from "./all";
export function f() {}
module.exports.g = f;
"""


def test_dialect_follows_suffix() -> None:
    assert dialect_for_path("src/app.js") == "javascript"
    assert dialect_for_path("src/app.mts") == "typescript"
    assert dialect_for_path("src/App.tsx") == "tsx"
    assert dialect_for_path(None) == "javascript"


def test_parse_failure_reports_position() -> None:
    with pytest.raises(ParseFailure) as excinfo:
        parse_source("function broken( {\n", path="broken.js")

    assert excinfo.value.line is not None
    assert "broken.js" in str(excinfo.value)


def test_typescript_syntax_needs_typescript_dialect() -> None:
    parsed = parse_source("const total: number = 1;\n", path="total.ts")
    assert parsed.dialect == "typescript"

    with pytest.raises(ParseFailure):
        parse_source("const total: number = 1;\n", path="total.js")


def test_module_table_covers_esm_and_commonjs() -> None:
    table = build_module_table(parse_source(MODULE_SOURCE, path="mod.js"))

    summary = [
        (rec.source, rec.kind, [(s.imported, s.local) for s in rec.specifiers])
        for rec in table.imports
    ]
    assert summary == [
        ("fs", "esm", [("default", "fs")]),
        ("path", "esm", [("*", "path")]),
        ("./util", "esm", [("a", "a"), ("b", "c")]),
        ("./side", "side-effect", []),
        ("./x", "require", [("module.exports", "x")]),
        ("./yz", "require", [("y", "y"), ("z", "w")]),
        ("./q", "require", [("q", "q")]),
        ("./r", "reexport", [("r", "r")]),
        ("./all", "reexport", [("*", "*")]),
    ]
    assert all(rec.strategy == "structural" for rec in table.imports)

    exports = {(entry.name, entry.kind) for entry in table.exports}
    assert ("r", "reexport") in exports
    assert ("*", "reexport-all") in exports
    assert ("f", "named") in exports
    assert ("g", "commonjs-named") in exports


def test_module_table_falls_back_to_regex_on_syntax_errors() -> None:
    table = extract_module_table(b"import a from './a';\nfunction (\n", path="bad.js")

    assert table.strategy == "regex_fallback"
    assert [(rec.source, rec.kind) for rec in table.imports] == [("./a", "esm")]
    assert all(rec.strategy == "regex_fallback" for rec in table.imports)


def test_resolve_import_path_tries_extensions_and_index(tmp_path: Path) -> None:
    (tmp_path / "util.ts").write_text("export const u = 1;\n", encoding="utf-8")
    (tmp_path / "lib").mkdir()
    (tmp_path / "lib" / "index.js").write_text("module.exports = {};\n", encoding="utf-8")
    app = tmp_path / "app.js"
    app.write_text("", encoding="utf-8")

    assert resolve_import_path("./util", app) == (tmp_path / "util.ts").resolve()
    assert resolve_import_path("./util.js", app) == (tmp_path / "util.ts").resolve()
    assert resolve_import_path("./lib", app) == (tmp_path / "lib" / "index.js").resolve()
    assert resolve_import_path("./missing", app) is None
    assert resolve_import_path("react", app) is None
    assert is_relative_specifier("../up")
    assert not is_relative_specifier("@scope/pkg")


def test_extract_calls_normalizes_callees_and_skips_module_loads() -> None:
    parsed = parse_source(
        """\
function outer() {
  helper(1);
  this.run();
  obj.method.deep();
  new Widget();
  require("x");
  import("./y");
  (fn)();
}
helper();
""",
        path="calls.js",
    )
    extraction = extract_entities(parsed)
    sites = extract_calls(parsed, extraction.functions)

    assert [site.callee for site in sites] == [
        "helper",
        "this.run",
        "obj.method.deep",
        "Widget",
        "fn",
        "helper",
    ]
    assert [site.name for site in sites][:3] == ["helper", "run", "deep"]
    assert sites[1].is_member
    assert sites[3].is_new
    assert [site.enclosing for site in sites] == ["outer"] * 5 + [None]

    outer = extraction.functions[0]
    assert len(calls_within(sites, outer.span)) == 5
