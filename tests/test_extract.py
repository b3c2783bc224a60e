from __future__ import annotations

import pytest

from errors import AmbiguousMatch, NoMatch
from extract.hashing import compact_digest, full_digest, hashes_match, is_valid_hash
from extract.listing import extract_by_hashes, list_functions, list_variables
from extract.walker import extract_source

SAMPLE = """\
function plain() {}
export function exported() {}
const arrow = () => 1;
class Widget {
  constructor() {}
  render() {}
  static create() {}
  get size() { return 1; }
  #secret() {}
}
exports.cjs = function () {};
module.exports = { helper() {}, value: 1 };
items.forEach(function () {});
"""


def _by_canonical(source: str, path: str = "sample.js") -> dict[str, object]:
    extraction = extract_source(source, path=path)
    return {fn.canonical_name: fn for fn in extraction.functions}


def test_canonical_names_and_kinds() -> None:
    functions = _by_canonical(SAMPLE)

    kinds = {name: fn.kind for name, fn in functions.items()}
    assert kinds == {
        "plain": "declaration",
        "exports.exported": "declaration",
        "arrow": "arrow",
        "Widget": "class",
        "Widget#constructor": "class-method",
        "Widget#render": "class-method",
        "Widget.static create": "class-method",
        "Widget.get size": "class-method",
        "Widget#secret": "class-method",
        "exports.cjs": "expression",
        "module.exports.helper": "expression",
        "<anonymous>@13:15": "expression",
    }


def test_export_kinds_and_replaceability() -> None:
    functions = _by_canonical(SAMPLE)

    assert functions["plain"].export_kind == "none"
    assert functions["exports.exported"].export_kind == "named"
    assert functions["exports.cjs"].export_kind == "commonjs-named"
    assert functions["module.exports.helper"].export_kind == "commonjs-named"
    assert not functions["<anonymous>@13:15"].replaceable
    assert functions["plain"].replaceable


def test_records_are_in_source_order_with_stable_paths() -> None:
    extraction = extract_source(SAMPLE, path="sample.js")

    starts = [fn.span.start for fn in extraction.functions]
    assert starts == sorted(starts)
    assert [fn.index for fn in extraction.functions] == list(range(len(extraction.functions)))
    assert extraction.functions[0].path_signature == "module/function_declaration[0]"
    assert extraction == extract_source(SAMPLE, path="sample.js")


def test_hashes_cover_the_record_span() -> None:
    source = SAMPLE.encode("utf-8")
    extraction = extract_source(source, path="sample.js")

    for fn in extraction.functions:
        data = fn.span.slice(source)
        assert fn.hash == compact_digest(data)
        assert fn.full_hash == full_digest(data)
        assert is_valid_hash(fn.hash)
        assert is_valid_hash(fn.full_hash)
        assert hashes_match(f"hash:{fn.hash}", fn.hash, fn.full_hash)


def test_arrow_function_span_is_its_declarator() -> None:
    source = SAMPLE.encode("utf-8")
    functions = _by_canonical(SAMPLE)

    arrow = functions["arrow"]
    assert arrow.span.text(source) == "arrow = () => 1"
    assert arrow.identifier_span is not None
    assert arrow.identifier_span.text(source) == "arrow"


def test_enclosing_contexts_for_methods() -> None:
    functions = _by_canonical(SAMPLE)

    render = functions["Widget#render"]
    assert [ctx.kind for ctx in render.enclosing_contexts] == ["class"]
    assert render.enclosing_contexts[0].name == "Widget"
    assert render.scope_chain == ("Widget", "#render")


def test_variables_cover_destructuring_exports_and_fields() -> None:
    source = """\
const { a, b: c } = load();
export const LIMIT = 5;
class Store {
  count = 0;
  handler = () => {};
}
"""
    encoded = source.encode("utf-8")
    extraction = extract_source(source, path="vars.js")
    variables = {var.canonical_name: var for var in extraction.variables}

    assert set(variables) == {"a", "c", "exports.LIMIT", "Store > count", "Store > handler"}
    a, c = variables["a"], variables["c"]
    assert a.span == c.span
    assert a.binding_span.text(encoded) == "a"
    assert c.binding_span.text(encoded) == "c"
    assert a.binding_kind == "const"

    limit = variables["exports.LIMIT"]
    assert limit.export_kind == "named"
    assert limit.declaration_span.text(encoded) == "export const LIMIT = 5;"
    assert limit.target_span("declarator").text(encoded) == "LIMIT = 5"

    assert variables["Store > count"].binding_kind == "class-field"
    handler = next(fn for fn in extraction.functions if fn.canonical_name == "Store#handler")
    assert handler.kind == "arrow"


def test_listing_filters() -> None:
    extraction = extract_source(SAMPLE, path="sample.js")

    exported = list_functions(extraction, exported_only=True)
    assert [entry.canonical_name for entry in exported] == [
        "exports.exported",
        "exports.cjs",
        "module.exports.helper",
    ]
    methods = list_functions(extraction, kinds=["class-method"])
    assert len(methods) == 5
    assert [entry.name for entry in list_variables(extraction)] == ["arrow", "module.exports"]


def test_extract_by_hashes() -> None:
    source = SAMPLE.encode("utf-8")
    extraction = extract_source(source, path="sample.js")
    plain = extraction.functions[0]

    found = extract_by_hashes(extraction, source, [plain.hash, f"hash:{plain.full_hash}"])
    assert [item.code for item in found] == ["function plain() {}"] * 2

    with pytest.raises(NoMatch):
        extract_by_hashes(extraction, source, ["AAAAAAAA"])


def test_extract_by_hashes_rejects_duplicates() -> None:
    source = b"const x = { a() {} };\nconst y = { a() {} };\n"
    extraction = extract_source(source, path="dup.js")
    twin = extraction.functions[0].hash

    with pytest.raises(AmbiguousMatch):
        extract_by_hashes(extraction, source, [twin])
