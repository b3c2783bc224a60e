"""Tree-sitter based call-site extraction for JavaScript/TypeScript files."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

from parse.spans import Span
from parse.treesitter_js import iter_nodes, node_text

if TYPE_CHECKING:
    from collections.abc import Sequence

    from tree_sitter import Node

    from extract.records import FunctionRecord
    from parse.treesitter_js import ParsedSource

_CALL_TYPES = frozenset({"call_expression", "new_expression"})


class CallSite(BaseModel):
    """One call or ``new`` expression and the function that contains it."""

    model_config = ConfigDict(frozen=True)

    callee: str
    name: str | None
    is_member: bool = False
    is_new: bool = False
    line: int
    column: int
    span: Span
    enclosing: str | None = None
    enclosing_index: int | None = None


def _normalize_callee_expr(source_bytes: bytes, callee_node: Node | None) -> str:
    if callee_node is None:
        return "<complex_expr>"

    if callee_node.type in ("identifier", "this", "super"):
        return node_text(source_bytes, callee_node).strip()

    if callee_node.type == "member_expression":
        object_node = callee_node.child_by_field_name("object")
        property_node = callee_node.child_by_field_name("property")

        normalized_object = _normalize_callee_expr(source_bytes, object_node)
        if property_node is None or property_node.type not in (
            "property_identifier",
            "private_property_identifier",
        ):
            return "<member>"

        prop_name = node_text(source_bytes, property_node).strip()
        if normalized_object.startswith("<") and normalized_object.endswith(">"):
            return f"<member>.{prop_name}"
        return f"{normalized_object}.{prop_name}"

    if callee_node.type == "parenthesized_expression" and callee_node.named_children:
        return _normalize_callee_expr(source_bytes, callee_node.named_children[0])

    placeholder_map = {
        "subscript_expression": "<subscript>",
        "call_expression": "<call>",
        "arrow_function": "<function>",
        "function_expression": "<function>",
        "function": "<function>",
        "import": "<import>",
    }
    return placeholder_map.get(callee_node.type, f"<{callee_node.type}>")


def _callee_name(callee: str) -> str | None:
    """Last segment of a normalized callee, or None for placeholders."""
    tail = callee.rsplit(".", 1)[-1]
    if not tail or tail.startswith("<"):
        return None
    return tail


def _innermost(
    functions: Sequence[FunctionRecord], span: Span
) -> FunctionRecord | None:
    best: FunctionRecord | None = None
    for fn in functions:
        if fn.kind == "class" or not fn.span.contains(span):
            continue
        if best is None or fn.span.length <= best.span.length:
            best = fn
    return best


def extract_calls(
    parsed: ParsedSource,
    functions: Sequence[FunctionRecord] = (),
) -> list[CallSite]:
    """Extract all call sites from a parsed buffer.

    When ``functions`` is given each call is attributed to the innermost
    function record whose span contains it. Dynamic ``import()`` and
    ``require()`` are module loads, not calls, and are skipped.
    """
    source = parsed.source
    sites: list[CallSite] = []
    for node in iter_nodes(parsed.root):
        if node.type not in _CALL_TYPES:
            continue
        is_new = node.type == "new_expression"
        callee_node = node.child_by_field_name("constructor" if is_new else "function")
        if callee_node is not None and callee_node.type == "import":
            continue
        callee = _normalize_callee_expr(source, callee_node)
        if callee == "require":
            continue
        span = Span.from_node(node)
        owner = _innermost(functions, span) if functions else None
        sites.append(
            CallSite(
                callee=callee,
                name=_callee_name(callee),
                is_member=callee_node is not None and callee_node.type == "member_expression",
                is_new=is_new,
                line=node.start_point[0] + 1,
                column=node.start_point[1] + 1,
                span=span,
                enclosing=owner.canonical_name if owner is not None else None,
                enclosing_index=owner.index if owner is not None else None,
            )
        )
    return sites


def calls_within(sites: Sequence[CallSite], span: Span) -> list[CallSite]:
    return [site for site in sites if span.contains(site.span)]


__all__ = ["CallSite", "calls_within", "extract_calls"]
