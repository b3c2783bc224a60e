"""Single-level dependency slices for one function.

A slice answers "what else in this file do I need to read to understand this
function": the imports, top-level constants and top-level functions its free
identifiers refer to. Only one level is followed; the dependencies of those
dependencies are not.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

from parse.imports import build_module_table, is_relative_specifier
from parse.treesitter_js import bound_identifiers, iter_nodes, node_text
from utils import count_lines

if TYPE_CHECKING:
    from tree_sitter import Node

    from extract.records import ExtractionResult, FunctionRecord
    from parse.treesitter_js import ParsedSource

_REFERENCE_TYPES = frozenset({"identifier", "shorthand_property_identifier"})
_DECLARATION_TYPES = frozenset({"lexical_declaration", "variable_declaration"})
_FUNCTION_TYPES = frozenset(
    {
        "function_declaration",
        "generator_function_declaration",
        "function_expression",
        "function",
        "generator_function",
        "arrow_function",
        "method_definition",
    }
)


class SliceImport(BaseModel):
    model_config = ConfigDict(frozen=True)

    source: str
    specifiers: tuple[str, ...]
    line: int
    code: str


class SliceMember(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    start_line: int
    end_line: int
    code: str


class SliceConstant(BaseModel):
    model_config = ConfigDict(frozen=True)

    names: tuple[str, ...]
    start_line: int
    end_line: int
    code: str


class SliceTarget(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    start_line: int
    end_line: int
    hash: str


class DependencySlice(BaseModel):
    """The assembled slice and the statistics describing it."""

    model_config = ConfigDict(frozen=True)

    file: str | None = None
    target: SliceTarget
    free_identifiers: tuple[str, ...] = ()
    imports: tuple[SliceImport, ...] = ()
    constants: tuple[SliceConstant, ...] = ()
    functions: tuple[SliceMember, ...] = ()
    external_imports: tuple[str, ...] = ()
    slice_lines: int
    total_lines: int
    reduction: float
    code: str


def _target_node(parsed: ParsedSource, record: FunctionRecord) -> Node:
    node = parsed.root.descendant_for_byte_range(record.span.start, record.span.end)
    while node is not None and (
        node.start_byte != record.span.start or node.end_byte != record.span.end
    ):
        node = node.parent
    return node if node is not None else parsed.root


def _declared_names(source: bytes, node: Node) -> set[str]:
    declared: set[str] = set()
    for current in iter_nodes(node):
        if current.type == "variable_declarator":
            pattern = current.child_by_field_name("name")
        elif current.type in _FUNCTION_TYPES:
            params = current.child_by_field_name("parameters")
            pattern = params if params is not None else current.child_by_field_name("parameter")
            name = current.child_by_field_name("name")
            if name is not None and name.type == "identifier":
                declared.add(node_text(source, name))
        elif current.type in ("class_declaration", "catch_clause"):
            field = "name" if current.type == "class_declaration" else "parameter"
            pattern = current.child_by_field_name(field)
        else:
            continue
        declared.update(node_text(source, ident) for ident in bound_identifiers(pattern))
    return declared


def free_identifiers(parsed: ParsedSource, record: FunctionRecord) -> list[str]:
    """Identifiers referenced inside the target but not declared there, sorted."""
    source = parsed.source
    node = _target_node(parsed, record)
    referenced = {
        node_text(source, current)
        for current in iter_nodes(node)
        if current.type in _REFERENCE_TYPES
    }
    return sorted(referenced - _declared_names(source, node) - {record.name})


def _statement_names(source: bytes, statement: Node) -> list[tuple[str, Node | None]]:
    """Names a top-level declaration binds, with each declarator's value."""
    target = statement
    if statement.type == "export_statement":
        declaration = statement.child_by_field_name("declaration")
        if declaration is None:
            return []
        target = declaration
    if target.type not in _DECLARATION_TYPES:
        return []
    found: list[tuple[str, Node | None]] = []
    for declarator in target.named_children:
        if declarator.type != "variable_declarator":
            continue
        value = declarator.child_by_field_name("value")
        for ident in bound_identifiers(declarator.child_by_field_name("name")):
            found.append((node_text(source, ident), value))
    return found


def _is_require(source: bytes, value: Node | None) -> bool:
    while value is not None and value.type == "member_expression":
        value = value.child_by_field_name("object")
    if value is None or value.type != "call_expression":
        return False
    function = value.child_by_field_name("function")
    return function is not None and node_text(source, function) == "require"


def build_dependency_slice(
    parsed: ParsedSource,
    extraction: ExtractionResult,
    record: FunctionRecord,
) -> DependencySlice:
    """Collect the top-level code one function depends on.

    Three passes over the module's top-level statements pick up the imports
    whose local names the target references, the referenced constants, and
    the referenced top-level functions other than the target itself.
    """
    source = parsed.source
    free = set(free_identifiers(parsed, record))
    statements = parsed.root.named_children

    imports: list[SliceImport] = []
    import_statements: set[int] = set()
    table = build_module_table(parsed)
    for entry in table.imports:
        if entry.kind not in ("esm", "require"):
            continue
        locals_used = tuple(name for name in entry.local_names if name in free)
        if not locals_used:
            continue
        statement = next(
            (s for s in statements if s.start_byte <= entry.start and entry.end <= s.end_byte),
            None,
        )
        if statement is None or statement.start_byte in import_statements:
            continue
        import_statements.add(statement.start_byte)
        imports.append(
            SliceImport(
                source=entry.source,
                specifiers=locals_used,
                line=statement.start_point[0] + 1,
                code=node_text(source, statement),
            )
        )

    constants: list[SliceConstant] = []
    for statement in statements:
        if statement.start_byte in import_statements:
            continue
        names = tuple(
            name
            for name, value in _statement_names(source, statement)
            if name in free
            and not _is_require(source, value)
            and (value is None or value.type not in _FUNCTION_TYPES)
        )
        if names:
            constants.append(
                SliceConstant(
                    names=names,
                    start_line=statement.start_point[0] + 1,
                    end_line=statement.end_point[0] + 1,
                    code=node_text(source, statement),
                )
            )

    functions: list[SliceMember] = []
    for fn in extraction.functions:
        if fn.enclosing_contexts or fn.index == record.index or fn.kind == "class":
            continue
        if fn.name not in free:
            continue
        functions.append(
            SliceMember(
                name=fn.name,
                start_line=fn.line,
                end_line=fn.end_line,
                code=fn.span.text(source),
            )
        )

    target_code = record.span.text(source)
    sections = [
        "\n".join(item.code for item in imports),
        "\n".join(item.code for item in constants),
        "\n\n".join(item.code for item in functions),
        target_code,
    ]
    code = "\n\n".join(section for section in sections if section)
    slice_lines = sum(count_lines(item.code) for item in (*imports, *constants, *functions))
    slice_lines += count_lines(target_code)
    total_lines = max(1, count_lines(source.decode("utf-8", errors="replace")))
    external = sorted({item.source for item in imports if not is_relative_specifier(item.source)})

    return DependencySlice(
        file=parsed.path,
        target=SliceTarget(
            name=record.display_name,
            start_line=record.line,
            end_line=record.end_line,
            hash=record.hash,
        ),
        free_identifiers=tuple(sorted(free)),
        imports=tuple(imports),
        constants=tuple(constants),
        functions=tuple(functions),
        external_imports=tuple(external),
        slice_lines=slice_lines,
        total_lines=total_lines,
        reduction=round(1 - slice_lines / total_lines, 4),
        code=code,
    )


__all__ = [
    "DependencySlice",
    "SliceConstant",
    "SliceImport",
    "SliceMember",
    "SliceTarget",
    "build_dependency_slice",
    "free_identifiers",
]
