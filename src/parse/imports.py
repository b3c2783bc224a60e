"""Import and export tables for JavaScript/TypeScript modules.

Extraction is structural over the tree-sitter tree. Files that do not parse
cleanly fall back to a handful of regular expressions; every record produced
that way carries ``strategy="regex_fallback"`` so callers can tell the
approximate path from the exact one.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, ConfigDict

from errors import ParseFailure
from parse.treesitter_js import bound_identifiers, iter_nodes, node_text, parse_source

if TYPE_CHECKING:
    from tree_sitter import Node

    from parse.treesitter_js import Dialect, ParsedSource

logger = logging.getLogger(__name__)

Strategy = Literal["structural", "regex_fallback"]
ImportKind = Literal["esm", "require", "dynamic", "reexport", "side-effect"]
ExportEntryKind = Literal[
    "named", "default", "commonjs-default", "commonjs-named", "reexport", "reexport-all"
]

RESOLVE_EXTENSIONS = (".js", ".mjs", ".cjs", ".jsx", ".ts", ".tsx", ".mts", ".cts")

_COMMONJS_OBJECTS = frozenset({"module.exports", "exports"})


class ImportSpecifier(BaseModel):
    """One name brought into scope by an import."""

    model_config = ConfigDict(frozen=True)

    imported: str
    local: str


class ImportRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    source: str
    kind: ImportKind
    specifiers: tuple[ImportSpecifier, ...] = ()
    line: int
    start: int
    end: int
    type_only: bool = False
    strategy: Strategy = "structural"

    @property
    def is_relative(self) -> bool:
        return is_relative_specifier(self.source)

    @property
    def local_names(self) -> tuple[str, ...]:
        return tuple(spec.local for spec in self.specifiers)


class ExportRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    kind: ExportEntryKind
    local: str | None = None
    source: str | None = None
    line: int
    strategy: Strategy = "structural"


class ModuleTable(BaseModel):
    """Everything a module imports and exports."""

    model_config = ConfigDict(frozen=True)

    path: str | None = None
    strategy: Strategy = "structural"
    imports: tuple[ImportRecord, ...] = ()
    exports: tuple[ExportRecord, ...] = ()


def is_relative_specifier(source: str) -> bool:
    return source.startswith(("./", "../")) or source in (".", "..")


def _string_value(source: bytes, node: Node | None) -> str | None:
    if node is None or node.type not in ("string", "template_string"):
        return None
    if node.type == "template_string" and any(
        child.type == "template_substitution" for child in node.named_children
    ):
        return None
    return node_text(source, node)[1:-1]


def _line(node: Node) -> int:
    return node.start_point[0] + 1


# --- structural extraction --------------------------------------------------


def _import_statement(source: bytes, node: Node) -> ImportRecord | None:
    module = _string_value(source, node.child_by_field_name("source"))
    if module is None:
        return None
    type_only = any(not child.is_named and child.type == "type" for child in node.children)
    specifiers: list[ImportSpecifier] = []
    clause = next((c for c in node.named_children if c.type == "import_clause"), None)
    if clause is not None:
        for part in clause.named_children:
            if part.type == "identifier":
                specifiers.append(
                    ImportSpecifier(imported="default", local=node_text(source, part))
                )
            elif part.type == "namespace_import":
                ident = next((c for c in part.named_children if c.type == "identifier"), None)
                if ident is not None:
                    specifiers.append(ImportSpecifier(imported="*", local=node_text(source, ident)))
            elif part.type == "named_imports":
                for spec in part.named_children:
                    if spec.type != "import_specifier":
                        continue
                    name = node_text(source, spec.child_by_field_name("name"))
                    alias = node_text(source, spec.child_by_field_name("alias"))
                    specifiers.append(ImportSpecifier(imported=name, local=alias or name))
    return ImportRecord(
        source=module,
        kind="esm" if clause is not None else "side-effect",
        specifiers=tuple(specifiers),
        line=_line(node),
        start=node.start_byte,
        end=node.end_byte,
        type_only=type_only,
    )


def _require_specifiers(source: bytes, call: Node) -> tuple[ImportSpecifier, ...]:
    """Names bound by ``const x = require(...)`` and its destructured forms."""
    parent = call.parent
    imported_member: str | None = None
    if parent is not None and parent.type == "member_expression":
        imported_member = node_text(source, parent.child_by_field_name("property"))
        parent = parent.parent
    if parent is None or parent.type != "variable_declarator":
        return ()
    name_node = parent.child_by_field_name("name")
    if name_node is None:
        return ()
    if name_node.type == "identifier":
        return (
            ImportSpecifier(
                imported=imported_member or "module.exports",
                local=node_text(source, name_node),
            ),
        )
    if name_node.type != "object_pattern":
        return ()
    found: list[ImportSpecifier] = []
    for part in name_node.named_children:
        if part.type == "shorthand_property_identifier_pattern":
            name = node_text(source, part)
            found.append(ImportSpecifier(imported=name, local=name))
        elif part.type == "pair_pattern":
            key = node_text(source, part.child_by_field_name("key"))
            value = part.child_by_field_name("value")
            if value is not None and value.type == "identifier":
                found.append(ImportSpecifier(imported=key, local=node_text(source, value)))
        elif part.type == "object_assignment_pattern":
            left = part.child_by_field_name("left")
            name = node_text(source, left)
            found.append(ImportSpecifier(imported=name, local=name))
    return tuple(found)


def _call_import(source: bytes, node: Node) -> ImportRecord | None:
    function = node.child_by_field_name("function")
    arguments = node.child_by_field_name("arguments")
    if function is None or arguments is None or not arguments.named_children:
        return None
    if function.type == "import":
        kind: ImportKind = "dynamic"
    elif function.type == "identifier" and node_text(source, function) == "require":
        kind = "require"
    else:
        return None
    module = _string_value(source, arguments.named_children[0])
    if module is None:
        return None
    specifiers = _require_specifiers(source, node) if kind == "require" else ()
    return ImportRecord(
        source=module,
        kind=kind,
        specifiers=specifiers,
        line=_line(node),
        start=node.start_byte,
        end=node.end_byte,
    )


def _export_statement(
    source: bytes, node: Node
) -> tuple[ImportRecord | None, list[ExportRecord]]:
    line = _line(node)
    module = _string_value(source, node.child_by_field_name("source"))
    exports: list[ExportRecord] = []

    if module is not None:
        specifiers: list[ImportSpecifier] = []
        for child in node.named_children:
            if child.type == "export_clause":
                for spec in child.named_children:
                    if spec.type != "export_specifier":
                        continue
                    name = node_text(source, spec.child_by_field_name("name"))
                    alias = node_text(source, spec.child_by_field_name("alias")) or name
                    specifiers.append(ImportSpecifier(imported=name, local=alias))
                    exports.append(
                        ExportRecord(name=alias, kind="reexport", local=name, source=module, line=line)
                    )
            elif child.type == "namespace_export":
                ident = next(iter(child.named_children), None)
                alias = node_text(source, ident) or "*"
                specifiers.append(ImportSpecifier(imported="*", local=alias))
                exports.append(ExportRecord(name=alias, kind="reexport", local="*", source=module, line=line))
        if not specifiers:
            specifiers.append(ImportSpecifier(imported="*", local="*"))
            exports.append(ExportRecord(name="*", kind="reexport-all", source=module, line=line))
        record = ImportRecord(
            source=module,
            kind="reexport",
            specifiers=tuple(specifiers),
            line=line,
            start=node.start_byte,
            end=node.end_byte,
        )
        return record, exports

    is_default = any(not child.is_named and child.type == "default" for child in node.children)
    declaration = node.child_by_field_name("declaration")
    if is_default:
        local = None
        if declaration is not None:
            local = node_text(source, declaration.child_by_field_name("name")) or None
        else:
            value = node.child_by_field_name("value")
            if value is not None and value.type == "identifier":
                local = node_text(source, value)
        exports.append(ExportRecord(name="default", kind="default", local=local, line=line))
        return None, exports

    if declaration is not None:
        if declaration.type in ("lexical_declaration", "variable_declaration"):
            for declarator in declaration.named_children:
                if declarator.type != "variable_declarator":
                    continue
                for ident in bound_identifiers(declarator.child_by_field_name("name")):
                    name = node_text(source, ident)
                    exports.append(ExportRecord(name=name, kind="named", local=name, line=line))
        else:
            name = node_text(source, declaration.child_by_field_name("name"))
            if name:
                exports.append(ExportRecord(name=name, kind="named", local=name, line=line))
        return None, exports

    for child in node.named_children:
        if child.type != "export_clause":
            continue
        for spec in child.named_children:
            if spec.type != "export_specifier":
                continue
            name = node_text(source, spec.child_by_field_name("name"))
            alias = node_text(source, spec.child_by_field_name("alias")) or name
            kind: ExportEntryKind = "default" if alias == "default" else "named"
            exports.append(ExportRecord(name=alias, kind=kind, local=name, line=line))
    return None, exports


def _commonjs_exports(source: bytes, node: Node) -> list[ExportRecord]:
    left = node.child_by_field_name("left")
    right = node.child_by_field_name("right")
    if left is None or right is None:
        return []
    target = "".join(node_text(source, left).split())
    line = _line(node)
    if target == "module.exports":
        local = node_text(source, right) if right.type == "identifier" else None
        found = [ExportRecord(name="default", kind="commonjs-default", local=local, line=line)]
        if right.type == "object":
            for member in right.named_children:
                if member.type == "shorthand_property_identifier":
                    name = node_text(source, member)
                    found.append(ExportRecord(name=name, kind="commonjs-named", local=name, line=line))
                elif member.type in ("pair", "method_definition"):
                    key_node = member.child_by_field_name(
                        "key" if member.type == "pair" else "name"
                    )
                    key = node_text(source, key_node)
                    if key_node is not None and key_node.type == "string":
                        key = key[1:-1]
                    value = member.child_by_field_name("value")
                    local_name = (
                        node_text(source, value)
                        if value is not None and value.type == "identifier"
                        else None
                    )
                    found.append(
                        ExportRecord(name=key, kind="commonjs-named", local=local_name, line=line)
                    )
        return found
    if left.type == "member_expression":
        obj = "".join(node_text(source, left.child_by_field_name("object")).split())
        if obj in _COMMONJS_OBJECTS:
            name = node_text(source, left.child_by_field_name("property"))
            local = node_text(source, right) if right.type == "identifier" else None
            return [ExportRecord(name=name, kind="commonjs-named", local=local, line=line)]
    return []


def build_module_table(parsed: ParsedSource) -> ModuleTable:
    """Structural import/export table for a cleanly parsed buffer."""
    source = parsed.source
    imports: list[ImportRecord] = []
    exports: list[ExportRecord] = []
    for node in iter_nodes(parsed.root):
        if node.type == "import_statement":
            record = _import_statement(source, node)
            if record is not None:
                imports.append(record)
        elif node.type == "call_expression":
            record = _call_import(source, node)
            if record is not None:
                imports.append(record)
        elif node.type == "export_statement":
            record, found = _export_statement(source, node)
            if record is not None:
                imports.append(record)
            exports.extend(found)
        elif node.type == "assignment_expression":
            exports.extend(_commonjs_exports(source, node))
    return ModuleTable(path=parsed.path, imports=tuple(imports), exports=tuple(exports))


# --- regex fallback ---------------------------------------------------------

_IMPORT_PATTERNS: tuple[tuple[ImportKind, re.Pattern[str]], ...] = (
    ("esm", re.compile(r"import\s+(?:type\s+)?(?:[\w$]+\s*,?\s*)?(?:\{[^}]*\}|\*\s+as\s+[\w$]+)?\s*from\s+['\"]([^'\"]+)['\"]")),
    ("side-effect", re.compile(r"^\s*import\s+['\"]([^'\"]+)['\"]", re.MULTILINE)),
    ("reexport", re.compile(r"export\s+(?:\*(?:\s+as\s+[\w$]+)?|\{[^}]*\})\s+from\s+['\"]([^'\"]+)['\"]")),
    ("require", re.compile(r"require\s*\(\s*['\"]([^'\"]+)['\"]\s*\)")),
    ("dynamic", re.compile(r"import\s*\(\s*['\"]([^'\"]+)['\"]\s*\)")),
)

_EXPORT_PATTERNS: tuple[tuple[ExportEntryKind, re.Pattern[str]], ...] = (
    ("named", re.compile(r"export\s+(?:async\s+)?(?:function\*?|class)\s+([\w$]+)")),
    ("named", re.compile(r"export\s+(?:const|let|var)\s+([\w$]+)")),
    ("default", re.compile(r"export\s+default\s+")),
    ("commonjs-named", re.compile(r"(?:module\.)?exports\.([\w$]+)\s*=")),
    ("commonjs-default", re.compile(r"module\.exports\s*=(?!=)")),
)


def _line_at(text: str, index: int) -> int:
    return text.count("\n", 0, index) + 1


def regex_module_table(source: bytes, path: str | None = None) -> ModuleTable:
    """Approximate import/export table for buffers that do not parse."""
    text = source.decode("utf-8", errors="replace")
    imports: list[ImportRecord] = []
    for kind, pattern in _IMPORT_PATTERNS:
        for match in pattern.finditer(text):
            start = len(text[: match.start()].encode("utf-8"))
            end = start + len(match.group(0).encode("utf-8"))
            imports.append(
                ImportRecord(
                    source=match.group(1),
                    kind=kind,
                    line=_line_at(text, match.start()),
                    start=start,
                    end=end,
                    strategy="regex_fallback",
                )
            )
    imports.sort(key=lambda record: record.start)

    exports: list[ExportRecord] = []
    for kind, pattern in _EXPORT_PATTERNS:
        for match in pattern.finditer(text):
            name = match.group(1) if pattern.groups else "default"
            exports.append(
                ExportRecord(
                    name=name,
                    kind=kind,
                    line=_line_at(text, match.start()),
                    strategy="regex_fallback",
                )
            )
    exports.sort(key=lambda record: record.line)
    return ModuleTable(
        path=path,
        strategy="regex_fallback",
        imports=tuple(imports),
        exports=tuple(exports),
    )


def extract_module_table(
    source: bytes,
    *,
    path: str | None = None,
    dialect: Dialect | None = None,
) -> ModuleTable:
    """Import/export table, structural when possible and regex otherwise."""
    try:
        parsed = parse_source(source, dialect=dialect, path=path)
    except ParseFailure as exc:
        logger.warning("using regex import fallback for %s: %s", path or "<buffer>", exc)
        return regex_module_table(source, path)
    return build_module_table(parsed)


def resolve_import_path(specifier: str, from_file: Path) -> Path | None:
    """Resolve a relative import specifier to a file on disk.

    Bare package specifiers resolve to None. Probes the exact path, each known
    extension, then ``index`` files inside a directory.

    Examples:
        ``resolve_import_path("./util", Path("src/app.js"))`` returns
        ``src/util.js`` when that file exists.
    """
    if not is_relative_specifier(specifier):
        return None
    base = (from_file.parent / specifier).resolve()
    if base.is_file():
        return base
    for ext in RESOLVE_EXTENSIONS:
        candidate = base.with_name(base.name + ext)
        if candidate.is_file():
            return candidate
    if base.suffix in (".js", ".mjs", ".cjs", ".jsx"):
        stem = base.with_suffix("")
        for ext in (".ts", ".tsx", ".mts", ".cts"):
            candidate = stem.with_name(stem.name + ext)
            if candidate.is_file():
                return candidate
    if base.is_dir():
        for ext in RESOLVE_EXTENSIONS:
            candidate = base / f"index{ext}"
            if candidate.is_file():
                return candidate
    return None


__all__ = [
    "RESOLVE_EXTENSIONS",
    "ExportRecord",
    "ImportKind",
    "ImportRecord",
    "ImportSpecifier",
    "ModuleTable",
    "Strategy",
    "build_module_table",
    "extract_module_table",
    "is_relative_specifier",
    "regex_module_table",
    "resolve_import_path",
]
