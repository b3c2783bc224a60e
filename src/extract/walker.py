"""Single-pass entity extraction over a JavaScript/TypeScript syntax tree.

The walk threads an immutable ``WalkContext`` through every recursive call.
Each handler derives a new context for its children with ``dataclasses.replace``
so sibling branches never observe each other's scope, export or path state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING, NamedTuple

from extract.hashing import compact_digest, full_digest
from extract.records import (
    EnclosingContext,
    ExportKind,
    ExtractionResult,
    FunctionKind,
    FunctionRecord,
    VariableRecord,
)
from parse.spans import Span
from parse.treesitter_js import ParsedSource, bound_identifiers, node_text, parse_source

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

    from tree_sitter import Node

    from parse.treesitter_js import Dialect

logger = logging.getLogger(__name__)

ROOT_SEGMENT = "module"
ANONYMOUS = "<anonymous>"

_FUNCTION_DECLARATION_TYPES = frozenset(
    {"function_declaration", "generator_function_declaration"}
)
_FUNCTION_EXPRESSION_TYPES = frozenset(
    {"function_expression", "function", "generator_function", "arrow_function"}
)
_FUNCTION_VALUE_TYPES = _FUNCTION_DECLARATION_TYPES | _FUNCTION_EXPRESSION_TYPES
_CLASS_DECLARATION_TYPES = frozenset({"class_declaration", "abstract_class_declaration"})
_DECLARATION_TYPES = frozenset({"lexical_declaration", "variable_declaration"})
_FIELD_TYPES = frozenset({"field_definition", "public_field_definition"})
_IDENTIFIER_KEY_TYPES = frozenset(
    {"identifier", "property_identifier", "private_property_identifier"}
)
_COMMONJS_OBJECTS = frozenset({"module.exports", "exports"})


class ModuleExport(NamedTuple):
    """How a module-level local name is exported."""

    kind: ExportKind
    canonical: str


@dataclass(frozen=True)
class WalkContext:
    """Immutable state carried down one branch of the walk."""

    path: tuple[str, ...] = (ROOT_SEGMENT,)
    scope_chain: tuple[str, ...] = ()
    export_kind: ExportKind = "none"
    enclosing: tuple[EnclosingContext, ...] = ()
    class_owner: str | None = None
    module_exports: Mapping[str, ModuleExport] = field(
        default_factory=lambda: MappingProxyType({})
    )

    @property
    def at_module_level(self) -> bool:
        return not self.enclosing

    @property
    def signature(self) -> str:
        return "/".join(self.path)

    def descend(self, parent: Node, child: Node) -> WalkContext:
        return replace(self, path=(*self.path, _segment(parent, child)))

    def at(self, path: tuple[str, ...]) -> WalkContext:
        return replace(self, path=path)


@dataclass(frozen=True)
class _Binding:
    """The syntactic site a value is bound at, and the name it receives there."""

    name: str
    name_node: Node | None
    site: Node
    site_path: tuple[str, ...]
    canonical: str
    export_kind: ExportKind
    scope_chain: tuple[str, ...]


@dataclass(frozen=True)
class _ObjectOwner:
    """Naming rules for members of an object literal."""

    prefix: str | None
    joiner: str
    export_kind: ExportKind
    scope_chain: tuple[str, ...]

    def member_name(self, key: str) -> str:
        if self.prefix is None:
            return key
        return f"{self.prefix}{self.joiner}{key}"

    def nested(self, key: str) -> _ObjectOwner:
        prefix = self.member_name(key) if self.prefix is not None else None
        return _ObjectOwner(
            prefix=prefix,
            joiner=" > ",
            export_kind=self.export_kind,
            scope_chain=(*self.scope_chain, key),
        )


class _Collector:
    """Accumulates record fields in emission order; sorted once at the end."""

    def __init__(self, source: bytes) -> None:
        self.source = source
        self.functions: list[tuple[int, int, int, dict]] = []
        self.variables: list[tuple[int, int, int, dict]] = []

    def text(self, node: Node | None) -> str:
        return node_text(self.source, node)

    def digests(self, span: Span) -> tuple[str, str]:
        data = span.slice(self.source)
        return compact_digest(data), full_digest(data)

    def add_function(self, span: Span, fields: dict) -> None:
        self.functions.append((span.start, -span.end, len(self.functions), fields))

    def add_variable(self, span: Span, fields: dict) -> None:
        self.variables.append((span.start, -span.end, len(self.variables), fields))

    def build(self, path: str | None) -> ExtractionResult:
        functions = tuple(
            FunctionRecord(index=i, **fields)
            for i, (_, _, _, fields) in enumerate(sorted(self.functions, key=_order))
        )
        variables = tuple(
            VariableRecord(index=i, **fields)
            for i, (_, _, _, fields) in enumerate(sorted(self.variables, key=_order))
        )
        return ExtractionResult(path=path, functions=functions, variables=variables)


def _order(entry: tuple[int, int, int, dict]) -> tuple[int, int, int]:
    return entry[0], entry[1], entry[2]


# --- structural helpers -----------------------------------------------------


def _segment(parent: Node, child: Node) -> str:
    for index, candidate in enumerate(parent.named_children):
        if candidate == child:
            return f"{child.type}[{index}]"
    return f"{child.type}[?]"


def _named_children(node: Node, ctx: WalkContext) -> Iterator[tuple[Node, WalkContext]]:
    for index, child in enumerate(node.named_children):
        yield child, ctx.at((*ctx.path, f"{child.type}[{index}]"))


def _relative_path(ancestor: Node, descendant: Node) -> tuple[str, ...]:
    segments: list[str] = []
    current = descendant
    while current != ancestor:
        parent = current.parent
        if parent is None:
            break
        segments.append(_segment(parent, current))
        current = parent
    return tuple(reversed(segments))


def _has_token(node: Node, token: str) -> bool:
    return any(not child.is_named and child.type == token for child in node.children)


def _compact(text: str) -> str:
    return "".join(text.split())


def _scoped_name(scope_chain: tuple[str, ...], name: str) -> str:
    return " > ".join((*scope_chain, name))


def _function_kind(node: Node) -> FunctionKind:
    if node.type in _FUNCTION_DECLARATION_TYPES:
        return "declaration"
    if node.type == "arrow_function":
        return "arrow"
    if node.type == "method_definition":
        return "class-method"
    return "expression"


def _key_text(collector: _Collector, key: Node | None) -> str:
    if key is None:
        return ANONYMOUS
    raw = collector.text(key)
    if key.type == "string":
        return raw[1:-1]
    return raw


def _key_identifier(key: Node | None) -> Node | None:
    if key is not None and key.type in _IDENTIFIER_KEY_TYPES:
        return key
    return None


def _member_descriptor(
    owner: str, key: str, *, is_static: bool, accessor: str | None
) -> tuple[tuple[str, ...], str]:
    """Scope-chain suffix and canonical name for a class member."""
    parts = (["static"] if is_static else []) + ([accessor] if accessor else [])
    if parts:
        return (*parts, key), f"{owner}.{' '.join(parts)} {key}"
    marker = key if key.startswith("#") else f"#{key}"
    return (marker,), f"{owner}#{key.lstrip('#')}"


# --- module export pre-scan -------------------------------------------------


def _collect_module_exports(
    collector: _Collector, root: Node
) -> dict[str, ModuleExport]:
    """Map module-level local names to the export that publishes them.

    Covers ``export { a, b as c }`` clauses and CommonJS assignments of bare
    identifiers, which may appear anywhere in the file relative to the
    declaration they export.
    """
    exports: dict[str, ModuleExport] = {}
    for statement in root.named_children:
        if statement.type == "export_statement":
            if statement.child_by_field_name("source") is not None:
                continue
            for clause in statement.named_children:
                if clause.type != "export_clause":
                    continue
                for spec in clause.named_children:
                    if spec.type != "export_specifier":
                        continue
                    local = collector.text(spec.child_by_field_name("name"))
                    alias = collector.text(spec.child_by_field_name("alias"))
                    exported = alias or local
                    if exported == "default":
                        exports.setdefault(local, ModuleExport("default", "exports.default"))
                    else:
                        exports.setdefault(local, ModuleExport("named", f"exports.{exported}"))
            continue

        if statement.type != "expression_statement" or not statement.named_children:
            continue
        assignment = statement.named_children[0]
        if assignment.type != "assignment_expression":
            continue
        left = assignment.child_by_field_name("left")
        right = assignment.child_by_field_name("right")
        if left is None or right is None:
            continue
        target = _compact(collector.text(left))

        if target == "module.exports":
            if right.type == "identifier":
                exports.setdefault(
                    collector.text(right),
                    ModuleExport("commonjs-default", "module.exports"),
                )
            elif right.type == "object":
                for member in right.named_children:
                    if member.type == "shorthand_property_identifier":
                        name = collector.text(member)
                        exports.setdefault(
                            name, ModuleExport("commonjs-named", f"module.exports.{name}")
                        )
                    elif member.type == "pair":
                        value = member.child_by_field_name("value")
                        if value is not None and value.type == "identifier":
                            key = _key_text(collector, member.child_by_field_name("key"))
                            exports.setdefault(
                                collector.text(value),
                                ModuleExport("commonjs-named", f"module.exports.{key}"),
                            )
            continue

        if left.type == "member_expression" and right.type == "identifier":
            obj = _compact(collector.text(left.child_by_field_name("object")))
            if obj in _COMMONJS_OBJECTS:
                prop = collector.text(left.child_by_field_name("property"))
                exports.setdefault(
                    collector.text(right), ModuleExport("commonjs-named", f"{obj}.{prop}")
                )
    return exports


def _module_export(name: str, ctx: WalkContext) -> ModuleExport | None:
    if ctx.at_module_level and ctx.export_kind == "none":
        return ctx.module_exports.get(name)
    return None


# --- record emission --------------------------------------------------------


def _emit_function(
    collector: _Collector,
    ctx: WalkContext,
    binding: _Binding,
    fn_node: Node,
    *,
    kind: FunctionKind,
    name: str,
    identifier: Node | None,
    replaceable: bool = True,
) -> None:
    site = binding.site
    span = Span.from_node(site)
    compact, full = collector.digests(span)
    collector.add_function(
        span,
        {
            "name": name,
            "canonical_name": binding.canonical,
            "scope_chain": binding.scope_chain,
            "kind": kind,
            "export_kind": binding.export_kind,
            "replaceable": replaceable,
            "span": span,
            "identifier_span": Span.from_node(identifier) if identifier is not None else None,
            "hash": compact,
            "full_hash": full,
            "path_signature": "/".join(binding.site_path),
            "enclosing_contexts": ctx.enclosing,
            "line": site.start_point[0] + 1,
            "column": site.start_point[1] + 1,
            "end_line": site.end_point[0] + 1,
            "is_async": _has_token(fn_node, "async"),
            "is_generator": fn_node.type.startswith("generator") or _has_token(fn_node, "*"),
        },
    )


def _emit_variable(
    collector: _Collector,
    ctx: WalkContext,
    *,
    name: str,
    canonical: str,
    binding_kind: str,
    export_kind: ExportKind,
    declarator: Node,
    declarator_path: tuple[str, ...],
    binding_node: Node,
    binding_path: tuple[str, ...],
    declaration: Node,
    declaration_path: tuple[str, ...],
    initializer: Node | None,
) -> None:
    span = Span.from_node(declarator)
    binding_span = Span.from_node(binding_node)
    declaration_span = Span.from_node(declaration)
    compact, full = collector.digests(span)
    binding_hash, _ = collector.digests(binding_span)
    declaration_hash, _ = collector.digests(declaration_span)
    collector.add_variable(
        span,
        {
            "name": name,
            "canonical_name": canonical,
            "scope_chain": (*ctx.scope_chain, name),
            "binding_kind": binding_kind,
            "export_kind": export_kind,
            "initializer_type": initializer.type if initializer is not None else None,
            "span": span,
            "binding_span": binding_span,
            "declaration_span": declaration_span,
            "identifier_span": binding_span,
            "hash": compact,
            "full_hash": full,
            "declarator_hash": compact,
            "declaration_hash": declaration_hash,
            "binding_hash": binding_hash,
            "path_signature": "/".join(declarator_path),
            "binding_path_signature": "/".join(binding_path),
            "declaration_path_signature": "/".join(declaration_path),
            "enclosing_contexts": ctx.enclosing,
            "line": declarator.start_point[0] + 1,
            "column": declarator.start_point[1] + 1,
            "end_line": declarator.end_point[0] + 1,
        },
    )


def _function_scope(ctx: WalkContext, binding: _Binding, kind: FunctionKind) -> WalkContext:
    return replace(
        ctx,
        scope_chain=binding.scope_chain,
        export_kind="none",
        class_owner=None,
        enclosing=(
            *ctx.enclosing,
            EnclosingContext(
                kind="function",
                name=binding.name,
                span=Span.from_node(binding.site),
                function_kind=kind,
            ),
        ),
    )


# --- handlers ---------------------------------------------------------------


def _walk_children(collector: _Collector, node: Node, ctx: WalkContext) -> None:
    for child, child_ctx in _named_children(node, ctx):
        _traverse_node(collector, child, child_ctx)


def _handle_function(
    collector: _Collector,
    fn_node: Node,
    fn_ctx: WalkContext,
    binding: _Binding,
    *,
    replaceable: bool = True,
    kind: FunctionKind | None = None,
) -> None:
    """Emit a record for a function value bound at ``binding`` and walk its body."""
    kind = kind or _function_kind(fn_node)
    name = binding.name
    identifier = binding.name_node
    own_name = fn_node.child_by_field_name("name")
    if identifier is None and own_name is not None and fn_node.type != "method_definition":
        name = collector.text(own_name)
        identifier = own_name
    binding = replace(binding, name=name)
    _emit_function(
        collector,
        fn_ctx,
        binding,
        fn_node,
        kind=kind,
        name=name,
        identifier=identifier,
        replaceable=replaceable,
    )
    inner = _function_scope(fn_ctx, binding, kind)
    for child, child_ctx in _named_children(fn_node, inner):
        if child == own_name:
            continue
        _traverse_node(collector, child, child_ctx)


def _handle_class(
    collector: _Collector, class_node: Node, class_ctx: WalkContext, binding: _Binding
) -> None:
    """Emit a class record and walk its heritage clause and body."""
    own_name = class_node.child_by_field_name("name")
    name = binding.name
    identifier = binding.name_node
    if identifier is None and own_name is not None:
        name = collector.text(own_name)
        identifier = own_name
    binding = replace(binding, name=name)
    _emit_function(
        collector, class_ctx, binding, class_node, kind="class", name=name, identifier=identifier
    )

    owner = name
    member_ctx = replace(
        class_ctx,
        scope_chain=binding.scope_chain,
        export_kind="none",
        class_owner=owner,
        enclosing=(
            *class_ctx.enclosing,
            EnclosingContext(kind="class", name=owner, span=Span.from_node(binding.site)),
        ),
    )
    for child, child_ctx in _named_children(class_node, member_ctx):
        if child == own_name:
            continue
        if child.type == "class_body":
            _handle_class_body(collector, child, child_ctx, owner)
        else:
            _traverse_node(collector, child, child_ctx)


def _handle_class_body(
    collector: _Collector, body: Node, ctx: WalkContext, owner: str
) -> None:
    for member, member_ctx in _named_children(body, ctx):
        if member.type == "method_definition":
            _handle_class_method(collector, member, member_ctx, owner)
        elif member.type in _FIELD_TYPES:
            _handle_class_field(collector, member, member_ctx, owner)
        else:
            _traverse_node(collector, member, member_ctx)


def _handle_class_method(
    collector: _Collector, member: Node, ctx: WalkContext, owner: str
) -> None:
    key_node = member.child_by_field_name("name")
    key = _key_text(collector, key_node)
    accessor = next(
        (token for token in ("get", "set") if _has_token(member, token)), None
    )
    suffix, canonical = _member_descriptor(
        owner, key, is_static=_has_token(member, "static"), accessor=accessor
    )
    binding = _Binding(
        name=key,
        name_node=_key_identifier(key_node),
        site=member,
        site_path=ctx.path,
        canonical=canonical,
        export_kind="none",
        scope_chain=(*ctx.scope_chain, *suffix),
    )
    _handle_function(collector, member, ctx, binding)


def _handle_class_field(
    collector: _Collector, member: Node, ctx: WalkContext, owner: str
) -> None:
    key_node = member.child_by_field_name("property") or member.child_by_field_name("name")
    value = member.child_by_field_name("value")
    key = _key_text(collector, key_node)

    binding_node = key_node if key_node is not None else member
    _emit_variable(
        collector,
        ctx,
        name=key,
        canonical=_scoped_name(ctx.scope_chain, key),
        binding_kind="class-field",
        export_kind="none",
        declarator=member,
        declarator_path=ctx.path,
        binding_node=binding_node,
        binding_path=(*ctx.path, *_relative_path(member, binding_node)),
        declaration=member,
        declaration_path=ctx.path,
        initializer=value,
    )

    if value is None:
        return
    value_ctx = ctx.descend(member, value)
    if value.type in _FUNCTION_VALUE_TYPES:
        suffix, canonical = _member_descriptor(
            owner, key, is_static=_has_token(member, "static"), accessor=None
        )
        binding = _Binding(
            name=key,
            name_node=_key_identifier(key_node),
            site=member,
            site_path=ctx.path,
            canonical=canonical,
            export_kind="none",
            scope_chain=(*ctx.scope_chain, *suffix),
        )
        _handle_function(collector, value, value_ctx, binding)
    else:
        _traverse_node(collector, value, value_ctx)


def _handle_object(
    collector: _Collector, node: Node, ctx: WalkContext, owner: _ObjectOwner
) -> None:
    """Walk an object literal, naming function-valued members through ``owner``."""
    for member, member_ctx in _named_children(node, ctx):
        if member.type == "pair":
            key_node = member.child_by_field_name("key")
            value = member.child_by_field_name("value")
            if value is None:
                continue
            key = _key_text(collector, key_node)
            value_ctx = member_ctx.descend(member, value)
            if value.type in _FUNCTION_VALUE_TYPES or value.type == "class":
                binding = _Binding(
                    name=key,
                    name_node=_key_identifier(key_node),
                    site=member,
                    site_path=member_ctx.path,
                    canonical=owner.member_name(key),
                    export_kind=owner.export_kind,
                    scope_chain=(*owner.scope_chain, key),
                )
                _handle_bound_value(collector, value, value_ctx, binding)
            elif value.type == "object":
                _handle_object(collector, value, value_ctx, owner.nested(key))
            else:
                _traverse_node(collector, value, value_ctx)
        elif member.type == "method_definition":
            key_node = member.child_by_field_name("name")
            key = _key_text(collector, key_node)
            binding = _Binding(
                name=key,
                name_node=_key_identifier(key_node),
                site=member,
                site_path=member_ctx.path,
                canonical=owner.member_name(key),
                export_kind=owner.export_kind,
                scope_chain=(*owner.scope_chain, key),
            )
            _handle_function(collector, member, member_ctx, binding, kind="expression")
        else:
            _traverse_node(collector, member, member_ctx)


def _owner_for_binding(binding: _Binding) -> _ObjectOwner:
    if binding.export_kind == "commonjs-default":
        return _ObjectOwner(
            prefix=binding.canonical,
            joiner=".",
            export_kind="commonjs-named",
            scope_chain=binding.scope_chain,
        )
    if binding.export_kind != "none":
        return _ObjectOwner(
            prefix=binding.canonical,
            joiner=" > ",
            export_kind=binding.export_kind,
            scope_chain=binding.scope_chain,
        )
    return _ObjectOwner(
        prefix=None, joiner=" > ", export_kind="none", scope_chain=binding.scope_chain
    )


def _handle_bound_value(
    collector: _Collector, value: Node, value_ctx: WalkContext, binding: _Binding
) -> bool:
    """Walk ``value`` knowing the name it is bound to. Returns True if it was named."""
    if value.type == "parenthesized_expression" and value.named_children:
        inner = value.named_children[0]
        return _handle_bound_value(collector, inner, value_ctx.descend(value, inner), binding)
    if value.type in _FUNCTION_VALUE_TYPES:
        _handle_function(collector, value, value_ctx, binding)
        return True
    if value.type == "class":
        _handle_class(collector, value, value_ctx, binding)
        return True
    if value.type == "object":
        _handle_object(collector, value, value_ctx, _owner_for_binding(binding))
        return True
    _traverse_node(collector, value, value_ctx)
    return False


def _handle_function_declaration(
    collector: _Collector,
    node: Node,
    ctx: WalkContext,
    export: ModuleExport | None = None,
) -> None:
    name_node = node.child_by_field_name("name")
    name = collector.text(name_node) or ANONYMOUS
    export = export or _module_export(name, ctx)
    binding = _Binding(
        name=name,
        name_node=name_node,
        site=node,
        site_path=ctx.path,
        canonical=export.canonical if export else name,
        export_kind=export.kind if export else "none",
        scope_chain=(*ctx.scope_chain, name),
    )
    _handle_function(collector, node, ctx, binding)


def _handle_class_declaration(
    collector: _Collector,
    node: Node,
    ctx: WalkContext,
    export: ModuleExport | None = None,
) -> None:
    name_node = node.child_by_field_name("name")
    name = collector.text(name_node) or ANONYMOUS
    export = export or _module_export(name, ctx)
    binding = _Binding(
        name=name,
        name_node=name_node,
        site=node,
        site_path=ctx.path,
        canonical=export.canonical if export else name,
        export_kind=export.kind if export else "none",
        scope_chain=(*ctx.scope_chain, name),
    )
    _handle_class(collector, node, ctx, binding)


def _handle_declaration(
    collector: _Collector,
    node: Node,
    ctx: WalkContext,
    *,
    exported: bool = False,
    declaration: Node | None = None,
    declaration_path: tuple[str, ...] | None = None,
) -> None:
    """Handle ``var``/``let``/``const`` declarations, one declarator at a time."""
    keyword = node.children[0].type if node.children else "var"
    binding_kind = keyword if keyword in ("var", "let", "const") else "var"
    declaration = declaration or node
    declaration_path = declaration_path or ctx.path

    for declarator, declarator_ctx in _named_children(node, ctx):
        if declarator.type != "variable_declarator":
            _traverse_node(collector, declarator, declarator_ctx)
            continue
        name_node = declarator.child_by_field_name("name")
        value = declarator.child_by_field_name("value")

        single: ModuleExport | None = None
        for ident in bound_identifiers(name_node):
            name = collector.text(ident)
            export = ModuleExport("named", f"exports.{name}") if exported else _module_export(name, ctx)
            if ident == name_node:
                single = export
            _emit_variable(
                collector,
                ctx,
                name=name,
                canonical=export.canonical if export else _scoped_name(ctx.scope_chain, name),
                binding_kind=binding_kind,
                export_kind=export.kind if export else "none",
                declarator=declarator,
                declarator_path=declarator_ctx.path,
                binding_node=ident,
                binding_path=(*declarator_ctx.path, *_relative_path(declarator, ident)),
                declaration=declaration,
                declaration_path=declaration_path,
                initializer=value,
            )

        if value is None:
            continue
        value_ctx = declarator_ctx.descend(declarator, value)
        if name_node is not None and name_node.type == "identifier":
            name = collector.text(name_node)
            binding = _Binding(
                name=name,
                name_node=name_node,
                site=declarator,
                site_path=declarator_ctx.path,
                canonical=single.canonical if single else name,
                export_kind=single.kind if single else "none",
                scope_chain=(*ctx.scope_chain, name),
            )
            _handle_bound_value(collector, value, value_ctx, binding)
        else:
            _traverse_node(collector, value, value_ctx)


def _handle_export(collector: _Collector, node: Node, ctx: WalkContext) -> None:
    is_default = _has_token(node, "default")
    declaration = node.child_by_field_name("declaration")
    value = node.child_by_field_name("value")

    if declaration is not None:
        decl_ctx = ctx.descend(node, declaration)
        if declaration.type in _FUNCTION_DECLARATION_TYPES or declaration.type in _CLASS_DECLARATION_TYPES:
            name = collector.text(declaration.child_by_field_name("name"))
            if is_default or not name:
                export = ModuleExport("default", "exports.default")
            else:
                export = ModuleExport("named", f"exports.{name}")
            if declaration.type in _FUNCTION_DECLARATION_TYPES:
                _handle_function_declaration(collector, declaration, decl_ctx, export)
            else:
                _handle_class_declaration(collector, declaration, decl_ctx, export)
            return
        if declaration.type in _DECLARATION_TYPES:
            _handle_declaration(
                collector,
                declaration,
                decl_ctx,
                exported=True,
                declaration=node,
                declaration_path=ctx.path,
            )
            return
        _traverse_node(collector, declaration, decl_ctx)
        return

    if value is not None and is_default:
        binding = _Binding(
            name="default",
            name_node=None,
            site=value,
            site_path=(*ctx.path, _segment(node, value)),
            canonical="exports.default",
            export_kind="default",
            scope_chain=(*ctx.scope_chain, "default"),
        )
        _handle_bound_value(collector, value, ctx.descend(node, value), binding)
        return

    _walk_children(collector, node, ctx)


def _handle_assignment(collector: _Collector, node: Node, ctx: WalkContext) -> None:
    """Name functions assigned to members, and record CommonJS export bindings."""
    left = node.child_by_field_name("left")
    right = node.child_by_field_name("right")
    if left is None or right is None:
        _walk_children(collector, node, ctx)
        return

    target = _compact(collector.text(left))
    right_ctx = ctx.descend(node, right)
    parent = node.parent
    if parent is not None and parent.type == "expression_statement":
        declaration, declaration_path = parent, ctx.path[:-1]
    else:
        declaration, declaration_path = node, ctx.path

    name_node: Node | None
    if target == "module.exports":
        name, name_node = "module.exports", None
        export_kind: ExportKind = "commonjs-default"
        canonical = "module.exports"
    elif left.type == "member_expression":
        name_node = left.child_by_field_name("property")
        name = collector.text(name_node)
        obj = _compact(collector.text(left.child_by_field_name("object")))
        if obj in _COMMONJS_OBJECTS:
            export_kind, canonical = "commonjs-named", f"{obj}.{name}"
        else:
            export_kind, canonical = "none", target
    elif left.type == "identifier":
        name_node = left
        name = collector.text(left)
        export_kind, canonical = "none", name
    else:
        _traverse_node(collector, right, right_ctx)
        return

    binding = _Binding(
        name=name,
        name_node=name_node,
        site=node,
        site_path=ctx.path,
        canonical=canonical,
        export_kind=export_kind,
        scope_chain=(*ctx.scope_chain, name),
    )
    bindable = right.type in _FUNCTION_VALUE_TYPES or right.type == "class"
    if right.type == "object" and export_kind != "none":
        bindable = True

    if export_kind != "none" and not (right.type in _FUNCTION_VALUE_TYPES or right.type == "class"):
        binding_node = name_node if name_node is not None else left
        _emit_variable(
            collector,
            ctx,
            name=name,
            canonical=canonical,
            binding_kind="assignment",
            export_kind=export_kind,
            declarator=node,
            declarator_path=ctx.path,
            binding_node=binding_node,
            binding_path=(*ctx.path, *_relative_path(node, binding_node)),
            declaration=declaration,
            declaration_path=declaration_path,
            initializer=right,
        )

    if bindable:
        _handle_bound_value(collector, right, right_ctx, binding)
    else:
        _traverse_node(collector, right, right_ctx)


def _handle_inline_function(collector: _Collector, node: Node, ctx: WalkContext) -> None:
    """A function expression in argument or other unbound position."""
    own_name = node.child_by_field_name("name")
    if own_name is not None:
        name = collector.text(own_name)
        canonical = name
    else:
        name = ANONYMOUS
        canonical = f"{ANONYMOUS}@{node.start_point[0] + 1}:{node.start_point[1] + 1}"
    binding = _Binding(
        name=name,
        name_node=own_name,
        site=node,
        site_path=ctx.path,
        canonical=canonical,
        export_kind="none",
        scope_chain=(*ctx.scope_chain, name),
    )
    _handle_function(collector, node, ctx, binding, replaceable=own_name is not None)


def _handle_inline_class(collector: _Collector, node: Node, ctx: WalkContext) -> None:
    own_name = node.child_by_field_name("name")
    name = collector.text(own_name) or ANONYMOUS
    binding = _Binding(
        name=name,
        name_node=own_name,
        site=node,
        site_path=ctx.path,
        canonical=name,
        export_kind="none",
        scope_chain=(*ctx.scope_chain, name),
    )
    _handle_class(collector, node, ctx, binding)


def _traverse_node(collector: _Collector, node: Node, ctx: WalkContext) -> None:
    """Dispatch on node type; anything unrecognised is walked structurally."""
    node_type = node.type
    if node_type == "export_statement":
        _handle_export(collector, node, ctx)
    elif node_type in _FUNCTION_DECLARATION_TYPES:
        _handle_function_declaration(collector, node, ctx)
    elif node_type in _CLASS_DECLARATION_TYPES:
        _handle_class_declaration(collector, node, ctx)
    elif node_type in _DECLARATION_TYPES:
        _handle_declaration(collector, node, ctx)
    elif node_type == "assignment_expression":
        _handle_assignment(collector, node, ctx)
    elif node_type in _FUNCTION_EXPRESSION_TYPES:
        _handle_inline_function(collector, node, ctx)
    elif node_type == "class":
        _handle_inline_class(collector, node, ctx)
    elif node_type == "object":
        _handle_object(
            collector,
            node,
            ctx,
            _ObjectOwner(prefix=None, joiner=" > ", export_kind="none", scope_chain=ctx.scope_chain),
        )
    else:
        _walk_children(collector, node, ctx)


# --- public API -------------------------------------------------------------


def extract_entities(parsed: ParsedSource) -> ExtractionResult:
    """Extract every function and variable record from a parsed buffer."""
    collector = _Collector(parsed.source)
    root = parsed.root
    ctx = WalkContext(module_exports=MappingProxyType(_collect_module_exports(collector, root)))
    _walk_children(collector, root, ctx)
    result = collector.build(parsed.path)
    logger.debug(
        "extracted %d functions and %d variables from %s",
        len(result.functions),
        len(result.variables),
        parsed.path or "<buffer>",
    )
    return result


def extract_source(
    source: bytes | str,
    *,
    path: str | None = None,
    dialect: Dialect | None = None,
) -> ExtractionResult:
    """Parse and extract in one step; raises ParseFailure on invalid syntax."""
    return extract_entities(parse_source(source, dialect=dialect, path=path))


def extract_file(file_path: Path, relative_path: str | None = None) -> ExtractionResult:
    source = Path(file_path).read_bytes()
    return extract_source(source, path=relative_path or str(file_path))


__all__ = [
    "ANONYMOUS",
    "ROOT_SEGMENT",
    "ModuleExport",
    "WalkContext",
    "extract_entities",
    "extract_file",
    "extract_source",
]
