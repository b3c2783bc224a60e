"""Tree-sitter parsing for JavaScript and TypeScript sources."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import PurePath
from typing import TYPE_CHECKING, Literal

import tree_sitter_javascript
import tree_sitter_typescript
from tree_sitter import Language, Node, Parser, Tree

from errors import ParseFailure

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger(__name__)

Dialect = Literal["javascript", "typescript", "tsx"]

DIALECT_BY_SUFFIX: dict[str, Dialect] = {
    ".js": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".jsx": "javascript",
    ".ts": "typescript",
    ".mts": "typescript",
    ".cts": "typescript",
    ".tsx": "tsx",
}

_PARSERS: dict[Dialect, Parser] = {}


def _load_language(dialect: Dialect) -> Language:
    if dialect == "typescript":
        return Language(tree_sitter_typescript.language_typescript())
    if dialect == "tsx":
        return Language(tree_sitter_typescript.language_tsx())
    return Language(tree_sitter_javascript.language())


def _get_parser(dialect: Dialect = "javascript") -> Parser:
    """Return the shared Tree-sitter parser for a dialect."""
    parser = _PARSERS.get(dialect)
    if parser is None:
        parser = Parser(_load_language(dialect))
        _PARSERS[dialect] = parser
    return parser


def dialect_for_path(path: str | PurePath | None) -> Dialect:
    """Pick a grammar from a file suffix, defaulting to JavaScript."""
    if path is None:
        return "javascript"
    return DIALECT_BY_SUFFIX.get(PurePath(path).suffix.lower(), "javascript")


@dataclass(frozen=True)
class ParsedSource:
    """An immutable source buffer together with its syntax tree."""

    source: bytes
    tree: Tree
    dialect: Dialect
    path: str | None = None

    @property
    def root(self) -> Node:
        return self.tree.root_node

    def text(self, node: Node) -> str:
        return node_text(self.source, node)


def node_text(source: bytes, node: Node | None) -> str:
    if node is None:
        return ""
    return source[node.start_byte : node.end_byte].decode("utf-8", errors="replace")


def iter_nodes(node: Node) -> Iterator[Node]:
    """Pre-order traversal of ``node`` and all of its descendants."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))


def bound_identifiers(node: Node | None) -> list[Node]:
    """Identifiers introduced by a binding pattern.

    Handles plain identifiers, object and array destructuring, defaults,
    rest elements and TypeScript parameter wrappers. Default values are not
    bindings and are skipped.
    """
    if node is None:
        return []
    if node.type in ("identifier", "shorthand_property_identifier_pattern"):
        return [node]
    if node.type == "pair_pattern":
        return bound_identifiers(node.child_by_field_name("value"))
    if node.type in ("assignment_pattern", "object_assignment_pattern"):
        return bound_identifiers(node.child_by_field_name("left"))
    if node.type in ("required_parameter", "optional_parameter"):
        return bound_identifiers(node.child_by_field_name("pattern"))
    if node.type not in (
        "object_pattern",
        "array_pattern",
        "rest_pattern",
        "formal_parameters",
    ):
        return []
    found: list[Node] = []
    for child in node.named_children:
        found.extend(bound_identifiers(child))
    return found


def _first_error(node: Node) -> Node | None:
    for candidate in iter_nodes(node):
        if candidate.type == "ERROR" or candidate.is_missing:
            return candidate
    return None


def parse_tree(source: bytes, dialect: Dialect = "javascript") -> Tree:
    """Parse without judging the result; the tree may contain error nodes."""
    return _get_parser(dialect).parse(source)


def parse_source(
    source: bytes | str,
    *,
    dialect: Dialect | None = None,
    path: str | None = None,
) -> ParsedSource:
    """Parse a buffer, raising ParseFailure if the tree has any syntax error."""
    buffer = source.encode("utf-8") if isinstance(source, str) else source
    resolved_dialect = dialect or dialect_for_path(path)
    tree = parse_tree(buffer, resolved_dialect)

    if tree.root_node.has_error:
        error_node = _first_error(tree.root_node)
        line = column = None
        if error_node is not None:
            line = error_node.start_point[0] + 1
            column = error_node.start_point[1] + 1
        where = f" at {line}:{column}" if line is not None else ""
        label = path or "<buffer>"
        logger.debug("parse failure in %s%s", label, where)
        msg = f"Failed to parse {label} as {resolved_dialect}{where}"
        raise ParseFailure(msg, line=line, column=column)

    return ParsedSource(source=buffer, tree=tree, dialect=resolved_dialect, path=path)


__all__ = [
    "DIALECT_BY_SUFFIX",
    "Dialect",
    "ParsedSource",
    "bound_identifiers",
    "dialect_for_path",
    "iter_nodes",
    "node_text",
    "parse_source",
    "parse_tree",
]
