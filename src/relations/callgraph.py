"""Workspace call graph: build, traverse, hot paths, dead code and cycles.

Node ids are ``<relative file>::<canonical name>``. Calls made outside any
function belong to a per-file ``<module>`` node.

Callee resolution works by string identity, not by type or scope analysis.
A plain call ``foo()`` resolves to, in order:

1. a function named ``foo`` in the same file,
2. the function an import binding named ``foo`` points at,
3. the first exported function named ``foo`` in workspace order.

Member calls only resolve through ``this``/``super`` (same file) or through
a namespace/default import binding. Everything else is kept as unresolved
with a count.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, ConfigDict

from errors import NoMatch
from graph.algos import bfs_layers, build_adjacency, find_cycles, reverse_adjacency

if TYPE_CHECKING:
    from pathlib import Path

    from extract.records import FunctionRecord
    from parse.calls import CallSite
    from relations.session import AnalysisSession

logger = logging.getLogger(__name__)

MODULE_NODE = "<module>"

NodeKind = Literal["declaration", "expression", "arrow", "class-method", "class", "module"]


class CallGraphNode(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    file: str
    name: str
    canonical_name: str
    kind: NodeKind
    exported: bool = False
    replaceable: bool = True
    line: int


class CallGraphEdge(BaseModel):
    model_config = ConfigDict(frozen=True)

    source_id: str
    target_id: str
    count: int


class UnresolvedCall(BaseModel):
    model_config = ConfigDict(frozen=True)

    call: str
    count: int
    source_id: str


class CallGraph(BaseModel):
    """Nodes, aggregated edges, and calls that did not resolve."""

    model_config = ConfigDict(frozen=True)

    nodes: tuple[CallGraphNode, ...] = ()
    edges: tuple[CallGraphEdge, ...] = ()
    unresolved: tuple[UnresolvedCall, ...] = ()

    def node(self, node_id: str) -> CallGraphNode | None:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def adjacency(self, *, include_modules: bool = True) -> dict[str, set[str]]:
        edges = [
            (edge.source_id, edge.target_id)
            for edge in self.edges
            if include_modules or not edge.source_id.endswith(f"::{MODULE_NODE}")
        ]
        return build_adjacency(edges)

    def inbound_counts(self) -> Counter[str]:
        counts: Counter[str] = Counter()
        for edge in self.edges:
            counts[edge.target_id] += edge.count
        return counts


def node_id(file: str, canonical_name: str) -> str:
    return f"{file}::{canonical_name}"


class _FileIndex:
    """Lookups used while resolving one file's call sites."""

    def __init__(self, rel: str, functions: tuple[FunctionRecord, ...]) -> None:
        self.rel = rel
        self.by_name: dict[str, FunctionRecord] = {}
        self.methods: dict[str, FunctionRecord] = {}
        self.by_canonical: dict[str, FunctionRecord] = {}
        self.exported_by_name: dict[str, FunctionRecord] = {}
        for fn in functions:
            if not fn.replaceable:
                continue
            if fn.kind == "class-method":
                self.methods.setdefault(fn.name, fn)
            else:
                self.by_name.setdefault(fn.name, fn)
            self.by_canonical.setdefault(fn.canonical_name, fn)
            if fn.exported:
                self.exported_by_name.setdefault(fn.name, fn)
        self.default_export = next(
            (fn for fn in functions if fn.export_kind in ("default", "commonjs-default")), None
        )

    def id_for(self, fn: FunctionRecord) -> str:
        return node_id(self.rel, fn.canonical_name)

    def lookup_export(self, name: str) -> FunctionRecord | None:
        if name in ("default", "module.exports"):
            return self.default_export
        for candidate in (f"exports.{name}", f"module.exports.{name}"):
            if candidate in self.by_canonical:
                return self.by_canonical[candidate]
        return self.exported_by_name.get(name) or self.by_name.get(name)


class _Resolver:
    def __init__(self, session: AnalysisSession) -> None:
        self.session = session
        self.indexes: dict[Path, _FileIndex] = {}
        self.workspace_exports: dict[str, str] = {}
        self.paths: dict[str, Path] = {}

    def index(self, path: Path) -> _FileIndex:
        if path not in self.indexes:
            self.indexes[path] = _FileIndex(
                self.session.relative(path), self.session.extraction(path).functions
            )
            self.paths[self.indexes[path].rel] = path
        return self.indexes[path]

    def path_for(self, rel: str) -> Path | None:
        return self.paths.get(rel)

    def prepare(self, files: list[Path]) -> None:
        for path in files:
            idx = self.index(path)
            for name, fn in sorted(idx.exported_by_name.items()):
                self.workspace_exports.setdefault(name, idx.id_for(fn))

    def bindings(self, path: Path) -> dict[str, tuple[str, Path | None]]:
        """Local import name -> (imported name, resolved file)."""
        found: dict[str, tuple[str, Path | None]] = {}
        for record in self.session.module_table(path).imports:
            if record.kind == "reexport":
                continue
            target = self.session.resolve_import(record.source, path)
            for spec in record.specifiers:
                found[spec.local] = (spec.imported, target)
        return found

    def resolve(
        self, path: Path, site: CallSite, bindings: dict[str, tuple[str, Path | None]]
    ) -> str | None:
        idx = self.index(path)
        if site.name is None:
            return None
        if not site.is_member:
            local = idx.by_name.get(site.name)
            if local is not None:
                return idx.id_for(local)
            bound = bindings.get(site.name)
            if bound is not None:
                return self._resolve_binding(bound[0], bound[1])
            return self.workspace_exports.get(site.name)

        head, _, _rest = site.callee.partition(".")
        if head in ("this", "super"):
            fn = idx.methods.get(site.name)
            return idx.id_for(fn) if fn is not None else None
        bound = bindings.get(head)
        if bound is not None and bound[0] in ("*", "default", "module.exports"):
            if site.callee.count(".") == 1:
                return self._resolve_binding(site.name, bound[1])
        return None

    def _resolve_binding(self, imported: str, target: Path | None) -> str | None:
        if target is None:
            return None
        idx = self.index(target)
        fn = idx.lookup_export(imported)
        return idx.id_for(fn) if fn is not None else None


class _GraphBuilder:
    """Accumulates per-file nodes and aggregated edges."""

    def __init__(self, session: AnalysisSession, resolver: _Resolver) -> None:
        self.session = session
        self.resolver = resolver
        self.nodes: dict[str, CallGraphNode] = {}
        self.edge_counts: Counter[tuple[str, str]] = Counter()
        self.unresolved_counts: Counter[tuple[str, str]] = Counter()
        self.added: set[Path] = set()

    def declare(self, path: Path) -> None:
        rel = self.session.relative(path)
        for fn in self.session.extraction(path).functions:
            fid = node_id(rel, fn.canonical_name)
            # nested functions can share a canonical name; the first one wins
            if fid in self.nodes:
                continue
            self.nodes[fid] = CallGraphNode(
                id=fid,
                file=rel,
                name=fn.name,
                canonical_name=fn.canonical_name,
                kind=fn.kind,
                exported=fn.exported,
                replaceable=fn.replaceable,
                line=fn.line,
            )

    def add_file(self, path: Path) -> set[str]:
        """Declare ``path`` and record its calls; returns the resolved target ids."""
        self.added.add(path)
        self.declare(path)
        sites = self.session.calls(path)
        if not sites:
            return set()
        rel = self.session.relative(path)
        module_id = node_id(rel, MODULE_NODE)
        if any(site.enclosing is None for site in sites):
            self.nodes.setdefault(
                module_id,
                CallGraphNode(
                    id=module_id,
                    file=rel,
                    name=MODULE_NODE,
                    canonical_name=MODULE_NODE,
                    kind="module",
                    replaceable=False,
                    line=1,
                ),
            )
        bindings = self.resolver.bindings(path)
        targets: set[str] = set()
        for site in sites:
            source_id = node_id(rel, site.enclosing) if site.enclosing else module_id
            target_id = self.resolver.resolve(path, site, bindings)
            if target_id is None:
                self.unresolved_counts[(source_id, site.callee)] += 1
            else:
                self.edge_counts[(source_id, target_id)] += 1
                targets.add(target_id)
        return targets

    def graph(self) -> CallGraph:
        graph = CallGraph(
            nodes=tuple(node for _, node in sorted(self.nodes.items())),
            edges=tuple(
                CallGraphEdge(source_id=source, target_id=target, count=count)
                for (source, target), count in sorted(self.edge_counts.items())
            ),
            unresolved=tuple(
                UnresolvedCall(call=call, count=count, source_id=source)
                for (source, call), count in sorted(self.unresolved_counts.items())
            ),
        )
        logger.debug(
            "call graph: %d nodes, %d edges, %d unresolved (%d files)",
            len(graph.nodes),
            len(graph.edges),
            len(graph.unresolved),
            len(self.added),
        )
        return graph


def build_call_graph(session: AnalysisSession) -> CallGraph:
    """Build the call graph for every file in the session."""
    files = session.files()
    resolver = _Resolver(session)
    resolver.prepare(files)
    builder = _GraphBuilder(session, resolver)
    for path in files:
        builder.add_file(path)
    return builder.graph()


def build_callee_graph(
    session: AnalysisSession, start: str, *, file: str | None = None
) -> CallGraph:
    """Call graph limited to the files reachable from ``start`` through resolved calls.

    Every file is still extracted, since export lookups need the whole
    workspace, but call sites are only collected for files that a reached
    call lands in. Callee traversals over the result match those over
    :func:`build_call_graph`.
    """
    files = session.files()
    resolver = _Resolver(session)
    resolver.prepare(files)
    builder = _GraphBuilder(session, resolver)

    start_rel, sep, name = start.rpartition("::")
    if sep and name == MODULE_NODE:
        origin_file = start_rel
    else:
        declared = _GraphBuilder(session, resolver)
        for path in files:
            declared.declare(path)
        origin_file = find_start_node(declared.graph(), start, file=file).file

    pending = [resolver.path_for(origin_file)]
    while pending:
        path = pending.pop()
        if path is None or path in builder.added:
            continue
        for target_id in builder.add_file(path):
            pending.append(resolver.path_for(target_id.rpartition("::")[0]))
    return builder.graph()


# --- queries ----------------------------------------------------------------


class TraversalNode(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    file: str
    name: str
    depth: int


class TraversalResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: str
    direction: Literal["callees", "callers"]
    max_depth: int
    nodes: tuple[TraversalNode, ...]
    edges: tuple[CallGraphEdge, ...]
    unresolved: tuple[UnresolvedCall, ...]


class HotPath(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    file: str
    name: str
    inbound_calls: int
    callers: int


class DeadCodeEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    file: str
    exported: bool
    line: int


def find_start_node(graph: CallGraph, start: str, *, file: str | None = None) -> CallGraphNode:
    """Node by id, else first node whose canonical name or name equals ``start``."""
    exact = graph.node(start)
    if exact is not None:
        return exact
    pool = [n for n in graph.nodes if n.kind != "module" and (file is None or n.file == file)]
    for attr in ("canonical_name", "name"):
        for node in pool:
            if getattr(node, attr) == start:
                return node
    raise NoMatch(start)


def traverse(
    graph: CallGraph,
    start: str,
    *,
    max_depth: int = 0,
    direction: Literal["callees", "callers"] = "callees",
    file: str | None = None,
) -> TraversalResult:
    """BFS from ``start``; ``max_depth`` of 0 walks the whole reachable set."""
    origin = find_start_node(graph, start, file=file)
    adjacency = graph.adjacency()
    if direction == "callers":
        adjacency = reverse_adjacency(adjacency)
    depths = bfs_layers(adjacency, origin.id, max_depth)
    by_id = {node.id: node for node in graph.nodes}
    visited = set(depths)
    nodes = tuple(
        TraversalNode(id=nid, file=by_id[nid].file, name=by_id[nid].canonical_name, depth=depth)
        for nid, depth in sorted(depths.items(), key=lambda item: (item[1], item[0]))
        if nid in by_id
    )
    edges = tuple(
        edge
        for edge in graph.edges
        if edge.source_id in visited
        and edge.target_id in visited
        and (not max_depth or min(depths[edge.source_id], depths[edge.target_id]) < max_depth)
    )
    unresolved: tuple[UnresolvedCall, ...] = ()
    if direction == "callees":
        unresolved = tuple(call for call in graph.unresolved if call.source_id in visited)
    return TraversalResult(
        start=origin.id,
        direction=direction,
        max_depth=max_depth,
        nodes=nodes,
        edges=edges,
        unresolved=unresolved,
    )


def hot_paths(graph: CallGraph, limit: int = 10) -> list[HotPath]:
    """Most-called functions, by total inbound call count."""
    counts = graph.inbound_counts()
    callers: Counter[str] = Counter(edge.target_id for edge in graph.edges)
    by_id = {node.id: node for node in graph.nodes}
    ranked = sorted(
        (nid for nid in counts if nid in by_id),
        key=lambda nid: (-counts[nid], nid),
    )
    return [
        HotPath(
            id=nid,
            file=by_id[nid].file,
            name=by_id[nid].canonical_name,
            inbound_calls=counts[nid],
            callers=callers[nid],
        )
        for nid in ranked[:limit]
    ]


def _implicitly_reachable(node: CallGraphNode, member_tails: set[str]) -> bool:
    if node.name == "constructor" or node.name in member_tails:
        return True
    return any(marker in node.canonical_name for marker in (".get ", ".set ", " get ", " set "))


def dead_code(graph: CallGraph, *, include_exported: bool = False) -> list[DeadCodeEntry]:
    """Named functions with no inbound edges.

    Anonymous functions and module nodes are never reported. Exported
    functions are skipped unless ``include_exported``. Methods whose name
    matches the last segment of an unresolved member call (``obj.run()``)
    count as possibly called.
    """
    inbound = {edge.target_id for edge in graph.edges}
    member_tails = {
        call.call.rsplit(".", 1)[-1] for call in graph.unresolved if "." in call.call
    }
    return [
        DeadCodeEntry(name=node.canonical_name, file=node.file, exported=node.exported, line=node.line)
        for node in graph.nodes
        if node.kind != "module"
        and node.replaceable
        and node.id not in inbound
        and not (node.kind == "class-method" and _implicitly_reachable(node, member_tails))
        and (include_exported or not node.exported)
    ]


def call_cycles(graph: CallGraph) -> list[list[str]]:
    """Recursion groups: strongly connected components of function nodes."""
    return find_cycles(graph.adjacency(include_modules=False))


__all__ = [
    "MODULE_NODE",
    "CallGraph",
    "CallGraphEdge",
    "CallGraphNode",
    "DeadCodeEntry",
    "HotPath",
    "TraversalNode",
    "TraversalResult",
    "UnresolvedCall",
    "build_call_graph",
    "call_cycles",
    "dead_code",
    "find_start_node",
    "hot_paths",
    "node_id",
    "traverse",
]
