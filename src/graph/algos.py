"""Graph algorithms over string-keyed adjacency maps."""

from __future__ import annotations

from collections import defaultdict, deque
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable


def build_adjacency(edges: Iterable[tuple[str, str]]) -> dict[str, set[str]]:
    """Build an adjacency map from ``(source, target)`` pairs.

    Args:
        edges: Directed edges; duplicates collapse

    Returns:
        Dictionary mapping each source to the set of targets it points at
    """
    graph: dict[str, set[str]] = defaultdict(set)

    for source, target in edges:
        graph[source].add(target)

    return dict(graph)


def reverse_adjacency(graph: dict[str, set[str]]) -> dict[str, set[str]]:
    reverse: dict[str, set[str]] = defaultdict(set)
    for source, targets in graph.items():
        for target in targets:
            reverse[target].add(source)
    return dict(reverse)


def bfs_layers(
    graph: dict[str, set[str]], start: str, max_depth: int = 0
) -> dict[str, int]:
    """Breadth-first distances from ``start``.

    ``max_depth`` of 0 means unbounded. Neighbors are visited in sorted order
    so the result is stable for a fixed graph.
    """
    depths = {start: 0}
    queue: deque[str] = deque([start])
    while queue:
        node = queue.popleft()
        depth = depths[node]
        if max_depth and depth >= max_depth:
            continue
        for neighbor in sorted(graph.get(node, set())):
            if neighbor not in depths:
                depths[neighbor] = depth + 1
                queue.append(neighbor)
    return depths


class _TarjanState:
    """Index bookkeeping shared across one run of Tarjan's algorithm."""

    def __init__(self) -> None:
        self.counter = 0
        self.indices: dict[str, int] = {}
        self.low_link: dict[str, int] = {}
        self.on_stack: set[str] = set()
        self.stack: list[str] = []
        self.sccs: list[list[str]] = []

    def visit(self, node: str) -> None:
        self.indices[node] = self.low_link[node] = self.counter
        self.counter += 1
        self.stack.append(node)
        self.on_stack.add(node)

    def pop_component(self, root: str) -> list[str]:
        component: list[str] = []
        while True:
            member = self.stack.pop()
            self.on_stack.discard(member)
            component.append(member)
            if member == root:
                return component


def _strongconnect(start: str, graph: dict[str, set[str]], state: _TarjanState) -> None:
    """Tarjan's DFS from ``start`` with an explicit stack.

    Call chains in large workspaces run deeper than the interpreter's
    recursion limit.
    """
    state.visit(start)
    work: list[tuple[str, list[str]]] = [(start, sorted(graph.get(start, set())))]
    while work:
        node, pending = work[-1]
        if pending:
            neighbor = pending.pop(0)
            if neighbor not in state.indices:
                state.visit(neighbor)
                work.append((neighbor, sorted(graph.get(neighbor, set()))))
            elif neighbor in state.on_stack:
                state.low_link[node] = min(state.low_link[node], state.indices[neighbor])
            continue

        work.pop()
        if work:
            parent = work[-1][0]
            state.low_link[parent] = min(state.low_link[parent], state.low_link[node])
        if state.low_link[node] == state.indices[node]:
            component = state.pop_component(node)
            if len(component) > 1 or node in graph.get(node, set()):
                state.sccs.append(sorted(component))


def find_cycles(graph: dict[str, set[str]]) -> list[list[str]]:
    """Strongly connected components that form cycles.

    A single node only counts when it has a self-edge (direct recursion).
    Each cycle is sorted, and cycles are ordered by their first node.
    """
    state = _TarjanState()
    for node in sorted(graph):
        if node not in state.indices:
            _strongconnect(node, graph, state)
    return sorted(state.sccs)


__all__ = [
    "bfs_layers",
    "build_adjacency",
    "find_cycles",
    "reverse_adjacency",
]
