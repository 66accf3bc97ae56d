"""
Dependency graph utilities (pure).

The graph is an id-keyed mapping ``{resource_id: [dependency ids]}``:
edges are ids, never object references. Functions here validate
declarations, produce a deterministic topological order, and answer
reachability questions for the executor.

No I/O, no provider calls.
"""

from __future__ import annotations

import heapq
from collections.abc import Iterable, Mapping

from infraplane.core.errors import CycleError
from infraplane.core.models.resource import ResourceDeclaration

Graph = Mapping[str, Iterable[str]]


def build_graph(declarations: Iterable[ResourceDeclaration]) -> dict[str, list[str]]:
    """Build ``{id: sorted dependency ids}`` from declarations."""
    return {d.id: sorted(d.references) for d in declarations}


def validate_graph(declarations: list[ResourceDeclaration]) -> list[str]:
    """Validate declaration ids and references.

    Checks for:
    - Duplicate resource IDs
    - References to non-existent resource IDs

    Cycles are reported separately by :func:`topological_order`.

    Returns:
        List of error strings (empty = valid).
    """
    errors: list[str] = []
    ids = {d.id for d in declarations}

    seen: set[str] = set()
    for d in declarations:
        if d.id in seen:
            errors.append(f"Duplicate resource ID: {d.id}")
        seen.add(d.id)

    for d in declarations:
        for dep in sorted(d.references):
            if dep not in ids:
                errors.append(
                    f"Resource '{d.id}' references unknown resource '{dep}'"
                )

    return errors


def _find_cycle(graph: Mapping[str, list[str]], candidates: set[str]) -> list[str]:
    """Return one cycle (as a closed path) among ``candidates``."""
    visiting: list[str] = []
    on_path: set[str] = set()
    done: set[str] = set()

    def _visit(node: str) -> list[str] | None:
        visiting.append(node)
        on_path.add(node)
        for dep in graph.get(node, []):
            if dep not in candidates or dep in done:
                continue
            if dep in on_path:
                start = visiting.index(dep)
                return visiting[start:] + [dep]
            found = _visit(dep)
            if found:
                return found
        visiting.pop()
        on_path.discard(node)
        done.add(node)
        return None

    for node in sorted(candidates):
        if node not in done:
            found = _visit(node)
            if found:
                return found
    return sorted(candidates)


def topological_order(graph: Graph) -> list[str]:
    """Order node ids so every node comes after all of its dependencies.

    Kahn's algorithm with a min-heap, so ties are broken by id
    (lexicographic) and the output is identical across runs. Dependencies
    that are not nodes of ``graph`` are ignored.

    Raises:
        CycleError: If the graph contains a cycle.
    """
    deps: dict[str, list[str]] = {
        node: sorted({d for d in edges if d in graph})
        for node, edges in graph.items()
    }

    in_degree: dict[str, int] = {node: len(edges) for node, edges in deps.items()}
    # Build adjacency: dependency → nodes that depend on it
    adj: dict[str, list[str]] = {node: [] for node in deps}
    for node, edges in deps.items():
        for dep in edges:
            adj[dep].append(node)

    heap = [node for node, deg in in_degree.items() if deg == 0]
    heapq.heapify(heap)
    order: list[str] = []

    while heap:
        node = heapq.heappop(heap)
        order.append(node)
        for successor in adj[node]:
            in_degree[successor] -= 1
            if in_degree[successor] == 0:
                heapq.heappush(heap, successor)

    if len(order) < len(deps):
        remaining = set(deps) - set(order)
        raise CycleError(_find_cycle(deps, remaining))

    return order


def dependents_of(graph: Graph, roots: Iterable[str]) -> set[str]:
    """All nodes that transitively depend on any of ``roots`` (roots excluded)."""
    reverse: dict[str, list[str]] = {}
    for node, edges in graph.items():
        for dep in edges:
            reverse.setdefault(dep, []).append(node)

    roots = set(roots)
    seen: set[str] = set()
    stack = list(roots)
    while stack:
        current = stack.pop()
        for child in reverse.get(current, []):
            if child not in seen:
                seen.add(child)
                stack.append(child)
    return seen - roots


def ready_nodes(
    graph: Graph,
    completed: set[str],
    running: set[str],
) -> list[str]:
    """Nodes not yet started whose in-graph dependencies have all completed.

    Returned in id order.
    """
    ready: list[str] = []
    done_or_running = completed | running
    for node in sorted(graph):
        if node in done_or_running:
            continue
        deps = [d for d in graph[node] if d in graph]
        if all(d in completed for d in deps):
            ready.append(node)
    return ready


def reverse_graph(graph: Graph) -> dict[str, list[str]]:
    """Invert edges: ``{node: [nodes that depend on it]}``.

    Ordering the reversed graph yields dependents before dependencies,
    which is the order deletes must run in.
    """
    reverse: dict[str, list[str]] = {node: [] for node in graph}
    for node, edges in graph.items():
        for dep in edges:
            if dep in reverse:
                reverse[dep].append(node)
    return {node: sorted(edges) for node, edges in reverse.items()}
