"""Dependency graph utilities.

Projects the declared DependencyGraph onto concrete repo → repo edges and
answers ordering questions over them. Repos must be merged and released in
dependency order so that when repo A depends on repo B, B lands first.

All outputs are deterministic: ties are always broken by ascending RepoId.
"""

from __future__ import annotations

import bisect
from collections.abc import Iterable
from enum import Enum

from pydantic import BaseModel, Field

from .builder import DependencyGraph, PackageIndex
from .errors import CycleError, UnknownRepoError
from .models import MissingDependency, RepoId


class ResolvedGraph(BaseModel):
    """Internal edges resolved to repos.

    Attributes:
        edges: Map of repo → repos it depends on, in declaration order. Every
               non-ignored repo is a key.
        missing: Internal-flagged dependencies that matched no package.
    """

    edges: dict[RepoId, list[RepoId]] = Field(default_factory=dict)
    missing: list[MissingDependency] = Field(default_factory=list)

    def reverse_edges(self) -> dict[RepoId, list[RepoId]]:
        """Map of repo → repos that depend on it."""
        reverse: dict[RepoId, list[RepoId]] = {node: [] for node in self.edges}
        for node, deps in self.edges.items():
            for dep in deps:
                reverse.setdefault(dep, []).append(node)
        return reverse


def resolve_internal_edges(graph: DependencyGraph, index: PackageIndex) -> ResolvedGraph:
    """Map each internal dependency name to the repo that provides it.

    Names that resolve to nothing are reported in ``missing`` rather than
    raised; graph construction and every downstream query carry on.
    """
    edges: dict[RepoId, list[RepoId]] = {}
    missing: list[MissingDependency] = []
    for repo_id in sorted(graph.edges):
        targets: list[RepoId] = []
        for dep in graph.edges[repo_id]:
            if not dep.is_internal:
                continue
            target = index.repo_for(dep.name)
            if target is None:
                missing.append(MissingDependency(from_repo=repo_id, dependency=dep))
            elif target not in targets:
                targets.append(target)
        edges[repo_id] = targets
    return ResolvedGraph(edges=edges, missing=missing)


def transitive_dependencies(resolved: ResolvedGraph, repo: RepoId) -> list[RepoId]:
    """Every repo ``repo`` depends on, directly or not, sorted by id."""
    return _reachable(resolved.edges, repo)


def transitive_dependents(resolved: ResolvedGraph, repo: RepoId) -> list[RepoId]:
    """Every repo that depends on ``repo``, directly or not, sorted by id."""
    return _reachable(resolved.reverse_edges(), repo)


def topological_order(resolved: ResolvedGraph) -> list[RepoId]:
    """Order every repo so dependencies come before dependents.

    Raises:
        CycleError: If the graph contains a cycle.
    """
    return _kahn(resolved.edges, set(resolved.edges))


def merge_order(resolved: ResolvedGraph, targets: Iterable[RepoId]) -> list[RepoId]:
    """Dependency-first order of ``targets`` plus everything they depend on.

    This is the minimal sequence in which changes touching only ``targets``
    can be landed safely.

    Example:
        With app → lib → core, merge_order({app}) → [core, lib, app]

    Raises:
        UnknownRepoError: If a target is not a repo of the graph.
        CycleError: If the selected subgraph contains a cycle.
    """
    nodes: set[RepoId] = set()
    for target in targets:
        if target not in resolved.edges:
            raise UnknownRepoError(f"unknown repo '{target}'")
        nodes.add(target)
        nodes.update(transitive_dependencies(resolved, target))
    return _kahn(resolved.edges, nodes)


class _Visit(Enum):
    VISITING = 1
    VISITED = 2


def find_cycles(resolved: ResolvedGraph) -> list[list[RepoId]]:
    """Find dependency cycles with a three-state depth-first search.

    Each back edge found during the scan yields one witness cycle: the part
    of the DFS stack from the revisited repo to the top. Overlapping cycles
    through shared repos are not all enumerated.
    """
    state: dict[RepoId, _Visit] = {}
    stack: list[RepoId] = []
    cycles: list[list[RepoId]] = []

    for root in sorted(resolved.edges):
        if root in state:
            continue
        state[root] = _Visit.VISITING
        stack.append(root)
        frames = [iter(resolved.edges.get(root, []))]
        while frames:
            dep = next(frames[-1], None)
            if dep is None:
                frames.pop()
                state[stack.pop()] = _Visit.VISITED
                continue
            seen = state.get(dep)
            if seen == _Visit.VISITING:
                cycles.append(stack[stack.index(dep) :])
            elif seen is None:
                state[dep] = _Visit.VISITING
                stack.append(dep)
                frames.append(iter(resolved.edges.get(dep, [])))
    return cycles


def _kahn(edges: dict[RepoId, list[RepoId]], nodes: set[RepoId]) -> list[RepoId]:
    """Kahn's algorithm restricted to ``nodes``.

    The ready list stays sorted (insertion via bisect), so the smallest
    ready RepoId is always emitted next.
    """
    # Count dependencies inside the selection for each repo
    in_degree = {n: 0 for n in nodes}
    # Track reverse dependencies (who depends on each repo)
    reverse_deps: dict[RepoId, list[RepoId]] = {n: [] for n in nodes}

    for node in nodes:
        for dep in edges.get(node, []):
            # Dependencies outside the selection are already landed
            if dep in nodes:
                in_degree[node] += 1
                reverse_deps[dep].append(node)

    ready = sorted(n for n, d in in_degree.items() if d == 0)
    order: list[RepoId] = []

    while ready:
        node = ready.pop(0)
        order.append(node)
        for dependent in reverse_deps[node]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                bisect.insort(ready, dependent)

    # If we didn't process every repo, the rest sit on a cycle
    if len(order) != len(nodes):
        raise CycleError(sorted(nodes - set(order)))

    return order


def _reachable(adjacency: dict[RepoId, list[RepoId]], start: RepoId) -> list[RepoId]:
    seen: set[RepoId] = set()
    stack = list(adjacency.get(start, []))
    while stack:
        current = stack.pop()
        if current in seen:
            continue
        seen.add(current)
        stack.extend(adjacency.get(current, []))
    seen.discard(start)
    return sorted(seen)
