"""Text renderings of the resolved dependency graph.

Four output formats are supported:

- tree: box-drawn dependency tree per root, one line per edge
- flat: the same walk with plain two-space indentation
- dot: a Graphviz digraph
- json: ``{"nodes": [...], "edges": [...]}``

Edges point from a repo to its dependencies ("down"), to its dependents
("up"), or both. Subtrees are repeated wherever a repo is reached twice; a
repo already on the current path is printed once more, marked ``(cycle)``,
and not descended into.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from enum import Enum

from pydantic import BaseModel, Field

from .builder import DependencyGraph, PackageIndex
from .graph import ResolvedGraph, transitive_dependencies, transitive_dependents
from .models import RepoId
from .versions import Version


class Direction(str, Enum):
    DOWN = "down"
    UP = "up"
    BOTH = "both"


class GraphFormat(str, Enum):
    TREE = "tree"
    FLAT = "flat"
    DOT = "dot"
    JSON = "json"


class DependencyRow(BaseModel):
    """One internal dependency as declared, next to the version it points at."""

    name: str
    constraint: str
    actual: str | None = None


class RepoDependencies(BaseModel):
    repo: RepoId
    dependencies: list[DependencyRow] = Field(default_factory=list)


def graph_scope(
    resolved: ResolvedGraph,
    repos: Iterable[RepoId] = (),
    direction: Direction = Direction.DOWN,
) -> set[RepoId]:
    """Repos to draw: everything, or ``repos`` plus what they reach in ``direction``."""
    selected = set(repos)
    if not selected:
        return set(resolved.edges)
    scope = set(selected)
    for repo in selected:
        if direction in (Direction.DOWN, Direction.BOTH):
            scope.update(transitive_dependencies(resolved, repo))
        if direction in (Direction.UP, Direction.BOTH):
            scope.update(transitive_dependents(resolved, repo))
    return scope


def directional_edges(
    resolved: ResolvedGraph,
    direction: Direction = Direction.DOWN,
    scope: set[RepoId] | None = None,
) -> dict[RepoId, list[RepoId]]:
    """Edges between repos in ``scope``, oriented by ``direction``, sorted."""
    if scope is None:
        scope = set(resolved.edges)
    edges: dict[RepoId, set[RepoId]] = {node: set() for node in scope}
    for node, deps in resolved.edges.items():
        for dep in deps:
            if node not in scope or dep not in scope:
                continue
            if direction in (Direction.DOWN, Direction.BOTH):
                edges[node].add(dep)
            if direction in (Direction.UP, Direction.BOTH):
                edges[dep].add(node)
    return {node: sorted(targets) for node, targets in sorted(edges.items())}


def graph_roots(edges: Mapping[RepoId, list[RepoId]]) -> list[RepoId]:
    """Nodes nothing points at; every node when each one has an incoming edge."""
    indegree = {node: 0 for node in edges}
    for targets in edges.values():
        for target in targets:
            if target in indegree:
                indegree[target] += 1
    roots = sorted(node for node, count in indegree.items() if count == 0)
    return roots or sorted(edges)


def node_labels(
    scope: Iterable[RepoId], versions: Mapping[RepoId, Version]
) -> dict[RepoId, str]:
    """Label each repo ``id (version)``, or just ``id`` when it has no version."""
    labels = {}
    for repo in scope:
        version = versions.get(repo)
        labels[repo] = f"{repo} ({version.raw})" if version is not None else str(repo)
    return labels


def render_tree(
    roots: list[RepoId],
    edges: Mapping[RepoId, list[RepoId]],
    labels: Mapping[RepoId, str],
) -> str:
    """Render each root and its descendants as an ASCII tree.

    Example:
        app (1.0.0)
        |-- core (1.0.0)
        `-- lib (1.0.0)
            `-- core (1.0.0)
    """
    blocks = []
    for root in roots:
        lines = [labels.get(root, root)]
        for lasts, child, is_last, cycle in _walk(root, edges):
            prefix = "".join("    " if last else "|   " for last in lasts)
            branch = "`-- " if is_last else "|-- "
            lines.append(prefix + branch + _label(child, labels, cycle))
        blocks.append("\n".join(lines) + "\n")
    return "\n".join(blocks)


def render_flat(
    roots: list[RepoId],
    edges: Mapping[RepoId, list[RepoId]],
    labels: Mapping[RepoId, str],
) -> str:
    """Like :func:`render_tree`, indented by two spaces per level."""
    blocks = []
    for root in roots:
        lines = [labels.get(root, root)]
        for lasts, child, _, cycle in _walk(root, edges):
            lines.append("  " * (len(lasts) + 1) + _label(child, labels, cycle))
        blocks.append("\n".join(lines) + "\n")
    return "\n".join(blocks)


def render_dot(edges: Mapping[RepoId, list[RepoId]], labels: Mapping[RepoId, str]) -> str:
    lines = ["digraph lockstep {"]
    for node in sorted(labels):
        lines.append(f'  "{_escape(node)}" [label="{_escape(labels[node])}"];')
    for node in sorted(edges):
        for target in edges[node]:
            lines.append(f'  "{_escape(node)}" -> "{_escape(target)}";')
    lines.append("}")
    return "\n".join(lines) + "\n"


def graph_to_json(
    edges: Mapping[RepoId, list[RepoId]], labels: Mapping[RepoId, str]
) -> dict[str, list[dict[str, str]]]:
    nodes = [{"id": node, "label": labels[node]} for node in sorted(labels)]
    edge_list = [
        {"from": node, "to": target}
        for node in sorted(edges)
        for target in sorted(edges[node])
    ]
    return {"nodes": nodes, "edges": edge_list}


def dependency_table(
    graph: DependencyGraph,
    index: PackageIndex,
    versions: Mapping[RepoId, Version],
) -> list[RepoDependencies]:
    """Internal dependencies of every repo, sorted by repo then package name."""
    table = []
    for repo_id in sorted(graph.edges):
        rows = []
        for dep in graph.internal_dependencies_for(repo_id):
            target = index.repo_for(dep.name)
            version = versions.get(target) if target is not None else None
            rows.append(
                DependencyRow(
                    name=dep.name,
                    constraint=dep.constraint.raw,
                    actual=version.raw if version is not None else None,
                )
            )
        rows.sort(key=lambda row: row.name)
        table.append(RepoDependencies(repo=repo_id, dependencies=rows))
    return table


def _walk(
    root: RepoId, edges: Mapping[RepoId, list[RepoId]]
) -> Iterator[tuple[tuple[bool, ...], RepoId, bool, bool]]:
    """Depth-first walk below ``root`` in sorted order, without recursion.

    Yields ``(lasts, child, is_last, cycle)`` where ``lasts`` records, for
    each ancestor between the root and ``child``, whether it was the last of
    its siblings.
    """
    path = [root]
    lasts: list[bool] = []
    frames = [(sorted(edges.get(root, [])), 0)]
    while frames:
        children, i = frames[-1]
        if i == len(children):
            frames.pop()
            if frames:
                path.pop()
                lasts.pop()
            continue
        frames[-1] = (children, i + 1)
        child = children[i]
        is_last = i + 1 == len(children)
        cycle = child in path
        yield tuple(lasts), child, is_last, cycle
        if not cycle:
            path.append(child)
            lasts.append(is_last)
            frames.append((sorted(edges.get(child, [])), 0))


def _label(node: RepoId, labels: Mapping[RepoId, str], cycle: bool) -> str:
    label = labels.get(node, node)
    return f"{label} (cycle)" if cycle else label


def _escape(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')
