"""Constraint checking across the workspace.

Evaluates every internal edge's declared constraint against the version the
target repo actually declares, and bundles the result with the resolver's
missing dependencies and the cycle detector's cycles into one health report.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum

from pydantic import BaseModel, Field

from .builder import DependencyGraph, PackageIndex
from .graph import find_cycles, resolve_internal_edges
from .models import Dependency, MissingDependency, RepoId
from .versions import Version, VersionReq


class ViolationType(str, Enum):
    UNSATISFIED = "unsatisfied"
    EXACT_PIN = "exact-pin"
    UPPER_BOUND = "upper-bound"
    CIRCULAR = "circular"


class ConstraintViolation(BaseModel):
    from_repo: RepoId
    to_repo: RepoId
    dependency: str
    constraint: VersionReq
    actual_version: Version
    violation_type: ViolationType


class ConstraintReport(BaseModel):
    """Combined result of a full graph health check."""

    violations: list[ConstraintViolation] = Field(default_factory=list)
    missing: list[MissingDependency] = Field(default_factory=list)
    cycles: list[list[RepoId]] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not (self.violations or self.missing or self.cycles)

    def only(self, *types: ViolationType) -> ConstraintReport:
        """Copy of the report keeping only violations of the given types."""
        return self.model_copy(
            update={
                "violations": [v for v in self.violations if v.violation_type in types]
            }
        )


def check_constraints(
    graph: DependencyGraph,
    index: PackageIndex,
    versions: Mapping[RepoId, Version],
) -> ConstraintReport:
    """Check every internal edge against the target's declared version.

    Edges whose constraint or target version is not semver are skipped.
    """
    resolved = resolve_internal_edges(graph, index)
    violations: list[ConstraintViolation] = []

    for from_repo in sorted(graph.edges):
        for dep in graph.edges[from_repo]:
            if not dep.is_internal:
                continue
            target = index.repo_for(dep.name)
            if target is None or target not in versions:
                continue
            violations.extend(_check_edge(from_repo, target, dep, versions[target]))

    return ConstraintReport(
        violations=violations,
        missing=resolved.missing,
        cycles=find_cycles(resolved),
    )


def validate_bump(
    graph: DependencyGraph,
    index: PackageIndex,
    repo: RepoId,
    proposed: Version,
) -> list[ConstraintViolation]:
    """Check what every edge into ``repo`` would report at ``proposed``.

    Nothing is mutated; use this as a pre-flight warning before a bump is
    written.
    """
    if index.package_of(repo) is None:
        return []

    violations: list[ConstraintViolation] = []
    for from_repo in sorted(graph.edges):
        for dep in graph.edges[from_repo]:
            if dep.is_internal and index.repo_for(dep.name) == repo:
                violations.extend(_check_edge(from_repo, repo, dep, proposed))
    return violations


def _check_edge(
    from_repo: RepoId, to_repo: RepoId, dep: Dependency, actual: Version
) -> list[ConstraintViolation]:
    req = dep.constraint.semver
    version = actual.semver
    if req is None or version is None:
        return []

    def violation(kind: ViolationType) -> ConstraintViolation:
        return ConstraintViolation(
            from_repo=from_repo,
            to_repo=to_repo,
            dependency=dep.name,
            constraint=dep.constraint,
            actual_version=actual,
            violation_type=kind,
        )

    if not req.matches(version):
        return [violation(ViolationType.UNSATISFIED)]

    found = []
    if req.is_exact_pin:
        found.append(violation(ViolationType.EXACT_PIN))
    if req.has_upper_bound:
        found.append(violation(ViolationType.UPPER_BOUND))
    return found
