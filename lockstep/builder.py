"""Dependency graph construction.

Turns the repo registry plus each repo's dependency manifest into a
DependencyGraph whose edges are classified internal or external.

Classification needs the package name of every repo up front, so the
package namespace (PackageIndex) is built in a single pass over all repos
before any manifest is read.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from pathlib import Path

from packaging.utils import canonicalize_name
from pydantic import BaseModel, ConfigDict, Field

from .ecosystems import plugin_for
from .errors import DuplicatePackageError, ManifestError
from .models import Dependency, Repo, RepoId
from .versions import VersionReq

logger = logging.getLogger(__name__)


class PackageIndex(BaseModel):
    """Immutable package-name ↔ repo mapping for one invocation.

    Only non-ignored repos are indexed, so names of ignored repos are
    classified as external everywhere. Lookups fall back to the PEP 503
    normalized form, so ``acme_core`` and ``Acme.Core`` find ``acme-core``.
    """

    model_config = ConfigDict(frozen=True)

    by_name: dict[str, RepoId] = Field(default_factory=dict)
    by_repo: dict[RepoId, str] = Field(default_factory=dict)
    canonical: dict[str, RepoId] = Field(default_factory=dict)

    @classmethod
    def from_repos(cls, repos: Mapping[RepoId, Repo]) -> PackageIndex:
        """Index every non-ignored repo by its effective package name.

        Raises:
            DuplicatePackageError: If two repos claim the same package name.
        """
        by_name: dict[str, RepoId] = {}
        by_repo: dict[RepoId, str] = {}
        canonical: dict[str, RepoId | None] = {}
        for repo_id in sorted(repos):
            repo = repos[repo_id]
            if repo.ignored:
                continue
            name = repo.effective_package_name
            if name in by_name:
                raise DuplicatePackageError(name, by_name[name], repo_id)
            by_name[name] = repo_id
            by_repo[repo_id] = name
            key = canonicalize_name(name)
            # Two spellings of one normalized name: only exact lookups apply
            canonical[key] = None if key in canonical else repo_id
        return cls(
            by_name=by_name,
            by_repo=by_repo,
            canonical={key: repo for key, repo in canonical.items() if repo is not None},
        )

    def repo_for(self, package: str) -> RepoId | None:
        repo = self.by_name.get(package)
        if repo is None:
            repo = self.canonical.get(canonicalize_name(package))
        return repo

    def package_of(self, repo: RepoId) -> str | None:
        return self.by_repo.get(repo)


class DependencyGraph(BaseModel):
    """Declared dependencies of every non-ignored repo.

    Attributes:
        edges: Map of repo → its dependencies in manifest order. Repos that
               declare nothing map to an empty list.
    """

    edges: dict[RepoId, list[Dependency]] = Field(default_factory=dict)

    def dependencies_for(self, repo: RepoId) -> list[Dependency]:
        return list(self.edges.get(repo, []))

    def internal_dependencies_for(self, repo: RepoId) -> list[Dependency]:
        return [dep for dep in self.edges.get(repo, []) if dep.is_internal]

    def dependents_of(self, package: str) -> list[RepoId]:
        """Repos that directly declare an internal dependency on ``package``."""
        wanted = canonicalize_name(package)
        return sorted(
            repo
            for repo, deps in self.edges.items()
            if any(dep.is_internal and canonicalize_name(dep.name) == wanted for dep in deps)
        )


def build_graph(
    repos: Mapping[RepoId, Repo], index: PackageIndex | None = None
) -> DependencyGraph:
    """Read every repo's manifest and build the dependency graph.

    Args:
        repos: The workspace repo registry.
        index: Package namespace; built from ``repos`` if not given.

    Raises:
        ManifestError: If a manifest exists but cannot be read or parsed.
        DuplicatePackageError: If ``index`` is built here and names collide.
    """
    if index is None:
        index = PackageIndex.from_repos(repos)

    edges: dict[RepoId, list[Dependency]] = {}
    for repo_id in sorted(repos):
        repo = repos[repo_id]
        if repo.ignored:
            continue
        edges[repo_id] = parse_repo_dependencies(repo, index)
    return DependencyGraph(edges=edges)


def parse_repo_dependencies(repo: Repo, index: PackageIndex) -> list[Dependency]:
    """Parse and classify one repo's dependencies.

    Dependencies declared only through the workspace config (``depends_on``)
    are appended as internal with a ``*`` constraint.
    """
    deps: list[Dependency] = []
    manifest = dependency_file_for_repo(repo)
    if manifest is not None and manifest.is_file():
        try:
            content = manifest.read_text()
        except OSError as exc:
            raise ManifestError(manifest, f"cannot read: {exc}") from exc
        deps = plugin_for(repo.ecosystem).parse_dependencies(manifest, content)
        logger.debug("%s: %d dependencies in %s", repo.id, len(deps), manifest)

    deps_cfg = repo.config.dependencies
    allow = set(deps_cfg.internal_packages)
    pattern = re.compile(deps_cfg.internal_pattern) if deps_cfg.internal_pattern else None
    classified = []
    for dep in deps:
        is_internal = (
            dep.name in allow
            or (pattern is not None and pattern.search(dep.name) is not None)
            or index.repo_for(dep.name) not in (None, repo.id)
        )
        classified.append(dep.model_copy(update={"is_internal": is_internal}))

    seen = {canonicalize_name(dep.name) for dep in classified}
    for declared in repo.depends_on:
        name = _normalize_declared(declared, index)
        if canonicalize_name(name) in seen:
            continue
        classified.append(
            Dependency(name=name, constraint=VersionReq(raw="*"), is_internal=True)
        )
        seen.add(canonicalize_name(name))

    return classified


def dependency_file_for_repo(repo: Repo) -> Path | None:
    """Locate a repo's dependency manifest.

    A configured ``dependencies.file`` wins; otherwise the first manifest the
    ecosystem plugin recognizes. None when neither applies.
    """
    configured = repo.config.dependencies.file
    if configured:
        return repo.path / configured
    if repo.ecosystem is None:
        return None
    return plugin_for(repo.ecosystem).find_manifest(repo.path)


def _normalize_declared(declared: str, index: PackageIndex) -> str:
    """Map a workspace-declared dependency (repo id or package) to a package name."""
    if index.repo_for(declared) is not None:
        return declared
    package = index.package_of(RepoId(declared))
    return package if package is not None else declared
