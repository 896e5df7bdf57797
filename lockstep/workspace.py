"""A loaded workspace: config, repos, package index and dependency graph.

Everything is read once per invocation and treated as immutable afterwards.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import BaseModel

from .builder import DependencyGraph, PackageIndex, build_graph
from .config import WorkspaceConfig, find_config, load_config
from .ecosystems import detect_ecosystem
from .errors import ConfigError, UnknownRepoError
from .graph import ResolvedGraph, resolve_internal_edges
from .manifests import collect_versions
from .models import Repo, RepoConfig, RepoId
from .versions import Version

logger = logging.getLogger(__name__)


class Workspace(BaseModel):
    root: Path
    config: WorkspaceConfig
    repos: dict[RepoId, Repo]
    index: PackageIndex
    graph: DependencyGraph

    @property
    def name(self) -> str:
        return self.config.workspace.name or self.root.name

    def resolved(self) -> ResolvedGraph:
        return resolve_internal_edges(self.graph, self.index)

    def versions(self) -> dict[RepoId, Version]:
        return collect_versions(self.repos, self.config.versioning.strategy)

    def repo(self, repo_id: str) -> Repo:
        """Look up a repo by id.

        Raises:
            UnknownRepoError: If the workspace has no such repo.
        """
        repo = self.repos.get(RepoId(repo_id))
        if repo is None:
            raise UnknownRepoError(f"unknown repo '{repo_id}'")
        return repo

    def package_names(self, names: list[str]) -> set[str]:
        """Map repo ids or package names to package names.

        Raises:
            UnknownRepoError: If a name is neither.
        """
        packages: set[str] = set()
        for name in names:
            package = self.index.package_of(RepoId(name))
            if package is None:
                target = self.index.repo_for(name)
                package = self.index.package_of(target) if target is not None else None
            if package is None:
                raise UnknownRepoError(f"unknown repo or package '{name}'")
            packages.add(package)
        return packages


def repos_from_config(root: Path, config: WorkspaceConfig) -> dict[RepoId, Repo]:
    """Build the repo registry from the [repos.*] tables.

    Repo paths default to ``<root>/<repos_dir>/<id>``. A repo without an
    ecosystem gets one detected from the manifests present in it.
    """
    repos: dict[RepoId, Repo] = {}
    for repo_id, entry in sorted(config.repos.items()):
        if entry.path is not None:
            path = root / entry.path
        else:
            path = root / config.workspace.repos_dir / repo_id
        ecosystem = entry.ecosystem
        if ecosystem is None and path.is_dir():
            ecosystem = detect_ecosystem(path)
            logger.debug("%s: detected ecosystem %s", repo_id, ecosystem)
        repos[RepoId(repo_id)] = Repo(
            id=RepoId(repo_id),
            path=path,
            package_name=entry.package_name,
            ecosystem=ecosystem,
            depends_on=entry.depends_on,
            external=entry.external,
            ignored=entry.ignored,
            config=RepoConfig(versioning=entry.versioning, dependencies=entry.dependencies),
        )

    for repo in repos.values():
        for declared in repo.depends_on:
            if declared == repo.id:
                raise ConfigError(f"repo '{repo.id}' cannot depend on itself")
    return repos


def load_workspace(
    start: Path | None = None,
    *,
    root: Path | None = None,
    config_path: Path | None = None,
) -> Workspace:
    """Find, load and build the workspace.

    Raises:
        ConfigError: If the config cannot be found or is invalid.
        ManifestError: If a repo manifest cannot be parsed.
    """
    root, config_path = find_config(start, root=root, config=config_path)
    config = load_config(config_path)
    repos = repos_from_config(root, config)
    index = PackageIndex.from_repos(repos)
    graph = build_graph(repos, index)
    logger.debug("loaded workspace %s with %d repos", root, len(repos))
    return Workspace(root=root, config=config, repos=repos, index=index, graph=graph)
