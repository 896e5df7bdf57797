"""Cascading version bumps and dependency-constraint rewriting.

Bumping is two-phase:

1. ``plan_bumps`` computes every new version, every dependent constraint to
   rewrite, and the violations the new versions would leave behind. Nothing
   is read from or written to disk beyond what the caller already loaded.
2. ``apply_bump_plan`` renders the new content of every touched file in
   memory (version and dependency rewrites chained per file) and writes only
   once every render succeeded.

Any failure while planning raises BumpPlanError, so a half-applied release
across repos cannot happen.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Collection, Iterable, Mapping
from datetime import date
from pathlib import Path

from pydantic import BaseModel, Field

from .builder import DependencyGraph, PackageIndex, dependency_file_for_repo
from .checks import ConstraintViolation, validate_bump
from .config import VersioningDefaults
from .ecosystems import plugin_for
from .errors import BumpPlanError, ManifestError, UnknownRepoError, VersionError
from .graph import resolve_internal_edges, transitive_dependents
from .manifests import render_version, resolve_version_kind, version_file_for_repo
from .models import DependencyUpdate, Repo, RepoId, VersionBump
from .versions import BumpLevel, BumpMode, Version, VersionKind, bump_version

logger = logging.getLogger(__name__)

# Checked in order, so "~=" wins over "~" and "==" over "=".
_REWRITE_OPERATORS = ("~=", "^", "~", "==", "=")
_BARE_VERSION_RE = re.compile(r"^v?[0-9]")


class BumpOptions(BaseModel):
    """What to bump and how.

    Attributes:
        level: Semver component to increment (patch when unset).
        mode: Bump mode forced on every planned repo.
        pre: Prerelease tag applied to semver bumps.
        cascade: Also bump every transitive dependent of the targets.
        requested: Explicit new versions; they win over computed bumps.
        today: Date used for calver bumps (today in UTC when unset).
    """

    level: BumpLevel | None = None
    mode: BumpMode | None = None
    pre: str | None = None
    cascade: bool = False
    requested: dict[RepoId, str] = Field(default_factory=dict)
    today: date | None = None


class BumpPlan(BaseModel):
    """A fully computed bump, ready to be applied.

    Attributes:
        bumps: Old → new version per planned repo.
        cascaded: Repos planned only because they depend on a target.
        updates: Dependent constraints to rewrite to the new versions.
        violations: Edges the new versions would break that no rewrite fixes.
    """

    bumps: dict[RepoId, VersionBump] = Field(default_factory=dict)
    cascaded: list[RepoId] = Field(default_factory=list)
    updates: list[DependencyUpdate] = Field(default_factory=list)
    violations: list[ConstraintViolation] = Field(default_factory=list)

    @property
    def versions(self) -> dict[RepoId, Version]:
        return {repo: bump.new for repo, bump in self.bumps.items()}


def resolve_bump_mode(
    repo: Repo, default: BumpMode | None = None, override: BumpMode | None = None
) -> BumpMode:
    """Explicit override > per-repo bump_mode > workspace bump_mode > semver."""
    return override or repo.config.versioning.bump_mode or default or BumpMode.SEMVER


def plan_bumps(
    graph: DependencyGraph,
    index: PackageIndex,
    repos: Mapping[RepoId, Repo],
    versions: Mapping[RepoId, Version],
    targets: Iterable[RepoId],
    options: BumpOptions | None = None,
    defaults: VersioningDefaults | None = None,
) -> BumpPlan:
    """Compute a bump of ``targets`` (and, with cascade, their dependents).

    Args:
        graph: The workspace dependency graph.
        index: Package namespace the graph was built against.
        repos: The workspace repo registry.
        versions: Current declared version of each repo.
        targets: Repos to bump directly. Repos with a requested version are
                 targets too.
        options: Bump level, mode, prerelease and cascade settings.
        defaults: Workspace versioning defaults.

    Returns:
        The plan. Constraint rewrites are only planned for cascading bumps.

    Raises:
        UnknownRepoError: If a target is not a workspace repo.
        BumpPlanError: If any repo cannot be bumped; nothing is planned.

    Example:
        With app → lib → core and all three at 1.2.3, a cascading patch bump
        of core plans core, lib and app at 1.2.4 and rewrites lib's and
        app's constraints on their dependencies.
    """
    options = options or BumpOptions()
    defaults = defaults or VersioningDefaults()

    direct = sorted(set(targets) | set(options.requested))
    bumps: dict[RepoId, VersionBump] = {}
    for repo_id in direct:
        repo = repos.get(repo_id)
        if repo is None:
            raise UnknownRepoError(f"unknown repo '{repo_id}'")
        if repo.ignored or repo.external:
            raise BumpPlanError(repo_id, "ignored and external repos are never bumped")
        current = _current_version(repo_id, versions)
        requested = options.requested.get(repo_id)
        if requested is not None:
            new = _requested_version(repo, requested, defaults)
        else:
            new = _next_version(repo, current, options, defaults)
        bumps[repo_id] = VersionBump(old=current, new=new)

    cascaded: list[RepoId] = []
    updates: list[DependencyUpdate] = []
    if options.cascade:
        resolved = resolve_internal_edges(graph, index)
        dependents: set[RepoId] = set()
        for repo_id in direct:
            dependents.update(transitive_dependents(resolved, repo_id))
        for repo_id in sorted(dependents):
            repo = repos.get(repo_id)
            if repo_id in bumps or repo is None or repo.external or repo.ignored:
                continue
            current = _current_version(repo_id, versions)
            bumps[repo_id] = VersionBump(
                old=current, new=_next_version(repo, current, options, defaults)
            )
            cascaded.append(repo_id)

        new_versions = {repo_id: bump.new for repo_id, bump in bumps.items()}
        updates = plan_dependency_updates(graph, index, repos, new_versions)

    rewritten = {(update.repo, update.dependency) for update in updates}
    violations = [
        violation
        for repo_id in sorted(bumps)
        for violation in validate_bump(graph, index, repo_id, bumps[repo_id].new)
        if (violation.from_repo, violation.dependency) not in rewritten
    ]

    logger.debug(
        "planned %d bumps (%d cascaded), %d constraint updates",
        len(bumps),
        len(cascaded),
        len(updates),
    )
    return BumpPlan(
        bumps=dict(sorted(bumps.items())),
        cascaded=cascaded,
        updates=updates,
        violations=violations,
    )


def plan_dependency_updates(
    graph: DependencyGraph,
    index: PackageIndex,
    repos: Mapping[RepoId, Repo],
    versions: Mapping[RepoId, Version],
    only: Collection[str] | None = None,
) -> list[DependencyUpdate]:
    """Plan rewriting internal constraints to point at ``versions``.

    Used both after a bump (``versions`` holds the new versions) and to align
    every constraint with the versions currently declared.

    Args:
        only: Restrict to these package names.

    Returns:
        One update per (repo, dependency) whose constraint would change,
        ordered by repo id then manifest order. External and ignored repos
        are never rewritten.
    """
    updates: list[DependencyUpdate] = []
    for repo_id in sorted(graph.edges):
        repo = repos.get(repo_id)
        if repo is None or repo.external or repo.ignored:
            continue
        default_operator = plugin_for(repo.ecosystem).default_operator
        seen: set[str] = set()
        for dep in graph.edges[repo_id]:
            if not dep.is_internal or dep.name in seen:
                continue
            target = index.repo_for(dep.name)
            if target is None or target not in versions:
                continue
            if only is not None and index.package_of(target) not in only:
                continue
            constraint = rewrite_constraint(dep.constraint.raw, versions[target], default_operator)
            if constraint is None or constraint == dep.constraint.raw.strip():
                continue
            updates.append(
                DependencyUpdate(repo=repo_id, dependency=dep.name, constraint=constraint)
            )
            seen.add(dep.name)
    return updates


def detect_constraint_operator(raw: str, default_operator: str | None = None) -> str | None:
    """Return the operator a rewritten constraint should keep.

    Examples:
        "^1.2.0" → "^"
        "~=1.2" → "~="
        "1.2.0" with default "==" → "=="
        ">=1.0,<2.0" → None (ranges are left alone)
        ">=1.0" → None
    """
    text = raw.strip()
    if "," in text:
        return None
    for op in _REWRITE_OPERATORS:
        if text.startswith(op):
            return op
    if not text or _BARE_VERSION_RE.match(text):
        return default_operator
    return None


def rewrite_constraint(
    raw: str, version: Version, default_operator: str | None = None
) -> str | None:
    """Point a constraint at ``version``, keeping its operator.

    Returns None when the constraint should be left untouched.
    """
    op = detect_constraint_operator(raw, default_operator)
    if op is None:
        return None
    return f"{op}{version.raw}"


def apply_bump_plan(
    plan: BumpPlan, repos: Mapping[RepoId, Repo], dry_run: bool = False
) -> list[Path]:
    """Write a plan's versions and constraint updates to disk.

    Returns:
        The files whose content changed (or would change, with ``dry_run``).

    Raises:
        BumpPlanError: If any file cannot be rendered; nothing is written.
    """
    return _apply(repos, plan.bumps, plan.updates, dry_run)


def apply_dependency_updates(
    updates: list[DependencyUpdate], repos: Mapping[RepoId, Repo], dry_run: bool = False
) -> list[Path]:
    """Write constraint updates to disk, with the same all-or-nothing rendering."""
    return _apply(repos, {}, updates, dry_run)


def _apply(
    repos: Mapping[RepoId, Repo],
    bumps: Mapping[RepoId, VersionBump],
    updates: list[DependencyUpdate],
    dry_run: bool,
) -> list[Path]:
    # path -> (content on disk, rendered content)
    files: dict[Path, tuple[str, str]] = {}

    def current(path: Path) -> str:
        if path not in files:
            content = path.read_text()
            files[path] = (content, content)
        return files[path][1]

    for repo_id in sorted(bumps):
        repo = repos[repo_id]
        path = version_file_for_repo(repo)
        if path is None or not path.is_file():
            raise BumpPlanError(repo_id, "no version file to write")
        try:
            rendered = render_version(repo, path, current(path), bumps[repo_id].new)
        except (OSError, ManifestError) as exc:
            raise BumpPlanError(repo_id, exc) from exc
        files[path] = (files[path][0], rendered)

    for update in updates:
        repo = repos[update.repo]
        path = dependency_file_for_repo(repo)
        if path is None or not path.is_file():
            raise BumpPlanError(update.repo, "no dependency file to rewrite")
        try:
            rendered = plugin_for(repo.ecosystem).update_dependency(
                path, current(path), update.dependency, update.constraint
            )
        except (OSError, ManifestError) as exc:
            raise BumpPlanError(update.repo, exc) from exc
        files[path] = (files[path][0], rendered)

    changed = sorted(path for path, (old, new) in files.items() if old != new)
    if dry_run:
        return changed

    for path in changed:
        try:
            path.write_text(files[path][1])
        except OSError as exc:
            raise ManifestError(path, f"cannot write: {exc}") from exc
        logger.info("updated %s", path)
    return changed


def _current_version(repo_id: RepoId, versions: Mapping[RepoId, Version]) -> Version:
    current = versions.get(repo_id)
    if current is None:
        raise BumpPlanError(repo_id, "no version found")
    return current


def _requested_version(repo: Repo, raw: str, defaults: VersioningDefaults) -> Version:
    version = Version(raw=raw, kind=resolve_version_kind(repo, defaults.strategy))
    if version.kind == VersionKind.SEMVER and version.semver is None:
        raise BumpPlanError(repo.id, f"requested version '{raw}' is not valid semver")
    return version


def _next_version(
    repo: Repo, current: Version, options: BumpOptions, defaults: VersioningDefaults
) -> Version:
    mode = resolve_bump_mode(repo, defaults.bump_mode, options.mode)
    if options.pre is not None and mode != BumpMode.SEMVER:
        raise BumpPlanError(repo.id, "prerelease tags are only supported with semver bumps")
    try:
        return bump_version(
            current,
            mode,
            level=options.level,
            calver_format=defaults.calver_format,
            pre=options.pre,
            today=options.today,
        )
    except VersionError as exc:
        raise BumpPlanError(repo.id, exc) from exc
