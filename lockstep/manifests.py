"""Reading and writing the version a repo declares.

Where the version lives is configurable per repo (``[repos.<id>.versioning]``):

- ``pattern``: a regex over the version file; group 1 is the version
- ``path``: a dotted key path into a TOML or JSON version file
- otherwise the ecosystem plugin's own notion of the version

Writing mirrors reading, so a value read through a pattern is written back
by splicing the same capture group.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from pathlib import Path

import tomlkit

from .ecosystems import dump_json, load_json, plugin_for
from .errors import ManifestError
from .models import Repo, RepoId
from .toml import get_at_path, parse_toml, set_at_path
from .versions import Version, VersionKind

logger = logging.getLogger(__name__)


def version_file_for_repo(repo: Repo) -> Path | None:
    """Locate the file holding a repo's version.

    A configured ``versioning.file`` wins; otherwise the ecosystem manifest.
    """
    configured = repo.config.versioning.file
    if configured:
        return repo.path / configured
    if repo.ecosystem is None:
        return None
    return plugin_for(repo.ecosystem).find_manifest(repo.path)


def resolve_version_kind(repo: Repo, default: VersionKind | None = None) -> VersionKind:
    return repo.config.versioning.strategy or default or VersionKind.SEMVER


def read_repo_version(repo: Repo, default_kind: VersionKind | None = None) -> Version | None:
    """Read the version a repo currently declares.

    Args:
        repo: The repo to read.
        default_kind: Workspace-wide versioning strategy, used when the repo
                      sets none.

    Returns:
        The declared version, or None when the repo has no version file or
        its ecosystem declares no version (go.mod).

    Raises:
        ManifestError: If the file cannot be read, the configured pattern or
            key path finds nothing, or a semver-kind value is not valid semver.
    """
    path = version_file_for_repo(repo)
    if path is None or not path.is_file():
        return None
    content = _read(path)

    raw = _extract_version(repo, path, content)
    if raw is None:
        return None

    kind = resolve_version_kind(repo, default_kind)
    version = Version(raw=raw, kind=kind)
    if kind == VersionKind.SEMVER and version.semver is None:
        raise ManifestError(path, f"version '{raw}' is not valid semver")
    return version


def collect_versions(
    repos: Mapping[RepoId, Repo], default_kind: VersionKind | None = None
) -> dict[RepoId, Version]:
    """Read the declared version of every non-ignored repo that has one."""
    versions: dict[RepoId, Version] = {}
    for repo_id in sorted(repos):
        repo = repos[repo_id]
        if repo.ignored:
            continue
        version = read_repo_version(repo, default_kind)
        if version is not None:
            versions[repo_id] = version
    logger.debug("read %d versions from %d repos", len(versions), len(repos))
    return versions


def render_version(repo: Repo, path: Path, content: str, new_version: Version) -> str:
    """Return ``content`` with the repo's version replaced by ``new_version``.

    Raises:
        ManifestError: If the configured pattern no longer matches.
    """
    cfg = repo.config.versioning
    if cfg.pattern:
        match = re.search(cfg.pattern, content, re.MULTILINE)
        if match is None:
            raise ManifestError(path, f"version pattern '{cfg.pattern}' did not match")
        return content[: match.start(1)] + new_version.raw + content[match.end(1) :]

    if cfg.path:
        segments = _segments(cfg.path)
        if path.suffix == ".json":
            data = load_json(path, content)
            set_at_path(data, segments, new_version.raw)
            return dump_json(data)
        doc = parse_toml(path, content)
        set_at_path(doc, segments, new_version.raw)
        return tomlkit.dumps(doc)

    return plugin_for(repo.ecosystem).update_version(path, content, new_version)


def _extract_version(repo: Repo, path: Path, content: str) -> str | None:
    cfg = repo.config.versioning
    if cfg.pattern:
        match = re.search(cfg.pattern, content, re.MULTILINE)
        if match is None:
            raise ManifestError(path, f"version pattern '{cfg.pattern}' did not match")
        return match.group(1).strip()

    if cfg.path:
        if path.suffix == ".json":
            doc = load_json(path, content)
        else:
            doc = parse_toml(path, content)
        value = get_at_path(doc, _segments(cfg.path))
        if value is None or isinstance(value, (dict, list)):
            raise ManifestError(path, f"no version value at '{cfg.path}'")
        return str(value)

    version = plugin_for(repo.ecosystem).parse_version(path, content)
    return version.raw if version is not None else None


def _segments(key_path: str) -> list[str]:
    return [segment for segment in key_path.split(".") if segment]


def _read(path: Path) -> str:
    try:
        return path.read_text()
    except OSError as exc:
        raise ManifestError(path, f"cannot read: {exc}") from exc
