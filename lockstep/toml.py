"""TOML reading and writing utilities.

Uses tomlkit to preserve formatting and comments when modifying manifests.
This is important for keeping version bumps readable and diff-friendly.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import tomlkit
from tomlkit.exceptions import TOMLKitError

from .errors import ManifestError


def parse_toml(path: Path, content: str) -> tomlkit.TOMLDocument:
    """Parse TOML text, reporting syntax errors against ``path``.

    Returns a TOMLDocument that preserves formatting when modified and dumped.
    """
    try:
        return tomlkit.parse(content)
    except TOMLKitError as exc:
        raise ManifestError(path, f"invalid TOML: {exc}") from exc


def get_all_dependency_strings(doc: tomlkit.TOMLDocument) -> list[str]:
    """Collect all dependency strings from a pyproject.toml.

    Gathers dependencies from three locations:
    - [project].dependencies (main runtime deps)
    - [project].optional-dependencies.* (extras like [dev], [test])
    - [dependency-groups].* (PEP 735 dependency groups)

    Returns raw PEP 508 strings like "requests>=2.0" or "pkg[extra]~=1.0".
    """
    project = doc.get("project", {})
    deps: list[str] = [str(d) for d in project.get("dependencies", [])]
    for group_deps in project.get("optional-dependencies", {}).values():
        deps.extend(str(d) for d in group_deps)
    for group_deps in doc.get("dependency-groups", {}).values():
        # Groups may also contain {include-group = "..."} tables.
        deps.extend(str(d) for d in group_deps if isinstance(d, str))
    return deps


def dependency_lists(doc: tomlkit.TOMLDocument) -> list[list]:
    """Return every mutable dependency array of a pyproject document.

    Same three locations as get_all_dependency_strings, but the tomlkit
    arrays themselves so entries can be replaced in place.
    """
    lists: list[list] = []
    project = doc.get("project", {})
    deps = project.get("dependencies")
    if isinstance(deps, list):
        lists.append(deps)
    opt_deps = project.get("optional-dependencies")
    if isinstance(opt_deps, dict):
        lists.extend(g for g in opt_deps.values() if isinstance(g, list))
    dep_groups = doc.get("dependency-groups")
    if isinstance(dep_groups, dict):
        lists.extend(g for g in dep_groups.values() if isinstance(g, list))
    return lists


def get_at_path(doc: Any, segments: list[str]) -> Any:
    """Walk nested tables by key, returning None if any segment is missing."""
    current = doc
    for segment in segments:
        if not isinstance(current, dict) or segment not in current:
            return None
        current = current[segment]
    return current


def set_at_path(doc: Any, segments: list[str], value: Any) -> None:
    """Set a nested key, creating intermediate tables as needed."""
    current = doc
    for segment in segments[:-1]:
        if segment not in current or not isinstance(current[segment], dict):
            current[segment] = {}
        current = current[segment]
    current[segments[-1]] = value
