"""Data models for lockstep.

These Pydantic models represent the repos of a workspace and the records
passed between the graph, checking and bump-planning stages.
"""

from __future__ import annotations

import re
from enum import Enum
from pathlib import Path
from typing import NewType

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .versions import BumpMode, Version, VersionKind, VersionReq

RepoId = NewType("RepoId", str)


def _compile(pattern: str) -> re.Pattern[str]:
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise ValueError(f"invalid regex '{pattern}': {exc}") from exc


class Ecosystem(str, Enum):
    """Language ecosystem tag selecting the manifest plugin for a repo."""

    PYTHON = "python"
    RUST = "rust"
    NODE = "node"
    GO = "go"
    JAVA = "java"
    CUSTOM = "custom"


class VersioningConfig(BaseModel):
    """Per-repo override of where and how the version is declared.

    Attributes:
        file: Version file relative to the repo path. Defaults to the
              ecosystem's manifest.
        path: Dotted key path into a TOML/JSON version file
              (e.g. "tool.poetry.version").
        pattern: Regex whose first capture group is the version string.
        strategy: Versioning scheme of the declared value.
        bump_mode: How this repo's version is bumped.
    """

    file: str | None = None
    path: str | None = None
    pattern: str | None = None
    strategy: VersionKind | None = None
    bump_mode: BumpMode | None = None

    @field_validator("pattern")
    @classmethod
    def _pattern_compiles(cls, value: str | None) -> str | None:
        if value is not None:
            compiled = _compile(value)
            if compiled.groups < 1:
                raise ValueError("version pattern must include a capture group")
        return value


class DepsConfig(BaseModel):
    """Per-repo override of how dependencies are found and classified.

    Attributes:
        file: Dependency manifest relative to the repo path.
        internal_packages: Names always treated as internal.
        internal_pattern: Regex; matching names are treated as internal.
    """

    file: str | None = None
    internal_packages: list[str] = Field(default_factory=list)
    internal_pattern: str | None = None

    @field_validator("internal_pattern")
    @classmethod
    def _pattern_compiles(cls, value: str | None) -> str | None:
        if value is not None:
            _compile(value)
        return value


class RepoConfig(BaseModel):
    versioning: VersioningConfig = Field(default_factory=VersioningConfig)
    dependencies: DepsConfig = Field(default_factory=DepsConfig)


class Repo(BaseModel):
    """One repository of the workspace.

    Attributes:
        id: Unique key of the repo within the workspace.
        path: Absolute path of the repo checkout.
        package_name: Name other manifests use to depend on this repo.
        ecosystem: Manifest plugin tag; None means no manifest is read.
        depends_on: Extra internal dependencies declared in the workspace
                    config (repo ids or package names).
        external: Owned elsewhere; never bumped or rewritten.
        ignored: Excluded from the graph entirely.
        config: Per-repo versioning and dependency overrides.
    """

    model_config = ConfigDict(frozen=True)

    id: RepoId
    path: Path
    package_name: str | None = None
    ecosystem: Ecosystem | None = None
    depends_on: list[str] = Field(default_factory=list)
    external: bool = False
    ignored: bool = False
    config: RepoConfig = Field(default_factory=RepoConfig)

    @property
    def effective_package_name(self) -> str:
        return self.package_name or self.id


class Dependency(BaseModel):
    """A dependency as declared in a manifest.

    Attributes:
        name: Package name as written, in the ecosystem's namespace.
        constraint: The declared version requirement.
        is_internal: Whether the name refers to a workspace repo. Computed by
                     the graph builder, never declared by the manifest.
    """

    name: str
    constraint: VersionReq
    is_internal: bool = False


class MissingDependency(BaseModel):
    """An internal-flagged dependency whose name matches no workspace package."""

    from_repo: RepoId
    dependency: Dependency


class DependencyUpdate(BaseModel):
    """A planned rewrite of one declared constraint."""

    repo: RepoId
    dependency: str
    constraint: str


class VersionBump(BaseModel):
    """Records a version change for a repo.

    Attributes:
        old: The version before bumping.
        new: The version after bumping.
    """

    old: Version
    new: Version
