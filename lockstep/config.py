"""Workspace configuration (lockstep.toml).

Example::

    [workspace]
    name = "acme"
    repos_dir = "repos"

    [versioning]
    bump_mode = "semver"
    cascade_bumps = true

    [repos.core]
    package_name = "acme-core"
    ecosystem = "python"

    [repos.app]
    depends_on = ["core"]

    [repos.app.dependencies]
    internal_pattern = "^acme-"

The file is read with tomlkit and validated with pydantic; any problem is
reported as a ConfigError naming the file.
"""

from __future__ import annotations

import os
from pathlib import Path

import tomlkit
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from tomlkit.exceptions import TOMLKitError

from .errors import ConfigError
from .models import DepsConfig, Ecosystem, VersioningConfig
from .versions import BumpMode, VersionKind

CONFIG_FILENAME = "lockstep.toml"
ENV_WORKSPACE = "LOCKSTEP_WORKSPACE"
ENV_CONFIG = "LOCKSTEP_CONFIG"


class WorkspaceSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = ""
    repos_dir: str = "repos"


class VersioningDefaults(BaseModel):
    """Workspace-wide versioning defaults; per-repo settings override them."""

    model_config = ConfigDict(extra="forbid")

    strategy: VersionKind | None = None
    bump_mode: BumpMode | None = None
    calver_format: str | None = None
    cascade_bumps: bool = False


class RepoEntry(BaseModel):
    """One [repos.<id>] table.

    Attributes:
        path: Checkout location relative to the workspace root. Defaults to
              ``<repos_dir>/<id>``.
    """

    model_config = ConfigDict(extra="forbid")

    path: str | None = None
    package_name: str | None = None
    ecosystem: Ecosystem | None = None
    depends_on: list[str] = Field(default_factory=list)
    external: bool = False
    ignored: bool = False
    versioning: VersioningConfig = Field(default_factory=VersioningConfig)
    dependencies: DepsConfig = Field(default_factory=DepsConfig)


class WorkspaceConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    workspace: WorkspaceSettings = Field(default_factory=WorkspaceSettings)
    versioning: VersioningDefaults = Field(default_factory=VersioningDefaults)
    repos: dict[str, RepoEntry] = Field(default_factory=dict)


def load_config(path: Path) -> WorkspaceConfig:
    """Load and validate a workspace config file.

    Raises:
        ConfigError: If the file is missing, is not TOML, or fails validation.
    """
    if not path.is_file():
        raise ConfigError(f"config file not found: {path}")
    try:
        doc = tomlkit.parse(path.read_text())
    except (OSError, TOMLKitError) as exc:
        raise ConfigError(f"{path}: {exc}") from exc
    try:
        return WorkspaceConfig.model_validate(doc.unwrap())
    except ValidationError as exc:
        raise ConfigError(f"{path}: {exc}") from exc


def find_config(
    start: Path | None = None,
    *,
    root: Path | None = None,
    config: Path | None = None,
) -> tuple[Path, Path]:
    """Locate the workspace root and its config file.

    Resolution order: explicit ``root``/``config`` arguments, then the
    LOCKSTEP_WORKSPACE / LOCKSTEP_CONFIG environment variables, then the
    nearest lockstep.toml at or above ``start`` (default: cwd).

    Returns:
        (workspace root, config path)

    Raises:
        ConfigError: If no workspace can be found.
    """
    if root is None and config is None:
        if os.environ.get(ENV_WORKSPACE):
            root = Path(os.environ[ENV_WORKSPACE])
        elif os.environ.get(ENV_CONFIG):
            config = Path(os.environ[ENV_CONFIG])

    if root is not None:
        if not root.is_dir():
            raise ConfigError(f"workspace root is not a directory: {root}")
        if config is None:
            config = root / CONFIG_FILENAME
        elif not config.is_absolute():
            config = root / config
        return root, config

    if config is not None:
        return config.resolve().parent, config

    here = (start or Path.cwd()).resolve()
    for candidate in (here, *here.parents):
        if (candidate / CONFIG_FILENAME).is_file():
            return candidate, candidate / CONFIG_FILENAME
    raise ConfigError(f"no {CONFIG_FILENAME} found in {here} or any parent directory")
