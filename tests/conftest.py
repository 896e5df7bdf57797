"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest
import tomlkit

WORKSPACE_TOML = """\
[workspace]
name = "acme"

[repos.core]
package_name = "acme-core"

[repos.lib]
package_name = "acme-lib"

[repos.app]
package_name = "acme-app"
"""


def write_pyproject(
    repo_dir: Path, name: str, version: str, deps: list[str] | None = None
) -> Path:
    """Write a minimal pyproject.toml into ``repo_dir``."""
    repo_dir.mkdir(parents=True, exist_ok=True)
    dep_lines = "".join(f'    "{dep}",\n' for dep in deps or [])
    pyproject = repo_dir / "pyproject.toml"
    pyproject.write_text(
        f'[project]\nname = "{name}"\nversion = "{version}"\n'
        f"dependencies = [\n{dep_lines}]\n"
    )
    return pyproject


@pytest.fixture
def workspace_root(tmp_path: Path) -> Path:
    """A three-repo Python workspace where app → lib → core.

    app also depends on core directly, with a bare requirement.
    """
    (tmp_path / "lockstep.toml").write_text(WORKSPACE_TOML)
    repos = tmp_path / "repos"
    write_pyproject(repos / "core", "acme-core", "1.2.3", ["requests>=2.0"])
    write_pyproject(repos / "lib", "acme-lib", "1.2.3", ["acme-core==1.2.3"])
    write_pyproject(repos / "app", "acme-app", "1.2.3", ["acme-lib~=1.2", "acme-core"])
    return tmp_path


@pytest.fixture
def sample_toml_doc() -> tomlkit.TOMLDocument:
    """Create a sample TOML document."""
    content = """\
[project]
name = "my-package"
version = "2.0.0"
dependencies = ["click>=8.0", "pydantic>=2.0"]

[project.optional-dependencies]
dev = ["pytest>=8.0"]
docs = ["sphinx>=7.0"]

[dependency-groups]
test = ["hypothesis>=6.0", {include-group = "dev"}]

[tool.poetry]
version = "2.0.0"
"""
    return tomlkit.parse(content)


@pytest.fixture
def make_pyproject():
    """Factory fixture: make_pyproject(repo_dir, name, version, deps)."""
    return write_pyproject
