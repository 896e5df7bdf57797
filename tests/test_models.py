"""Tests for lockstep.models."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from lockstep.models import (
    DepsConfig,
    Ecosystem,
    Repo,
    RepoId,
    VersionBump,
    VersioningConfig,
)
from lockstep.versions import Version


class TestRepo:
    def test_package_name_defaults_to_id(self) -> None:
        repo = Repo(id=RepoId("core"), path=Path("/ws/core"))
        assert repo.effective_package_name == "core"

    def test_package_name_override(self) -> None:
        repo = Repo(id=RepoId("core"), path=Path("/ws/core"), package_name="acme-core")
        assert repo.effective_package_name == "acme-core"

    def test_defaults(self) -> None:
        repo = Repo(id=RepoId("core"), path=Path("/ws/core"))
        assert repo.ecosystem is None
        assert repo.depends_on == []
        assert not repo.external
        assert not repo.ignored
        assert repo.config.versioning.pattern is None

    def test_is_frozen(self) -> None:
        repo = Repo(id=RepoId("core"), path=Path("/ws/core"))
        with pytest.raises(ValidationError):
            repo.ignored = True

    def test_ecosystem_from_string(self) -> None:
        repo = Repo(id=RepoId("web"), path=Path("/ws/web"), ecosystem="node")
        assert repo.ecosystem == Ecosystem.NODE


class TestVersioningConfig:
    def test_pattern_needs_capture_group(self) -> None:
        with pytest.raises(ValidationError, match="capture group"):
            VersioningConfig(pattern=r"version = \d+")

    def test_invalid_pattern(self) -> None:
        with pytest.raises(ValidationError, match="invalid regex"):
            VersioningConfig(pattern="(unclosed")

    def test_valid_pattern(self) -> None:
        cfg = VersioningConfig(pattern=r'VERSION = "([^"]+)"')
        assert cfg.pattern is not None


class TestDepsConfig:
    def test_invalid_internal_pattern(self) -> None:
        with pytest.raises(ValidationError):
            DepsConfig(internal_pattern="[acme")

    def test_defaults(self) -> None:
        cfg = DepsConfig()
        assert cfg.file is None
        assert cfg.internal_packages == []


class TestVersionBump:
    def test_create(self) -> None:
        bump = VersionBump(old=Version(raw="1.0.0"), new=Version(raw="1.0.1"))
        assert bump.old.raw == "1.0.0"
        assert bump.new.raw == "1.0.1"
