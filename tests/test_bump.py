"""Tests for lockstep.bump."""

from __future__ import annotations

from datetime import date
from pathlib import Path

import pytest
import tomlkit

from lockstep.bump import (
    BumpOptions,
    apply_bump_plan,
    apply_dependency_updates,
    detect_constraint_operator,
    plan_bumps,
    plan_dependency_updates,
    resolve_bump_mode,
    rewrite_constraint,
)
from lockstep.checks import ViolationType
from lockstep.config import VersioningDefaults
from lockstep.errors import BumpPlanError, InvalidSemver, UnknownRepoError
from lockstep.models import RepoConfig, RepoId, VersioningConfig
from lockstep.versions import BumpLevel, BumpMode, Version, VersionKind
from lockstep.workspace import Workspace, load_workspace


def _deps(ws: Workspace, repo: str) -> list[str]:
    doc = tomlkit.parse((ws.repos[RepoId(repo)].path / "pyproject.toml").read_text())
    return [str(d) for d in doc["project"]["dependencies"]]


def _version(ws: Workspace, repo: str) -> str:
    doc = tomlkit.parse((ws.repos[RepoId(repo)].path / "pyproject.toml").read_text())
    return str(doc["project"]["version"])


def _plan(ws: Workspace, targets: list[str], **options):
    return plan_bumps(
        ws.graph,
        ws.index,
        ws.repos,
        ws.versions(),
        [RepoId(t) for t in targets],
        BumpOptions(**options),
        ws.config.versioning,
    )


class TestDetectConstraintOperator:
    @pytest.mark.parametrize(
        ("raw", "default", "expected"),
        [
            ("^1.2.0", None, "^"),
            ("~1.2.0", None, "~"),
            ("~=1.2", "==", "~="),
            ("==1.2.3", "==", "=="),
            ("=1.2.3", "", "="),
            ("1.2.3", "==", "=="),
            ("1.2.3", "", ""),
            ("v1.4.0", "v", "v"),
            ("", "==", "=="),
            ("1.2.3", None, None),
            (">=1.0", "==", None),
            (">=1.0,<2.0", "==", None),
            ("^1.0, <1.5", None, None),
            ("*", "", None),
            ("<2", "", None),
            ("!=1.0", "==", None),
        ],
    )
    def test_operators(self, raw: str, default: str | None, expected: str | None) -> None:
        assert detect_constraint_operator(raw, default) == expected

    def test_rewrite(self) -> None:
        assert rewrite_constraint("^1.2.0", Version(raw="1.3.0")) == "^1.3.0"
        assert rewrite_constraint(">=1", Version(raw="1.3.0"), "==") is None


class TestResolveBumpMode:
    def test_precedence(self, workspace_root: Path) -> None:
        repo = load_workspace(root=workspace_root).repo("core")
        assert resolve_bump_mode(repo) == BumpMode.SEMVER
        assert resolve_bump_mode(repo, BumpMode.CALVER) == BumpMode.CALVER
        assert resolve_bump_mode(repo, BumpMode.CALVER, BumpMode.TINYINC) == BumpMode.TINYINC

        pinned = repo.model_copy(
            update={"config": RepoConfig(versioning=VersioningConfig(bump_mode="tinyinc"))}
        )
        assert resolve_bump_mode(pinned, BumpMode.CALVER) == BumpMode.TINYINC
        assert resolve_bump_mode(pinned, None, BumpMode.SEMVER) == BumpMode.SEMVER


class TestPlanBumps:
    def test_direct_only(self, workspace_root: Path) -> None:
        ws = load_workspace(root=workspace_root)
        plan = _plan(ws, ["core"], level=BumpLevel.MINOR)
        assert plan.versions == {"core": Version(raw="1.3.0")}
        assert plan.bumps["core"].old.raw == "1.2.3"
        assert plan.cascaded == []
        assert plan.updates == []

    def test_cascade_plans_dependents_and_rewrites(self, workspace_root: Path) -> None:
        ws = load_workspace(root=workspace_root)
        plan = _plan(ws, ["core"], cascade=True)

        assert {repo: v.raw for repo, v in plan.versions.items()} == {
            "app": "1.2.4",
            "core": "1.2.4",
            "lib": "1.2.4",
        }
        assert plan.cascaded == ["app", "lib"]
        assert [(u.repo, u.dependency, u.constraint) for u in plan.updates] == [
            ("app", "acme-lib", "~=1.2.4"),
            ("app", "acme-core", "==1.2.4"),
            ("lib", "acme-core", "==1.2.4"),
        ]

    def test_requested_version_wins(self, workspace_root: Path) -> None:
        ws = load_workspace(root=workspace_root)
        plan = _plan(ws, ["core"], requested={"core": "2.0.0"}, level=BumpLevel.PATCH)
        assert plan.versions == {"core": Version(raw="2.0.0")}

    def test_requested_version_must_be_semver(self, workspace_root: Path) -> None:
        ws = load_workspace(root=workspace_root)
        with pytest.raises(BumpPlanError, match="core"):
            _plan(ws, [], requested={"core": "two"})

    def test_prerelease(self, workspace_root: Path) -> None:
        ws = load_workspace(root=workspace_root)
        plan = _plan(ws, ["core"], pre="rc.1")
        assert plan.versions["core"].raw == "1.2.4-rc.1"

    def test_prerelease_needs_semver_mode(self, workspace_root: Path) -> None:
        ws = load_workspace(root=workspace_root)
        with pytest.raises(BumpPlanError, match="prerelease"):
            _plan(ws, ["core"], pre="rc.1", mode=BumpMode.TINYINC)

    def test_calver_mode(self, workspace_root: Path) -> None:
        ws = load_workspace(root=workspace_root)
        plan = _plan(ws, ["core"], mode=BumpMode.CALVER, today=date(2026, 10, 19))
        assert plan.versions["core"] == Version(raw="2026.10.1", kind=VersionKind.CALVER)

    def test_unknown_target(self, workspace_root: Path) -> None:
        ws = load_workspace(root=workspace_root)
        with pytest.raises(UnknownRepoError):
            _plan(ws, ["nope"])

    def test_missing_version(self, workspace_root: Path) -> None:
        ws = load_workspace(root=workspace_root)
        versions = ws.versions()
        del versions[RepoId("lib")]
        with pytest.raises(BumpPlanError, match="no version found"):
            plan_bumps(
                ws.graph,
                ws.index,
                ws.repos,
                versions,
                [RepoId("core")],
                BumpOptions(cascade=True),
            )

    def test_failure_carries_cause(self, workspace_root: Path) -> None:
        ws = load_workspace(root=workspace_root)
        versions = {**ws.versions(), RepoId("app"): Version(raw="r7", kind=VersionKind.RAW)}
        with pytest.raises(BumpPlanError) as excinfo:
            plan_bumps(
                ws.graph,
                ws.index,
                ws.repos,
                versions,
                [RepoId("core")],
                BumpOptions(cascade=True),
            )
        assert excinfo.value.repo == "app"
        assert isinstance(excinfo.value.cause, InvalidSemver)

    def test_cascade_skips_external(self, workspace_root: Path) -> None:
        config = workspace_root / "lockstep.toml"
        config.write_text(config.read_text() + "external = true\n")  # on [repos.app]
        ws = load_workspace(root=workspace_root)
        plan = _plan(ws, ["core"], cascade=True)
        assert set(plan.bumps) == {"core", "lib"}
        assert all(u.repo != "app" for u in plan.updates)

    def test_external_target_rejected(self, workspace_root: Path) -> None:
        config = workspace_root / "lockstep.toml"
        config.write_text(config.read_text() + "external = true\n")
        ws = load_workspace(root=workspace_root)
        with pytest.raises(BumpPlanError, match="never bumped"):
            _plan(ws, ["app"])

    def test_preflight_violations(self, workspace_root: Path) -> None:
        (workspace_root / "repos" / "lib" / "pyproject.toml").write_text(
            '[project]\nname = "acme-lib"\nversion = "1.2.3"\n'
            'dependencies = ["acme-core>=1.0,<1.3"]\n'
        )
        ws = load_workspace(root=workspace_root)

        direct = _plan(ws, ["core"], level=BumpLevel.MINOR)
        assert [(v.from_repo, v.violation_type) for v in direct.violations] == [
            ("lib", ViolationType.UNSATISFIED)
        ]

        # Ranges are never rewritten, so cascading leaves the violation in place.
        cascaded = _plan(ws, ["core"], level=BumpLevel.MINOR, cascade=True)
        assert [(v.from_repo, v.violation_type) for v in cascaded.violations] == [
            ("lib", ViolationType.UNSATISFIED)
        ]
        assert all(u.dependency != "acme-core" or u.repo != "lib" for u in cascaded.updates)


class TestPlanDependencyUpdates:
    def test_aligns_to_current_versions(self, workspace_root: Path) -> None:
        (workspace_root / "repos" / "core" / "pyproject.toml").write_text(
            '[project]\nname = "acme-core"\nversion = "1.5.0"\ndependencies = []\n'
        )
        ws = load_workspace(root=workspace_root)
        updates = plan_dependency_updates(ws.graph, ws.index, ws.repos, ws.versions())
        assert [(u.repo, u.dependency, u.constraint) for u in updates] == [
            ("app", "acme-lib", "~=1.2.3"),
            ("app", "acme-core", "==1.5.0"),
            ("lib", "acme-core", "==1.5.0"),
        ]

    def test_only_filter(self, workspace_root: Path) -> None:
        ws = load_workspace(root=workspace_root)
        updates = plan_dependency_updates(
            ws.graph, ws.index, ws.repos, ws.versions(), only={"acme-lib"}
        )
        assert [(u.repo, u.dependency) for u in updates] == [("app", "acme-lib")]

    def test_unchanged_constraints_are_skipped(self, workspace_root: Path) -> None:
        ws = load_workspace(root=workspace_root)
        updates = plan_dependency_updates(
            ws.graph, ws.index, ws.repos, ws.versions(), only={"acme-core"}
        )
        # lib already pins ==1.2.3; app's bare requirement gains a pin.
        assert [(u.repo, u.constraint) for u in updates] == [("app", "==1.2.3")]


class TestApplyBumpPlan:
    def test_cascade_writes_everything(self, workspace_root: Path) -> None:
        ws = load_workspace(root=workspace_root)
        changed = apply_bump_plan(_plan(ws, ["core"], cascade=True), ws.repos)

        assert len(changed) == 3
        assert _version(ws, "core") == "1.2.4"
        assert _version(ws, "lib") == "1.2.4"
        assert _version(ws, "app") == "1.2.4"
        assert _deps(ws, "lib") == ["acme-core==1.2.4"]
        assert _deps(ws, "app") == ["acme-lib~=1.2.4", "acme-core==1.2.4"]
        assert _deps(ws, "core") == ["requests>=2.0"]

    def test_cascade_through_unnormalized_name(
        self, workspace_root: Path, make_pyproject
    ) -> None:
        make_pyproject(workspace_root / "repos" / "lib", "acme-lib", "1.2.3", ["Acme_Core==1.2.3"])
        ws = load_workspace(root=workspace_root)
        plan = _plan(ws, ["core"], cascade=True)
        assert ("lib", "Acme_Core", "==1.2.4") in [
            (u.repo, u.dependency, u.constraint) for u in plan.updates
        ]

        apply_bump_plan(plan, ws.repos)
        assert _version(ws, "lib") == "1.2.4"
        assert _deps(ws, "lib") == ["Acme_Core==1.2.4"]

    def test_dry_run_writes_nothing(self, workspace_root: Path) -> None:
        ws = load_workspace(root=workspace_root)
        before = (ws.repos[RepoId("app")].path / "pyproject.toml").read_text()
        changed = apply_bump_plan(_plan(ws, ["core"], cascade=True), ws.repos, dry_run=True)
        assert len(changed) == 3
        assert (ws.repos[RepoId("app")].path / "pyproject.toml").read_text() == before

    def test_render_failure_writes_nothing(self, workspace_root: Path) -> None:
        ws = load_workspace(root=workspace_root)
        plan = _plan(ws, ["core"], cascade=True)
        core_file = ws.repos[RepoId("core")].path / "pyproject.toml"
        core_before = core_file.read_text()
        # app's manifest breaks between planning and writing
        (ws.repos[RepoId("app")].path / "pyproject.toml").write_text("[project\n")

        with pytest.raises(BumpPlanError, match="app"):
            apply_bump_plan(plan, ws.repos)
        assert core_file.read_text() == core_before

    def test_failing_plan_writes_nothing(self, workspace_root: Path) -> None:
        ws = load_workspace(root=workspace_root)
        files = sorted(workspace_root.rglob("pyproject.toml"))
        before = [f.read_text() for f in files]
        with pytest.raises(BumpPlanError):
            _plan(ws, ["core"], cascade=True, pre="rc.1", mode=BumpMode.CALVER)
        assert [f.read_text() for f in files] == before

    def test_dependency_updates_only(self, workspace_root: Path) -> None:
        ws = load_workspace(root=workspace_root)
        updates = plan_dependency_updates(
            ws.graph, ws.index, ws.repos, ws.versions(), only={"acme-lib"}
        )
        changed = apply_dependency_updates(updates, ws.repos)
        assert changed == [ws.repos[RepoId("app")].path / "pyproject.toml"]
        assert _deps(ws, "app") == ["acme-lib~=1.2.3", "acme-core"]


def test_defaults_drive_mode(workspace_root: Path) -> None:
    """Workspace [versioning] bump_mode applies when nothing overrides it."""
    ws = load_workspace(root=workspace_root)
    plan = plan_bumps(
        ws.graph,
        ws.index,
        ws.repos,
        ws.versions(),
        [RepoId("core")],
        BumpOptions(),
        VersioningDefaults(bump_mode=BumpMode.TINYINC),
    )
    assert plan.versions["core"].raw == "1.2.4"
    assert plan.versions["core"].kind == VersionKind.SEMVER
