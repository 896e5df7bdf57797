"""Tests for lockstep.versions."""

from __future__ import annotations

from datetime import date

import pytest

from lockstep.errors import InvalidPrerelease, InvalidSemver, NoNumericSegment, VersionError
from lockstep.versions import (
    BumpLevel,
    BumpMode,
    Version,
    VersionKind,
    VersionReq,
    bump_calver,
    bump_rightmost_numeric,
    bump_semver,
    bump_version,
    render_calver,
    satisfies,
)

OCT_19 = date(2026, 10, 19)


class TestVersionModel:
    def test_semver_parsed(self) -> None:
        parsed = Version(raw="1.2.3-rc.1").semver
        assert parsed is not None
        assert parsed.prerelease == "rc.1"

    def test_invalid_semver_has_no_parsed_form(self) -> None:
        assert Version(raw="1.2").semver is None

    def test_non_semver_kind_has_no_parsed_form(self) -> None:
        assert Version(raw="2026.10.1", kind=VersionKind.CALVER).semver is None

    def test_req_git_ref_has_no_range(self) -> None:
        assert VersionReq(raw="main").semver is None
        assert VersionReq(raw="^1.0").semver is not None

    def test_str_is_raw(self) -> None:
        assert str(Version(raw="1.0.0")) == "1.0.0"
        assert str(VersionReq(raw=">=1, <2")) == ">=1, <2"


class TestEnums:
    def test_case_insensitive(self) -> None:
        assert BumpMode("SemVer") == BumpMode.SEMVER
        assert BumpLevel("MAJOR") == BumpLevel.MAJOR

    def test_none_kind_is_raw(self) -> None:
        assert VersionKind("none") == VersionKind.RAW

    def test_unknown_rejected(self) -> None:
        with pytest.raises(ValueError):
            BumpMode("weekly")


class TestBumpSemver:
    @pytest.mark.parametrize(
        ("level", "expected"),
        [
            (BumpLevel.PATCH, "1.2.4"),
            (BumpLevel.MINOR, "1.3.0"),
            (BumpLevel.MAJOR, "2.0.0"),
        ],
    )
    def test_levels(self, level: BumpLevel, expected: str) -> None:
        assert bump_semver(Version(raw="1.2.3"), level).raw == expected

    def test_patch_with_prerelease(self) -> None:
        bumped = bump_semver(Version(raw="1.2.3"), BumpLevel.PATCH, pre="rc.1")
        assert bumped.raw == "1.2.4-rc.1"
        assert bumped.kind == VersionKind.SEMVER

    def test_clears_prerelease_and_build(self) -> None:
        assert bump_semver(Version(raw="1.2.3-rc.1+b5"), BumpLevel.MAJOR).raw == "2.0.0"

    def test_invalid_prerelease(self) -> None:
        with pytest.raises(InvalidPrerelease):
            bump_semver(Version(raw="1.2.3"), BumpLevel.PATCH, pre="rc..1")

    def test_invalid_version(self) -> None:
        with pytest.raises(InvalidSemver, match="1.2"):
            bump_semver(Version(raw="1.2"), BumpLevel.PATCH)

    def test_raw_kind_never_semver_bumped(self) -> None:
        with pytest.raises(InvalidSemver):
            bump_semver(Version(raw="1.2.3", kind=VersionKind.RAW), BumpLevel.PATCH)


class TestBumpRightmostNumeric:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("2026.02.009", "2026.02.010"),
            ("build-7", "build-8"),
            ("v1.9", "v1.10"),
            ("09", "10"),
            ("0", "1"),
            ("1.2.3-rc", "1.2.4-rc"),
        ],
    )
    def test_increments(self, raw: str, expected: str) -> None:
        assert bump_rightmost_numeric(raw) == expected

    def test_no_digits(self) -> None:
        with pytest.raises(NoNumericSegment):
            bump_rightmost_numeric("release")

    def test_is_a_version_error(self) -> None:
        with pytest.raises(VersionError):
            bump_rightmost_numeric("")


class TestCalver:
    def test_render_tokens(self) -> None:
        assert render_calver("YYYY.0M.0D", OCT_19) == "2026.10.19"
        assert render_calver("YY.MM.DD", date(2026, 3, 5)) == "26.03.05"

    def test_same_period_increments(self) -> None:
        assert bump_calver("2026.10.3", "YYYY.0M.MICRO", OCT_19) == "2026.10.4"

    def test_new_period_restarts(self) -> None:
        assert bump_calver("2026.09.7", "YYYY.0M.MICRO", OCT_19) == "2026.10.1"

    def test_counter_width_preserved(self) -> None:
        assert bump_calver("2026.10.09", "YYYY.0M.MICRO", OCT_19) == "2026.10.10"

    def test_unrelated_current_restarts(self) -> None:
        assert bump_calver("1.2.3", "YYYY.0M.MICRO", OCT_19) == "2026.10.1"

    def test_without_micro_bumps_rendered_template(self) -> None:
        assert bump_calver("anything", "YYYY.0M.0D", OCT_19) == "2026.10.20"


class TestBumpVersion:
    def test_semver_defaults_to_patch(self) -> None:
        assert bump_version(Version(raw="1.2.3"), BumpMode.SEMVER).raw == "1.2.4"

    def test_calver(self) -> None:
        bumped = bump_version(
            Version(raw="2026.10.1", kind=VersionKind.CALVER),
            BumpMode.CALVER,
            today=OCT_19,
        )
        assert bumped.raw == "2026.10.2"
        assert bumped.kind == VersionKind.CALVER

    def test_calver_custom_format(self) -> None:
        bumped = bump_version(
            Version(raw="26.10.4", kind=VersionKind.CALVER),
            BumpMode.CALVER,
            calver_format="YY.0M.MICRO",
            today=OCT_19,
        )
        assert bumped.raw == "26.10.5"

    def test_tinyinc_keeps_kind(self) -> None:
        bumped = bump_version(Version(raw="r41", kind=VersionKind.RAW), BumpMode.TINYINC)
        assert bumped.raw == "r42"
        assert bumped.kind == VersionKind.RAW


class TestSatisfies:
    def test_semver(self) -> None:
        assert satisfies(Version(raw="1.2.3"), VersionReq(raw="^1.0")) is True
        assert satisfies(Version(raw="2.0.0"), VersionReq(raw="^1.0")) is False

    def test_unparseable_is_none(self) -> None:
        assert satisfies(Version(raw="1.2.3"), VersionReq(raw="==1.2.3")) is None
        assert satisfies(Version(raw="1.2"), VersionReq(raw="^1.0")) is None
