"""Version values and bump arithmetic.

Three versioning schemes are supported:

- semver: parsed with the ``semver`` library, bumped structurally
- calver: date-templated strings (``YYYY.0M.MICRO``), bumped by template
- raw: opaque strings, only ever bumped by incrementing a digit run
"""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from enum import Enum

import semver
from pydantic import BaseModel, ConfigDict

from .errors import InvalidPrerelease, InvalidSemver, NoNumericSegment
from .ranges import SemverRange

DEFAULT_CALVER_FORMAT = "YYYY.0M.MICRO"

_MICRO = "\x00MICRO\x00"
_DIGITS_RE = re.compile(r"[0-9]+")


class _LowercaseEnum(str, Enum):
    """Enum whose values can be looked up case-insensitively."""

    @classmethod
    def _missing_(cls, value: object):
        if isinstance(value, str):
            lowered = value.lower()
            for member in cls:
                if member.value == lowered:
                    return member
        return None


class VersionKind(_LowercaseEnum):
    SEMVER = "semver"
    CALVER = "calver"
    RAW = "raw"

    @classmethod
    def _missing_(cls, value: object):
        if isinstance(value, str) and value.lower() == "none":
            return cls.RAW
        return super()._missing_(value)


class BumpMode(_LowercaseEnum):
    SEMVER = "semver"
    CALVER = "calver"
    TINYINC = "tinyinc"


class BumpLevel(_LowercaseEnum):
    MAJOR = "major"
    MINOR = "minor"
    PATCH = "patch"


class Version(BaseModel):
    """A declared version.

    Attributes:
        raw: The version string exactly as written in the manifest.
        kind: Which versioning scheme the string follows.
    """

    model_config = ConfigDict(frozen=True)

    raw: str
    kind: VersionKind = VersionKind.SEMVER

    @property
    def semver(self) -> semver.Version | None:
        """Parsed form; only present for semver-kind, valid strings."""
        if self.kind != VersionKind.SEMVER:
            return None
        try:
            return semver.Version.parse(self.raw)
        except ValueError:
            return None

    def __str__(self) -> str:
        return self.raw


class VersionReq(BaseModel):
    """A declared dependency constraint.

    Attributes:
        raw: The constraint string exactly as written in the manifest.
    """

    model_config = ConfigDict(frozen=True)

    raw: str

    @property
    def semver(self) -> SemverRange | None:
        """Parsed range, or None for non-semver constraints (git refs, PEP 440 pins)."""
        try:
            return SemverRange.parse(self.raw)
        except ValueError:
            return None

    def __str__(self) -> str:
        return self.raw


def bump_version(
    current: Version,
    mode: BumpMode,
    level: BumpLevel | None = None,
    calver_format: str | None = None,
    pre: str | None = None,
    today: date | None = None,
) -> Version:
    """Compute the next version of ``current`` under ``mode``.

    Raises:
        VersionError: If the arithmetic is impossible for this value.
    """
    if mode == BumpMode.SEMVER:
        return bump_semver(current, level or BumpLevel.PATCH, pre)
    if mode == BumpMode.CALVER:
        raw = bump_calver(current.raw, calver_format or DEFAULT_CALVER_FORMAT, today)
        return Version(raw=raw, kind=VersionKind.CALVER)
    return Version(raw=bump_rightmost_numeric(current.raw), kind=current.kind)


def bump_semver(current: Version, level: BumpLevel, pre: str | None = None) -> Version:
    """Increment one semver component and zero the ones below it.

    Existing prerelease/build metadata is always dropped; ``pre`` is applied
    verbatim afterwards.

    Examples:
        1.2.3, patch → 1.2.4
        1.2.3, minor → 1.3.0
        1.2.3-rc.1+b5, major → 2.0.0
        1.2.3, patch, pre="rc.1" → 1.2.4-rc.1
    """
    if current.kind == VersionKind.RAW:
        raise InvalidSemver(current.raw)
    try:
        version = semver.Version.parse(current.raw)
    except ValueError as exc:
        raise InvalidSemver(current.raw) from exc

    if level == BumpLevel.MAJOR:
        version = version.replace(major=version.major + 1, minor=0, patch=0)
    elif level == BumpLevel.MINOR:
        version = version.replace(minor=version.minor + 1, patch=0)
    else:
        version = version.replace(patch=version.patch + 1)
    version = version.replace(prerelease=None, build=None)

    if pre is not None:
        try:
            version = semver.Version.parse(f"{version}-{pre}")
        except ValueError as exc:
            raise InvalidPrerelease(pre) from exc

    return Version(raw=str(version), kind=VersionKind.SEMVER)


def bump_rightmost_numeric(raw: str) -> str:
    """Increment the rightmost run of ASCII digits in ``raw``.

    Zero padding is preserved when the run had a leading zero.

    Examples:
        "2026.02.009" → "2026.02.010"
        "build-7" → "build-8"
        "v1.9" → "v1.10"

    Raises:
        NoNumericSegment: If ``raw`` contains no digits.
    """
    runs = list(_DIGITS_RE.finditer(raw))
    if not runs:
        raise NoNumericSegment(raw)
    run = runs[-1]
    return raw[: run.start()] + _increment(run.group()) + raw[run.end() :]


def bump_calver(current_raw: str, fmt: str, today: date | None = None) -> str:
    """Render ``fmt`` for today's date and advance its MICRO counter.

    If ``current_raw`` was produced in the same calendar period (the literal
    text around MICRO matches), the counter increments; otherwise it restarts
    at 1.

    Examples (in October 2026):
        "2026.10.3", "YYYY.0M.MICRO" → "2026.10.4"
        "2026.09.7", "YYYY.0M.MICRO" → "2026.10.1"
    """
    template = render_calver(fmt, today or datetime.now(timezone.utc).date())
    if _MICRO not in template:
        return bump_rightmost_numeric(template)

    prefix, suffix = template.split(_MICRO, 1)
    previous: str | None = None
    if (
        len(current_raw) >= len(prefix) + len(suffix)
        and current_raw.startswith(prefix)
        and current_raw.endswith(suffix)
    ):
        middle = current_raw[len(prefix) : len(current_raw) - len(suffix)]
        if middle and middle.isascii() and middle.isdigit():
            previous = middle

    counter = _increment(previous) if previous is not None else "1"
    return f"{prefix}{counter}{suffix}"


def render_calver(fmt: str, day: date) -> str:
    """Expand calendar tokens in ``fmt``; MICRO is left as a placeholder."""
    out: list[str] = []
    i = 0
    while i < len(fmt):
        rest = fmt[i:]
        if rest.startswith("YYYY"):
            out.append(f"{day.year:04d}")
            i += 4
        elif rest.startswith("YY"):
            out.append(f"{day.year % 100:02d}")
            i += 2
        elif rest.startswith(("0M", "MM")):
            out.append(f"{day.month:02d}")
            i += 2
        elif rest.startswith(("0D", "DD")):
            out.append(f"{day.day:02d}")
            i += 2
        elif rest.startswith("MICRO"):
            out.append(_MICRO)
            i += 5
        else:
            out.append(fmt[i])
            i += 1
    return "".join(out)


def satisfies(version: Version, req: VersionReq) -> bool | None:
    """Whether ``version`` satisfies ``req``, or None if either is not semver."""
    parsed_version = version.semver
    parsed_req = req.semver
    if parsed_version is None or parsed_req is None:
        return None
    return parsed_req.matches(parsed_version)


def _increment(digits: str) -> str:
    value = int(digits) + 1
    if len(digits) > 1 and digits.startswith("0"):
        return str(value).zfill(len(digits))
    return str(value)
