"""Exception hierarchy for lockstep.

Everything the engine raises on purpose derives from LockstepError, so the CLI
can turn any of them into a clean ``ERROR:`` line instead of a traceback.
Soft failures (unresolvable dependency names, cycles found while reporting)
are returned as data and never raised.
"""

from __future__ import annotations

from pathlib import Path


class LockstepError(RuntimeError):
    """Base class for all lockstep errors."""


class ConfigError(LockstepError):
    """The workspace configuration is missing, malformed or inconsistent."""


class DuplicatePackageError(ConfigError):
    """Two repos resolve to the same effective package name."""

    def __init__(self, package: str, first: str, second: str) -> None:
        super().__init__(
            f"package name '{package}' is declared by both '{first}' and '{second}'"
        )
        self.package = package
        self.repos = (first, second)


class ManifestError(LockstepError):
    """A manifest could not be read or parsed."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path


class CycleError(LockstepError):
    """An ordering was requested over a graph that contains a cycle."""

    def __init__(self, remaining: list[str]) -> None:
        super().__init__(
            f"Dependency cycle detected involving: {', '.join(remaining)}"
        )
        self.remaining = remaining


class UnknownRepoError(LockstepError):
    """A repo id was requested that the workspace does not define."""


class VersionError(LockstepError):
    """Version arithmetic failed."""


class InvalidSemver(VersionError):
    def __init__(self, raw: str) -> None:
        super().__init__(f"invalid semver version '{raw}'")
        self.raw = raw


class InvalidPrerelease(VersionError):
    def __init__(self, tag: str) -> None:
        super().__init__(f"invalid prerelease tag '{tag}'")
        self.tag = tag


class NoNumericSegment(VersionError):
    def __init__(self, raw: str) -> None:
        super().__init__(f"missing numeric segment to bump in '{raw}'")
        self.raw = raw


class BumpPlanError(LockstepError):
    """Computing a bump plan failed; nothing has been written."""

    def __init__(self, repo: str, reason: str | Exception) -> None:
        super().__init__(f"{repo}: {reason}")
        self.repo = repo
        self.cause = reason if isinstance(reason, Exception) else None
