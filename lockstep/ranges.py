"""Semver requirement parsing and matching.

Constraints follow Cargo's requirement grammar, which is what most of the
ecosystems lockstep manages use for their caret/tilde ranges:

- comma-separated comparators: ``>=1.2, <2``
- operators ``=``, ``>``, ``>=``, ``<``, ``<=``, ``~``, ``^``
- a bare version means caret: ``1.2.3`` == ``^1.2.3``
- partial versions (``1``, ``1.2``) and wildcards (``*``, ``1.*``, ``1.2.x``)

Anything outside that grammar (``==1.0``, ``v1.2.3``, git refs) is not a
semver range; callers treat such constraints as unparseable rather than
erroring.

Matching is delegated to ``semantic_version.SimpleSpec``. Each comparator is
rewritten into SimpleSpec's spelling first, and Cargo's prerelease rule is
applied on top: a prerelease only matches when some comparator names a
prerelease of the same major.minor.patch.
"""

from __future__ import annotations

import re
from enum import Enum

import semantic_version
import semver
from pydantic import BaseModel, ConfigDict

_NUM = r"0|[1-9]\d*"
_WILD = r"\*|x|X"
_IDENT = r"[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*"

_COMPARATOR_RE = re.compile(
    rf"""
    ^(?P<op>>=|<=|>|<|=|~|\^)?
    (?P<major>{_NUM}|{_WILD})
    (?:\.(?P<minor>{_NUM}|{_WILD})
      (?:\.(?P<patch>{_NUM}|{_WILD})
        (?:-(?P<pre>{_IDENT}))?
        (?:\+{_IDENT})?
      )?
    )?$
    """,
    re.VERBOSE,
)


class Op(str, Enum):
    EXACT = "="
    GREATER = ">"
    GREATER_EQ = ">="
    LESS = "<"
    LESS_EQ = "<="
    TILDE = "~"
    CARET = "^"
    WILDCARD = "*"


# SimpleSpec reads a bare version as ``==``, so wildcards are spelled that way
_SIMPLE_OPS = {
    Op.EXACT: "==",
    Op.WILDCARD: "==",
    Op.GREATER: ">",
    Op.GREATER_EQ: ">=",
    Op.LESS: "<",
    Op.LESS_EQ: "<=",
    Op.TILDE: "~",
    Op.CARET: "^",
}


class Comparator(BaseModel):
    """One ``op major[.minor[.patch[-pre]]]`` term of a requirement.

    ``minor``/``patch`` are None when the comparator leaves them open, and
    ``pre`` is the empty string when no prerelease is named. Build metadata
    is dropped; it never takes part in matching.
    """

    model_config = ConfigDict(frozen=True)

    op: Op
    major: int
    minor: int | None = None
    patch: int | None = None
    pre: str = ""

    def names_prerelease_of(self, version: semver.Version) -> bool:
        """Whether this comparator opts a prerelease of ``version`` in."""
        return (
            self.major == version.major
            and self.minor == version.minor
            and self.patch == version.patch
            and self.pre != ""
        )

    def to_simple(self) -> str:
        """Spell this comparator as a SimpleSpec block."""
        op = _SIMPLE_OPS[self.op]
        # Cargo: ^0 is <1.0.0 and ^0.0 is <0.1.0; SimpleSpec's ^ stops at the
        # next patch for both, while its ~ gives the Cargo bounds.
        if self.op == Op.CARET and self.patch is None and self.major == 0 and not self.minor:
            op = "~"
        text = str(self.major)
        if self.minor is not None:
            text += f".{self.minor}"
        if self.patch is not None:
            text += f".{self.patch}"
        if self.pre:
            text += f"-{self.pre}"
        return op + text


class SemverRange(BaseModel):
    """A parsed requirement: every comparator must match.

    An empty comparator tuple is the ``*`` requirement and matches any
    release version.
    """

    model_config = ConfigDict(frozen=True)

    comparators: tuple[Comparator, ...] = ()

    @classmethod
    def parse(cls, raw: str) -> SemverRange:
        """Parse a requirement string.

        Raises:
            ValueError: If ``raw`` is not valid requirement syntax.
        """
        text = raw.strip()
        if not text:
            raise ValueError("empty version requirement")
        if text in ("*", "x", "X"):
            return cls()
        comparators = []
        for part in text.split(","):
            part = "".join(part.split())
            if not part:
                raise ValueError(f"empty comparator in '{raw}'")
            comparators.append(_parse_comparator(part))
        parsed = cls(comparators=tuple(comparators))
        # SimpleSpec has the final say on what it can represent
        semantic_version.SimpleSpec(parsed.expression)
        return parsed

    @property
    def expression(self) -> str:
        """The requirement in SimpleSpec syntax."""
        if not self.comparators:
            return "*"
        return ",".join(c.to_simple() for c in self.comparators)

    @property
    def spec(self) -> semantic_version.SimpleSpec:
        return semantic_version.SimpleSpec(self.expression)

    def matches(self, version: semver.Version) -> bool:
        if not self.spec.match(semantic_version.Version(str(version))):
            return False
        if not version.prerelease:
            return True
        return any(c.names_prerelease_of(version) for c in self.comparators)

    @property
    def is_exact_pin(self) -> bool:
        """A single ``=`` comparator with major, minor and patch all given."""
        if len(self.comparators) != 1:
            return False
        comp = self.comparators[0]
        return comp.op == Op.EXACT and comp.minor is not None and comp.patch is not None

    @property
    def has_upper_bound(self) -> bool:
        return any(c.op in (Op.LESS, Op.LESS_EQ) for c in self.comparators)


def _parse_comparator(text: str) -> Comparator:
    match = _COMPARATOR_RE.match(text)
    if match is None:
        raise ValueError(f"invalid comparator '{text}'")

    op_text = match.group("op")
    parts = [match.group("major"), match.group("minor"), match.group("patch")]
    pre = match.group("pre") or ""

    # Once a wildcard appears every later position must be open too.
    numbers: list[int | None] = []
    wildcard = False
    for part in parts:
        if part is None or part in ("*", "x", "X"):
            if part is not None:
                wildcard = True
            numbers.append(None)
        else:
            if wildcard:
                raise ValueError(f"unexpected number after wildcard in '{text}'")
            numbers.append(int(part))

    if wildcard:
        if op_text not in (None, "="):
            raise ValueError(f"wildcard cannot be combined with '{op_text}'")
        if numbers[0] is None:
            raise ValueError(f"wildcard major version in '{text}'")
        op = Op.WILDCARD
    elif op_text is None:
        op = Op.CARET
    else:
        op = Op(op_text)

    major, minor, patch = numbers
    return Comparator(op=op, major=major, minor=minor, patch=patch, pre=pre)
