"""Semantic version model with LuaRocks-style normalization.

Ordering and equality are delegated to :class:`semantic_version.Version`;
this module adds the LuaRocks spellings (``3.0-1``, ``2.1``) and keeps build
metadata out of precedence.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from functools import cached_property
from typing import Tuple

import semantic_version

from ..errors import VersionParseError

# "3.0-1", "1.13.1-2", "2.1", "5": LuaRocks version plus optional rockspec revision
_LUAROCKS_RE = re.compile(r"^(\d+)(?:\.(\d+))?(?:\.(\d+))?(?:\.\d+)*(?:-(\d+))?$")


class Ordering(Enum):
    """Result of :meth:`Version.compare`."""
    LESS = -1
    EQUAL = 0
    GREATER = 1


@dataclass(frozen=True, eq=False)
class Version:
    """Immutable semantic version.

    Build metadata takes no part in ordering, equality or hashing but is kept
    so that ``str(version)`` reproduces it.
    """

    major: int
    minor: int
    patch: int
    prerelease: Tuple[str, ...] = ()
    build: Tuple[str, ...] = field(default=())

    @cached_property
    def semver(self) -> semantic_version.Version:
        """The precedence-bearing part as a :class:`semantic_version.Version`."""
        return semantic_version.Version(
            major=self.major,
            minor=self.minor,
            patch=self.patch,
            prerelease=self.prerelease,
            build=(),
        )

    @property
    def is_prerelease(self) -> bool:
        return bool(self.prerelease)

    def compare(self, other: "Version") -> Ordering:
        """Three-way comparison by SemVer precedence."""
        if self.semver < other.semver:
            return Ordering.LESS
        if self.semver > other.semver:
            return Ordering.GREATER
        return Ordering.EQUAL

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.semver == other.semver

    def __hash__(self) -> int:
        return hash(self.semver)

    def __lt__(self, other: "Version") -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.semver < other.semver

    def __le__(self, other: "Version") -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.semver <= other.semver

    def __gt__(self, other: "Version") -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.semver > other.semver

    def __ge__(self, other: "Version") -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.semver >= other.semver

    def __str__(self) -> str:
        text = str(self.semver)
        if self.build:
            text += "+" + ".".join(self.build)
        return text

    def __repr__(self) -> str:
        return f"Version('{self}')"

    def bump_major(self) -> "Version":
        return Version(self.major + 1, 0, 0)

    def bump_minor(self) -> "Version":
        return Version(self.major, self.minor + 1, 0)


def _from_semver(sv: semantic_version.Version) -> Version:
    return Version(sv.major, sv.minor, sv.patch, tuple(sv.prerelease or ()), tuple(sv.build or ()))


def luarocks_revision(text: str) -> int:
    """Rockspec revision left out of :func:`parse_version` (``1.13.1-2`` -> 2), else 0.

    A two-part spelling (``3.0-1``) has its revision folded into the patch
    number, so it reports 0.
    """
    match = _LUAROCKS_RE.match(text.strip()) if isinstance(text, str) else None
    if not match or match.group(3) is None or match.group(4) is None:
        return 0
    return int(match.group(4))


def parse_version(text: str) -> Version:
    """Parse a SemVer string, falling back to LuaRocks notation.

    Missing components default to zero. A rockspec revision on a two-part
    version becomes the patch number (``3.0-1`` is ``3.0.1``); on a three-part
    version it is not part of the version at all (``1.13.1-1`` is ``1.13.1``,
    see :func:`luarocks_revision`).
    """
    if not isinstance(text, str):
        raise VersionParseError(repr(text), "version must be a string")
    raw = text.strip()
    if not raw:
        raise VersionParseError(text, "empty version")

    # A purely numeric "-N" suffix is a rockspec revision, not a pre-release.
    match = _LUAROCKS_RE.match(raw)
    if match:
        major, minor, patch, revision = match.group(1, 2, 3, 4)
        if patch is None:
            patch = revision
        raw = f"{int(major)}.{int(minor or 0)}.{int(patch or 0)}"

    try:
        sv = semantic_version.Version(raw)
    except ValueError as exc:
        raise VersionParseError(text) from exc
    return _from_semver(sv)


def try_parse_version(text: str):
    """Return a :class:`Version` or None when ``text`` does not parse."""
    try:
        return parse_version(text)
    except VersionParseError:
        return None
