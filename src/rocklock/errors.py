"""Exception hierarchy shared across resolution, locking and fetching."""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple


class RocklockError(Exception):
    """Base class for all rocklock failures."""


class ConfigError(RocklockError):
    """Invalid configuration value or unreadable configuration file."""


class ManifestError(RocklockError):
    """The project manifest is missing or malformed."""


class ParseError(RocklockError, ValueError):
    """Text could not be parsed into a version or constraint."""


class VersionParseError(ParseError):
    """A version string is not a valid semantic or LuaRocks version."""

    def __init__(self, text: str, reason: str = "invalid version"):
        self.text = text
        self.reason = reason
        super().__init__(f"{reason}: {text!r}")


class ConstraintSyntaxError(ParseError):
    """A constraint expression is malformed.

    ``token`` is the offending fragment and ``package`` the owning package
    when the caller knows it.
    """

    def __init__(self, expression: str, token: str, package: Optional[str] = None):
        self.expression = expression
        self.token = token
        self.package = package
        where = f" for package '{package}'" if package else ""
        super().__init__(
            f"invalid constraint{where}: {expression!r} (offending token {token!r})"
        )

    def for_package(self, package: str) -> "ConstraintSyntaxError":
        """Return a copy of this error attributed to ``package``."""
        return ConstraintSyntaxError(self.expression, self.token, package)


class ResolutionError(RocklockError):
    """Dependency resolution could not produce a consistent graph."""


class PackageNotFoundError(ResolutionError):
    """The index has no versions for a required package."""

    def __init__(self, package: str, requirers: Sequence[str] = ()):
        self.package = package
        self.requirers = list(requirers)
        by = f" (required by {', '.join(self.requirers)})" if self.requirers else ""
        super().__init__(f"package '{package}' not found in index{by}")


class VersionConflictError(ResolutionError):
    """No version of a package satisfies every accumulated constraint."""

    def __init__(self, package: str, requirements: Sequence[Tuple[str, str]], detail: str = ""):
        self.package = package
        self.requirements: List[Tuple[str, str]] = list(requirements)
        pairs = ", ".join(f"{req} requires {cons}" for req, cons in self.requirements)
        msg = f"version conflict for '{package}': {pairs or 'no requirers recorded'}"
        if detail:
            msg = f"{msg} ({detail})"
        super().__init__(msg)


class FetchError(RocklockError):
    """Archive download failed; the whole batch is aborted."""

    def __init__(self, message: str, package: Optional[str] = None):
        self.package = package
        super().__init__(message)


class ChecksumMismatchError(FetchError):
    """Downloaded bytes do not match the declared checksum."""

    def __init__(self, package: str, version: str, expected: str, actual: str):
        self.version = version
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"checksum mismatch for '{package}' {version}: expected {expected}, got {actual}",
            package=package,
        )


class TransientFetchError(FetchError):
    """Network-level failure; raised once retries are exhausted."""

    def __init__(self, package: str, url: str, attempts: int, reason: str):
        self.url = url
        self.attempts = attempts
        self.reason = reason
        super().__init__(
            f"failed to download '{package}' from {url} after {attempts} attempt(s): {reason}",
            package=package,
        )


class LockfileError(RocklockError):
    """The lockfile could not be built, read or written."""


class LockfileCorruptError(LockfileError):
    """The on-disk lockfile failed to parse."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"lockfile {path} is corrupt: {reason}")


class LockfileBusyError(LockfileError):
    """Another process holds the lockfile write lock."""

    def __init__(self, lock_path: str):
        self.lock_path = lock_path
        super().__init__(
            f"another rocklock process is updating the lockfile (lock held at {lock_path})"
        )
