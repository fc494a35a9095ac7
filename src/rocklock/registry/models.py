"""Data models exchanged with the package index."""

from __future__ import annotations

import platform
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Tuple

from ..constants import NativeBuildTypes
from ..errors import ConstraintSyntaxError
from ..versioning.constraint import Constraint, parse_dependency_string
from ..versioning.version import Version

# Dependencies on the interpreter itself are handled by the runtime manager.
RUNTIME_PACKAGES = frozenset({"lua"})


def is_runtime_dependency(name: str) -> bool:
    return name.lower() in RUNTIME_PACKAGES


@dataclass(frozen=True)
class BinaryArtifact:
    """A pre-built archive for one target triple."""
    url: str
    checksum: str


@dataclass(frozen=True)
class VersionMetadata:
    """One published version of a package as reported by the index.

    ``dependencies`` holds raw rockspec strings (``"luasocket >= 3.0"``); they
    are parsed on demand so a malformed constraint only fails resolution when
    the owning version is actually selected.

    ``revision`` is the rockspec revision of the published spelling
    (``1.13.1-2`` has revision 2); it only orders records of one version.
    """

    name: str
    version: Version
    dependencies: Tuple[str, ...] = ()
    checksum: Optional[str] = None
    source_url: Optional[str] = None
    binary_urls: Dict[str, BinaryArtifact] = field(default_factory=dict, compare=False, hash=False)
    build_type: Optional[str] = None
    revision: int = 0

    def parsed_dependencies(self) -> List[Tuple[str, Constraint]]:
        """Return (name, constraint) edges, runtime dependencies excluded.

        Raises:
            ConstraintSyntaxError: attributed to the dependency's package name.
        """
        edges: List[Tuple[str, Constraint]] = []
        for dep in self.dependencies:
            try:
                dep_name, constraint = parse_dependency_string(dep)
            except ConstraintSyntaxError as exc:
                if exc.package:
                    raise
                raise exc.for_package(self.name) from exc
            if is_runtime_dependency(dep_name):
                continue
            edges.append((dep_name, constraint))
        return edges

    @property
    def is_native(self) -> bool:
        if not self.build_type:
            return False
        return self.build_type.lower() in {t.value for t in NativeBuildTypes}


class IndexClient(Protocol):
    """Interface the resolver consumes. Implementations must be idempotent."""

    def get_versions(self, name: str) -> List[VersionMetadata]:
        ...


_ARCH_ALIASES = {"amd64": "x86_64", "x64": "x86_64", "arm64": "aarch64"}


def default_target() -> str:
    """Target triple of the running interpreter, e.g. ``x86_64-unknown-linux-gnu``."""
    machine = platform.machine().lower()
    machine = _ARCH_ALIASES.get(machine, machine) or "x86_64"
    system = platform.system().lower()
    if system == "darwin":
        return f"{machine}-apple-darwin"
    if system == "windows":
        return f"{machine}-pc-windows-msvc"
    return f"{machine}-unknown-linux-gnu"
