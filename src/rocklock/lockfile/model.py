"""Lockfile model and its YAML serialization.

On-disk layout (``package.lock``)::

    lockfile_version: 1
    packages:
      luasocket:
        version: 3.1.0
        checksum: sha256:...
        source: https://...
        build_type: builtin
        dependencies:
          lua-cjson: 2.1.0

Packages and dependency edges are written sorted by name so equal lockfiles
serialize to identical bytes.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

import yaml

from ..constants import Constants
from ..errors import LockfileCorruptError, LockfileError, ParseError
from ..fetch.checksum import parse_checksum
from ..versioning.version import Version, parse_version


@dataclass(frozen=True)
class LockEntry:
    """One package's resolved version, checksum and dependency edges.

    ``checksum`` is None only while the entry is waiting to be fetched.
    """

    name: str
    version: Version
    checksum: Optional[str]
    dependencies: Tuple[Tuple[str, Version], ...] = ()
    source_url: Optional[str] = None
    build_type: Optional[str] = None

    @property
    def pending(self) -> bool:
        return self.checksum is None

    def edge_signature(self) -> Tuple[Tuple[str, str], ...]:
        return tuple((name, str(version)) for name, version in self.dependencies)

    def matches(self, other: "LockEntry") -> bool:
        """True when name, exact version text and dependency edges are identical."""
        return (
            self.name == other.name
            and str(self.version) == str(other.version)
            and self.edge_signature() == other.edge_signature()
        )

    def with_checksum(self, checksum: str) -> "LockEntry":
        return replace(self, checksum=checksum)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"version": str(self.version), "checksum": self.checksum}
        if self.source_url:
            data["source"] = self.source_url
        if self.build_type:
            data["build_type"] = self.build_type
        if self.dependencies:
            data["dependencies"] = {name: str(version) for name, version in self.dependencies}
        return data

    @classmethod
    def from_dict(cls, name: str, data: Mapping[str, Any]) -> "LockEntry":
        if not isinstance(data, Mapping):
            raise ValueError(f"entry '{name}' must be a mapping")
        if "version" not in data:
            raise ValueError(f"entry '{name}' has no version")
        deps = data.get("dependencies") or {}
        if not isinstance(deps, Mapping):
            raise ValueError(f"entry '{name}': dependencies must be a mapping")
        checksum = data.get("checksum")
        if not isinstance(checksum, str):
            raise ValueError(f"entry '{name}' has no checksum")
        parse_checksum(checksum)
        return cls(
            name=name,
            version=parse_version(str(data["version"])),
            checksum=checksum,
            dependencies=tuple(
                sorted((str(dep), parse_version(str(ver))) for dep, ver in deps.items())
            ),
            source_url=data.get("source"),
            build_type=data.get("build_type"),
        )


@dataclass
class Lockfile:
    """Ordered mapping name -> :class:`LockEntry` plus a schema version."""

    entries: Dict[str, LockEntry] = field(default_factory=dict)
    lockfile_version: int = Constants.LOCKFILE_SCHEMA_VERSION

    def __post_init__(self) -> None:
        self.entries = {name: self.entries[name] for name in sorted(self.entries)}

    def __contains__(self, name: str) -> bool:
        return name in self.entries

    def __iter__(self) -> Iterator[LockEntry]:
        return iter(self.entries.values())

    def __len__(self) -> int:
        return len(self.entries)

    def get(self, name: str) -> Optional[LockEntry]:
        return self.entries.get(name)

    def names(self) -> List[str]:
        return list(self.entries)

    def pending(self) -> List[LockEntry]:
        return [entry for entry in self.entries.values() if entry.pending]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lockfile_version": self.lockfile_version,
            "packages": {name: entry.to_dict() for name, entry in self.entries.items()},
        }

    def dumps(self) -> str:
        """Serialize to YAML text. Refuses entries still waiting for a checksum."""
        pending = self.pending()
        if pending:
            names = ", ".join(entry.name for entry in pending)
            raise LockfileError(f"cannot serialize lockfile with unverified entries: {names}")
        return yaml.safe_dump(self.to_dict(), sort_keys=False, default_flow_style=False)

    @classmethod
    def loads(cls, text: str, path: str = "<memory>") -> "Lockfile":
        """Parse YAML text; any structural problem is a :class:`LockfileCorruptError`."""
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise LockfileCorruptError(path, f"invalid YAML: {exc}") from exc
        if not isinstance(data, Mapping):
            raise LockfileCorruptError(path, "top level is not a mapping")

        schema = data.get("lockfile_version")
        if schema != Constants.LOCKFILE_SCHEMA_VERSION:
            raise LockfileCorruptError(path, f"unsupported lockfile_version {schema!r}")

        packages = data.get("packages") or {}
        if not isinstance(packages, Mapping):
            raise LockfileCorruptError(path, "'packages' is not a mapping")
        entries: Dict[str, LockEntry] = {}
        for name, raw in packages.items():
            try:
                entries[str(name)] = LockEntry.from_dict(str(name), raw)
            except (ValueError, ParseError) as exc:
                raise LockfileCorruptError(path, str(exc)) from exc
        return cls(entries=entries, lockfile_version=schema)
