"""Summaries of what an install or update changed in the lockfile."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from .model import Lockfile


class ChangeKind(Enum):
    ADDED = "added"
    UPDATED = "updated"
    REMOVED = "removed"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class PackageChange:
    name: str
    kind: ChangeKind
    old_version: Optional[str] = None
    new_version: Optional[str] = None

    def __str__(self) -> str:
        if self.kind is ChangeKind.ADDED:
            return f"+ {self.name} {self.new_version}"
        if self.kind is ChangeKind.REMOVED:
            return f"- {self.name} {self.old_version}"
        if self.kind is ChangeKind.UPDATED:
            return f"~ {self.name} {self.old_version} -> {self.new_version}"
        return f"  {self.name} {self.new_version}"


@dataclass
class UpdateDiff:
    changes: List[PackageChange] = field(default_factory=list)

    def _of(self, kind: ChangeKind) -> List[PackageChange]:
        return [c for c in self.changes if c.kind is kind]

    @property
    def added(self) -> List[PackageChange]:
        return self._of(ChangeKind.ADDED)

    @property
    def updated(self) -> List[PackageChange]:
        return self._of(ChangeKind.UPDATED)

    @property
    def removed(self) -> List[PackageChange]:
        return self._of(ChangeKind.REMOVED)

    @property
    def unchanged(self) -> List[PackageChange]:
        return self._of(ChangeKind.UNCHANGED)

    @property
    def has_changes(self) -> bool:
        return any(c.kind is not ChangeKind.UNCHANGED for c in self.changes)

    def summary(self) -> str:
        return (
            f"{len(self.added)} added, {len(self.updated)} updated, "
            f"{len(self.removed)} removed, {len(self.unchanged)} unchanged"
        )


def compute_diff(old: Optional[Lockfile], new: Lockfile) -> UpdateDiff:
    """Compare two lockfiles entry by entry, ordered by package name.

    An entry counts as updated when its version text or its checksum differs.
    """
    old_entries = old.entries if old is not None else {}
    changes: List[PackageChange] = []
    for name in sorted(set(old_entries) | set(new.entries)):
        before = old_entries.get(name)
        after = new.entries.get(name)
        if before is None:
            changes.append(PackageChange(name, ChangeKind.ADDED, new_version=str(after.version)))
        elif after is None:
            changes.append(PackageChange(name, ChangeKind.REMOVED, old_version=str(before.version)))
        elif str(before.version) != str(after.version) or before.checksum != after.checksum:
            changes.append(PackageChange(name, ChangeKind.UPDATED,
                                         str(before.version), str(after.version)))
        else:
            changes.append(PackageChange(name, ChangeKind.UNCHANGED,
                                         str(before.version), str(after.version)))
    return UpdateDiff(changes)
