"""Lockfile model, incremental builder and on-disk store."""

from .builder import LockPlan, build_lock
from .diff import ChangeKind, PackageChange, UpdateDiff, compute_diff
from .model import LockEntry, Lockfile
from .store import LockfileStore

__all__ = [
    "ChangeKind",
    "LockEntry",
    "LockPlan",
    "Lockfile",
    "LockfileStore",
    "PackageChange",
    "UpdateDiff",
    "build_lock",
    "compute_diff",
]
