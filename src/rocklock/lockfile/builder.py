"""Incremental lockfile builder.

An entry from the previous lockfile is carried over only when the package's
name, exact version and resolved dependency edges are all unchanged; every
other package is scheduled for download so its checksum is computed from
bytes verified in this run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, List, Mapping, Optional, Set

from ..errors import LockfileError
from ..resolver.graph import PackageRef, ResolvedGraph
from .model import LockEntry, Lockfile

logger = logging.getLogger(__name__)


@dataclass
class LockPlan:
    """Outcome of :func:`build_lock`.

    ``lock`` holds every resolved package; entries in ``to_fetch`` are still
    pending (no checksum) until :meth:`finalize` is given verified checksums.
    """

    lock: Lockfile
    to_fetch: Set[PackageRef] = field(default_factory=set)
    reused: List[str] = field(default_factory=list)

    @property
    def needs_fetch(self) -> bool:
        return bool(self.to_fetch)

    def finalize(self, verified_checksums: Mapping[PackageRef, str],
                 source_urls: Optional[Mapping[PackageRef, str]] = None) -> Lockfile:
        """Return the completed lockfile.

        ``source_urls`` records where a fetched archive actually came from when
        that differs from the index's source URL (a pre-built binary).

        Raises:
            LockfileError: when a scheduled package has no verified checksum.
        """
        missing = sorted(str(ref) for ref in self.to_fetch if ref not in verified_checksums)
        if missing:
            raise LockfileError(f"no verified checksum for: {', '.join(missing)}")

        entries: Dict[str, LockEntry] = {}
        for name, entry in self.lock.entries.items():
            ref = PackageRef(name, entry.version)
            if ref in self.to_fetch:
                entry = entry.with_checksum(verified_checksums[ref])
                if source_urls and ref in source_urls:
                    entry = replace(entry, source_url=source_urls[ref])
            entries[name] = entry
        return Lockfile(entries=entries, lockfile_version=self.lock.lockfile_version)


def build_lock(graph: ResolvedGraph, existing: Optional[Lockfile] = None) -> LockPlan:
    """Diff ``graph`` against ``existing`` and plan the fetches needed."""
    entries: Dict[str, LockEntry] = {}
    to_fetch: Set[PackageRef] = set()
    reused: List[str] = []

    for node in graph:
        candidate = LockEntry(
            name=node.name,
            version=node.version,
            checksum=None,
            dependencies=tuple(graph.resolved_edges(node.name)),
            source_url=node.metadata.source_url,
            build_type=node.metadata.build_type,
        )
        previous = existing.get(node.name) if existing is not None else None
        if previous is not None and not previous.pending and previous.matches(candidate):
            # Source and build details follow the previous entry too: its
            # checksum was computed over the archive fetched from that source.
            entries[node.name] = previous
            reused.append(node.name)
            continue

        if previous is not None:
            logger.debug("Re-locking %s: %s -> %s", node.name, previous.version, node.version)
        entries[node.name] = candidate
        to_fetch.add(node.ref)

    logger.info("Lock plan: %d reused, %d to fetch", len(reused), len(to_fetch))
    return LockPlan(lock=Lockfile(entries=entries), to_fetch=to_fetch, reused=sorted(reused))
