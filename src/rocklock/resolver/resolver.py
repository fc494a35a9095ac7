"""Dependency graph resolver.

Breadth-first worklist over package names. Every requirer contributes one
constraint per dependency; a package is assigned the highest version that
satisfies the conjunction of all of them. When a constraint discovered later
rules out an earlier selection, the package is re-selected and the edges its
old version contributed are withdrawn.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Deque, Dict, List, Mapping, Optional, Set, Tuple

from ..common.logging_utils import Timer, extra_context, is_debug_enabled
from ..constants import Constants
from ..errors import ConstraintSyntaxError, PackageNotFoundError, VersionConflictError
from ..manifest import Manifest
from ..registry.models import IndexClient, VersionMetadata, is_runtime_dependency
from ..versioning.constraint import Constraint, conjunction, parse_constraint
from ..versioning.version import Version
from .graph import DependencyNode, PackageRef, ResolvedGraph

logger = logging.getLogger(__name__)


class DependencyResolver:
    """Resolve a manifest against an index.

    One instance serves one resolution: candidate lists fetched from the
    index are memoised for its lifetime, so every lookup of a name during a
    run sees the same snapshot.
    """

    def __init__(self, index: IndexClient, max_reselections: int = Constants.RESOLVER_MAX_RESELECTIONS,
                 preferred: Optional[Mapping[str, Version]] = None):
        self.index = index
        self.max_reselections = max_reselections
        # Locked versions kept whenever they still satisfy every requirer.
        self.preferred: Dict[str, Version] = dict(preferred or {})
        self._candidates: Dict[str, List[VersionMetadata]] = {}
        # name -> {requirer -> constraint}
        self._requirements: Dict[str, Dict[str, Constraint]] = {}
        self._selected: Dict[str, VersionMetadata] = {}
        self._edges: Dict[str, List[Tuple[str, Constraint]]] = {}
        self._reselections: Dict[str, int] = {}
        self._queue: Deque[str] = deque()
        self._queued: Set[str] = set()

    def resolve(self, manifest: Manifest, include_dev: bool = False) -> ResolvedGraph:
        """Build a :class:`ResolvedGraph` or raise a :class:`ResolutionError`."""
        roots: List[Tuple[str, Constraint]] = []
        with Timer() as t:
            for requirer, name, text in manifest.requirements(include_dev=include_dev):
                if is_runtime_dependency(name):
                    continue
                constraint = parse_constraint(text, package=name)
                roots.append((name, constraint))
                self._add_requirement(name, requirer, constraint)

            while self._queue:
                name = self._queue.popleft()
                self._queued.discard(name)
                self._evaluate(name)

            graph = self._build_graph(roots)

        logger.info("Resolved %d package(s) in %d ms", len(graph), t.duration_ms())
        cycles = graph.find_cycles()
        if cycles and is_debug_enabled(logger):
            for cycle in cycles:
                logger.debug("Dependency cycle: %s", " -> ".join(cycle))
        return graph

    def _enqueue(self, name: str) -> None:
        if name not in self._queued:
            self._queued.add(name)
            self._queue.append(name)

    def _add_requirement(self, name: str, requirer: str, constraint: Constraint) -> None:
        per_name = self._requirements.setdefault(name, {})
        existing = per_name.get(requirer)
        per_name[requirer] = constraint if existing is None else conjunction((existing, constraint))
        self._enqueue(name)

    def _withdraw(self, name: str) -> None:
        """Remove the edges contributed by the currently selected version of ``name``."""
        for dep, _ in self._edges.pop(name, []):
            per_name = self._requirements.get(dep)
            if per_name is not None:
                per_name.pop(name, None)
            self._enqueue(dep)

    def _candidates_for(self, name: str) -> List[VersionMetadata]:
        if name not in self._candidates:
            versions = self.index.get_versions(name)
            self._candidates[name] = sorted(versions, key=lambda m: m.version, reverse=True)
        return self._candidates[name]

    def _evaluate(self, name: str) -> None:
        requirements = self._requirements.get(name) or {}
        current = self._selected.get(name)

        if not requirements:
            if current is not None:
                logger.debug("Dropping %s: no remaining requirers", name)
                self._withdraw(name)
                del self._selected[name]
            return

        if current is not None and all(c.satisfied_by(current.version) for c in requirements.values()):
            return

        choice = self._select(name, requirements)

        if current is not None:
            count = self._reselections.get(name, 0) + 1
            self._reselections[name] = count
            if count > self.max_reselections:
                raise VersionConflictError(
                    name,
                    self._describe(requirements),
                    detail=f"re-selected {count} times without converging",
                )
            logger.debug("Re-selecting %s: %s -> %s", name, current.version, choice.version)
            self._withdraw(name)

        self._selected[name] = choice
        try:
            edges = choice.parsed_dependencies()
        except ConstraintSyntaxError as exc:
            logger.error("Malformed dependency in %s %s: %s", name, choice.version, exc)
            raise
        self._edges[name] = edges
        for dep, constraint in edges:
            self._add_requirement(dep, name, constraint)

        if is_debug_enabled(logger):
            logger.debug(
                "Selected %s %s",
                name,
                choice.version,
                extra=extra_context(
                    event="select",
                    component="resolver",
                    package=name,
                    version=str(choice.version),
                    requirers=len(requirements),
                ),
            )

    def _select(self, name: str, requirements: Dict[str, Constraint]) -> VersionMetadata:
        candidates = self._candidates_for(name)
        if not candidates:
            raise PackageNotFoundError(name, sorted(requirements))

        preferred = self.preferred.get(name)
        if preferred is not None:
            for meta in candidates:
                if meta.version == preferred and all(
                    c.satisfied_by(meta.version) for c in requirements.values()
                ):
                    return meta

        allow_prerelease = any(c.mentions_prerelease for c in requirements.values())
        for meta in candidates:
            if meta.version.is_prerelease and not allow_prerelease:
                continue
            if all(c.satisfied_by(meta.version) for c in requirements.values()):
                return meta

        raise VersionConflictError(name, self._describe(requirements))

    @staticmethod
    def _describe(requirements: Dict[str, Constraint]) -> List[Tuple[str, str]]:
        return [(requirer, str(constraint)) for requirer, constraint in sorted(requirements.items())]

    def _build_graph(self, roots: List[Tuple[str, Constraint]]) -> ResolvedGraph:
        # Keep only what is still reachable from the manifest.
        reachable: Set[str] = set()
        stack = [name for name, _ in roots]
        while stack:
            name = stack.pop()
            if name in reachable or name not in self._selected:
                continue
            reachable.add(name)
            stack.extend(dep for dep, _ in self._edges.get(name, []))

        nodes: Dict[str, DependencyNode] = {}
        for name in reachable:
            meta = self._selected[name]
            nodes[name] = DependencyNode(
                ref=PackageRef(name, meta.version),
                dependencies=tuple(self._edges.get(name, [])),
                metadata=meta,
            )
        return ResolvedGraph(nodes, tuple(roots))


def resolve(manifest: Manifest, index: IndexClient, include_dev: bool = False,
            max_reselections: Optional[int] = None,
            preferred: Optional[Mapping[str, Version]] = None) -> ResolvedGraph:
    """Resolve ``manifest`` against ``index``; see :class:`DependencyResolver`."""
    resolver = DependencyResolver(
        index,
        max_reselections=max_reselections if max_reselections is not None
        else Constants.RESOLVER_MAX_RESELECTIONS,
        preferred=preferred,
    )
    return resolver.resolve(manifest, include_dev=include_dev)
