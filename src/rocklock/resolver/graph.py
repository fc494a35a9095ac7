"""Resolved dependency graph.

Nodes are owned by a name-keyed mapping and edges refer to other nodes by
name only, so cyclic dependencies need no mutual references.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Optional, Set, Tuple

from ..registry.models import VersionMetadata
from ..versioning.constraint import Constraint
from ..versioning.version import Version


@dataclass(frozen=True, order=True)
class PackageRef:
    """A package pinned to one version."""
    name: str
    version: Version

    def __str__(self) -> str:
        return f"{self.name}@{self.version}"


@dataclass(frozen=True)
class DependencyNode:
    """A resolved package and its outgoing (name, constraint) edges."""

    ref: PackageRef
    dependencies: Tuple[Tuple[str, Constraint], ...]
    metadata: VersionMetadata

    @property
    def name(self) -> str:
        return self.ref.name

    @property
    def version(self) -> Version:
        return self.ref.version

    def dependency_names(self) -> List[str]:
        return [name for name, _ in self.dependencies]


class ResolvedGraph:
    """Immutable result of a successful resolution."""

    def __init__(self, nodes: Mapping[str, DependencyNode],
                 root_requirements: Tuple[Tuple[str, Constraint], ...] = ()):
        self._nodes: Mapping[str, DependencyNode] = MappingProxyType(
            {name: nodes[name] for name in sorted(nodes)}
        )
        self.root_requirements = tuple(root_requirements)

    @property
    def nodes(self) -> Mapping[str, DependencyNode]:
        return self._nodes

    def __contains__(self, name: str) -> bool:
        return name in self._nodes

    def __iter__(self) -> Iterator[DependencyNode]:
        return iter(self._nodes.values())

    def __len__(self) -> int:
        return len(self._nodes)

    def get(self, name: str) -> Optional[DependencyNode]:
        return self._nodes.get(name)

    def names(self) -> List[str]:
        return list(self._nodes)

    def refs(self) -> List[PackageRef]:
        return [node.ref for node in self._nodes.values()]

    def version_of(self, name: str) -> Optional[Version]:
        node = self._nodes.get(name)
        return node.version if node else None

    def resolved_edges(self, name: str) -> List[Tuple[str, Version]]:
        """(dependency name, resolved version) pairs of ``name``, sorted by name."""
        node = self._nodes[name]
        edges = {dep: self._nodes[dep].version for dep in node.dependency_names()}
        return sorted(edges.items())

    def requirers(self, name: str) -> List[str]:
        """Names of packages that depend directly on ``name``."""
        return sorted(
            node.name for node in self._nodes.values() if name in node.dependency_names()
        )

    def transitive_dependencies(self, name: str) -> Set[str]:
        """Every package reachable from ``name``, excluding itself unless cyclic."""
        seen: Set[str] = set()
        stack = list(self._nodes[name].dependency_names()) if name in self._nodes else []
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            node = self._nodes.get(current)
            if node:
                stack.extend(node.dependency_names())
        return seen

    def find_cycles(self) -> List[List[str]]:
        """Return each dependency cycle once, as a name path.

        Cycles are legal; this is informational only.
        """
        cycles: List[List[str]] = []
        visited: Set[str] = set()
        on_stack: Set[str] = set()
        path: List[str] = []

        def visit(name: str) -> None:
            visited.add(name)
            on_stack.add(name)
            path.append(name)
            for dep in self._nodes[name].dependency_names():
                if dep not in self._nodes:
                    continue
                if dep not in visited:
                    visit(dep)
                elif dep in on_stack:
                    cycles.append(path[path.index(dep):] + [dep])
            on_stack.discard(name)
            path.pop()

        for name in self._nodes:
            if name not in visited:
                visit(name)
        return cycles

    def topological_order(self) -> List[str]:
        """Dependencies before dependents; cycles are broken by name order."""
        order: List[str] = []
        state: Dict[str, int] = {}

        def visit(name: str) -> None:
            if state.get(name):
                return
            state[name] = 1
            for dep in sorted(self._nodes[name].dependency_names()):
                if dep in self._nodes:
                    visit(dep)
            state[name] = 2
            order.append(name)

        for name in self._nodes:
            visit(name)
        return order
