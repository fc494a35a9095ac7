"""Dependency graph resolution."""

from .graph import DependencyNode, PackageRef, ResolvedGraph
from .resolver import DependencyResolver, resolve

__all__ = ["DependencyNode", "DependencyResolver", "PackageRef", "ResolvedGraph", "resolve"]
