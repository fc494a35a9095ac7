"""Version and constraint model."""

from .constraint import (
    WILDCARD,
    Constraint,
    ConstraintKind,
    conjunction,
    parse_constraint,
    parse_dependency_string,
)
from .version import Ordering, Version, parse_version, try_parse_version

__all__ = [
    "WILDCARD",
    "Constraint",
    "ConstraintKind",
    "Ordering",
    "Version",
    "conjunction",
    "parse_constraint",
    "parse_dependency_string",
    "parse_version",
    "try_parse_version",
]
