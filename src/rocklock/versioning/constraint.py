"""Version constraint expressions.

Constraints form a closed set of kinds (see :class:`ConstraintKind`) and are
evaluated by a single dispatch in :meth:`Constraint.satisfied_by`.

Accepted syntax::

    1.2.3  =1.2.3  ==1.2.3          exact
    ^1.2.3  ~> 1.2                  caret (LuaRocks "~>" reads as caret)
    ~1.2.3                          tilde
    >=1.0  <=1.0  >1.0  <1.0        comparison
    !=1.0  ~=1.0                    comparison (not equal, LuaRocks spelling)
    >= 1.0, < 2.0   >=1.0 <2.0      conjunction inside one expression
    1.2.x  1.x                      x-range, parsed to a conjunction
    A || B                          disjunction
    *  (or empty)                   wildcard
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from functools import cached_property
from typing import Iterable, Optional, Tuple

import semantic_version

from ..errors import ConstraintSyntaxError, VersionParseError
from .version import Version, parse_version


class ConstraintKind(Enum):
    """Closed set of constraint variants."""
    EXACT = "exact"
    CARET = "caret"
    TILDE = "tilde"
    COMPARISON = "comparison"
    OR = "or"
    ALL = "all"
    WILDCARD = "wildcard"


_TERM_RE = re.compile(r"(\^|~>|~=|~|>=|<=|==|!=|>|<|=)?\s*([^\s,|<>=!~^]+)")
_X_RANGE_RE = re.compile(r"^(\d+)(?:\.(\d+))?\.[xX*]$")
_WILDCARDS = ("*", "x", "X")


@dataclass(frozen=True)
class Constraint:
    """A pure predicate over :class:`Version`.

    ``version`` is set for EXACT, CARET, TILDE and COMPARISON; ``op`` only for
    COMPARISON; ``terms`` only for OR and ALL. ``text`` keeps the source
    expression for error messages and takes no part in equality.
    """

    kind: ConstraintKind
    version: Optional[Version] = None
    op: Optional[str] = None
    terms: Tuple["Constraint", ...] = ()
    text: str = field(default="", compare=False)

    def satisfied_by(self, version: Version) -> bool:
        kind = self.kind
        if kind is ConstraintKind.WILDCARD:
            return True
        if kind is ConstraintKind.OR:
            return any(term.satisfied_by(version) for term in self.terms)
        if kind is ConstraintKind.ALL:
            return all(term.satisfied_by(version) for term in self.terms)
        return self.spec.match(version.semver)

    def spec_text(self) -> str:
        """Comparator clauses in :class:`semantic_version.SimpleSpec` syntax."""
        kind = self.kind
        bound = self.version.semver if self.version is not None else None
        if kind is ConstraintKind.EXACT:
            return f"=={bound}"
        if kind is ConstraintKind.CARET:
            # Major 0 bounds the minor, including 0.0.x.
            upper = self.version.bump_major() if bound.major > 0 else self.version.bump_minor()
            return f">={bound},<{upper.semver}"
        if kind is ConstraintKind.TILDE:
            return f">={bound},<{self.version.bump_minor().semver}"
        if kind is ConstraintKind.COMPARISON:
            return f"{self.op}{bound}"
        raise AssertionError(f"{kind} has no single comparator form")

    @cached_property
    def spec(self) -> semantic_version.SimpleSpec:
        return semantic_version.SimpleSpec(self.spec_text())

    def __contains__(self, version: Version) -> bool:
        return self.satisfied_by(version)

    @property
    def mentions_prerelease(self) -> bool:
        """True when any bound in the expression is itself a pre-release."""
        if self.version is not None and self.version.is_prerelease:
            return True
        return any(term.mentions_prerelease for term in self.terms)

    def __str__(self) -> str:
        if self.text:
            return self.text
        return self.canonical()

    def canonical(self) -> str:
        """Render the constraint without relying on the source text."""
        kind = self.kind
        if kind is ConstraintKind.WILDCARD:
            return "*"
        if kind is ConstraintKind.EXACT:
            return str(self.version)
        if kind is ConstraintKind.CARET:
            return f"^{self.version}"
        if kind is ConstraintKind.TILDE:
            return f"~{self.version}"
        if kind is ConstraintKind.COMPARISON:
            return f"{self.op}{self.version}"
        if kind is ConstraintKind.OR:
            return " || ".join(t.canonical() for t in self.terms)
        return ", ".join(t.canonical() for t in self.terms)


WILDCARD = Constraint(ConstraintKind.WILDCARD, text="*")


def _parse_version_token(expression: str, token: str) -> Version:
    try:
        return parse_version(token)
    except VersionParseError as exc:
        raise ConstraintSyntaxError(expression, token) from exc


def _parse_term(expression: str, op: Optional[str], token: str) -> Constraint:
    if token in _WILDCARDS:
        if op:
            raise ConstraintSyntaxError(expression, f"{op}{token}")
        return WILDCARD

    x_range = _X_RANGE_RE.match(token)
    if x_range:
        if op:
            raise ConstraintSyntaxError(expression, f"{op}{token}")
        major = int(x_range.group(1))
        if x_range.group(2) is None:
            lower, upper = Version(major, 0, 0), Version(major + 1, 0, 0)
        else:
            minor = int(x_range.group(2))
            lower, upper = Version(major, minor, 0), Version(major, minor + 1, 0)
        return Constraint(
            ConstraintKind.ALL,
            terms=(
                Constraint(ConstraintKind.COMPARISON, lower, ">="),
                Constraint(ConstraintKind.COMPARISON, upper, "<"),
            ),
        )

    version = _parse_version_token(expression, token)
    if op in (None, "=", "=="):
        return Constraint(ConstraintKind.EXACT, version)
    if op in ("^", "~>"):
        return Constraint(ConstraintKind.CARET, version)
    if op == "~":
        return Constraint(ConstraintKind.TILDE, version)
    if op == "~=":
        op = "!="
    return Constraint(ConstraintKind.COMPARISON, version, op)


def _parse_conjunction(expression: str, part: str) -> Constraint:
    terms = []
    pos = 0
    while pos < len(part):
        while pos < len(part) and (part[pos].isspace() or part[pos] == ","):
            pos += 1
        if pos >= len(part):
            break
        match = _TERM_RE.match(part, pos)
        if not match:
            token = part[pos:].split()[0]
            raise ConstraintSyntaxError(expression, token)
        terms.append(_parse_term(expression, match.group(1), match.group(2)))
        pos = match.end()

    if not terms:
        raise ConstraintSyntaxError(expression, part.strip() or "||")
    if len(terms) == 1:
        return terms[0]
    return Constraint(ConstraintKind.ALL, terms=tuple(terms))


def parse_constraint(text: str, package: Optional[str] = None) -> Constraint:
    """Parse a constraint expression.

    Raises:
        ConstraintSyntaxError: naming the offending token. Malformed input is
            never widened to a wildcard.
    """
    if text is None:
        return WILDCARD
    if not isinstance(text, str):
        raise ConstraintSyntaxError(repr(text), repr(text), package)
    expression = text.strip()
    if expression in ("", *_WILDCARDS):
        return WILDCARD

    try:
        if "||" in expression:
            parts = expression.split("||")
            alternatives = []
            for part in parts:
                if not part.strip():
                    raise ConstraintSyntaxError(expression, "||")
                alternatives.append(_parse_conjunction(expression, part))
            parsed = Constraint(ConstraintKind.OR, terms=tuple(alternatives))
        else:
            parsed = _parse_conjunction(expression, expression)
    except ConstraintSyntaxError as exc:
        if package and not exc.package:
            raise exc.for_package(package) from exc
        raise

    return Constraint(parsed.kind, parsed.version, parsed.op, parsed.terms, text=expression)


def conjunction(constraints: Iterable[Constraint]) -> Constraint:
    """Combine constraints into one that holds only when all of them hold."""
    terms = tuple(c for c in constraints if c.kind is not ConstraintKind.WILDCARD)
    if not terms:
        return WILDCARD
    if len(terms) == 1:
        return terms[0]
    return Constraint(ConstraintKind.ALL, terms=terms)


_DEP_RE = re.compile(r"^\s*([A-Za-z0-9_][A-Za-z0-9_.\-/]*)\s*(.*?)\s*$")


def parse_dependency_string(dep: str) -> Tuple[str, Constraint]:
    """Split a rockspec dependency such as ``luasocket >= 3.0`` into parts.

    A bare name yields the wildcard constraint.
    """
    match = _DEP_RE.match(dep or "")
    if not match:
        raise ConstraintSyntaxError(dep or "", (dep or "").strip() or "<empty>")
    name, rest = match.group(1), match.group(2)
    return name, parse_constraint(rest, package=name)
