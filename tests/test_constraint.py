"""Tests for constraint parsing and evaluation."""

import pytest

from rocklock.errors import ConstraintSyntaxError
from rocklock.versioning.constraint import (
    WILDCARD,
    ConstraintKind,
    conjunction,
    parse_constraint,
    parse_dependency_string,
)
from rocklock.versioning.version import parse_version


def sat(expr, version):
    return parse_constraint(expr).satisfied_by(parse_version(version))


class TestConstraintKinds:
    """Each constraint kind against boundary versions."""

    @pytest.mark.parametrize(
        "expr,kind",
        [
            ("1.2.3", ConstraintKind.EXACT),
            ("==1.2.3", ConstraintKind.EXACT),
            ("=1.2.3", ConstraintKind.EXACT),
            ("^1.2.3", ConstraintKind.CARET),
            ("~> 1.2", ConstraintKind.CARET),
            ("~1.2.3", ConstraintKind.TILDE),
            (">=1.0", ConstraintKind.COMPARISON),
            ("~= 1.0", ConstraintKind.COMPARISON),
            ("^1.0 || ^2.0", ConstraintKind.OR),
            (">= 1.0, < 2.0", ConstraintKind.ALL),
            ("1.2.x", ConstraintKind.ALL),
            ("*", ConstraintKind.WILDCARD),
            ("", ConstraintKind.WILDCARD),
        ],
    )
    def test_kind(self, expr, kind):
        assert parse_constraint(expr).kind is kind

    def test_caret_major(self):
        assert sat("^1.2.3", "1.2.3")
        assert sat("^1.2.3", "1.9.0")
        assert not sat("^1.2.3", "2.0.0")
        assert not sat("^1.2.3", "1.2.2")

    def test_caret_zero_major_bounds_minor(self):
        assert sat("^0.2.3", "0.2.9")
        assert not sat("^0.2.3", "0.3.0")

    def test_luarocks_pessimistic_reads_as_caret(self):
        assert sat("~> 3.0", "3.9.0")
        assert not sat("~> 3.0", "4.0.0")

    def test_tilde(self):
        assert sat("~1.2.3", "1.2.9")
        assert not sat("~1.2.3", "1.3.0")

    def test_comparisons(self):
        assert sat(">=1.0", "1.0.0")
        assert not sat(">1.0", "1.0.0")
        assert sat("<2.0", "1.99.0")
        assert sat("<=2.0", "2.0.0")
        assert not sat("!=1.5.0", "1.5.0")
        assert not sat("~=1.5.0", "1.5.0")

    def test_conjunction_in_one_expression(self):
        assert sat(">= 1.0, < 2.0", "1.5.0")
        assert not sat(">= 1.0, < 2.0", "2.0.0")
        assert sat(">=1.0 <2.0", "1.0.0")

    def test_or(self):
        assert sat("^1.0 || ^3.0", "3.1.0")
        assert not sat("^1.0 || ^3.0", "2.0.0")

    def test_x_range(self):
        assert sat("1.2.x", "1.2.7")
        assert not sat("1.2.x", "1.3.0")
        assert sat("1.x", "1.9.9")
        assert not sat("1.x", "2.0.0")

    def test_wildcard_matches_everything(self):
        assert WILDCARD.satisfied_by(parse_version("0.0.1"))
        assert parse_version("9.9.9") in parse_constraint("*")

    def test_exact_ignores_build_metadata(self):
        assert sat("1.0.0", "1.0.0+local")

    @pytest.mark.parametrize(
        "expr,text",
        [
            ("^1.2", ">=1.2.0,<2.0.0"),
            ("^0.2.3", ">=0.2.3,<0.3.0"),
            ("~1.2.3", ">=1.2.3,<1.3.0"),
            ("1.0", "==1.0.0"),
            ("!= 1.4", "!=1.4.0"),
        ],
    )
    def test_leaf_spec_text(self, expr, text):
        assert parse_constraint(expr).spec_text() == text


class TestConstraintErrors:
    """Malformed expressions are rejected with the offending token."""

    @pytest.mark.parametrize(
        "expr,token",
        [
            (">=abc", "abc"),
            (">>1.0", ">>1.0"),
            ("^1.0 ||", "||"),
            ("^*", "^*"),
        ],
    )
    def test_offending_token(self, expr, token):
        with pytest.raises(ConstraintSyntaxError) as info:
            parse_constraint(expr)
        assert info.value.token == token
        assert token in str(info.value)

    def test_package_is_named(self):
        with pytest.raises(ConstraintSyntaxError) as info:
            parse_constraint(">= nope", package="luasocket")
        assert info.value.package == "luasocket"
        assert "luasocket" in str(info.value)

    def test_never_widened_to_wildcard(self):
        with pytest.raises(ConstraintSyntaxError):
            parse_constraint("latest")


class TestComposition:
    """Constraints on one name compose by conjunction."""

    def test_conjunction_of_parsed_constraints(self):
        combined = conjunction([parse_constraint("^1.0"), parse_constraint("<1.5")])
        assert combined.satisfied_by(parse_version("1.4.0"))
        assert not combined.satisfied_by(parse_version("1.5.0"))

    def test_conjunction_drops_wildcards(self):
        only = parse_constraint("^2.0")
        assert conjunction([WILDCARD, only]) == only
        assert conjunction([WILDCARD]) is WILDCARD

    def test_str_keeps_source_text(self):
        assert str(parse_constraint(">= 1.0, < 2.0")) == ">= 1.0, < 2.0"

    def test_mentions_prerelease(self):
        assert parse_constraint(">=2.0.0-rc.1").mentions_prerelease
        assert not parse_constraint("^2.0").mentions_prerelease


class TestDependencyStrings:
    """Rockspec dependency strings."""

    def test_name_and_constraint(self):
        name, constraint = parse_dependency_string("luasocket >= 3.0")
        assert name == "luasocket"
        assert constraint.satisfied_by(parse_version("3.1.0"))

    def test_bare_name_is_wildcard(self):
        name, constraint = parse_dependency_string("penlight")
        assert name == "penlight"
        assert constraint.kind is ConstraintKind.WILDCARD

    def test_error_attributed_to_dependency(self):
        with pytest.raises(ConstraintSyntaxError) as info:
            parse_dependency_string("lpeg >= banana")
        assert info.value.package == "lpeg"
