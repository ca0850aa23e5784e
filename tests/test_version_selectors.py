"""Tests for requested-version parsing and selectors."""

import pytest

from versioning.comparators import GradleVersionComparator
from versioning.models import ResolutionMode
from versioning.parser import parse_coordinate, parse_version_spec, tokenize_rightmost_colon
from versioning.selectors import (
    ExactVersionSelector,
    LatestVersionSelector,
    PrefixVersionSelector,
    RangeVersionSelector,
    UnionVersionSelector,
    VersionSelector,
    parse_selector,
)

CANDIDATES = ["1.0", "1.5", "1.9-rc1", "2.0", "2.1-SNAPSHOT", "3.0"]


@pytest.fixture
def comparator():
    return GradleVersionComparator()


def pick(raw, comparator, candidates=CANDIDATES):
    return parse_selector(parse_version_spec(raw)).pick(candidates, comparator)


class TestParseVersionSpec:
    """Mode detection for requested versions."""

    @pytest.mark.parametrize("raw,mode", [
        ("1.0", ResolutionMode.EXACT),
        ("[1.0,2.0)", ResolutionMode.RANGE),
        ("(,2.0]", ResolutionMode.RANGE),
        ("1.+", ResolutionMode.RANGE),
        ("latest.release", ResolutionMode.LATEST),
        ("+", ResolutionMode.LATEST),
        (None, ResolutionMode.LATEST),
        ("", ResolutionMode.LATEST),
    ])
    def test_modes(self, raw, mode):
        assert parse_version_spec(raw).mode == mode

    def test_missing_version_means_latest(self):
        spec = parse_version_spec(None)
        assert spec.raw == "latest"
        assert spec.is_dynamic

    def test_prefer_requires_exact_version(self):
        spec = parse_version_spec("1.0", prefer=True)
        assert spec.mode == ResolutionMode.PREFER
        assert not spec.is_dynamic
        assert str(spec) == "prefer 1.0"
        with pytest.raises(ValueError):
            parse_version_spec("[1.0,2.0)", prefer=True)

    def test_include_prerelease_flag(self):
        assert parse_version_spec("latest.integration").include_prerelease
        assert not parse_version_spec("latest.release").include_prerelease


class TestParseCoordinate:
    """group:name[:version] tokens."""

    def test_with_version(self):
        assert parse_coordinate("org.example:lib:1.0") == ("org.example", "lib", "1.0")

    def test_without_version(self):
        assert parse_coordinate("org.example:lib") == ("org.example", "lib", None)

    def test_range_version_keeps_commas(self):
        assert parse_coordinate("org.example:lib:[1.0,2.0)") == ("org.example", "lib", "[1.0,2.0)")

    @pytest.mark.parametrize("token", ["lib", ":lib", "org.example:", "  "])
    def test_invalid(self, token):
        with pytest.raises(ValueError):
            parse_coordinate(token)

    def test_tokenize_rightmost_colon(self):
        assert tokenize_rightmost_colon("a:b:c") == ("a:b", "c")
        assert tokenize_rightmost_colon("abc") == ("abc", None)
        assert tokenize_rightmost_colon("a:") == ("a", None)


class TestSelectors:
    """Selector parsing and picking."""

    def test_selector_types(self):
        assert isinstance(parse_selector(parse_version_spec("1.0")), ExactVersionSelector)
        assert isinstance(parse_selector(parse_version_spec("[1.0,2.0)")), RangeVersionSelector)
        assert isinstance(parse_selector(parse_version_spec("[1.0,1.5],[3.0,)")), UnionVersionSelector)
        assert isinstance(parse_selector(parse_version_spec("1.+")), PrefixVersionSelector)
        assert isinstance(parse_selector(parse_version_spec("latest.release")), LatestVersionSelector)

    def test_keyword_construction(self):
        interval = RangeVersionSelector(raw="[1.0,2.0)", lower="1.0", upper="2.0", lower_inclusive=True, upper_inclusive=False)
        assert interval.raw == "[1.0,2.0)"
        assert UnionVersionSelector("[1.0,2.0)", (interval,)).ranges == (interval,)
        assert PrefixVersionSelector("1.+", "1.").prefix == "1."

    def test_base_selector_is_abstract(self):
        with pytest.raises(TypeError):
            VersionSelector()

    def test_half_open_range(self, comparator):
        assert pick("[1.0,2.0)", comparator) == "1.9-rc1"

    def test_inclusive_upper_bound(self, comparator):
        assert pick("[1.0,2.0]", comparator) == "2.0"

    def test_exclusive_lower_bound(self, comparator):
        selector = parse_selector(parse_version_spec("(1.0,2.0]"))
        assert not selector.accepts("1.0", comparator)
        assert selector.accepts("1.5", comparator)

    def test_open_ended_ranges(self, comparator):
        assert pick("(,1.5]", comparator) == "1.5"
        assert pick("[2.0,)", comparator) == "3.0"

    def test_single_element_range_is_exact(self, comparator):
        assert pick("[1.5]", comparator) == "1.5"

    def test_union_of_ranges(self, comparator):
        assert pick("[1.0,1.5],[2.0,2.0]", comparator) == "2.0"

    def test_prefix(self, comparator):
        assert pick("1.+", comparator) == "1.9-rc1"
        assert pick("2.+", comparator) == "2.1-SNAPSHOT"

    def test_latest_release_skips_prereleases(self, comparator):
        assert pick("latest.release", comparator, ["1.0", "2.0-SNAPSHOT"]) == "1.0"

    def test_latest_integration_and_plus(self, comparator):
        assert pick("latest.integration", comparator, ["1.0", "2.0-SNAPSHOT"]) == "2.0-SNAPSHOT"
        assert pick("+", comparator) == "3.0"

    def test_no_match_returns_none(self, comparator):
        assert pick("[5.0,6.0)", comparator) is None

    def test_exact_accepts_equivalent_versions(self, comparator):
        assert parse_selector(parse_version_spec("1.1")).accepts("1.01", comparator)

    @pytest.mark.parametrize("raw", ["[1.0,2.0", "(1.0)", "[1.0,2.0,3.0]", "[1.0,2.0)x"])
    def test_malformed_ranges(self, raw):
        with pytest.raises(ValueError):
            parse_selector(parse_version_spec(raw))
