"""Version schemes, selectors and requested-version parsing."""

from .comparators import (
    GradleVersionComparator,
    Pep440VersionComparator,
    SemverVersionComparator,
    VersionComparator,
    get_comparator,
)
from .models import ResolutionMode, VersionSpec
from .parser import parse_coordinate, parse_version_spec
from .selectors import VersionSelector, parse_selector

__all__ = [
    "GradleVersionComparator",
    "Pep440VersionComparator",
    "SemverVersionComparator",
    "VersionComparator",
    "get_comparator",
    "ResolutionMode",
    "VersionSpec",
    "parse_coordinate",
    "parse_version_spec",
    "VersionSelector",
    "parse_selector",
]
