"""Version selectors: decide whether a concrete version satisfies a request.

Supports exact versions, Maven bracket ranges (``[1.0,2.0)``, ``(,1.5]``,
unions such as ``[1.0,2.0),[3.0,4.0]``), Gradle prefix selectors
(``1.+``) and the ``latest.release`` / ``latest.integration`` / ``+``
keywords.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from .comparators import VersionComparator
from .models import ResolutionMode, VersionSpec


def _position(candidate: str, bound: str, comparator: VersionComparator) -> int:
    if comparator.equivalent(candidate, bound):
        return 0
    return comparator.compare(candidate, bound)


class VersionSelector(ABC):
    """Base class for selectors; concrete selectors carry the raw text as ``raw``."""

    @property
    def is_dynamic(self) -> bool:
        return True

    @abstractmethod
    def accepts(self, candidate: str, comparator: VersionComparator) -> bool:
        """Return True when ``candidate`` satisfies this selector."""

    def pick(self, candidates: Iterable[str], comparator: VersionComparator) -> Optional[str]:
        """Return the highest accepted candidate, or None."""
        return comparator.max(c for c in candidates if self.accepts(c, comparator))


@dataclass(frozen=True)
class ExactVersionSelector(VersionSelector):
    """Matches a single version."""
    raw: str

    @property
    def is_dynamic(self) -> bool:
        return False

    def accepts(self, candidate: str, comparator: VersionComparator) -> bool:
        return candidate == self.raw or comparator.equivalent(candidate, self.raw)


@dataclass(frozen=True)
class RangeVersionSelector(VersionSelector):
    """A single Maven-style interval. Missing bounds are open-ended."""
    raw: str
    lower: Optional[str]
    upper: Optional[str]
    lower_inclusive: bool
    upper_inclusive: bool

    def accepts(self, candidate: str, comparator: VersionComparator) -> bool:
        if self.lower:
            position = _position(candidate, self.lower, comparator)
            if position < 0 or (position == 0 and not self.lower_inclusive):
                return False
        if self.upper:
            position = _position(candidate, self.upper, comparator)
            if position > 0 or (position == 0 and not self.upper_inclusive):
                return False
        return True


@dataclass(frozen=True)
class UnionVersionSelector(VersionSelector):
    """Union of several intervals, as in ``[1.0,2.0),[3.0,4.0]``."""
    raw: str
    ranges: Tuple[RangeVersionSelector, ...]

    def accepts(self, candidate: str, comparator: VersionComparator) -> bool:
        return any(r.accepts(candidate, comparator) for r in self.ranges)


@dataclass(frozen=True)
class PrefixVersionSelector(VersionSelector):
    """Gradle ``1.2.+`` selector."""
    raw: str
    prefix: str

    def accepts(self, candidate: str, comparator: VersionComparator) -> bool:
        return candidate.startswith(self.prefix)


@dataclass(frozen=True)
class LatestVersionSelector(VersionSelector):
    """``latest.release`` skips pre-releases, ``latest.integration`` and ``+`` do not."""
    raw: str
    include_prerelease: bool

    def accepts(self, candidate: str, comparator: VersionComparator) -> bool:
        return self.include_prerelease or not comparator.is_prerelease(candidate)


def _parse_interval(spec: str) -> RangeVersionSelector:
    """Parse a single bracket interval like ``[1.0,2.0)`` or ``[1.2]``."""
    spec = spec.strip()
    if len(spec) < 2 or spec[0] not in "[(" or spec[-1] not in "])":
        raise ValueError(f"Invalid version range '{spec}'")
    inner = spec[1:-1]
    parts = inner.split(",")
    if len(parts) == 1:
        # Single-element bracket [1.2] means exactly that version
        base = parts[0].strip()
        if not base or spec[0] != "[" or spec[-1] != "]":
            raise ValueError(f"Invalid version range '{spec}'")
        return RangeVersionSelector(spec, base, base, True, True)
    if len(parts) != 2:
        raise ValueError(f"Invalid version range '{spec}'")
    lower, upper = parts[0].strip() or None, parts[1].strip() or None
    return RangeVersionSelector(spec, lower, upper, spec[0] == "[", spec[-1] == "]")


def _split_intervals(range_spec: str) -> List[str]:
    """Split ``[1.0,2.0),[3.0,4.0]`` into its bracket groups."""
    ranges: List[str] = []
    current = ""
    depth = 0
    for char in range_spec:
        if char in "[(":
            depth += 1
            current += char
        elif char in "])":
            depth -= 1
            current += char
            if depth == 0:
                ranges.append(current)
                current = ""
        elif depth > 0:
            current += char
        elif char not in ", ":
            raise ValueError(f"Invalid version range '{range_spec}'")
    if depth != 0 or current.strip():
        raise ValueError(f"Invalid version range '{range_spec}'")
    return ranges


def parse_selector(spec: VersionSpec) -> VersionSelector:
    """Build a selector for ``spec``.

    Raises:
        ValueError: If the range syntax is malformed.
    """
    raw = spec.raw.strip()
    lowered = raw.lower()
    if lowered in ("+", "latest.integration", "latest"):
        return LatestVersionSelector(raw, include_prerelease=True)
    if lowered == "latest.release":
        return LatestVersionSelector(raw, include_prerelease=spec.include_prerelease)
    if raw.endswith("+") and raw[:-1].endswith("."):
        return PrefixVersionSelector(raw, raw[:-1])
    if raw and raw[0] in "[(":
        intervals = [_parse_interval(part) for part in _split_intervals(raw)]
        if len(intervals) == 1:
            return intervals[0]
        return UnionVersionSelector(raw, tuple(intervals))
    if spec.mode == ResolutionMode.RANGE:
        raise ValueError(f"Invalid version range '{raw}'")
    return ExactVersionSelector(raw)
