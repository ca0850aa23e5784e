"""Version ordering strategies.

Every comparator defines a total, deterministic order over version strings.
Two strings that a scheme considers equivalent (``1.01`` and ``1.1`` in the
Gradle scheme, for example) are tie-broken by plain string comparison so that
sorting is stable across runs.
"""

from __future__ import annotations

import functools
import re
from abc import ABC, abstractmethod
from typing import Callable, Dict, Iterable, List, Optional, Union

import semantic_version
from packaging import version as pep440

from constants import Constants, VersionSchemes

Part = Union[int, str]


def _cmp(a, b) -> int:
    return (a > b) - (a < b)


class VersionComparator(ABC):
    """Strategy object ordering version strings."""

    name: str = ""

    @abstractmethod
    def _compare_semantic(self, left: str, right: str) -> int:
        """Scheme-specific comparison, may return 0 for distinct strings."""

    @abstractmethod
    def is_prerelease(self, version: str) -> bool:
        """Return True when ``version`` carries a pre-release qualifier."""

    def compare(self, left: str, right: str) -> int:
        """Return -1, 0 or 1. Only identical strings compare equal."""
        result = self._compare_semantic(left, right)
        if result == 0:
            return _cmp(left, right)
        return result

    def equivalent(self, left: str, right: str) -> bool:
        """True when the scheme considers both versions the same release."""
        return self._compare_semantic(left, right) == 0

    def sort_key(self) -> Callable[[str], object]:
        return functools.cmp_to_key(self.compare)

    def sort(self, versions: Iterable[str], reverse: bool = False) -> List[str]:
        return sorted(versions, key=self.sort_key(), reverse=reverse)

    def max(self, versions: Iterable[str]) -> Optional[str]:
        """Highest version of ``versions`` or None when empty."""
        best: Optional[str] = None
        for candidate in versions:
            if best is None or self.compare(candidate, best) > 0:
                best = candidate
        return best


class GradleVersionComparator(VersionComparator):
    """Segment-aware ordering following Gradle's documented rules.

    - Versions split on ``.``, ``-``, ``_``, ``+`` and on digit/letter
      boundaries.
    - Numeric parts compare numerically and rank above non-numeric parts.
    - ``dev`` ranks below any other qualifier; ``rc``, ``snapshot``,
      ``final``, ``ga``, ``release`` and ``sp`` rank above all other
      qualifiers, in that order (case-insensitive).
    - An extra numeric part makes a version higher, an extra non-numeric
      part makes it lower (``1.0-beta`` < ``1.0`` < ``1.0.1``).
    """

    name = VersionSchemes.GRADLE.value

    SPECIAL_QUALIFIERS = ("rc", "snapshot", "final", "ga", "release", "sp")
    PRERELEASE_QUALIFIERS = ("dev", "alpha", "a", "beta", "b", "milestone", "m", "rc", "cr", "pre", "preview", "snapshot", "ea")

    _SPLIT = re.compile(r"[.\-_+]")
    _TOKEN = re.compile(r"\d+|[^\d]+")

    def parts(self, version: str) -> List[Part]:
        """Split a version string into comparable parts."""
        result: List[Part] = []
        for chunk in self._SPLIT.split(version):
            for token in self._TOKEN.findall(chunk):
                result.append(int(token) if token.isdigit() else token)
        return result

    def _compare_qualifiers(self, left: str, right: str) -> int:
        lower_left, lower_right = left.lower(), right.lower()
        if lower_left == lower_right:
            return 0
        if lower_left == "dev":
            return -1
        if lower_right == "dev":
            return 1
        left_special = lower_left in self.SPECIAL_QUALIFIERS
        right_special = lower_right in self.SPECIAL_QUALIFIERS
        if left_special and right_special:
            return _cmp(self.SPECIAL_QUALIFIERS.index(lower_left),
                        self.SPECIAL_QUALIFIERS.index(lower_right))
        if left_special:
            return 1
        if right_special:
            return -1
        return _cmp(left, right)

    def _compare_semantic(self, left: str, right: str) -> int:
        left_parts, right_parts = self.parts(left), self.parts(right)
        for lp, rp in zip(left_parts, right_parts):
            if isinstance(lp, int) and isinstance(rp, int):
                if lp != rp:
                    return _cmp(lp, rp)
            elif isinstance(lp, int):
                return 1
            elif isinstance(rp, int):
                return -1
            else:
                result = self._compare_qualifiers(lp, rp)
                if result:
                    return result
        if len(left_parts) == len(right_parts):
            return 0
        if len(left_parts) > len(right_parts):
            return 1 if isinstance(left_parts[len(right_parts)], int) else -1
        return -1 if isinstance(right_parts[len(left_parts)], int) else 1

    def is_prerelease(self, version: str) -> bool:
        for part in self.parts(version):
            if isinstance(part, str) and part.lower() in self.PRERELEASE_QUALIFIERS:
                return True
        return False


class Pep440VersionComparator(VersionComparator):
    """PEP 440 ordering via ``packaging``. Unparseable versions sort lowest."""

    name = VersionSchemes.PEP440.value

    @staticmethod
    def _parse(value: str) -> Optional[pep440.Version]:
        try:
            return pep440.Version(value)
        except pep440.InvalidVersion:
            return None

    def _compare_semantic(self, left: str, right: str) -> int:
        lv, rv = self._parse(left), self._parse(right)
        if lv is None and rv is None:
            return 0
        if lv is None:
            return -1
        if rv is None:
            return 1
        return _cmp(lv, rv)

    def is_prerelease(self, version: str) -> bool:
        parsed = self._parse(version)
        return bool(parsed and (parsed.is_prerelease or parsed.is_devrelease))


class SemverVersionComparator(VersionComparator):
    """Semantic Versioning 2.0 ordering via ``semantic_version``.

    Loose inputs such as ``1.2`` are coerced; unparseable versions sort lowest.
    """

    name = VersionSchemes.SEMVER.value

    @staticmethod
    def _parse(value: str) -> Optional[semantic_version.Version]:
        try:
            return semantic_version.Version.coerce(value)
        except ValueError:
            return None

    def _compare_semantic(self, left: str, right: str) -> int:
        lv, rv = self._parse(left), self._parse(right)
        if lv is None and rv is None:
            return 0
        if lv is None:
            return -1
        if rv is None:
            return 1
        # Build metadata is ignored by precedence rules
        return _cmp(lv.truncate("prerelease"), rv.truncate("prerelease"))

    def is_prerelease(self, version: str) -> bool:
        parsed = self._parse(version)
        return bool(parsed and parsed.prerelease)


_REGISTRY: Dict[str, Callable[[], VersionComparator]] = {
    VersionSchemes.GRADLE.value: GradleVersionComparator,
    VersionSchemes.PEP440.value: Pep440VersionComparator,
    VersionSchemes.SEMVER.value: SemverVersionComparator,
}


def get_comparator(scheme: Optional[str] = None) -> VersionComparator:
    """Return a comparator for ``scheme`` (defaults to the configured scheme).

    Raises:
        ValueError: If the scheme is unknown.
    """
    key = (scheme or Constants.DEFAULT_VERSION_SCHEME).strip().lower()
    try:
        return _REGISTRY[key]()
    except KeyError as exc:
        raise ValueError(
            f"Unknown version scheme '{scheme}'. Expected one of: {', '.join(sorted(_REGISTRY))}"
        ) from exc
