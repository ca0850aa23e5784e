"""Data models for requested versions."""

from dataclasses import dataclass
from enum import Enum


class ResolutionMode(Enum):
    """Resolution strategy derived from a requested version string."""
    EXACT = "exact"
    RANGE = "range"
    LATEST = "latest"
    PREFER = "prefer"


@dataclass(frozen=True)
class VersionSpec:
    """Normalized representation of a version spec and derived behavior flags."""
    raw: str
    mode: ResolutionMode
    include_prerelease: bool = False

    @property
    def is_dynamic(self) -> bool:
        """True when the spec needs a version listing to pick a concrete version."""
        return self.mode in (ResolutionMode.RANGE, ResolutionMode.LATEST)

    def __str__(self) -> str:
        if self.mode == ResolutionMode.PREFER:
            return f"prefer {self.raw}"
        return self.raw
