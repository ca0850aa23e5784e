"""Data models for dependency graph resolution."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple

from constants import Constants
from versioning.models import ResolutionMode, VersionSpec
from versioning.parser import parse_coordinate, parse_version_spec


class Category(Enum):
    """Variant category attribute of a descriptor or a dependency."""
    LIBRARY = "library"
    REGULAR_PLATFORM = "platform"
    ENFORCED_PLATFORM = "enforced-platform"


class SelectionReason(Enum):
    """Why a module ended up at its selected version."""
    REQUESTED = "default"
    FORCED = "forced"
    CONFLICT_RESOLUTION = "conflict-resolved"
    CONSTRAINT = "by-constraint"
    ALIGNMENT = "by-alignment"


class EdgeStatus(Enum):
    """Outcome of a single dependency edge in the resolved graph."""
    HONORED = "honored"
    OVERRIDDEN = "overridden"
    EXCLUDED = "excluded"


class ConstraintOrigin(Enum):
    """Where a constraint comes from."""
    DECLARED = "declared"
    PUBLISHED_PLATFORM = "published-platform"
    ALIGNMENT = "alignment"


@dataclass(frozen=True, order=True)
class ModuleIdentity:
    """(group, name) pair, stable across versions."""
    group: str
    name: str

    @classmethod
    def parse(cls, token: str) -> "ModuleIdentity":
        group, name, _ = parse_coordinate(token)
        return cls(group, name)

    def __str__(self) -> str:
        return f"{self.group}:{self.name}"


ROOT_IDENTITY = ModuleIdentity(Constants.ROOT_GROUP, Constants.ROOT_NAME)


@dataclass(frozen=True, order=True)
class ModuleVersion:
    """A module identity at a concrete version."""
    identity: ModuleIdentity
    version: str

    @classmethod
    def parse(cls, token: str) -> "ModuleVersion":
        group, name, version = parse_coordinate(token)
        if not version:
            raise ValueError(f"Module version '{token}' has no version")
        return cls(ModuleIdentity(group, name), version)

    @property
    def is_root(self) -> bool:
        return self.identity == ROOT_IDENTITY

    def __str__(self) -> str:
        if self.is_root:
            return Constants.ROOT_NAME
        return f"{self.identity}:{self.version}"


ROOT = ModuleVersion(ROOT_IDENTITY, "")


@dataclass(frozen=True)
class Exclusion:
    """Excludes one module, or a whole group when ``name`` is ``*``."""
    group: str
    name: str = "*"

    @classmethod
    def parse(cls, token: str) -> "Exclusion":
        group, _, name = token.strip().partition(":")
        if not group:
            raise ValueError(f"Invalid exclusion '{token}'")
        return cls(group, name or "*")

    def matches(self, identity: ModuleIdentity) -> bool:
        return identity.group == self.group and self.name in ("*", identity.name)

    def __str__(self) -> str:
        return f"{self.group}:{self.name}"


@dataclass(frozen=True)
class Dependency:
    """A requested edge from ``source`` to ``target``."""
    source: ModuleVersion
    target: ModuleIdentity
    requested: VersionSpec
    exclusions: FrozenSet[Exclusion] = frozenset()
    forced: bool = False
    category: Category = Category.LIBRARY
    # Implicit edges (member to published platform) are skipped when missing
    lenient: bool = False

    @classmethod
    def of(
        cls,
        token: str,
        source: ModuleVersion = ROOT,
        forced: bool = False,
        prefer: bool = False,
        exclusions: Tuple[str, ...] = (),
        category: Category = Category.LIBRARY,
    ) -> "Dependency":
        """Build a dependency from a ``group:name[:version]`` token."""
        group, name, version = parse_coordinate(token)
        return cls(
            source=source,
            target=ModuleIdentity(group, name),
            requested=parse_version_spec(version, prefer=prefer),
            exclusions=frozenset(Exclusion.parse(e) for e in exclusions),
            forced=forced,
            category=category,
        )

    @property
    def is_prefer(self) -> bool:
        return self.requested.mode == ResolutionMode.PREFER

    def excludes(self, identity: ModuleIdentity) -> bool:
        return any(e.matches(identity) for e in self.exclusions)

    def with_source(self, source: ModuleVersion) -> "Dependency":
        return replace(self, source=source)

    def __str__(self) -> str:
        flag = " (forced)" if self.forced else ""
        return f"{self.source} -> {self.target}:{self.requested}{flag}"


@dataclass(frozen=True)
class Constraint:
    """Restricts candidate versions of ``target`` without creating an edge."""
    target: ModuleIdentity
    requested: VersionSpec
    origin: ConstraintOrigin = ConstraintOrigin.DECLARED
    forced: bool = False
    # Module version (or platform identity for alignment) that contributed it
    contributor: Optional[str] = None

    @classmethod
    def of(
        cls,
        token: str,
        forced: bool = False,
        origin: ConstraintOrigin = ConstraintOrigin.DECLARED,
        contributor: Optional[str] = None,
    ) -> "Constraint":
        group, name, version = parse_coordinate(token)
        return cls(
            target=ModuleIdentity(group, name),
            requested=parse_version_spec(version),
            origin=origin,
            forced=forced,
            contributor=contributor,
        )

    def __str__(self) -> str:
        flag = " (forced)" if self.forced else ""
        by = f" from {self.contributor}" if self.contributor else ""
        return f"{self.target}:{self.requested} [{self.origin.value}]{by}{flag}"


@dataclass(frozen=True)
class ModuleDescriptor:
    """Metadata of a single module version as returned by a provider."""
    module: ModuleVersion
    dependencies: Tuple[Dependency, ...] = ()
    constraints: Tuple[Constraint, ...] = ()
    category: Category = Category.LIBRARY
    attributes: Mapping[str, Any] = field(default_factory=dict)

    @property
    def is_platform(self) -> bool:
        return self.category in (Category.REGULAR_PLATFORM, Category.ENFORCED_PLATFORM)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ModuleDescriptor":
        """Parse a repository entry.

        Expected keys: ``module`` (``group:name:version``), optional
        ``dependencies`` (strings or mappings with ``module``, ``forced``,
        ``exclude``, ``prefer``, ``category``), ``constraints`` and
        ``category``.

        Raises:
            ValueError: On malformed coordinates or unknown categories.
        """
        module = ModuleVersion.parse(str(data["module"]))
        dependencies = tuple(
            dependency_from_entry(entry, module) for entry in data.get("dependencies") or ()
        )
        constraints = tuple(
            constraint_from_entry(entry, module) for entry in data.get("constraints") or ()
        )
        category = Category(data.get("category", Category.LIBRARY.value))
        attributes = dict(data.get("attributes") or {})
        return cls(module, dependencies, constraints, category, attributes)


def dependency_from_entry(entry: Any, source: ModuleVersion = ROOT) -> Dependency:
    """Parse a dependency given as a token or a mapping."""
    if isinstance(entry, str):
        return Dependency.of(entry, source=source)
    return Dependency.of(
        str(entry["module"]),
        source=source,
        forced=bool(entry.get("forced", False)),
        prefer=bool(entry.get("prefer", False)),
        exclusions=tuple(entry.get("exclude") or ()),
        category=Category(entry.get("category", Category.LIBRARY.value)),
    )


def constraint_from_entry(entry: Any, contributor: Optional[ModuleVersion] = None) -> Constraint:
    """Parse a constraint given as a token or a mapping with ``module``/``forced``."""
    by = str(contributor) if contributor is not None else None
    if isinstance(entry, str):
        return Constraint.of(entry, contributor=by)
    return Constraint.of(str(entry["module"]), forced=bool(entry.get("forced", False)), contributor=by)
