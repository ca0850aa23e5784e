"""Graph snapshots produced and consumed by the resolver.

``CandidateGraph`` is an arena of descriptors keyed by ``ModuleVersion``;
edges are kept as lists of ``Dependency`` values addressed by identity, never
as object references, so cycles in the module graph need no special care.
Snapshots are never mutated after construction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple, Union

from versioning.comparators import VersionComparator
from versioning.models import VersionSpec

from .errors import UnresolvedModuleError
from .models import (
    Category,
    Constraint,
    Dependency,
    EdgeStatus,
    Exclusion,
    ModuleDescriptor,
    ModuleIdentity,
    ModuleVersion,
    ROOT,
    SelectionReason,
)

# (target identity, requested version) of a lookup
RequestKey = Tuple[ModuleIdentity, VersionSpec]


class ExclusionPaths:
    """Exclusion sets of every distinct path that reached one node.

    An identity is excluded below the node only when every path excludes it.
    Only a minimal antichain of path sets is kept: a set that excludes at
    least as much as one already recorded adds nothing.
    """

    __slots__ = ("_paths",)

    def __init__(self, paths: FrozenSet[FrozenSet[Exclusion]] = frozenset()):
        self._paths = paths

    def __bool__(self) -> bool:
        return bool(self._paths)

    def excludes(self, identity: ModuleIdentity) -> bool:
        if not self._paths:
            return False
        return all(any(e.matches(identity) for e in path) for path in self._paths)

    def add(self, path: FrozenSet[Exclusion]) -> Optional["ExclusionPaths"]:
        """Return a new instance including ``path``, or None if nothing changes."""
        if any(existing <= path for existing in self._paths):
            return None
        kept = frozenset(existing for existing in self._paths if not path <= existing)
        return ExclusionPaths(kept | {path})


@dataclass(frozen=True, eq=False)
class CandidateGraph:
    """Immutable result of one graph build."""
    roots: Tuple[Dependency, ...]
    constraints: FrozenSet[Constraint]
    comparator: VersionComparator
    nodes: Mapping[ModuleVersion, ModuleDescriptor] = field(default_factory=dict)
    edges: Mapping[ModuleVersion, Tuple[Dependency, ...]] = field(default_factory=dict)
    picks: Mapping[RequestKey, ModuleVersion] = field(default_factory=dict)
    failures: Mapping[RequestKey, UnresolvedModuleError] = field(default_factory=dict)

    def __post_init__(self):
        for name in ("nodes", "edges", "picks", "failures"):
            object.__setattr__(self, name, MappingProxyType(dict(getattr(self, name))))

    def edges_of(self, module: ModuleVersion) -> Tuple[Dependency, ...]:
        if module == ROOT:
            return self.roots
        return self.edges.get(module, ())

    def pick_for(self, target: ModuleIdentity, requested: VersionSpec) -> Optional[ModuleVersion]:
        return self.picks.get((target, requested))

    def failure_for(self, target: ModuleIdentity, requested: VersionSpec) -> Optional[UnresolvedModuleError]:
        return self.failures.get((target, requested))

    def versions_of(self, identity: ModuleIdentity) -> List[str]:
        return self.comparator.sort(m.version for m in self.nodes if m.identity == identity)

    @property
    def identities(self) -> FrozenSet[ModuleIdentity]:
        return frozenset(m.identity for m in self.nodes)


@dataclass(frozen=True)
class ModuleSelection:
    """The winning version of one identity and how it was chosen."""
    module: ModuleVersion
    reason: SelectionReason
    # True when at least one requester asked for something else
    conflicted: bool = False
    requested: Tuple[str, ...] = ()
    # Won by an enforced request: enforced platform, forced or enforced constraint
    enforced: bool = False

    @property
    def identity(self) -> ModuleIdentity:
        return self.module.identity

    @property
    def is_forced(self) -> bool:
        return self.enforced or self.reason is SelectionReason.FORCED


@dataclass(frozen=True)
class ResolvedEdge:
    """A dependency edge and what became of it."""
    dependency: Dependency
    requested_version: Optional[str]
    selected: Optional[ModuleVersion]
    status: EdgeStatus
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        dep = self.dependency
        return {
            "from": str(dep.source),
            "to": str(dep.target),
            "requested": str(dep.requested),
            "requested_version": self.requested_version,
            "selected": self.selected.version if self.selected else None,
            "forced": dep.forced,
            "category": dep.category.value,
            "status": self.status.value,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class ResolvedGraph:
    """Final, immutable output of a resolution request."""
    modules: Tuple[ModuleSelection, ...]
    edges: Tuple[ResolvedEdge, ...]
    constraints: FrozenSet[Constraint] = frozenset()
    iterations: int = 1

    def __post_init__(self):
        seen = set()
        for selection in self.modules:
            if selection.identity in seen:
                raise ValueError(f"{selection.identity} selected more than once")
            seen.add(selection.identity)

    def _key(self, identity: Union[str, ModuleIdentity]) -> ModuleIdentity:
        return ModuleIdentity.parse(identity) if isinstance(identity, str) else identity

    def selection(self, identity: Union[str, ModuleIdentity]) -> Optional[ModuleSelection]:
        key = self._key(identity)
        for selection in self.modules:
            if selection.identity == key:
                return selection
        return None

    def version_of(self, identity: Union[str, ModuleIdentity]) -> Optional[str]:
        selection = self.selection(identity)
        return selection.module.version if selection else None

    def __contains__(self, identity: Union[str, ModuleIdentity]) -> bool:
        return self.selection(identity) is not None

    def __len__(self) -> int:
        return len(self.modules)

    def mapping(self) -> Dict[ModuleIdentity, ModuleVersion]:
        return {s.identity: s.module for s in self.modules}

    def edges_with_status(self, status: EdgeStatus) -> List[ResolvedEdge]:
        return [e for e in self.edges if e.status is status]

    def as_root_dependencies(self) -> List[Dependency]:
        """Exact root requests reproducing this graph.

        Modules selected by force or by an enforced request stay forced so a
        re-resolution cannot be pulled elsewhere by a transitive request.
        Root edges keep their category, so an enforced platform declared at
        the root is still enforced. Identities that were excluded and never
        selected are excluded from every root, since every path starts at one.
        """
        mapping = self.mapping()
        categories = {
            edge.dependency.target: edge.dependency.category
            for edge in self.edges
            if edge.dependency.source == ROOT and edge.dependency.category is not Category.LIBRARY
        }
        excluded = sorted({
            str(edge.dependency.target)
            for edge in self.edges
            if edge.status is EdgeStatus.EXCLUDED and edge.dependency.target not in mapping
        })
        return [
            Dependency.of(
                str(s.module),
                forced=s.is_forced,
                exclusions=tuple(excluded),
                category=categories.get(s.identity, Category.LIBRARY),
            )
            for s in self.modules
        ]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "iterations": self.iterations,
            "modules": [
                {
                    "module": str(s.identity),
                    "version": s.module.version,
                    "reason": s.reason.value,
                    "conflicted": s.conflicted,
                    "requested": list(s.requested),
                }
                for s in self.modules
            ],
            "edges": [e.to_dict() for e in self.edges],
            "constraints": sorted(str(c) for c in self.constraints),
        }
