"""Conflict resolution: one version per module identity.

Selection policy, strongest first:

1. explicit forced dependencies (disagreement is a ``VersionConflictError``),
2. enforced constraints: enforced platforms, forced constraints and
   alignment derived from them (disagreement is a
   ``CyclicForcedConstraintError``),
3. the highest version among exact requests, resolved ranges and ordinary
   constraints,
4. preferred versions, only when nothing else asks for the module.

Only requests reachable from the root through currently selected versions
count, so selection and reachability are iterated until stable. Should the
selection start cycling, requests seen in earlier passes are kept as
candidates, which makes the highest-version policy monotonic.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Deque, Dict, FrozenSet, List, Mapping, Optional, Set, Tuple

from common.logging_utils import extra_context, is_debug_enabled
from constants import Constants
from versioning.comparators import VersionComparator
from versioning.models import ResolutionMode
from versioning.selectors import parse_selector

from .errors import (
    AlignmentNonConvergenceError,
    CyclicForcedConstraintError,
    ResolutionError,
    UnresolvedModuleError,
    VersionConflictError,
)
from .graph import CandidateGraph, ExclusionPaths, ModuleSelection, ResolvedEdge, ResolvedGraph
from .models import (
    Category,
    Constraint,
    ConstraintOrigin,
    Dependency,
    EdgeStatus,
    ModuleIdentity,
    ModuleVersion,
    SelectionReason,
)
from .platforms import has_forced_dependencies

logger = logging.getLogger(__name__)

EXCLUSION_REASON = "by-ancestor-exclusion"


class RequestTier(IntEnum):
    """Strength of a version request."""
    PREFER = 0
    NORMAL = 1
    ENFORCED = 2
    FORCED = 3


@dataclass(frozen=True)
class VersionRequest:
    """One vote for a version of an identity."""
    requester: str
    version: Optional[str]
    tier: RequestTier
    dependency: Optional[Dependency] = None
    constraint: Optional[Constraint] = None
    failure: Optional[UnresolvedModuleError] = None

    @property
    def is_alignment(self) -> bool:
        return self.constraint is not None and self.constraint.origin is ConstraintOrigin.ALIGNMENT


@dataclass
class _Walk:
    order: List[ModuleIdentity] = field(default_factory=list)
    active: Dict[Dependency, Optional[ModuleVersion]] = field(default_factory=dict)
    excluded: List[Dependency] = field(default_factory=list)
    requests: Dict[ModuleIdentity, List[VersionRequest]] = field(default_factory=dict)
    reached: Dict[ModuleVersion, ExclusionPaths] = field(default_factory=dict)
    enforced_via: Set[ModuleVersion] = field(default_factory=set)


@dataclass(frozen=True)
class Resolution:
    """Outcome of one conflict resolution over a candidate graph."""
    selections: Mapping[ModuleIdentity, ModuleSelection]
    edges: Tuple[ResolvedEdge, ...]
    errors: Tuple[ResolutionError, ...] = ()
    passes: int = 1

    @property
    def mapping(self) -> Dict[ModuleIdentity, ModuleVersion]:
        return {identity: s.module for identity, s in self.selections.items()}

    def to_graph(self, constraints: FrozenSet[Constraint] = frozenset(), iterations: int = 1) -> ResolvedGraph:
        return ResolvedGraph(
            modules=tuple(self.selections.values()),
            edges=self.edges,
            constraints=constraints,
            iterations=iterations,
        )


class ConflictResolver:
    """Selects one version per identity of a candidate graph."""

    def __init__(self, max_passes: Optional[int] = None):
        self._max_passes = max_passes or Constants.MAX_SELECTION_PASSES

    def resolve(self, graph: CandidateGraph) -> Resolution:
        """Resolve ``graph`` into a selection per identity.

        Errors are collected, not raised; callers decide whether the
        resolution is usable.
        """
        comparator = graph.comparator
        selection: Dict[ModuleIdentity, ModuleVersion] = {}
        history: Set[FrozenSet[Tuple[ModuleIdentity, ModuleVersion]]] = set()
        memory: Dict[ModuleIdentity, List[VersionRequest]] = {}
        remember = False

        for passes in range(1, self._max_passes + 1):
            walk = self._walk(graph, selection)
            if remember:
                self._merge_memory(walk, memory)
            chosen, errors = self._select_all(graph, walk, comparator)
            next_selection = {identity: s.module for identity, s in chosen.items()}
            if next_selection == selection:
                edges = self._edges(walk, chosen, comparator)
                if is_debug_enabled(logger):
                    logger.debug(
                        "Conflict resolution complete",
                        extra=extra_context(
                            event="resolution_complete",
                            component="conflict_resolver",
                            modules=len(chosen),
                            passes=passes,
                            errors=len(errors),
                        ),
                    )
                return Resolution(chosen, tuple(edges), tuple(errors), passes)
            key = frozenset(next_selection.items())
            if key in history and not remember:
                logger.debug("Selection cycle detected after %d passes; keeping earlier requests", passes)
                remember = True
            history.add(key)
            if remember:
                self._merge_memory(walk, memory)
            selection = next_selection

        unstable = sorted(str(i) for i, m in next_selection.items() if selection.get(i) != m)
        error = AlignmentNonConvergenceError(self._max_passes, unstable)
        return Resolution(chosen, (), (error,), self._max_passes)

    @staticmethod
    def _merge_memory(walk: _Walk, memory: Dict[ModuleIdentity, List[VersionRequest]]) -> None:
        """Union ordinary requests of this pass with those of earlier passes."""
        for identity, requests in walk.requests.items():
            remembered = memory.setdefault(identity, [])
            for request in requests:
                if request.tier is RequestTier.NORMAL and request not in remembered:
                    remembered.append(request)
            for request in remembered:
                if request not in requests:
                    requests.append(request)

    def _walk(self, graph: CandidateGraph, selection: Mapping[ModuleIdentity, ModuleVersion]) -> _Walk:
        """Collect requests reachable from the root through selected versions.

        Identities without a selection yet are entered at the version the
        edge itself asked for.
        """
        walk = _Walk()
        present: Set[ModuleIdentity] = set()
        frontier: Deque[Tuple[Dependency, FrozenSet]] = deque((dep, frozenset()) for dep in graph.roots)
        while frontier:
            dep, path = frontier.popleft()
            target = dep.target
            if any(e.matches(target) for e in path):
                walk.excluded.append(dep)
                continue
            if target == dep.source.identity:
                continue
            pick = graph.pick_for(target, dep.requested)
            failure = graph.failure_for(target, dep.requested)
            if pick is None and (failure is None or dep.lenient):
                continue
            walk.active.setdefault(dep, pick)
            if target not in present:
                present.add(target)
                walk.order.append(target)
            node = selection.get(target, pick)
            if node is None or node not in graph.nodes:
                continue
            if dep.category is Category.ENFORCED_PLATFORM:
                walk.enforced_via.add(node)
            child_path = path | dep.exclusions
            updated = walk.reached.get(node, ExclusionPaths()).add(child_path)
            if updated is None:
                continue
            walk.reached[node] = updated
            for child in graph.edges_of(node):
                frontier.append((child, child_path))

        for dep, pick in walk.active.items():
            enforced = dep.source in graph.nodes and (
                has_forced_dependencies(graph.nodes[dep.source]) or dep.source in walk.enforced_via
            )
            failure = graph.failure_for(dep.target, dep.requested)
            walk.requests.setdefault(dep.target, []).append(self._edge_request(dep, pick, failure, enforced))

        for module in walk.reached:
            descriptor = graph.nodes[module]
            enforced = has_forced_dependencies(descriptor) or module in walk.enforced_via
            origin = ConstraintOrigin.PUBLISHED_PLATFORM if descriptor.is_platform else ConstraintOrigin.DECLARED
            for constraint in descriptor.constraints:
                if constraint.target in present:
                    self._add_constraint(walk, graph, constraint, str(module), origin, enforced)
        for constraint in sorted(graph.constraints, key=str):
            if constraint.target in present:
                self._add_constraint(walk, graph, constraint, constraint.contributor or "constraint", constraint.origin, False)
        return walk

    @staticmethod
    def _edge_request(
        dep: Dependency,
        pick: Optional[ModuleVersion],
        failure: Optional[UnresolvedModuleError],
        enforced: bool,
    ) -> VersionRequest:
        if dep.forced:
            tier = RequestTier.FORCED
        elif enforced:
            # Dependencies of an enforced platform behave like its constraints
            tier = RequestTier.ENFORCED
        elif dep.requested.mode is ResolutionMode.PREFER:
            tier = RequestTier.PREFER
        else:
            tier = RequestTier.NORMAL
        version = pick.version if pick else (None if dep.requested.is_dynamic else dep.requested.raw)
        # Every root edge shares one source, so it names itself instead
        requester = str(dep) if dep.source.is_root else str(dep.source)
        return VersionRequest(requester, version, tier, dependency=dep, failure=failure)

    @staticmethod
    def _add_constraint(
        walk: _Walk,
        graph: CandidateGraph,
        constraint: Constraint,
        requester: str,
        origin: ConstraintOrigin,
        enforced: bool,
    ) -> None:
        pick = graph.pick_for(constraint.target, constraint.requested)
        failure = graph.failure_for(constraint.target, constraint.requested)
        if pick is None and (failure is None or origin is ConstraintOrigin.ALIGNMENT):
            # Aligned version does not exist for this member
            return
        if constraint.forced or enforced:
            tier = RequestTier.ENFORCED
        elif constraint.requested.mode is ResolutionMode.PREFER:
            tier = RequestTier.PREFER
        else:
            tier = RequestTier.NORMAL
        if origin is not constraint.origin:
            constraint = Constraint(constraint.target, constraint.requested, origin, constraint.forced, requester)
        version = pick.version if pick else (None if constraint.requested.is_dynamic else constraint.requested.raw)
        request = VersionRequest(requester, version, tier, constraint=constraint, failure=failure)
        requests = walk.requests.setdefault(constraint.target, [])
        if request not in requests:
            requests.append(request)

    def _select_all(
        self,
        graph: CandidateGraph,
        walk: _Walk,
        comparator: VersionComparator,
    ) -> Tuple[Dict[ModuleIdentity, ModuleSelection], List[ResolutionError]]:
        chosen: Dict[ModuleIdentity, ModuleSelection] = {}
        errors: List[ResolutionError] = []
        for identity in walk.order:
            selection = self._select(identity, walk.requests.get(identity, []), comparator, errors)
            if selection is None:
                # Every request was dynamic and none matched a version
                errors.extend(
                    UnresolvedModuleError(identity, r.dependency.requested.raw, [r.requester], r.failure.cause)
                    for r in walk.requests.get(identity, [])
                    if r.failure is not None and r.dependency is not None
                )
                continue
            chosen[identity] = selection
            if selection.module not in graph.nodes:
                failed = [r for r in walk.requests[identity] if r.failure is not None and r.version == selection.module.version]
                cause = failed[0].failure.cause if failed else "no metadata"
                errors.append(UnresolvedModuleError(
                    identity, selection.module.version, sorted({r.requester for r in failed}), cause
                ))
            errors.extend(self._unsatisfied_dynamic(identity, selection, walk.requests[identity], comparator))
        return chosen, errors

    @staticmethod
    def _distinct(requests: List[VersionRequest], comparator: VersionComparator) -> List[str]:
        distinct: List[str] = []
        for request in requests:
            if not any(comparator.equivalent(request.version, v) for v in distinct):
                distinct.append(request.version)
        return distinct

    def _select(
        self,
        identity: ModuleIdentity,
        requests: List[VersionRequest],
        comparator: VersionComparator,
        errors: List[ResolutionError],
    ) -> Optional[ModuleSelection]:
        for tier in (RequestTier.FORCED, RequestTier.ENFORCED, RequestTier.NORMAL, RequestTier.PREFER):
            voters = [r for r in requests if r.tier is tier and r.version is not None]
            if voters:
                break
        else:
            return None

        if tier in (RequestTier.FORCED, RequestTier.ENFORCED):
            distinct = self._distinct(voters, comparator)
            if len(distinct) > 1:
                pairs = [(r.requester, r.version) for r in voters]
                if tier is RequestTier.FORCED:
                    errors.append(VersionConflictError(identity, pairs))
                else:
                    errors.append(CyclicForcedConstraintError(identity, pairs))
        winner = comparator.max(r.version for r in voters)

        asked = [r for r in requests if r.tier is not RequestTier.PREFER and r.version is not None]
        conflicted = any(not comparator.equivalent(r.version, winner) for r in asked)
        backers = [r for r in voters if comparator.equivalent(r.version, winner)]
        if tier is RequestTier.FORCED:
            reason = SelectionReason.FORCED
        elif tier is RequestTier.PREFER:
            reason = SelectionReason.REQUESTED
        elif tier is RequestTier.NORMAL and any(r.dependency is not None for r in backers):
            reason = SelectionReason.CONFLICT_RESOLUTION if conflicted else SelectionReason.REQUESTED
        elif any(r.is_alignment for r in backers):
            reason = SelectionReason.ALIGNMENT
        else:
            reason = SelectionReason.CONSTRAINT
        return ModuleSelection(
            module=ModuleVersion(identity, winner),
            reason=reason,
            conflicted=conflicted,
            requested=tuple(sorted({r.version for r in asked})),
            enforced=tier is RequestTier.ENFORCED,
        )

    @staticmethod
    def _unsatisfied_dynamic(
        identity: ModuleIdentity,
        selection: ModuleSelection,
        requests: List[VersionRequest],
        comparator: VersionComparator,
    ) -> List[ResolutionError]:
        """Dynamic requests that matched nothing fail unless the winner satisfies them."""
        errors: List[ResolutionError] = []
        for request in requests:
            if request.failure is None or request.version is not None or request.dependency is None:
                continue
            try:
                accepted = parse_selector(request.dependency.requested).accepts(selection.module.version, comparator)
            except ValueError:
                accepted = False
            if not accepted:
                errors.append(UnresolvedModuleError(
                    identity, request.dependency.requested.raw, [request.requester], request.failure.cause
                ))
        return errors

    def _edges(
        self,
        walk: _Walk,
        chosen: Mapping[ModuleIdentity, ModuleSelection],
        comparator: VersionComparator,
    ) -> List[ResolvedEdge]:
        edges: List[ResolvedEdge] = []
        for dep, pick in walk.active.items():
            selection = chosen.get(dep.target)
            selected = selection.module if selection else None
            requested_version = pick.version if pick else dep.requested.raw
            honored = selected is not None and self._honors(dep, requested_version, selected.version, comparator)
            if honored:
                status = EdgeStatus.HONORED
                reason = SelectionReason.FORCED.value if dep.forced else SelectionReason.REQUESTED.value
            else:
                status = EdgeStatus.OVERRIDDEN
                reason = selection.reason.value if selection else SelectionReason.REQUESTED.value
            edges.append(ResolvedEdge(dep, requested_version, selected, status, reason))
        seen = set(walk.active)
        for dep in walk.excluded:
            if dep in seen:
                continue
            seen.add(dep)
            edges.append(ResolvedEdge(dep, None, None, EdgeStatus.EXCLUDED, EXCLUSION_REASON))
        return edges

    @staticmethod
    def _honors(dep: Dependency, requested_version: str, selected: str, comparator: VersionComparator) -> bool:
        if comparator.equivalent(requested_version, selected):
            return True
        if dep.requested.is_dynamic:
            try:
                return parse_selector(dep.requested).accepts(selected, comparator)
            except ValueError:
                return False
        return False
