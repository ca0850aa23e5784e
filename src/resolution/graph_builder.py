"""Candidate graph construction.

Expands the root dependencies breadth-first, asking the metadata provider
for every requested (identity, version) once. Lookups of one level run
concurrently. A failed lookup is recorded against its request and the walk
carries on, so that independent subtrees are still explored and every
failure can be reported together.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

from common.logging_utils import Timer, extra_context, is_debug_enabled
from constants import Constants
from versioning.models import ResolutionMode, VersionSpec

from .errors import MetadataNotFoundError, UnresolvedModuleError
from .graph import CandidateGraph, ExclusionPaths, RequestKey
from .models import (
    Category,
    Constraint,
    ConstraintOrigin,
    Dependency,
    Exclusion,
    ModuleDescriptor,
    ModuleIdentity,
    ModuleVersion,
)
from .platforms import PlatformRules
from .provider import MetadataProvider

logger = logging.getLogger(__name__)

PathSet = FrozenSet[Exclusion]
FrontierItem = Tuple[Dependency, PathSet]


class _BuildState:  # pylint: disable=too-few-public-methods
    """Scratch state of a single build call, discarded afterwards."""

    def __init__(self, previous: Optional[CandidateGraph]):
        self.nodes: Dict[ModuleVersion, ModuleDescriptor] = {}
        self.picks: Dict[RequestKey, ModuleVersion] = {}
        self.failures: Dict[RequestKey, UnresolvedModuleError] = {}
        self.edges: Dict[ModuleVersion, Tuple[Dependency, ...]] = {}
        if previous is not None:
            self.nodes.update(previous.nodes)
            self.picks.update(previous.picks)
            self.failures.update(previous.failures)
        self.reached: Dict[ModuleVersion, ExclusionPaths] = {}
        # Path exclusion sets each identity was reached with
        self.target_paths: Dict[ModuleIdentity, Set[PathSet]] = {}
        self.lookups = 0


class GraphBuilder:
    """Builds ``CandidateGraph`` snapshots."""

    def __init__(self, max_concurrency: Optional[int] = None):
        self._max_concurrency = max_concurrency or Constants.METADATA_MAX_CONCURRENCY

    async def build(
        self,
        roots: Iterable[Dependency],
        provider: MetadataProvider,
        constraints: FrozenSet[Constraint] = frozenset(),
        rules: Optional[PlatformRules] = None,
        previous: Optional[CandidateGraph] = None,
    ) -> CandidateGraph:
        """Expand ``roots`` transitively into a candidate graph.

        Args:
            roots: Root dependencies (their source is the synthetic root).
            provider: Metadata source.
            constraints: Constraints of this iteration. Their versions are
                fetched only for identities present in the graph.
            rules: Platform rules; published-platform rules add an implicit
                edge from each member to its platform.
            previous: Snapshot of the prior iteration whose lookups are reused.

        Returns:
            A new immutable ``CandidateGraph``.
        """
        roots = tuple(roots)
        rules = rules or PlatformRules()
        state = _BuildState(previous)
        semaphore = asyncio.Semaphore(self._max_concurrency)

        with Timer() as timer:
            frontier: List[FrontierItem] = [(dep, frozenset()) for dep in roots]
            depth = 0
            while frontier:
                await self._fetch_all({(d.target, d.requested) for d, _ in frontier}, provider, state, semaphore)
                next_frontier: List[FrontierItem] = []
                for dep, path in frontier:
                    next_frontier.extend(self._follow(dep, path, state, rules))
                if not next_frontier:
                    next_frontier = await self._expand_constraints(constraints, provider, state, semaphore, rules)
                frontier = next_frontier
                depth += 1

        if is_debug_enabled(logger):
            logger.debug(
                "Candidate graph built",
                extra=extra_context(
                    event="graph_built",
                    component="graph_builder",
                    nodes=len(state.nodes),
                    failures=len(state.failures),
                    lookups=state.lookups,
                    levels=depth,
                    duration_ms=timer.duration_ms(),
                ),
            )
        reached = set(state.reached)
        return CandidateGraph(
            roots=roots,
            constraints=frozenset(constraints),
            comparator=provider.comparator,
            nodes={m: d for m, d in state.nodes.items() if m in reached},
            edges=state.edges,
            picks={k: m for k, m in state.picks.items() if m in reached},
            failures=state.failures,
        )

    async def _fetch_all(
        self,
        keys: Set[RequestKey],
        provider: MetadataProvider,
        state: _BuildState,
        semaphore: asyncio.Semaphore,
    ) -> None:
        missing = sorted(
            (k for k in keys if k not in state.picks and k not in state.failures),
            key=lambda k: (k[0], k[1].raw),
        )
        if not missing:
            return

        async def fetch(key: RequestKey):
            identity, requested = key
            async with semaphore:
                try:
                    return key, await provider.lookup(identity, requested), None
                except (MetadataNotFoundError, ValueError) as exc:
                    return key, None, exc

        state.lookups += len(missing)
        for key, descriptor, exc in await asyncio.gather(*(fetch(k) for k in missing)):
            if descriptor is None:
                identity, requested = key
                state.failures[key] = UnresolvedModuleError(identity, requested.raw, cause=str(exc))
                logger.debug("Metadata lookup failed for %s:%s: %s", identity, requested.raw, exc)
                continue
            state.picks[key] = descriptor.module
            state.nodes.setdefault(descriptor.module, descriptor)

    def _follow(self, dep: Dependency, path: PathSet, state: _BuildState, rules: PlatformRules) -> List[FrontierItem]:
        if dep.target == dep.source.identity:
            # Self edge: no additional constraint
            return []
        child_path = path | dep.exclusions
        module = state.picks.get((dep.target, dep.requested))
        if module is None:
            # A failed request still makes its target present for constraints
            if not dep.lenient:
                state.target_paths.setdefault(dep.target, set()).add(child_path)
            return []
        state.target_paths.setdefault(dep.target, set()).add(child_path)
        return self._reach(module, child_path, state, rules)

    def _reach(self, module: ModuleVersion, path: PathSet, state: _BuildState, rules: PlatformRules) -> List[FrontierItem]:
        updated = state.reached.get(module, ExclusionPaths()).add(path)
        if updated is None:
            return []
        state.reached[module] = updated
        children = []
        for child in self._edges_of(module, state, rules):
            if any(e.matches(child.target) for e in path):
                continue
            children.append((child, path))
        return children

    def _edges_of(self, module: ModuleVersion, state: _BuildState, rules: PlatformRules) -> Tuple[Dependency, ...]:
        edges = state.edges.get(module)
        if edges is not None:
            return edges
        descriptor = state.nodes[module]
        result = [d if d.source == module else d.with_source(module) for d in descriptor.dependencies]
        for platform in rules.published_platforms_for(module.identity):
            result.append(
                Dependency(
                    source=module,
                    target=platform,
                    requested=VersionSpec(module.version, ResolutionMode.EXACT),
                    category=Category.REGULAR_PLATFORM,
                    lenient=True,
                )
            )
        edges = tuple(result)
        state.edges[module] = edges
        return edges

    async def _expand_constraints(
        self,
        constraints: FrozenSet[Constraint],
        provider: MetadataProvider,
        state: _BuildState,
        semaphore: asyncio.Semaphore,
        rules: PlatformRules,
    ) -> List[FrontierItem]:
        """Fetch constrained versions of present identities and reach them."""
        present = set(state.target_paths)
        pending: List[Constraint] = [c for c in constraints if c.target in present]
        for module in state.reached:
            for constraint in state.nodes[module].constraints:
                if constraint.target in present:
                    pending.append(constraint)
        keys = {(c.target, c.requested) for c in pending}
        await self._fetch_all(keys, provider, state, semaphore)

        frontier: List[FrontierItem] = []
        for constraint in pending:
            module = state.picks.get((constraint.target, constraint.requested))
            if module is None:
                if constraint.origin is ConstraintOrigin.ALIGNMENT:
                    logger.debug("Alignment target unavailable: %s", constraint)
                continue
            for path in sorted(state.target_paths[constraint.target], key=lambda p: sorted(map(str, p))):
                frontier.extend(self._reach(module, path, state, rules))
        return frontier
