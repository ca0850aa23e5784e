"""Fixpoint driver tying graph building, conflict resolution and alignment.

Each iteration is a pure step from one ``PropagationState`` to the next:
build a candidate graph with the current constraint set, resolve it, align
platforms, and compare the resulting constraint set with the one the
iteration started from. Identical sets mean the fixpoint is reached.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import FrozenSet, Iterable, Optional, Tuple

from common.logging_utils import Timer, extra_context, is_debug_enabled
from constants import Constants

from .alignment import AlignmentEngine, AlignmentResult
from .conflict_resolver import ConflictResolver, Resolution
from .errors import AlignmentNonConvergenceError, ResolutionError, ResolutionFailedError
from .graph import CandidateGraph, ResolvedGraph
from .graph_builder import GraphBuilder
from .models import Constraint, Dependency
from .platforms import PlatformRules
from .provider import MetadataProvider

logger = logging.getLogger(__name__)


class Phase(Enum):
    """States of the propagation state machine."""
    INITIAL = "initial"
    BUILDING = "building"
    RESOLVING = "resolving"
    ALIGNING = "aligning"
    ITERATING = "iterating"
    CONVERGED = "converged"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (Phase.CONVERGED, Phase.FAILED)


@dataclass(frozen=True)
class ResolutionRequest:
    """Root dependencies, initial constraints and platform rules."""
    roots: Tuple[Dependency, ...]
    constraints: FrozenSet[Constraint] = frozenset()
    rules: PlatformRules = field(default_factory=PlatformRules)

    @classmethod
    def of(
        cls,
        roots: Iterable[Dependency],
        constraints: Iterable[Constraint] = (),
        rules: Optional[PlatformRules] = None,
    ) -> "ResolutionRequest":
        return cls(tuple(roots), frozenset(constraints), rules or PlatformRules())


@dataclass(frozen=True)
class PropagationState:
    """Immutable snapshot threaded through the fixpoint loop."""
    phase: Phase
    iteration: int
    constraints: FrozenSet[Constraint]
    graph: Optional[CandidateGraph] = None
    resolution: Optional[Resolution] = None
    alignment: Optional[AlignmentResult] = None
    errors: Tuple[ResolutionError, ...] = ()

    @classmethod
    def initial(cls, request: ResolutionRequest) -> "PropagationState":
        return cls(Phase.INITIAL, 0, request.constraints)


def next_constraints(request: ResolutionRequest, alignment: AlignmentResult) -> FrozenSet[Constraint]:
    """Constraint set for the next iteration: request constraints plus alignment."""
    return request.constraints | alignment.constraints


def has_converged(previous: FrozenSet[Constraint], current: FrozenSet[Constraint]) -> bool:
    return previous == current


class ConstraintPropagator:
    """Runs the build / resolve / align loop until a fixpoint."""

    def __init__(
        self,
        provider: MetadataProvider,
        max_iterations: Optional[int] = None,
        builder: Optional[GraphBuilder] = None,
        resolver: Optional[ConflictResolver] = None,
        aligner: Optional[AlignmentEngine] = None,
    ):
        self._provider = provider
        self._max_iterations = max_iterations or Constants.MAX_ALIGNMENT_ITERATIONS
        self._builder = builder or GraphBuilder()
        self._resolver = resolver or ConflictResolver()
        self._aligner = aligner or AlignmentEngine(provider.comparator)

    async def step(self, state: PropagationState, request: ResolutionRequest) -> PropagationState:
        """Advance ``state`` by one transition."""
        phase = state.phase
        if phase.is_terminal:
            return state

        if phase in (Phase.INITIAL, Phase.ITERATING):
            return replace(state, phase=Phase.BUILDING, iteration=state.iteration + 1)

        if phase is Phase.BUILDING:
            graph = await self._builder.build(
                request.roots, self._provider, state.constraints, request.rules, previous=state.graph
            )
            return replace(state, phase=Phase.RESOLVING, graph=graph)

        if phase is Phase.RESOLVING:
            resolution = self._resolver.resolve(state.graph)
            if resolution.errors:
                return replace(state, phase=Phase.FAILED, resolution=resolution, errors=resolution.errors)
            return replace(state, phase=Phase.ALIGNING, resolution=resolution)

        # Aligning
        alignment = self._aligner.align(state.resolution.selections, request.rules)
        if alignment.errors:
            return replace(state, phase=Phase.FAILED, alignment=alignment, errors=alignment.errors)
        proposed = next_constraints(request, alignment)
        if has_converged(state.constraints, proposed):
            return replace(state, phase=Phase.CONVERGED, alignment=alignment)
        if state.iteration >= self._max_iterations:
            error = AlignmentNonConvergenceError(state.iteration, state.constraints ^ proposed)
            return replace(state, phase=Phase.FAILED, alignment=alignment, errors=(error,))
        return replace(state, phase=Phase.ITERATING, constraints=proposed, alignment=alignment)

    async def run(self, request: ResolutionRequest) -> ResolvedGraph:
        """Resolve ``request`` to a fixpoint.

        Raises:
            ResolutionFailedError: With every error of the failing iteration.
        """
        state = PropagationState.initial(request)
        with Timer() as timer:
            while not state.phase.is_terminal:
                previous_phase = state.phase
                state = await self.step(state, request)
                if is_debug_enabled(logger):
                    logger.debug(
                        "Propagation transition",
                        extra=extra_context(
                            event="transition",
                            component="propagator",
                            action=f"{previous_phase.value}->{state.phase.value}",
                            iteration=state.iteration,
                            constraints=len(state.constraints),
                        ),
                    )

        if state.phase is Phase.FAILED:
            for error in state.errors:
                logger.error("%s %s", Constants.RESOLUTION, error)
            raise ResolutionFailedError(state.errors)

        for member, platform, selected, wanted in state.alignment.misaligned(
            state.resolution.selections, self._provider.comparator
        ):
            logger.warning(
                "%s %s stays at %s: platform %s resolved to %s but that version is not available",
                Constants.RESOLUTION, member, selected, platform, wanted,
            )
        logger.info(
            "%s Resolved %d modules in %d iteration(s) (%.1f ms)",
            Constants.RESOLUTION,
            len(state.resolution.selections),
            state.iteration,
            timer.duration_ms(),
        )
        return state.resolution.to_graph(state.constraints, state.iteration)


async def resolve(
    request: ResolutionRequest,
    provider: MetadataProvider,
    max_iterations: Optional[int] = None,
) -> ResolvedGraph:
    """Resolve ``request`` against ``provider``."""
    return await ConstraintPropagator(provider, max_iterations=max_iterations).run(request)


def resolve_sync(
    request: ResolutionRequest,
    provider: MetadataProvider,
    max_iterations: Optional[int] = None,
) -> ResolvedGraph:
    """Blocking wrapper around ``resolve`` for synchronous callers."""
    return asyncio.run(resolve(request, provider, max_iterations))
