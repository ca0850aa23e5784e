"""Virtual platform alignment.

Each virtual platform is treated as a pseudo-module: the versions its present
members were selected at are its candidate versions, resolved with the same
policy as any module. Every present member then receives a constraint pinning
it to the platform version. Published platforms never go through here, their
descriptors already carry the constraints the graph builder consumes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import FrozenSet, List, Mapping, Tuple

from common.logging_utils import extra_context, is_debug_enabled
from versioning.comparators import VersionComparator
from versioning.models import ResolutionMode, VersionSpec

from .errors import ResolutionError, VersionConflictError
from .graph import ModuleSelection
from .models import Constraint, ConstraintOrigin, ModuleIdentity
from .platforms import PlatformRules

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlatformAlignment:
    """Resolved version of one virtual platform."""
    platform: ModuleIdentity
    version: str
    members: Tuple[ModuleIdentity, ...]
    forced: bool


@dataclass(frozen=True)
class AlignmentResult:
    constraints: FrozenSet[Constraint]
    platforms: Tuple[PlatformAlignment, ...] = ()
    errors: Tuple[ResolutionError, ...] = ()

    def misaligned(self, selections: Mapping[ModuleIdentity, ModuleSelection], comparator: VersionComparator):
        """Members whose selection differs from their platform's version."""
        result = []
        for platform in self.platforms:
            for member in platform.members:
                selected = selections.get(member)
                if selected and not comparator.equivalent(selected.module.version, platform.version):
                    result.append((member, platform.platform, selected.module.version, platform.version))
        return result


class AlignmentEngine:
    """Computes alignment constraints from a conflict resolution."""

    def __init__(self, comparator: VersionComparator):
        self._comparator = comparator

    def align(self, selections: Mapping[ModuleIdentity, ModuleSelection], rules: PlatformRules) -> AlignmentResult:
        """Return the constraints aligning every virtual platform.

        Args:
            selections: Current selection per identity.
            rules: Platform rule table.
        """
        constraints = set()
        platforms: List[PlatformAlignment] = []
        errors: List[ResolutionError] = []
        for platform, members in sorted(rules.virtual_members(selections).items()):
            forced_members = [m for m in members if selections[m].is_forced]
            if forced_members:
                # A member forced or enforced to a version forces the whole platform there
                versions = [selections[m].module.version for m in forced_members]
                distinct = []
                for v in versions:
                    if not any(self._comparator.equivalent(v, d) for d in distinct):
                        distinct.append(v)
                if len(distinct) > 1:
                    errors.append(VersionConflictError(
                        platform, [(str(selections[m].module), selections[m].module.version) for m in forced_members]
                    ))
                version = self._comparator.max(versions)
                forced = True
            else:
                version = self._comparator.max(selections[m].module.version for m in members)
                forced = rules.is_enforced(platform)

            alignment = PlatformAlignment(platform, version, tuple(members), forced)
            platforms.append(alignment)
            contributor = f"{platform}:{version}"
            for member in members:
                constraints.add(Constraint(
                    target=member,
                    requested=VersionSpec(version, ResolutionMode.EXACT),
                    origin=ConstraintOrigin.ALIGNMENT,
                    forced=forced,
                    contributor=contributor,
                ))
            if is_debug_enabled(logger):
                logger.debug(
                    "Platform aligned",
                    extra=extra_context(
                        event="platform_aligned",
                        component="alignment",
                        platform=str(platform),
                        version=version,
                        members=len(members),
                        forced=forced,
                    ),
                )
        return AlignmentResult(frozenset(constraints), tuple(platforms), tuple(errors))
