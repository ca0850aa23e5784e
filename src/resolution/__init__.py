"""Dependency graph resolution with platform alignment."""

from .errors import (
    AlignmentNonConvergenceError,
    CyclicForcedConstraintError,
    ManifestError,
    MetadataNotFoundError,
    ResolutionError,
    ResolutionFailedError,
    UnresolvedModuleError,
    VersionConflictError,
)
from .graph import CandidateGraph, ModuleSelection, ResolvedEdge, ResolvedGraph
from .models import (
    ROOT,
    Category,
    Constraint,
    ConstraintOrigin,
    Dependency,
    EdgeStatus,
    Exclusion,
    ModuleDescriptor,
    ModuleIdentity,
    ModuleVersion,
    SelectionReason,
)
from .platforms import PlatformKind, PlatformRule, PlatformRules
from .propagator import ConstraintPropagator, ResolutionRequest, resolve, resolve_sync
from .provider import CachingMetadataProvider, InMemoryMetadataProvider, MetadataProvider

__all__ = [
    "AlignmentNonConvergenceError",
    "CyclicForcedConstraintError",
    "ManifestError",
    "MetadataNotFoundError",
    "ResolutionError",
    "ResolutionFailedError",
    "UnresolvedModuleError",
    "VersionConflictError",
    "CandidateGraph",
    "ModuleSelection",
    "ResolvedEdge",
    "ResolvedGraph",
    "ROOT",
    "Category",
    "Constraint",
    "ConstraintOrigin",
    "Dependency",
    "EdgeStatus",
    "Exclusion",
    "ModuleDescriptor",
    "ModuleIdentity",
    "ModuleVersion",
    "SelectionReason",
    "PlatformKind",
    "PlatformRule",
    "PlatformRules",
    "ConstraintPropagator",
    "ResolutionRequest",
    "resolve",
    "resolve_sync",
    "CachingMetadataProvider",
    "InMemoryMetadataProvider",
    "MetadataProvider",
]
