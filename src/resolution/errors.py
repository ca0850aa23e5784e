"""Exceptions raised by dependency resolution."""

from __future__ import annotations

from typing import Iterable, List, Sequence, Tuple


class ResolutionError(Exception):
    """Base class for every resolution failure."""


class MetadataNotFoundError(ResolutionError):
    """Raised by metadata providers when no version matches a lookup."""

    def __init__(self, identity, requested: str, detail: str = ""):
        self.identity = identity
        self.requested = requested
        self.detail = detail
        message = f"No metadata for {identity}:{requested}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class UnresolvedModuleError(ResolutionError):
    """Metadata lookup failed for a module the graph needs."""

    def __init__(self, identity, requested: str, requesters: Sequence[str] = (), cause: str = ""):
        self.identity = identity
        self.requested = requested
        self.requesters = tuple(requesters)
        self.cause = cause
        message = f"Could not resolve {identity}:{requested}"
        if self.requesters:
            message += f" (required by {', '.join(self.requesters)})"
        if cause:
            message += f": {cause}"
        super().__init__(message)


class VersionConflictError(ResolutionError):
    """Two or more forced requests for the same module disagree."""

    def __init__(self, identity, requests: Iterable[Tuple[str, str]]):
        self.identity = identity
        # (requester, version) pairs
        self.requests: List[Tuple[str, str]] = sorted(requests)
        self.requesters = [requester for requester, _ in self.requests]
        detail = ", ".join(f"{version} by {requester}" for requester, version in self.requests)
        super().__init__(f"Conflicting forced versions for {identity}: {detail}")


class CyclicForcedConstraintError(ResolutionError):
    """Enforced platform constraints force incompatible versions of one module."""

    def __init__(self, identity, requests: Iterable[Tuple[str, str]]):
        self.identity = identity
        self.requests: List[Tuple[str, str]] = sorted(requests)
        detail = ", ".join(f"{version} by {requester}" for requester, version in self.requests)
        super().__init__(f"Enforced constraints disagree on {identity}: {detail}")


class AlignmentNonConvergenceError(ResolutionError):
    """Alignment did not reach a fixpoint within the iteration ceiling."""

    def __init__(self, iterations: int, oscillating: Iterable[object]):
        self.iterations = iterations
        self.oscillating = sorted(str(c) for c in oscillating)
        super().__init__(
            f"Alignment did not converge after {iterations} iterations; "
            f"oscillating constraints: {', '.join(self.oscillating) or 'none'}"
        )


class ResolutionFailedError(ResolutionError):
    """Aggregates every independent failure of one resolution request."""

    def __init__(self, errors: Sequence[ResolutionError]):
        self.errors = list(errors)
        lines = "\n".join(f"  - {e}" for e in self.errors)
        super().__init__(f"Resolution failed with {len(self.errors)} error(s):\n{lines}")


class ManifestError(Exception):
    """Raised when a manifest or repository file cannot be parsed."""
