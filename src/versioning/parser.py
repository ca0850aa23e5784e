"""Token parsing utilities for module coordinates and requested versions."""

from typing import Optional, Tuple

from .models import ResolutionMode, VersionSpec

_LATEST_KEYWORDS = ("+", "latest", "latest.release", "latest.integration")


def tokenize_rightmost_colon(s: str) -> Tuple[str, Optional[str]]:
    """Return (identifier, spec or None) using the rightmost-colon rule."""
    s = s.strip()
    if ':' not in s:
        return s, None
    parts = s.rsplit(':', 1)
    identifier = parts[0].strip()
    spec_part = parts[1].strip() if len(parts) > 1 else ''
    spec = spec_part if spec_part else None
    return identifier, spec


def _determine_resolution_mode(spec: str) -> ResolutionMode:
    """Determine resolution mode from spec string."""
    if spec.lower() in _LATEST_KEYWORDS:
        return ResolutionMode.LATEST
    if spec[0] in '[(' or spec.endswith('.+'):
        return ResolutionMode.RANGE
    return ResolutionMode.EXACT


def parse_version_spec(raw: Optional[str], prefer: bool = False) -> VersionSpec:
    """Construct a VersionSpec from a raw version string.

    An empty or missing version means "latest". ``prefer`` marks a soft
    request that only applies when nothing else asks for the module.

    Raises:
        ValueError: If ``prefer`` is combined with a dynamic version.
    """
    spec = (raw or '').strip() or 'latest'
    mode = _determine_resolution_mode(spec)
    if prefer:
        if mode != ResolutionMode.EXACT:
            raise ValueError(f"Preferred version must be exact, got '{spec}'")
        mode = ResolutionMode.PREFER
    include_prerelease = spec.lower() in ('+', 'latest', 'latest.integration')
    return VersionSpec(raw=spec, mode=mode, include_prerelease=include_prerelease)


def parse_coordinate(token: str) -> Tuple[str, str, Optional[str]]:
    """Split ``group:name[:version]`` into its parts.

    Raises:
        ValueError: If the token lacks a group or a name.
    """
    token = token.strip()
    colon_count = token.count(':')
    if colon_count <= 1:
        # Single-colon (group:name) is an identifier only, no version spec
        id_part, version_part = token, None
    else:
        # Ranges contain commas but never colons, so the rightmost colon splits
        id_part, version_part = tokenize_rightmost_colon(token)
    group, _, name = id_part.partition(':')
    if not group.strip() or not name.strip():
        raise ValueError(f"Invalid module coordinate '{token}'. Expected 'group:name[:version]'.")
    return group.strip(), name.strip(), version_part
