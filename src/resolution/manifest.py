"""Loading of resolution manifests and file-based module repositories.

Both accept YAML (``.yaml``/``.yml``) or JSON. A manifest looks like::

    scheme: gradle
    dependencies:
      - org.example:db:1.0
      - module: com.fasterxml.jackson.core:jackson-core:2.9.5
        forced: true
        exclude: ["org.slf4j:*"]
      - module: org.example:bom:1.0
        category: enforced-platform
    constraints:
      - org.example:lib:2.0
    platforms:
      - members: "org.example:*"
        platform: org.example:platform
        kind: virtual

A repository file is a mapping with a ``modules`` list of descriptors.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import yaml

from versioning.comparators import VersionComparator, get_comparator

from .errors import ManifestError
from .models import (
    ROOT,
    Category,
    Dependency,
    ModuleDescriptor,
    ModuleIdentity,
    constraint_from_entry,
    dependency_from_entry,
)
from .platforms import PlatformKind, PlatformRule, PlatformRules
from .propagator import ResolutionRequest
from .provider import InMemoryMetadataProvider

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Manifest:
    """Parsed manifest: the resolution request plus its version scheme."""
    request: ResolutionRequest
    scheme: Optional[str] = None


def load_document(path: str) -> Dict[str, Any]:
    """Read a YAML or JSON mapping from ``path``.

    Raises:
        ManifestError: If the file is missing, unreadable or not a mapping.
    """
    if not os.path.isfile(path):
        raise ManifestError(f"File not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as fh:
            if path.lower().endswith(".json"):
                data = json.load(fh)
            else:
                data = yaml.safe_load(fh)
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ManifestError(f"Could not read {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ManifestError(f"{path} must contain a mapping at top level")
    return data


def _platform_rule(entry: Dict[str, Any]) -> PlatformRule:
    members = str(entry.get("members") or "")
    group, _, name = members.partition(":")
    if not group:
        raise ValueError(f"Platform rule needs 'members' as group:name or group:*, got '{members}'")
    return PlatformRule(
        group=group,
        name=name or "*",
        platform=ModuleIdentity.parse(str(entry["platform"])),
        kind=PlatformKind(entry.get("kind", PlatformKind.VIRTUAL_REGULAR.value)),
    )


def parse_manifest(data: Dict[str, Any]) -> Manifest:
    """Build a ``Manifest`` from an already-loaded mapping.

    Raises:
        ManifestError: On any malformed entry.
    """
    try:
        roots = [dependency_from_entry(e, ROOT) for e in data.get("dependencies") or ()]
        constraints = [constraint_from_entry(e) for e in data.get("constraints") or ()]
        rules = PlatformRules(_platform_rule(e) for e in data.get("platforms") or ())
    except (KeyError, TypeError, ValueError) as exc:
        raise ManifestError(f"Invalid manifest: {exc}") from exc
    if not roots:
        logger.warning("Manifest declares no dependencies.")
    return Manifest(ResolutionRequest.of(roots, constraints, rules), data.get("scheme"))


def load_manifest(path: str) -> Manifest:
    return parse_manifest(load_document(path))


def parse_repository(data: Dict[str, Any], comparator: Optional[VersionComparator] = None) -> InMemoryMetadataProvider:
    """Build an in-memory provider from a ``modules`` list.

    Raises:
        ManifestError: On malformed descriptors.
    """
    descriptors: List[ModuleDescriptor] = []
    for entry in data.get("modules") or ():
        try:
            descriptors.append(ModuleDescriptor.from_dict(entry))
        except (KeyError, TypeError, ValueError) as exc:
            raise ManifestError(f"Invalid module entry {entry!r}: {exc}") from exc
    return InMemoryMetadataProvider(descriptors, comparator or get_comparator())


def load_repository(path: str, comparator: Optional[VersionComparator] = None) -> InMemoryMetadataProvider:
    return parse_repository(load_document(path), comparator)


def enforced_platform(token: str, **kwargs) -> Dependency:
    """``enforcedPlatform(...)`` style root dependency."""
    return Dependency.of(token, category=Category.ENFORCED_PLATFORM, **kwargs)


def platform(token: str, **kwargs) -> Dependency:
    """``platform(...)`` style root dependency."""
    return Dependency.of(token, category=Category.REGULAR_PLATFORM, **kwargs)
