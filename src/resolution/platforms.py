"""Platform membership rules and category helpers.

A platform is a set of modules meant to share one version. Membership comes
from an explicit rule table (``belongsTo`` declarations) for virtual
platforms, or from a published module whose descriptor lists constraints
(a BOM). The rule table is closed: every rule is one of the three
``PlatformKind`` variants.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Tuple

from .models import Category, ModuleDescriptor, ModuleIdentity


class PlatformKind(Enum):
    """Kind of platform a rule maps its members to."""
    VIRTUAL_REGULAR = "virtual"
    VIRTUAL_ENFORCED = "virtual-enforced"
    PUBLISHED_TRUSTED = "published"

    @property
    def is_virtual(self) -> bool:
        return self is not PlatformKind.PUBLISHED_TRUSTED


@dataclass(frozen=True)
class PlatformRule:
    """``group:name`` (``name`` may be ``*``) belongs to ``platform``."""
    group: str
    name: str
    platform: ModuleIdentity
    kind: PlatformKind = PlatformKind.VIRTUAL_REGULAR

    def matches(self, identity: ModuleIdentity) -> bool:
        if identity == self.platform:
            return False
        return identity.group == self.group and self.name in ("*", identity.name)

    def __str__(self) -> str:
        return f"{self.group}:{self.name} belongsTo {self.platform} [{self.kind.value}]"


class PlatformRules:
    """Immutable table of platform rules."""

    def __init__(self, rules: Iterable[PlatformRule] = ()):
        self._rules: Tuple[PlatformRule, ...] = tuple(rules)

    def __iter__(self):
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def rules_for(self, identity: ModuleIdentity) -> List[PlatformRule]:
        """Every rule claiming ``identity``, in declaration order."""
        return [rule for rule in self._rules if rule.matches(identity)]

    def virtual_members(self, identities: Iterable[ModuleIdentity]) -> Dict[ModuleIdentity, List[ModuleIdentity]]:
        """Group ``identities`` by the virtual platform(s) claiming them."""
        members: Dict[ModuleIdentity, List[ModuleIdentity]] = {}
        for identity in sorted(identities):
            for rule in self.rules_for(identity):
                if rule.kind.is_virtual and identity not in members.setdefault(rule.platform, []):
                    members[rule.platform].append(identity)
        return members

    def is_enforced(self, platform: ModuleIdentity) -> bool:
        """True when any rule declares ``platform`` as enforced."""
        return any(
            rule.platform == platform and rule.kind is PlatformKind.VIRTUAL_ENFORCED
            for rule in self._rules
        )

    def published_platforms_for(self, identity: ModuleIdentity) -> List[ModuleIdentity]:
        return [
            rule.platform for rule in self.rules_for(identity)
            if rule.kind is PlatformKind.PUBLISHED_TRUSTED
        ]


def has_forced_dependencies(descriptor: ModuleDescriptor) -> bool:
    """Check whether a descriptor is published as an ``enforced-platform`` variant.

    Platforms reached through an ``enforcedPlatform(...)`` style edge are
    tracked by the conflict resolver while it walks the graph.
    """
    return descriptor.category is Category.ENFORCED_PLATFORM
