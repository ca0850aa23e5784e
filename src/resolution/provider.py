"""Metadata providers: the resolver's only source of module descriptors.

Providers are async so the graph builder can issue lookups for independent
branches concurrently. They must behave as pure reads keyed by module
coordinate; any caching is the provider's own business.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional

from common.logging_utils import extra_context, is_debug_enabled
from versioning.cache import TTLCache
from versioning.comparators import VersionComparator, get_comparator
from versioning.models import VersionSpec
from versioning.selectors import parse_selector

from .errors import MetadataNotFoundError
from .models import ModuleDescriptor, ModuleIdentity, ModuleVersion

logger = logging.getLogger(__name__)


class MetadataProvider(ABC):
    """Looks up module descriptors."""

    def __init__(self, comparator: Optional[VersionComparator] = None):
        self.comparator = comparator or get_comparator()

    @abstractmethod
    async def list_versions(self, identity: ModuleIdentity) -> List[str]:
        """Return every known version of ``identity`` (any order)."""

    @abstractmethod
    async def get_descriptor(self, module: ModuleVersion) -> ModuleDescriptor:
        """Return the descriptor of ``module``.

        Raises:
            MetadataNotFoundError: If the version does not exist.
        """

    async def lookup(self, identity: ModuleIdentity, requested: VersionSpec) -> ModuleDescriptor:
        """Return the descriptor best matching ``requested``.

        Exact and preferred versions are fetched directly; dynamic versions
        pick the highest listed version accepted by the selector.

        Raises:
            MetadataNotFoundError: If nothing matches.
            ValueError: If the requested version is malformed.
        """
        if not requested.is_dynamic:
            return await self.get_descriptor(ModuleVersion(identity, requested.raw))
        selector = parse_selector(requested)
        versions = await self.list_versions(identity)
        picked = selector.pick(versions, self.comparator)
        if picked is None:
            raise MetadataNotFoundError(
                identity, requested.raw, f"none of {len(versions)} versions match"
            )
        if is_debug_enabled(logger):
            logger.debug(
                "Dynamic version picked",
                extra=extra_context(
                    event="dynamic_pick",
                    component="provider",
                    target=str(identity),
                    requested=requested.raw,
                    picked=picked,
                    candidate_count=len(versions),
                ),
            )
        return await self.get_descriptor(ModuleVersion(identity, picked))


class InMemoryMetadataProvider(MetadataProvider):
    """Provider backed by a fixed set of descriptors."""

    def __init__(
        self,
        descriptors: Iterable[ModuleDescriptor] = (),
        comparator: Optional[VersionComparator] = None,
    ):
        super().__init__(comparator)
        self._descriptors: Dict[ModuleVersion, ModuleDescriptor] = {}
        self._versions: Dict[ModuleIdentity, List[str]] = {}
        self.lookup_count = 0
        for descriptor in descriptors:
            self.add(descriptor)

    def add(self, descriptor: ModuleDescriptor) -> None:
        module = descriptor.module
        self._descriptors[module] = descriptor
        versions = self._versions.setdefault(module.identity, [])
        if module.version not in versions:
            versions.append(module.version)

    async def list_versions(self, identity: ModuleIdentity) -> List[str]:
        return list(self._versions.get(identity, ()))

    async def get_descriptor(self, module: ModuleVersion) -> ModuleDescriptor:
        self.lookup_count += 1
        descriptor = self._descriptors.get(module)
        if descriptor is None:
            raise MetadataNotFoundError(module.identity, module.version)
        return descriptor


class CachingMetadataProvider(MetadataProvider):
    """Wraps another provider with a TTL cache.

    The cache may be shared between independent resolutions; only
    successful lookups are cached.
    """

    def __init__(self, delegate: MetadataProvider, cache: Optional[TTLCache] = None):
        super().__init__(delegate.comparator)
        self._delegate = delegate
        self._cache = cache if cache is not None else TTLCache()

    @property
    def cache(self) -> TTLCache:
        return self._cache

    async def list_versions(self, identity: ModuleIdentity) -> List[str]:
        key = f"versions:{identity}"
        cached = self._cache.get(key)
        if cached is not None:
            return list(cached)
        versions = await self._delegate.list_versions(identity)
        self._cache.set(key, tuple(versions))
        return list(versions)

    async def get_descriptor(self, module: ModuleVersion) -> ModuleDescriptor:
        key = f"descriptor:{module.identity}:{module.version}"
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        descriptor = await self._delegate.get_descriptor(module)
        self._cache.set(key, descriptor)
        return descriptor
