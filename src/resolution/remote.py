"""HTTP metadata provider reading a static JSON module index.

Layout under ``base_url``::

    {group}/{name}/versions.json            -> ["1.0", "1.1", ...]
    {group}/{name}/{version}/descriptor.json -> descriptor mapping

Dots in the group are turned into path separators, as in Maven layouts.
"""

from __future__ import annotations

import asyncio
import logging
import urllib.parse
from typing import Any, List, Optional, Tuple

import aiohttp

from common.logging_utils import Timer, extra_context, is_debug_enabled, safe_url
from constants import Constants
from versioning.comparators import VersionComparator

from .errors import MetadataNotFoundError
from .models import ModuleDescriptor, ModuleIdentity, ModuleVersion
from .provider import MetadataProvider

logger = logging.getLogger(__name__)


class RemoteMetadataProvider(MetadataProvider):
    """Fetches descriptors over HTTP with retries on transient failures."""

    def __init__(
        self,
        base_url: str,
        comparator: Optional[VersionComparator] = None,
        timeout: Optional[int] = None,
    ):
        """Initialize the provider.

        Args:
            base_url: Root of the JSON index.
            comparator: Version ordering used for dynamic lookups.
            timeout: Request timeout in seconds, ``Constants.REQUEST_TIMEOUT`` when omitted.
        """
        super().__init__(comparator)
        self._base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout or Constants.REQUEST_TIMEOUT)
        self._session: Optional[aiohttp.ClientSession] = None

    async def start(self) -> aiohttp.ClientSession:
        """Start the HTTP session if needed and return it."""
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def stop(self) -> None:
        """Stop the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "RemoteMetadataProvider":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    def module_url(self, identity: ModuleIdentity, *parts: str) -> str:
        """Build the index URL for ``identity`` followed by ``parts``."""
        segments = identity.group.split(".") + [identity.name] + list(parts)
        return "/".join([self._base_url] + [urllib.parse.quote(s, safe="") for s in segments])

    async def _get_json(self, url: str) -> Tuple[int, Any]:
        """GET ``url`` and decode JSON, retrying connection errors and 5xx."""
        session = await self.start()
        last_exception: Optional[Exception] = None
        for attempt in range(Constants.HTTP_RETRY_MAX):
            with Timer() as timer:
                try:
                    async with session.get(url) as response:
                        if response.status >= 500:
                            last_exception = aiohttp.ClientResponseError(
                                response.request_info, response.history, status=response.status
                            )
                        elif response.status != 200:
                            return response.status, None
                        else:
                            data = await response.json(content_type=None)
                            if is_debug_enabled(logger):
                                logger.debug(
                                    "HTTP response ok",
                                    extra=extra_context(
                                        event="http_response",
                                        component="remote_provider",
                                        action="GET",
                                        outcome="success",
                                        status_code=response.status,
                                        duration_ms=timer.duration_ms(),
                                        target=safe_url(url),
                                    ),
                                )
                            return response.status, data
                except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                    last_exception = exc
            if attempt < Constants.HTTP_RETRY_MAX - 1:
                await asyncio.sleep(Constants.HTTP_RETRY_BASE_DELAY_SEC * (2 ** attempt))
        logger.warning(
            "HTTP request failed after %d attempts: %s (%s)",
            Constants.HTTP_RETRY_MAX,
            safe_url(url),
            last_exception,
        )
        raise MetadataNotFoundError(None, "", f"{safe_url(url)}: {last_exception}")

    async def list_versions(self, identity: ModuleIdentity) -> List[str]:
        try:
            status, data = await self._get_json(self.module_url(identity, "versions.json"))
        except MetadataNotFoundError as exc:
            raise MetadataNotFoundError(identity, "versions", exc.detail) from exc
        if status != 200 or not isinstance(data, list):
            return []
        return [str(v) for v in data]

    async def get_descriptor(self, module: ModuleVersion) -> ModuleDescriptor:
        url = self.module_url(module.identity, module.version, "descriptor.json")
        try:
            status, data = await self._get_json(url)
        except MetadataNotFoundError as exc:
            raise MetadataNotFoundError(module.identity, module.version, exc.detail) from exc
        if status != 200 or not isinstance(data, dict):
            raise MetadataNotFoundError(module.identity, module.version, f"HTTP {status}")
        data.setdefault("module", str(module))
        try:
            return ModuleDescriptor.from_dict(data)
        except (KeyError, ValueError) as exc:
            raise MetadataNotFoundError(module.identity, module.version, f"invalid descriptor: {exc}") from exc
