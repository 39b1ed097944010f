"""
Remote directory sources.

``RegistryClient`` talks to an APIs.guru-compatible registry over HTTP and
caches every response under its own key prefix.
"""

from typing import Any, Dict, List, Optional, Protocol
from urllib.parse import quote

import httpx

from openapi_directory.core.cache.store import PersistentCache
from openapi_directory.core.exceptions import (
    ErrorContext,
    ErrorFactory,
    SpecParseError,
)
from openapi_directory.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 30.0


class DirectorySource(Protocol):
    """What the aggregator needs from a directory source."""

    name: str

    async def get_providers(self) -> Dict[str, List[str]]: ...

    async def get_provider(self, provider: str) -> Dict[str, Dict[str, Any]]: ...

    async def list_apis(self) -> Dict[str, Dict[str, Any]]: ...

    async def get_metrics(self) -> Dict[str, Any]: ...


class RegistryClient:
    """Cached read-only client for one remote registry."""

    def __init__(
        self,
        name: str,
        base_url: str,
        cache: PersistentCache,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            name: Source name, also the cache key prefix
            base_url: Registry root, e.g. ``https://api.apis.guru/v2``
            cache: Shared persistent cache
            timeout: Request timeout in seconds
            transport: Optional httpx transport, used by tests
        """
        self.name = name
        self.base_url = base_url.rstrip("/")
        self.cache = cache
        self.timeout = timeout
        self._transport = transport

    async def get_providers(self) -> Dict[str, List[str]]:
        return await self._cached("providers", "/providers.json")

    async def get_provider(self, provider: str) -> Dict[str, Dict[str, Any]]:
        data = await self._cached(f"provider:{provider}", f"/{quote(provider, safe='')}.json")
        return data.get("apis", {}) if isinstance(data, dict) else {}

    async def list_apis(self) -> Dict[str, Dict[str, Any]]:
        return await self._cached("all_apis", "/list.json")

    async def get_metrics(self) -> Dict[str, Any]:
        return await self._cached("metrics", "/metrics.json")

    async def _cached(self, key: str, path: str) -> Any:
        async def fetch() -> Any:
            return await self._fetch(path)

        return await self.cache.warm_cache(f"{self.name}:{key}", fetch)

    async def _fetch(self, path: str) -> Any:
        url = f"{self.base_url}{path}"
        context = ErrorContext(operation="fetch", source=self.name, details={"url": url})
        logger.debug(f"GET {url}")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(url, headers={"Accept": "application/json"})
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise ErrorFactory.from_http_error(e, context) from e

        try:
            return response.json()
        except ValueError as e:
            raise SpecParseError(f"Invalid JSON from {url}: {e}", context) from e
