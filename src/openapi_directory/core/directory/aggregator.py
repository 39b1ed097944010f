"""
Directory aggregator.

Combines the primary registry, the secondary registry and the local custom
specs into one view with custom > secondary > primary precedence. Merged
results are cached under ``triple:`` keys; a failing source is logged and
treated as empty.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from openapi_directory.core.cache.store import PersistentCache
from openapi_directory.core.custom_specs.manifest import ManifestStore
from openapi_directory.core.custom_specs.source import CustomSpecSource
from openapi_directory.core.directory.merge import (
    aggregate_metrics,
    get_conflict_info,
    merge_api_lists,
    merge_paginated_apis,
    merge_providers,
    merge_search_results,
    rank_search_results,
)
from openapi_directory.core.directory.sources import DirectorySource, RegistryClient
from openapi_directory.core.directory.stats import (
    build_summary,
    calculate_provider_stats,
    filter_apis,
    summary_rows,
)
from openapi_directory.core.exceptions import ErrorContext, ErrorHandler, ErrorFactory
from openapi_directory.core.models import (
    ConflictInfo,
    DirectoryMetrics,
    DirectorySummary,
    PaginatedResults,
    ProviderStats,
)
from openapi_directory.utils.logging import get_logger

logger = get_logger(__name__)

CACHE_PREFIX = "triple:"
PAGINATED_TTL = 300
SEARCH_TTL = 300
METRICS_TTL = 300
SUMMARY_TTL = 600
PROVIDER_STATS_TTL = 1800
MAX_SEARCH_LIMIT = 50

EMPTY_METRICS = {"numSpecs": 0, "numAPIs": 0, "numEndpoints": 0}

AGGREGATED_KEYS = ("providers", "all_apis", "metrics", "api_summary")
AGGREGATED_PATTERNS = ("paginated_apis:*", "search:*", "provider:*", "stats:*")


class DirectoryAggregator:
    """Unified, cached query surface over three directory sources."""

    def __init__(
        self,
        primary: DirectorySource,
        secondary: DirectorySource,
        custom: CustomSpecSource,
        cache: PersistentCache,
    ):
        """
        Initialize the aggregator.

        Args:
            primary: Lowest-precedence source
            secondary: Overrides the primary source
            custom: Local custom spec source; overrides both registries
            cache: Shared persistent cache
        """
        self.primary = primary
        self.secondary = secondary
        self.custom = custom
        self.cache = cache

    @classmethod
    def from_config(
        cls,
        config: Any,
        cache: PersistentCache,
        manifest: ManifestStore,
        transport: Optional[Any] = None,
    ) -> "DirectoryAggregator":
        """Wire both registries and the custom source from a ``Config``."""
        sources = config.sources
        return cls(
            primary=RegistryClient("primary", sources.primary_url, cache,
                                   sources.timeout_seconds, transport),
            secondary=RegistryClient("secondary", sources.secondary_url, cache,
                                     sources.timeout_seconds, transport),
            custom=CustomSpecSource(manifest, cache),
            cache=cache,
        )

    async def _fetch_with_cache(
        self,
        key: str,
        fetch_fn: Callable[[], Awaitable[Any]],
        ttl: Optional[float] = None,
    ) -> Any:
        return await self.cache.warm_cache(f"{CACHE_PREFIX}{key}", fetch_fn, ttl)

    async def _settle(self, operation: str, calls: Sequence[Awaitable[Any]], defaults: Sequence[Any]) -> List[Any]:
        """Await all calls; a failed call yields its default."""
        results = await asyncio.gather(*calls, return_exceptions=True)
        settled = []
        for result, default in zip(results, defaults):
            if isinstance(result, Exception):
                error = ErrorFactory.from_http_error(result, ErrorContext(operation=operation))
                ErrorHandler.log_error(error)
                settled.append(default)
            else:
                settled.append(result)
        return settled

    async def _all_sources(self, operation: str, method: str, *args: Any, default: Any) -> List[Any]:
        sources = (self.primary, self.secondary, self.custom)
        calls = [getattr(source, method)(*args) for source in sources]
        return await self._settle(operation, calls, [default] * len(sources))

    async def get_providers(self) -> Dict[str, List[str]]:
        async def fetch():
            primary, secondary, custom = await self._all_sources(
                "get_providers", "get_providers", default={"data": []}
            )
            return merge_providers(merge_providers(primary, secondary), custom)

        return await self._fetch_with_cache("providers", fetch)

    async def get_provider(self, provider: str) -> Dict[str, Dict[str, Any]]:
        async def fetch():
            primary, secondary, custom = await self._all_sources(
                "get_provider", "get_provider", provider, default={}
            )
            return merge_api_lists(merge_api_lists(primary, secondary), custom)

        return await self._fetch_with_cache(f"provider:{provider}", fetch)

    async def list_apis(self) -> Dict[str, Dict[str, Any]]:
        async def fetch():
            primary, secondary, custom = await self._all_sources("list_apis", "list_apis", default={})
            return merge_api_lists(merge_api_lists(primary, secondary), custom)

        return await self._fetch_with_cache("all_apis", fetch)

    async def get_paginated_apis(self, page: int = 1, limit: int = 50) -> PaginatedResults:
        """
        One page of compact rows over all sources.

        The primary and secondary sources are merged in full first, so only
        the final merge with the custom source decides page boundaries.
        """
        page = max(page, 1)
        limit = max(limit, 1)

        async def fetch():
            primary, secondary, custom = await self._all_sources(
                "get_paginated_apis", "list_apis", default={}
            )
            registries = summary_rows(merge_api_lists(primary, secondary))
            result = merge_paginated_apis(
                PaginatedResults.single_page(registries),
                PaginatedResults.single_page(summary_rows(custom)),
                page,
                limit,
            )
            return result.model_dump()

        data = await self._fetch_with_cache(f"paginated_apis:{page}:{limit}", fetch, PAGINATED_TTL)
        return PaginatedResults.model_validate(data)

    async def get_metrics(self) -> DirectoryMetrics:
        """
        Directory-wide metrics with overlaps removed.

        ``numEndpoints`` is an estimate; see ``aggregate_metrics``.
        """
        async def fetch():
            (
                primary_metrics, secondary_metrics, custom_metrics,
                primary_apis, secondary_apis, custom_apis,
            ) = await self._settle(
                "get_metrics",
                [
                    self.primary.get_metrics(),
                    self.secondary.get_metrics(),
                    self.custom.get_metrics(),
                    self.primary.list_apis(),
                    self.secondary.list_apis(),
                    self.custom.list_apis(),
                ],
                [EMPTY_METRICS, EMPTY_METRICS, EMPTY_METRICS, {}, {}, {}],
            )

            merged = aggregate_metrics(primary_metrics, secondary_metrics, primary_apis, secondary_apis)
            combined_ids = set(primary_apis) | set(secondary_apis)
            result = aggregate_metrics(merged, custom_metrics, combined_ids, custom_apis)
            return result.model_dump(by_alias=True)

        data = await self._fetch_with_cache("metrics", fetch, METRICS_TTL)
        return DirectoryMetrics.model_validate(data)

    async def search_apis(
        self,
        query: str,
        provider: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> PaginatedResults:
        """
        Search every source and return one ranked page.

        Args:
            query: Case-insensitive text matched against ids, titles,
                descriptions and provider names
            provider: Only keep ids containing this string
            page: 1-based page number
            limit: Page size, clamped to 1..50
        """
        limit = min(max(limit, 1), MAX_SEARCH_LIMIT)
        page = max(page, 1)
        key = f"search:{query}:{provider or 'all'}:{page}:{limit}"

        async def fetch():
            primary, secondary, custom = await self._all_sources("search_apis", "list_apis", default={})
            rows = [
                summary_rows(filter_apis(snapshot, query, provider))
                for snapshot in (primary, secondary, custom)
            ]
            registries = rank_search_results(rows[0], rows[1], query)
            result = merge_search_results(
                PaginatedResults.single_page(registries),
                PaginatedResults.single_page(rows[2]),
                query,
                page,
                limit,
            )
            return result.model_dump()

        data = await self._fetch_with_cache(key, fetch, SEARCH_TTL)
        return PaginatedResults.model_validate(data)

    async def get_api_summary(self) -> DirectorySummary:
        async def fetch():
            return build_summary(await self.list_apis()).model_dump()

        data = await self._fetch_with_cache("api_summary", fetch, SUMMARY_TTL)
        return DirectorySummary.model_validate(data)

    async def get_provider_stats(self, provider: str) -> ProviderStats:
        async def fetch():
            return calculate_provider_stats(await self.get_provider(provider)).model_dump(by_alias=True)

        data = await self._fetch_with_cache(f"stats:{provider}", fetch, PROVIDER_STATS_TTL)
        return ProviderStats.model_validate(data)

    async def get_conflict_info(self) -> ConflictInfo:
        """Overlap between the two registries; diagnostic only, not cached."""
        primary, secondary = await self._settle(
            "get_conflict_info",
            [self.primary.list_apis(), self.secondary.list_apis()],
            [{}, {}],
        )
        return get_conflict_info(primary, secondary)

    def invalidate_custom_spec_caches(self) -> int:
        """Drop every cached result that includes custom spec data."""
        removed = self.custom.invalidate_cache()
        removed += self.cache.invalidate_keys(f"{CACHE_PREFIX}{key}" for key in AGGREGATED_KEYS)
        for pattern in AGGREGATED_PATTERNS:
            removed += self.cache.invalidate_pattern(f"{CACHE_PREFIX}{pattern}")
        logger.info(f"Invalidated {removed} cache entries after custom spec change")
        return removed

    async def warm_critical_caches(self) -> None:
        """Refill the most used aggregated results; failures are only logged."""
        results = await asyncio.gather(
            self.get_providers(),
            self.get_metrics(),
            self.list_apis(),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, Exception):
                logger.warning(f"Cache warming failed: {result}")
