"""
Local directory source backed by the custom spec manifest.
"""

import json
from typing import Any, Dict, List, Optional

from openapi_directory.core.cache.store import PersistentCache
from openapi_directory.core.custom_specs.manifest import ManifestStore, parse_spec_id
from openapi_directory.core.exceptions import ManifestError
from openapi_directory.utils.logging import get_logger

logger = get_logger(__name__)

CUSTOM_PROVIDER = "custom"
HTTP_METHODS = ("get", "post", "put", "delete", "patch", "head", "options")


def count_endpoints(entry: Dict[str, Any]) -> int:
    """Count HTTP operations in the preferred version's stored spec."""
    version = entry.get("versions", {}).get(entry.get("preferred"), {})
    document = version.get("spec") if isinstance(version, dict) else None
    if not isinstance(document, dict):
        return 0

    total = 0
    for path_item in (document.get("paths") or {}).values():
        if isinstance(path_item, dict):
            total += sum(1 for method in HTTP_METHODS if method in path_item)
    return total


def strip_documents(entry: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of a stored entry without the embedded spec documents."""
    stripped = dict(entry)
    stripped["versions"] = {
        key: {k: v for k, v in version.items() if k != "spec"}
        for key, version in entry.get("versions", {}).items()
        if isinstance(version, dict)
    }
    return stripped


class CustomSpecSource:
    """Serves imported specs in the same shape as the remote registries."""

    name = CUSTOM_PROVIDER

    def __init__(self, manifest: ManifestStore, cache: PersistentCache):
        self.manifest = manifest
        self.cache = cache

    async def get_providers(self) -> Dict[str, List[str]]:
        return {"data": [CUSTOM_PROVIDER] if self.manifest.list_specs() else []}

    async def get_provider(self, provider: str) -> Dict[str, Dict[str, Any]]:
        if provider != CUSTOM_PROVIDER:
            return {}
        return await self.list_apis()

    async def list_apis(self) -> Dict[str, Dict[str, Any]]:
        return await self.cache.warm_cache(
            f"{CUSTOM_PROVIDER}:all_apis",
            self._load_entries,
        )

    async def get_metrics(self) -> Dict[str, int]:
        return await self.cache.warm_cache(f"{CUSTOM_PROVIDER}:metrics", self._compute_metrics)

    async def has_api(self, api_id: str) -> bool:
        return self.manifest.has_spec(api_id)

    def get_stored_entry(self, api_id: str) -> Optional[Dict[str, Any]]:
        """Full stored entry, spec documents included; None if unreadable."""
        parsed = parse_spec_id(api_id)
        if parsed is None or not self.manifest.has_spec(api_id):
            return None
        try:
            return json.loads(self.manifest.read_spec_file(parsed.name, parsed.version))
        except (ManifestError, ValueError) as e:
            logger.warning(f"Failed to load custom spec {api_id}: {e}")
            return None

    def invalidate_cache(self) -> int:
        removed = self.cache.invalidate_pattern(f"{CUSTOM_PROVIDER}:*")
        logger.debug(f"Invalidated {removed} custom source cache entries")
        return removed

    async def _load_entries(self) -> Dict[str, Dict[str, Any]]:
        entries: Dict[str, Dict[str, Any]] = {}
        for spec in self.manifest.list_specs():
            stored = self.get_stored_entry(spec.id)
            if stored is not None:
                entries[spec.id] = strip_documents(stored)
        return entries

    async def _compute_metrics(self) -> Dict[str, int]:
        specs = self.manifest.list_specs()
        endpoints = 0
        for spec in specs:
            stored = self.get_stored_entry(spec.id)
            if stored is not None:
                endpoints += count_endpoints(stored)
        return {
            "numSpecs": len(specs),
            "numAPIs": len(specs),
            "numEndpoints": endpoints,
        }
