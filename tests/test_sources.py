"""
Test the remote registry client and the custom spec source.
"""

import json

import httpx
import pytest

from openapi_directory.core.custom_specs.importer import ImportManager
from openapi_directory.core.custom_specs.source import CustomSpecSource, count_endpoints, strip_documents
from openapi_directory.core.directory.sources import RegistryClient
from openapi_directory.core.exceptions import NetworkError, NotFoundError, ServerError, SpecParseError


class TestRegistryClient:
    """Test HTTP access and response caching."""

    def setup_method(self):
        """Set up test fixtures."""
        self.requests = []
        self.routes = {
            "/v2/providers.json": {"data": ["a.com", "b.com"]},
            "/v2/list.json": {"a.com": {"preferred": "1"}},
            "/v2/metrics.json": {"numSpecs": 1, "numAPIs": 1, "numEndpoints": 4},
            "/v2/a.com.json": {"apis": {"a.com": {"preferred": "1"}}},
        }

    def handler(self, request):
        self.requests.append(request.url.path)
        if request.url.path not in self.routes:
            return httpx.Response(404, json={"error": "not found"})
        return httpx.Response(200, json=self.routes[request.url.path])

    def client(self, cache, handler=None):
        return RegistryClient(
            "primary",
            "https://registry.test/v2/",
            cache,
            transport=httpx.MockTransport(handler or self.handler),
        )

    @pytest.mark.asyncio
    async def test_endpoints(self, cache):
        """Test that each operation hits its registry path."""
        client = self.client(cache)

        assert await client.get_providers() == {"data": ["a.com", "b.com"]}
        assert await client.list_apis() == {"a.com": {"preferred": "1"}}
        assert (await client.get_metrics())["numEndpoints"] == 4
        assert await client.get_provider("a.com") == {"a.com": {"preferred": "1"}}
        assert self.requests == [
            "/v2/providers.json",
            "/v2/list.json",
            "/v2/metrics.json",
            "/v2/a.com.json",
        ]

    @pytest.mark.asyncio
    async def test_responses_are_cached(self, cache):
        """Test that repeated calls are served from the cache."""
        client = self.client(cache)

        await client.list_apis()
        await client.list_apis()

        assert self.requests == ["/v2/list.json"]
        assert cache.has("primary:all_apis")

    @pytest.mark.asyncio
    async def test_not_found(self, cache):
        client = self.client(cache)

        with pytest.raises(NotFoundError):
            await client.get_provider("missing.org")
        assert not cache.has("primary:provider:missing.org")

    @pytest.mark.asyncio
    async def test_server_error(self, cache):
        client = self.client(cache, lambda request: httpx.Response(503))

        with pytest.raises(ServerError):
            await client.get_metrics()

    @pytest.mark.asyncio
    async def test_connection_error(self, cache):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(NetworkError):
            await self.client(cache, refuse).get_providers()

    @pytest.mark.asyncio
    async def test_invalid_json(self, cache):
        client = self.client(cache, lambda request: httpx.Response(200, text="<html>"))

        with pytest.raises(SpecParseError, match="Invalid JSON"):
            await client.list_apis()


class TestCustomSpecSource:
    """Test serving imported specs as a directory source."""

    @pytest.fixture(autouse=True)
    def setup(self, memory_manifest, cache, processor):
        """Set up test fixtures."""
        self.manifest = memory_manifest
        self.cache = cache
        self.source = CustomSpecSource(memory_manifest, cache)
        self.importer = ImportManager(memory_manifest, processor)

    @pytest.mark.asyncio
    async def test_empty(self):
        assert await self.source.get_providers() == {"data": []}
        assert await self.source.list_apis() == {}
        assert await self.source.get_metrics() == {"numSpecs": 0, "numAPIs": 0, "numEndpoints": 0}

    @pytest.mark.asyncio
    async def test_imported_spec_is_listed(self, spec_file):
        """Test that listed entries omit the embedded spec documents."""
        await self.importer.import_spec(spec_file)
        self.source.invalidate_cache()

        apis = await self.source.list_apis()

        assert list(apis) == ["custom:petstore:2.1.0"]
        entry = apis["custom:petstore:2.1.0"]
        assert entry["preferred"] == "2.1.0"
        assert "spec" not in entry["versions"]["2.1.0"]
        assert entry["versions"]["2.1.0"]["info"]["title"] == "Pet Store"

        assert await self.source.get_providers() == {"data": ["custom"]}
        assert await self.source.get_provider("custom") == apis
        assert await self.source.get_provider("other.com") == {}
        assert await self.source.has_api("custom:petstore:2.1.0") is True

    @pytest.mark.asyncio
    async def test_metrics_count_endpoints(self, spec_file):
        await self.importer.import_spec(spec_file)

        assert await self.source.get_metrics() == {"numSpecs": 1, "numAPIs": 1, "numEndpoints": 3}

    @pytest.mark.asyncio
    async def test_invalidate_cache(self, spec_file):
        """Test that invalidation makes new imports visible."""
        assert await self.source.list_apis() == {}
        await self.importer.import_spec(spec_file)
        assert await self.source.list_apis() == {}

        assert self.source.invalidate_cache() == 1
        assert list(await self.source.list_apis()) == ["custom:petstore:2.1.0"]

    @pytest.mark.asyncio
    async def test_unreadable_file_is_skipped(self, spec_file):
        await self.importer.import_spec(spec_file)
        self.manifest.storage.files[self.manifest.storage.spec_location("petstore", "2.1.0")] = "{bad"

        assert self.source.get_stored_entry("custom:petstore:2.1.0") is None
        assert await self.source.list_apis() == {}

    def test_count_endpoints(self):
        entry = {
            "preferred": "1",
            "versions": {"1": {"spec": {"paths": {
                "/a": {"get": {}, "post": {}, "parameters": []},
                "/b": {"delete": {}},
                "/c": "not an object",
            }}}},
        }
        assert count_endpoints(entry) == 3
        assert count_endpoints({"preferred": "1", "versions": {}}) == 0

    def test_strip_documents(self):
        entry = {"preferred": "1", "versions": {"1": {"info": {}, "spec": {"openapi": "3.0.0"}}}}
        stripped = strip_documents(entry)

        assert stripped["versions"] == {"1": {"info": {}}}
        assert "spec" in entry["versions"]["1"]
        assert json.loads(json.dumps(stripped)) == stripped
