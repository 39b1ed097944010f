"""
Pytest configuration and fixtures for OpenAPI directory testing.

Every fixture works inside ``tmp_path`` so no test touches the user's
real cache directory or custom spec manifest.
"""

import copy
import json
from pathlib import Path
from typing import Any, Dict, Optional

import pytest
import yaml

from openapi_directory.core.cache.store import PersistentCache
from openapi_directory.core.custom_specs.manifest import InMemoryManifestStorage, ManifestStore
from openapi_directory.core.custom_specs.processor import SpecProcessor
from openapi_directory.core.custom_specs.source import CustomSpecSource


SAMPLE_SPEC: Dict[str, Any] = {
    "openapi": "3.0.3",
    "info": {
        "title": "Pet Store",
        "version": "2.1.0",
        "description": "Manage pets in the store",
    },
    "paths": {
        "/pets": {
            "get": {
                "summary": "List pets",
                "responses": {"200": {"description": "A list of pets"}},
            },
            "post": {
                "summary": "Create a pet",
                "responses": {"201": {"description": "Created"}},
            },
        },
        "/pets/{petId}": {
            "get": {
                "summary": "Get a pet",
                "parameters": [
                    {"name": "petId", "in": "path", "required": True, "schema": {"type": "string"}},
                ],
                "responses": {"200": {"description": "A pet"}},
            },
        },
    },
}


class FakeClock:
    """Manually advanced time source for TTL tests."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSource:
    """In-memory directory source with call counting and failure injection."""

    def __init__(
        self,
        name: str,
        apis: Optional[Dict[str, Dict[str, Any]]] = None,
        providers: Optional[list] = None,
        metrics: Optional[Dict[str, Any]] = None,
        fail: bool = False,
    ):
        self.name = name
        self.apis = apis or {}
        self.providers = providers if providers is not None else sorted(
            {api_id.split(":")[0] for api_id in self.apis}
        )
        self.metrics = metrics or {
            "numSpecs": len(self.apis),
            "numAPIs": len(self.apis),
            "numEndpoints": 10 * len(self.apis),
        }
        self.fail = fail
        self.calls = 0

    def _check(self):
        self.calls += 1
        if self.fail:
            raise ConnectionError(f"{self.name} unavailable")

    async def get_providers(self):
        self._check()
        return {"data": list(self.providers)}

    async def get_provider(self, provider):
        self._check()
        return {k: v for k, v in self.apis.items() if k.split(":")[0] == provider}

    async def list_apis(self):
        self._check()
        return copy.deepcopy(self.apis)

    async def get_metrics(self):
        self._check()
        return dict(self.metrics)


def make_entry(
    title: str,
    provider: str,
    version: str = "1.0.0",
    description: str = "",
    added: str = "2023-01-01T00:00:00.000Z",
    updated: str = "2023-06-01T00:00:00.000Z",
    categories: Optional[list] = None,
) -> Dict[str, Any]:
    """Registry-shaped directory entry with a single version."""
    return {
        "added": added,
        "preferred": version,
        "versions": {
            version: {
                "added": added,
                "updated": updated,
                "swaggerUrl": f"https://example.com/{provider}/openapi.json",
                "swaggerYamlUrl": f"https://example.com/{provider}/openapi.yaml",
                "openapiVer": "3.0.0",
                "info": {
                    "title": title,
                    "version": version,
                    "description": description,
                    "x-providerName": provider,
                    "x-apisguru-categories": categories or [],
                },
            },
        },
    }


@pytest.fixture
def clock():
    """Controllable clock."""
    return FakeClock()


@pytest.fixture
def cache_dir(tmp_path) -> Path:
    path = tmp_path / "cache"
    path.mkdir()
    return path


@pytest.fixture
def cache(cache_dir, clock):
    """Persistent cache rooted in a temporary directory."""
    return PersistentCache(cache_dir, ttl_seconds=3600, clock=clock)


@pytest.fixture
def memory_manifest():
    """Manifest store without any file I/O."""
    return ManifestStore(InMemoryManifestStorage())


@pytest.fixture
def file_manifest(cache_dir):
    """Manifest store writing under the temporary cache directory."""
    return ManifestStore.at(cache_dir)


@pytest.fixture
def processor():
    """Spec processor with the external structural validator disabled."""
    return SpecProcessor(validator=None)


@pytest.fixture
def custom_source(memory_manifest, cache):
    return CustomSpecSource(memory_manifest, cache)


@pytest.fixture
def sample_spec() -> Dict[str, Any]:
    return copy.deepcopy(SAMPLE_SPEC)


@pytest.fixture
def write_spec(tmp_path):
    """Write a spec document to a file and return its path."""

    def _write(document: Any, filename: str = "petstore.json", as_yaml: bool = False) -> str:
        path = tmp_path / filename
        if isinstance(document, str):
            path.write_text(document, encoding="utf-8")
        elif as_yaml:
            path.write_text(yaml.safe_dump(document, sort_keys=False), encoding="utf-8")
        else:
            path.write_text(json.dumps(document), encoding="utf-8")
        return str(path)

    return _write


@pytest.fixture
def spec_file(write_spec, sample_spec) -> str:
    return write_spec(sample_spec)
