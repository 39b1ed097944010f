"""Custom spec ingestion: manifest, security scanner, processor and importer."""

from openapi_directory.core.custom_specs.importer import ImportManager
from openapi_directory.core.custom_specs.manifest import (
    FileManifestStorage,
    InMemoryManifestStorage,
    ManifestStore,
)
from openapi_directory.core.custom_specs.processor import SpecProcessor
from openapi_directory.core.custom_specs.scanner import SecurityScanner
from openapi_directory.core.custom_specs.source import CustomSpecSource

__all__ = [
    "ImportManager",
    "FileManifestStorage",
    "InMemoryManifestStorage",
    "ManifestStore",
    "SpecProcessor",
    "SecurityScanner",
    "CustomSpecSource",
]
