"""Merged view over the registries and the custom specs."""

from openapi_directory.core.directory.aggregator import DirectoryAggregator
from openapi_directory.core.directory.sources import DirectorySource, RegistryClient

__all__ = [
    "DirectoryAggregator",
    "DirectorySource",
    "RegistryClient",
]
