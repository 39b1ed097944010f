"""Persistent cache."""

from openapi_directory.core.cache.store import PersistentCache

__all__ = ["PersistentCache"]
