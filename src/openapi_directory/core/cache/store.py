"""
Persistent TTL cache shared by the directory sources and the aggregator.

Entries live in memory and are mirrored to a single JSON file on a fixed
interval and at shutdown. A sentinel file next to the cache file lets a
separate process (the import CLI) tell a running server to drop its cache.
Every failure is logged and degrades to a miss; the cache never raises.
"""

import asyncio
import json
import os
import re
import tempfile
import threading
import time
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple, Union

from openapi_directory.utils.logging import get_logger

logger = get_logger(__name__)

_MISSING = object()

DEFAULT_TTL_SECONDS = 24 * 60 * 60
DEFAULT_PERSIST_INTERVAL = 5 * 60


class CacheEntry:
    """A cached value with absolute expiry (0 means never)."""

    __slots__ = ("value", "expires", "created")

    def __init__(self, value: Any, expires: float, created: float):
        self.value = value
        self.expires = expires
        self.created = created

    def is_expired(self, now: float) -> bool:
        return bool(self.expires) and now > self.expires

    def to_dict(self) -> Dict[str, Any]:
        # On-disk timestamps are epoch milliseconds
        return {
            "value": self.value,
            "expires": int(self.expires * 1000) if self.expires else 0,
            "created": int(self.created * 1000),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheEntry":
        expires = data.get("expires") or 0
        created = data.get("created") or 0
        return cls(
            value=data.get("value"),
            expires=float(expires) / 1000 if expires else 0,
            created=float(created) / 1000,
        )


def compile_pattern(pattern: str) -> "re.Pattern[str]":
    """Compile a ``*`` glob into an anchored regex; other characters are literal."""
    parts = [re.escape(part) for part in pattern.split("*")]
    return re.compile("^" + ".*".join(parts) + "$")


class PersistentCache:
    """File-backed key/value cache with per-entry TTL."""

    def __init__(
        self,
        cache_dir: Union[str, Path],
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        enabled: bool = True,
        persist_interval: float = DEFAULT_PERSIST_INTERVAL,
        file_name: str = "cache.json",
        invalidation_flag: str = ".invalidate",
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the cache and load any persisted entries.

        Args:
            cache_dir: Directory holding the cache file and the invalidation flag
            ttl_seconds: Default TTL applied when ``set`` gets no ttl
            enabled: When False every read misses and every write is refused
            persist_interval: Seconds between background flushes
            file_name: Cache file name inside ``cache_dir``
            invalidation_flag: Sentinel file name inside ``cache_dir``
            clock: Time source returning epoch seconds
        """
        self.cache_dir = Path(os.path.expanduser(str(cache_dir)))
        self.cache_file = self.cache_dir / file_name
        self.invalidate_flag = self.cache_dir / invalidation_flag
        self.ttl_seconds = ttl_seconds
        self.persist_interval = persist_interval
        self.enabled = enabled
        self._clock = clock
        self._data: Dict[str, CacheEntry] = {}
        self._lock = threading.RLock()
        self._persist_task: Optional[asyncio.Task] = None

        self._hits = 0
        self._misses = 0

        if self.enabled:
            self._initialize()

    @classmethod
    def from_config(cls, config: Any, **kwargs: Any) -> "PersistentCache":
        """Build a cache from a loaded ``Config``."""
        return cls(
            cache_dir=config.get_cache_dir(),
            ttl_seconds=config.cache.ttl_seconds,
            enabled=config.cache.enabled,
            persist_interval=config.cache.persist_interval_seconds,
            file_name=config.cache.file_name,
            invalidation_flag=config.cache.invalidation_flag,
            **kwargs,
        )

    def _initialize(self) -> None:
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Failed to create cache directory {self.cache_dir}: {e}")
            self.enabled = False
            return

        self._load_from_disk()
        self._check_invalidation_flag()
        self.prune()
        logger.debug(f"Persistent cache initialized: {self.cache_file}")

    def _load_from_disk(self) -> None:
        if not self.cache_file.exists():
            return
        try:
            with open(self.cache_file, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable cache file {self.cache_file}: {e}")
            return

        if not isinstance(raw, dict):
            logger.warning(f"Ignoring malformed cache file {self.cache_file}")
            return

        now = self._clock()
        loaded = 0
        with self._lock:
            for key, data in raw.items():
                if not isinstance(data, dict):
                    continue
                try:
                    entry = CacheEntry.from_dict(data)
                except (TypeError, ValueError):
                    continue
                if not entry.is_expired(now):
                    self._data[key] = entry
                    loaded += 1
        logger.debug(f"Loaded {loaded} cache entries from disk")

    def _check_invalidation_flag(self) -> None:
        try:
            if not self.invalidate_flag.exists():
                return
        except OSError:
            return

        logger.info("Cache invalidation flag detected, clearing cache")
        with self._lock:
            self._data.clear()
        try:
            self.invalidate_flag.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to remove invalidation flag: {e}")

    def _lookup(self, key: str) -> Any:
        """Return the live value for ``key`` or the ``_MISSING`` sentinel."""
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return _MISSING
            if entry.is_expired(self._clock()):
                del self._data[key]
                return _MISSING
            return entry.value

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a value if present and not expired.

        Args:
            key: Cache key
            default: Returned on a miss

        Returns:
            The cached value or ``default``
        """
        if not self.enabled:
            return default

        self._check_invalidation_flag()

        value = self._lookup(key)
        with self._lock:
            if value is _MISSING:
                self._misses += 1
                logger.debug(f"Cache miss: {key}")
                return default
            self._hits += 1
        logger.debug(f"Cache hit: {key}")
        return value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> bool:
        """
        Store a value.

        Args:
            key: Cache key
            value: JSON-serializable value
            ttl: Seconds to live; None uses the default, 0 never expires

        Returns:
            True if stored
        """
        if not self.enabled:
            return False

        effective_ttl = self.ttl_seconds if ttl is None else ttl
        now = self._clock()
        expires = now + effective_ttl if effective_ttl > 0 else 0

        with self._lock:
            self._data[key] = CacheEntry(value, expires, now)

        logger.debug(f"Cache set: {key} (TTL: {effective_ttl if effective_ttl > 0 else 'never'})")
        return True

    def delete(self, key: str) -> int:
        """Remove a key; returns the number of entries removed."""
        if not self.enabled:
            return 0
        with self._lock:
            if self._data.pop(key, None) is not None:
                logger.debug(f"Cache deleted: {key}")
                return 1
        return 0

    def has(self, key: str) -> bool:
        """Whether a live entry exists for ``key``."""
        if not self.enabled:
            return False
        self._check_invalidation_flag()
        return self._lookup(key) is not _MISSING

    def keys(self) -> List[str]:
        if not self.enabled:
            return []
        with self._lock:
            return list(self._data.keys())

    def invalidate_pattern(self, pattern: str) -> int:
        """
        Delete every key matching a ``*`` glob.

        Args:
            pattern: Glob where ``*`` matches any run of characters

        Returns:
            Number of keys removed
        """
        if not self.enabled:
            return 0
        regex = compile_pattern(pattern)
        with self._lock:
            matched = [key for key in self._data if regex.match(key)]
            for key in matched:
                del self._data[key]
        if matched:
            logger.debug(f"Invalidated {len(matched)} keys matching {pattern}")
        return len(matched)

    def invalidate_keys(self, keys: Iterable[str]) -> int:
        """Delete the listed keys; returns how many existed."""
        return sum(self.delete(key) for key in keys)

    async def warm_cache(
        self,
        key: str,
        fetch_fn: Callable[[], Awaitable[Any]],
        ttl: Optional[float] = None,
    ) -> Any:
        """
        Return the cached value for ``key`` or fetch, store and return it.

        A failing ``fetch_fn`` stores nothing and its exception propagates.
        """
        if self.enabled:
            self._check_invalidation_flag()
            cached = self._lookup(key)
            if cached is not _MISSING:
                with self._lock:
                    self._hits += 1
                logger.debug(f"Cache hit: {key}")
                return cached
            with self._lock:
                self._misses += 1

        value = await fetch_fn()
        self.set(key, value, ttl)
        return value

    def get_ttl(self, key: str) -> Optional[float]:
        """Remaining seconds for ``key``; None for absent or never-expiring keys."""
        if not self.enabled:
            return None
        with self._lock:
            entry = self._data.get(key)
            if entry is None or not entry.expires:
                return None
            remaining = entry.expires - self._clock()
        return remaining if remaining > 0 else None

    def prune(self) -> int:
        """Remove expired entries; returns how many were dropped."""
        if not self.enabled:
            return 0
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._data.items() if entry.is_expired(now)]
            for key in expired:
                del self._data[key]
        if expired:
            logger.debug(f"Pruned {len(expired)} expired cache entries")
        return len(expired)

    def clear(self) -> None:
        """Drop every entry and delete the cache file."""
        if not self.enabled:
            return
        with self._lock:
            self._data.clear()
        try:
            self.cache_file.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to delete cache file: {e}")
        logger.info("Cache cleared")

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        if not self.enabled:
            return {
                "enabled": False,
                "keys": 0,
                "hits": 0,
                "misses": 0,
                "hit_rate": 0.0,
                "ksize": 0,
                "vsize": 0,
                "ttl_seconds": self.ttl_seconds,
                "cache_file": str(self.cache_file),
            }

        ksize = 0
        vsize = 0
        with self._lock:
            items = list(self._data.items())
            hits, misses = self._hits, self._misses
        for key, entry in items:
            ksize += len(key.encode("utf-8"))
            try:
                vsize += len(json.dumps(entry.value, default=str).encode("utf-8"))
            except (TypeError, ValueError):
                continue

        total = hits + misses
        return {
            "enabled": True,
            "keys": len(items),
            "hits": hits,
            "misses": misses,
            "hit_rate": hits / total if total else 0.0,
            "ksize": ksize,
            "vsize": vsize,
            "ttl_seconds": self.ttl_seconds,
            "cache_file": str(self.cache_file),
        }

    def create_invalidation_flag(self) -> bool:
        """Signal other processes sharing ``cache_dir`` to drop their cache."""
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            self.invalidate_flag.touch()
        except OSError as e:
            logger.error(f"Failed to create invalidation flag: {e}")
            return False
        logger.debug(f"Created cache invalidation flag {self.invalidate_flag}")
        return True

    def _serializable_entries(self) -> Tuple[Dict[str, Any], int]:
        with self._lock:
            items = list(self._data.items())
        payload: Dict[str, Any] = {}
        skipped = 0
        for key, entry in items:
            record = entry.to_dict()
            try:
                json.dumps(record)
            except (TypeError, ValueError):
                skipped += 1
                continue
            payload[key] = record
        return payload, skipped

    def persist(self) -> bool:
        """Write all entries to the cache file atomically."""
        if not self.enabled:
            return False

        payload, skipped = self._serializable_entries()
        if skipped:
            logger.warning(f"Skipped {skipped} cache entries that are not JSON serializable")

        tmp_name = None
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self.cache_dir,
                prefix=".cache-",
                suffix=".tmp",
                delete=False,
            ) as f:
                tmp_name = f.name
                json.dump(payload, f)
            os.replace(tmp_name, self.cache_file)
        except OSError as e:
            logger.error(f"Failed to persist cache to {self.cache_file}: {e}")
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            return False

        logger.debug(f"Persisted {len(payload)} cache entries")
        return True

    async def start(self) -> None:
        """Start the periodic flush task."""
        if not self.enabled or self._persist_task is not None:
            return
        self._persist_task = asyncio.create_task(self._persist_loop())

    async def _persist_loop(self) -> None:
        while True:
            try:
                await asyncio.sleep(self.persist_interval)
                self.prune()
                self.persist()
            except asyncio.CancelledError:
                logger.debug("Cache persist loop cancelled")
                break

    async def close(self) -> None:
        """Stop the flush task, sweep expired entries and flush to disk."""
        if self._persist_task is not None:
            self._persist_task.cancel()
            try:
                await self._persist_task
            except asyncio.CancelledError:
                pass
            self._persist_task = None

        if self.enabled:
            self.prune()
            self.persist()
