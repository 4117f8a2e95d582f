"""Expiring key-value cache with a registry for bulk invalidation.

The backing KeyValueStore offers native expiry but no cheap way to list
what this cache owns, so every entry written here is also recorded in a
registry (one store key holding `{full_key: {"expires", "created"}}`).
The registry drives the scheduled sweep, flush_all() and get_stats().

Example:
    ```python
    cache = CacheStore(InMemoryStore(), prefix="wabridge_", default_ttl=3600)

    cache.set("event_get_status_ab12", {"status": "open"}, ttl_seconds=300)
    cache.get("event_get_status_ab12")
    cache.delete_by_prefix("event_get_status")
    ```
"""

from __future__ import annotations

import asyncio
import contextlib
import re
import time
from collections.abc import Callable
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from wabridge.logging import get_logger, log_event
from wabridge.storage import Clock, KeyValueStore

logger = get_logger(__name__)

T = TypeVar("T")

_MISSING: Any = object()

_UNSAFE_KEY_CHARS = re.compile(r"[^a-z0-9_\-]")


def sanitize_key(key: str) -> str:
    """Lowercase a key and strip everything except a-z, 0-9, '_' and '-'."""
    return _UNSAFE_KEY_CHARS.sub("", str(key).lower())


class CacheEntry(BaseModel):
    """A stored cache value with its lifetime."""

    model_config = ConfigDict(extra="forbid")

    key: str
    value: Any = None
    created_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return self.expires_at < now


class CacheStats(BaseModel):
    """Snapshot of the cache registry."""

    model_config = ConfigDict(extra="forbid")

    total_entries: int = Field(ge=0)
    expired_entries: int = Field(ge=0)
    active_entries: int = Field(ge=0)
    size_estimate_bytes: int = Field(ge=0)
    last_cleanup: float | None = None


class CacheStore:
    """Expiring cache over a KeyValueStore.

    Store failures never raise: writes return False and reads return the
    default, both logged. get() never deletes anything itself; expired
    entries are only removed by cleanup_expired(), delete() or the store's
    own expiry.
    """

    def __init__(
        self,
        store: KeyValueStore,
        prefix: str = "wabridge_",
        default_ttl: int = 3600,
        clock: Clock = time.time,
    ) -> None:
        self._store = store
        self._prefix = sanitize_key(prefix)
        self._default_ttl = abs(int(default_ttl))
        self._clock = clock
        # Neither key starts with the cache prefix, so prefix scans never see them
        self._registry_key = f"cache_registry:{self._prefix}"
        self._last_cleanup_key = f"cache_last_cleanup:{self._prefix}"

    @property
    def prefix(self) -> str:
        return self._prefix

    def full_key(self, key: str) -> str:
        """Prefixed, sanitized key as stored in the backing store."""
        return self._prefix + sanitize_key(key)

    # Registry

    def _load_registry(self) -> dict[str, dict[str, float]]:
        registry = self._store.get(self._registry_key, {})
        return registry if isinstance(registry, dict) else {}

    def _save_registry(self, registry: dict[str, dict[str, float]]) -> None:
        if not self._store.set(self._registry_key, registry):
            logger.error("Failed to persist cache registry", entries=len(registry))

    def _register(self, full_key: str, created: float, expires: float) -> None:
        registry = self._load_registry()
        registry[full_key] = {"expires": expires, "created": created}
        self._save_registry(registry)

    def _unregister(self, *full_keys: str) -> None:
        registry = self._load_registry()
        removed = False
        for full_key in full_keys:
            if registry.pop(full_key, None) is not None:
                removed = True
        if removed:
            self._save_registry(registry)

    # Basic operations

    def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> bool:
        """Store a value for ttl_seconds (default TTL when None).

        Returns:
            False if the TTL is not positive or the store write failed.
        """
        ttl = self._default_ttl if ttl_seconds is None else int(ttl_seconds)
        full_key = self.full_key(key)
        if ttl <= 0:
            logger.warning("Refusing to cache with non-positive TTL", cache_key=full_key, ttl=ttl)
            return False

        now = self._clock()
        entry = CacheEntry(key=full_key, value=value, created_at=now, expires_at=now + ttl)

        if not self._store.set(full_key, entry.model_dump(), ttl):
            logger.warning("Cache write failed", cache_key=full_key)
            return False

        self._register(full_key, created=now, expires=entry.expires_at)
        logger.debug("Cached value", cache_key=full_key, ttl=ttl)
        return True

    def _read_entry(self, full_key: str) -> CacheEntry | None:
        raw = self._store.get(full_key)
        if raw is None:
            return None
        try:
            return CacheEntry.model_validate(raw)
        except ValueError:
            logger.warning("Discarding malformed cache entry", cache_key=full_key)
            return None

    def get(self, key: str, default: Any = None) -> Any:
        """Return the cached value, or default when absent or expired."""
        full_key = self.full_key(key)
        entry = self._read_entry(full_key)
        if entry is None or entry.is_expired(self._clock()):
            logger.debug("Cache miss", cache_key=full_key)
            return default
        logger.debug("Cache hit", cache_key=full_key)
        return entry.value

    def exists(self, key: str) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def update_if_exists(self, key: str, value: Any, ttl_seconds: int | None = None) -> bool:
        """Overwrite a value only when it is currently cached."""
        if not self.exists(key):
            return False
        return self.set(key, value, ttl_seconds)

    def delete(self, key: str) -> bool:
        """Remove a value and its registry record."""
        full_key = self.full_key(key)
        removed = self._store.delete(full_key)
        self._unregister(full_key)
        logger.debug("Deleted cache entry", cache_key=full_key, removed=removed)
        return removed

    def delete_by_prefix(self, prefix: str) -> int:
        """Delete every entry whose key starts with prefix.

        Returns:
            Number of stored values removed.
        """
        search = self.full_key(prefix)
        count = 0
        for full_key in self._store.scan_by_prefix(search):
            if self._store.delete(full_key):
                count += 1

        # Registered keys the scan skipped are expired but may still hold a row
        stale = [k for k in self._load_registry() if k.startswith(search)]
        for full_key in stale:
            self._store.delete(full_key)
        if stale:
            self._unregister(*stale)

        log_event(
            logger,
            "info" if count else "debug",
            "Deleted cache entries by prefix",
            prefix=prefix,
            count=count,
        )
        return count

    def remember(self, key: str, producer: Callable[[], T], ttl_seconds: int | None = None) -> T:
        """Return the cached value or compute, store and return producer().

        The producer runs at most once per call. Concurrent callers may both
        run it; there is no cross-request locking.
        """
        cached = self.get(key, _MISSING)
        if cached is not _MISSING:
            return cached  # type: ignore[no-any-return]

        value = producer()
        self.set(key, value, ttl_seconds)
        return value

    # Maintenance

    def cleanup_expired(self) -> int:
        """Delete registered entries whose expiry has passed.

        Registry records whose backing value disappeared (store-level
        expiry, external deletion) are dropped as well.

        Returns:
            Number of expired entries removed.
        """
        registry = self._load_registry()
        now = self._clock()
        cleaned = 0
        healed = 0

        for full_key, info in list(registry.items()):
            if info.get("expires", 0) < now:
                self._store.delete(full_key)
                del registry[full_key]
                cleaned += 1
            elif self._store.get(full_key) is None:
                del registry[full_key]
                healed += 1

        self._save_registry(registry)
        self._store.set(self._last_cleanup_key, now)

        logger.info("Scheduled cache cleanup completed", cleaned=cleaned, orphans_removed=healed)
        return cleaned

    def flush_all(self) -> int:
        """Delete every registered entry and reset the registry."""
        count = 0
        for full_key in self._load_registry():
            if self._store.delete(full_key):
                count += 1

        self._save_registry({})
        logger.info("Flushed cache", count=count)
        return count

    def get_stats(self) -> CacheStats:
        registry = self._load_registry()
        now = self._clock()
        total = len(registry)
        expired = sum(1 for info in registry.values() if info.get("expires", 0) < now)

        return CacheStats(
            total_entries=total,
            expired_entries=expired,
            active_entries=total - expired,
            size_estimate_bytes=self._store.size_of(self._prefix),
            last_cleanup=self._store.get(self._last_cleanup_key),
        )


class CacheCleanupScheduler:
    """Runs CacheStore.cleanup_expired() on a fixed interval.

    Started and stopped by the API lifespan. A failing sweep is logged
    and the loop keeps going.
    """

    def __init__(self, cache: CacheStore, interval_seconds: float = 86400) -> None:
        self._cache = cache
        self._interval = interval_seconds
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def run_once(self) -> int:
        return self._cache.cleanup_expired()

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                self.run_once()
            except Exception as e:
                logger.exception("Scheduled cache cleanup failed", error=str(e))

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop())
        logger.info("Cache cleanup scheduled", interval_seconds=self._interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
