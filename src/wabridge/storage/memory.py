"""In-process key-value store."""

from __future__ import annotations

import copy
import time
from typing import Any

from .base import Clock, encoded_size


class InMemoryStore:
    """Dict-backed KeyValueStore with lazy expiry.

    Expired values are invisible to get() and scan_by_prefix() and are
    dropped the next time they are touched. Values are deep-copied on the
    way in and out so callers cannot mutate stored state by accident.

    Not shared across processes.
    """

    def __init__(self, clock: Clock = time.time) -> None:
        self._clock = clock
        # key -> (value, expires_at or None)
        self._data: dict[str, tuple[Any, float | None]] = {}

    def _live(self, key: str) -> bool:
        item = self._data.get(key)
        if item is None:
            return False
        expires_at = item[1]
        if expires_at is not None and expires_at <= self._clock():
            del self._data[key]
            return False
        return True

    def get(self, key: str, default: Any = None) -> Any:
        if not self._live(key):
            return default
        return copy.deepcopy(self._data[key][0])

    def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> bool:
        expires_at = self._clock() + ttl_seconds if ttl_seconds else None
        self._data[key] = (copy.deepcopy(value), expires_at)
        return True

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def scan_by_prefix(self, prefix: str) -> list[str]:
        return sorted(k for k in list(self._data) if k.startswith(prefix) and self._live(k))

    def size_of(self, prefix: str) -> int:
        return sum(encoded_size(self._data[k][0]) for k in self.scan_by_prefix(prefix))

    def __len__(self) -> int:
        return len(self.scan_by_prefix(""))
