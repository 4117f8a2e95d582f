"""Key-value persistence protocol.

The cache, the secret store and the vendor session store only need four
primitives from their backing store: read, write with optional expiry,
delete and prefix scan. Anything that offers them (a dict, a SQLite table,
a hosted options table) can back the whole system.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

Clock = Callable[[], float]


@runtime_checkable
class KeyValueStore(Protocol):
    """Protocol for the persistence layer.

    Implementations must not raise on ordinary backend failures: writes
    report failure through their boolean result, reads return the default.
    """

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value for key, or default if absent or expired."""
        ...

    def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> bool:
        """Upsert a value, optionally expiring after ttl_seconds."""
        ...

    def delete(self, key: str) -> bool:
        """Remove a key. True if something was removed."""
        ...

    def scan_by_prefix(self, prefix: str) -> list[str]:
        """Return the live keys starting with prefix, sorted."""
        ...

    def size_of(self, prefix: str) -> int:
        """Approximate serialized size in bytes of values under prefix."""
        ...


def encoded_size(value: Any) -> int:
    """Size of a value once serialized as JSON (repr for non-JSON values)."""
    try:
        return len(json.dumps(value, default=str).encode("utf-8"))
    except (TypeError, ValueError):
        return len(repr(value).encode("utf-8"))
