"""Key-value persistence for wabridge.

Example:
    ```python
    from wabridge.storage import InMemoryStore, create_store

    store = InMemoryStore()
    store.set("wabridge_cache_registry", {}, ttl_seconds=None)

    store = create_store(settings)  # memory or sqlite, per WABRIDGE_STORAGE_BACKEND
    ```
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .base import Clock, KeyValueStore, encoded_size
from .memory import InMemoryStore
from .sqlite import SQLiteStore

if TYPE_CHECKING:
    from wabridge.config import Settings


def create_store(settings: Settings) -> KeyValueStore:
    """Build the store selected by settings.storage_backend."""
    if settings.storage_backend == "sqlite":
        return SQLiteStore(settings.sqlite_path)
    return InMemoryStore()


__all__ = [
    "Clock",
    "InMemoryStore",
    "KeyValueStore",
    "SQLiteStore",
    "create_store",
    "encoded_size",
]
