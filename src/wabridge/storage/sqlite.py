"""SQLite-backed key-value store.

Values are stored as JSON text, so everything written must be
JSON-serializable (pydantic models should be dumped with mode="json").
"""

from __future__ import annotations

import json
import sqlite3
import threading
import time
from pathlib import Path
from typing import Any

from wabridge.logging import get_logger

from .base import Clock

logger = get_logger(__name__)


class SQLiteStore:
    """KeyValueStore persisted in a single `kv` table.

    One connection is shared by the instance and guarded by a lock.
    Backend errors are logged and reported as False/default, never raised.
    """

    def __init__(self, db_path: str | Path = "wabridge.sqlite3", clock: Clock = time.time) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._init_db()

    def _init_db(self) -> None:
        with self._lock, self._conn:
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    expires_at REAL
                )
                """
            )
            self._conn.execute("CREATE INDEX IF NOT EXISTS idx_kv_expires ON kv(expires_at)")

    def get(self, key: str, default: Any = None) -> Any:
        try:
            with self._lock:
                row = self._conn.execute(
                    "SELECT value, expires_at FROM kv WHERE key = ?", (key,)
                ).fetchone()
        except sqlite3.Error as e:
            logger.error("SQLite read failed", key=key, error=str(e))
            return default

        if row is None:
            return default
        value, expires_at = row
        if expires_at is not None and expires_at <= self._clock():
            self.delete(key)
            return default
        try:
            return json.loads(value)
        except ValueError as e:
            logger.error("Corrupt value in SQLite store", key=key, error=str(e))
            return default

    def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> bool:
        expires_at = self._clock() + ttl_seconds if ttl_seconds else None
        try:
            encoded = json.dumps(value)
        except (TypeError, ValueError) as e:
            logger.warning("Value is not JSON-serializable", key=key, error=str(e))
            return False

        try:
            with self._lock, self._conn:
                self._conn.execute(
                    "INSERT OR REPLACE INTO kv (key, value, expires_at) VALUES (?, ?, ?)",
                    (key, encoded, expires_at),
                )
        except sqlite3.Error as e:
            logger.error("SQLite write failed", key=key, error=str(e))
            return False
        return True

    def delete(self, key: str) -> bool:
        try:
            with self._lock, self._conn:
                cursor = self._conn.execute("DELETE FROM kv WHERE key = ?", (key,))
        except sqlite3.Error as e:
            logger.error("SQLite delete failed", key=key, error=str(e))
            return False
        return cursor.rowcount > 0

    def _live_rows(self, prefix: str, columns: str) -> list[tuple[Any, ...]]:
        # substr() instead of LIKE: keys are full of "_" which LIKE treats as a wildcard
        try:
            with self._lock:
                return self._conn.execute(
                    f"SELECT {columns} FROM kv "
                    "WHERE substr(key, 1, ?) = ? AND (expires_at IS NULL OR expires_at > ?) "
                    "ORDER BY key",
                    (len(prefix), prefix, self._clock()),
                ).fetchall()
        except sqlite3.Error as e:
            logger.error("SQLite scan failed", prefix=prefix, error=str(e))
            return []

    def _purge_expired(self, prefix: str) -> None:
        try:
            with self._lock, self._conn:
                self._conn.execute(
                    "DELETE FROM kv WHERE substr(key, 1, ?) = ? AND expires_at <= ?",
                    (len(prefix), prefix, self._clock()),
                )
        except sqlite3.Error as e:
            logger.error("SQLite purge failed", prefix=prefix, error=str(e))

    def scan_by_prefix(self, prefix: str) -> list[str]:
        self._purge_expired(prefix)
        return [row[0] for row in self._live_rows(prefix, "key")]

    def size_of(self, prefix: str) -> int:
        return sum(len(row[0].encode("utf-8")) for row in self._live_rows(prefix, "value"))

    def close(self) -> None:
        with self._lock:
            self._conn.close()
