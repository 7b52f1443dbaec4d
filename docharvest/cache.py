"""TTL-keyed byte-blob caches consulted by the fetcher.

`SQLiteCache` persists entries in an embedded SQLite file so cached pages
survive across runs; `MemoryCache` offers the same surface in-process.
Both are safe for concurrent use by fetcher worker threads.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
from pathlib import Path
from typing import Any, Protocol

from .types import CacheEntry


logger = logging.getLogger(__name__)


class Cache(Protocol):
    def get(self, key: str) -> bytes | None: ...

    def set(self, key: str, value: bytes, ttl: float) -> None: ...

    def has(self, key: str) -> bool: ...

    def delete(self, key: str) -> None: ...

    def clear(self) -> None: ...

    def stats(self) -> dict[str, Any]: ...

    def close(self) -> None: ...


class SQLiteCache:
    """SQLite-backed TTL cache. Expired entries are dropped when read."""

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = str(db_path)
        if self._db_path != ":memory:":
            Path(self._db_path).expanduser().parent.mkdir(parents=True, exist_ok=True)
            self._db_path = str(Path(self._db_path).expanduser())

        self._lock = threading.Lock()
        self._conn = sqlite3.connect(self._db_path, check_same_thread=False)
        if self._db_path != ":memory:":
            self._conn.execute("PRAGMA journal_mode = WAL")
        self._conn.execute("PRAGMA synchronous = NORMAL")
        self._conn.execute("PRAGMA busy_timeout = 5000")
        self._create_tables()
        self._closed = False
        logger.debug("SQLiteCache initialized at %s", self._db_path)

    def _create_tables(self) -> None:
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS cache_entries (
                key TEXT PRIMARY KEY,
                value BLOB NOT NULL,
                expires_at REAL NOT NULL
            )
            """
        )
        self._conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_cache_entries_expires ON cache_entries(expires_at)"
        )
        self._conn.commit()

    def get_entry(self, key: str) -> CacheEntry | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT value, expires_at FROM cache_entries WHERE key = ?",
                (key,),
            ).fetchone()
            if row is None:
                return None

            entry = CacheEntry(value=bytes(row[0]), expires_at=float(row[1]))
            if entry.is_expired():
                self._conn.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
                self._conn.commit()
                return None
            return entry

    def get(self, key: str) -> bytes | None:
        entry = self.get_entry(key)
        if entry is None:
            logger.debug("Cache miss: %s", key[:24])
            return None
        logger.debug("Cache hit: %s", key[:24])
        return entry.value

    def set(self, key: str, value: bytes, ttl: float) -> None:
        expires_at = time.time() + max(0.0, ttl)
        with self._lock:
            self._conn.execute(
                "INSERT OR REPLACE INTO cache_entries (key, value, expires_at) VALUES (?, ?, ?)",
                (key, sqlite3.Binary(value), expires_at),
            )
            self._conn.commit()

    def has(self, key: str) -> bool:
        return self.get_entry(key) is not None

    def delete(self, key: str) -> None:
        with self._lock:
            self._conn.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
            self._conn.commit()

    def clear(self) -> None:
        with self._lock:
            self._conn.execute("DELETE FROM cache_entries")
            self._conn.commit()

    def prune_expired(self) -> int:
        """Delete every expired entry and return how many were removed."""

        with self._lock:
            cursor = self._conn.execute(
                "DELETE FROM cache_entries WHERE expires_at <= ?",
                (time.time(),),
            )
            self._conn.commit()
            removed = cursor.rowcount
        if removed > 0:
            logger.debug("Pruned %d expired cache entries", removed)
        return removed

    def stats(self) -> dict[str, Any]:
        now = time.time()
        with self._lock:
            total, expired, size = self._conn.execute(
                """
                SELECT COUNT(*),
                       COALESCE(SUM(CASE WHEN expires_at <= ? THEN 1 ELSE 0 END), 0),
                       COALESCE(SUM(LENGTH(value)), 0)
                FROM cache_entries
                """,
                (now,),
            ).fetchone()
        return {
            "path": self._db_path,
            "entries": int(total),
            "expired": int(expired),
            "size_bytes": int(size),
        }

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._conn.close()


class MemoryCache:
    """In-process TTL cache with the same surface as `SQLiteCache`."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[str, CacheEntry] = {}

    def get_entry(self, key: str) -> CacheEntry | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired():
                del self._entries[key]
                return None
            return entry

    def get(self, key: str) -> bytes | None:
        entry = self.get_entry(key)
        return None if entry is None else entry.value

    def set(self, key: str, value: bytes, ttl: float) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(value=bytes(value), expires_at=time.time() + max(0.0, ttl))

    def has(self, key: str) -> bool:
        return self.get_entry(key) is not None

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> dict[str, Any]:
        now = time.time()
        with self._lock:
            entries = list(self._entries.values())
        return {
            "path": ":memory:",
            "entries": len(entries),
            "expired": sum(1 for entry in entries if entry.is_expired(now)),
            "size_bytes": sum(len(entry.value) for entry in entries),
        }

    def close(self) -> None:
        self.clear()


__all__ = [
    "Cache",
    "MemoryCache",
    "SQLiteCache",
]
