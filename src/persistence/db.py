"""Durable key-value storage with a size quota.

Two backends with the same contract:
- SQLiteKeyValueStore (default; a file path, or ":memory:" for a
  process-local database)
- MemoryKeyValueStore (tests, ephemeral use)

Values are strings. Usage is measured like browser localStorage: the sum
of len(key) + len(value) over all entries. A write that would take usage
past the quota raises QuotaExceededError and leaves the store unchanged.

Uses raw SQL via sqlite3, no ORM. SQLite uses per-call connections with
check_same_thread=False; ":memory:" keeps one shared connection, since
each new connection would open an empty database.
"""

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Optional, Protocol

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Base class for storage failures."""

    def __init__(self, message: str, code: str = "STORAGE_ERROR"):
        super().__init__(message)
        self.message = message
        self.code = code


class QuotaExceededError(StorageError):
    def __init__(self, message: str = "Storage quota exceeded"):
        super().__init__(message, "QUOTA_EXCEEDED")


class StorageUnavailableError(StorageError):
    def __init__(self, message: str = "Storage is not available"):
        super().__init__(message, "STORAGE_UNAVAILABLE")


class KeyValueStore(Protocol):
    """Minimal durable key-value contract used by StorageService."""

    quota_bytes: int

    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...

    def keys(self, prefix: str = "") -> list[str]: ...

    def usage_bytes(self) -> int: ...


def _entry_size(key: str, value: str) -> int:
    return len(key) + len(value)


class MemoryKeyValueStore:
    """In-memory store with the same quota semantics as the SQLite store."""

    def __init__(self, quota_bytes: int = 5 * 1024 * 1024):
        self.quota_bytes = quota_bytes
        self._data: dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        current = self.usage_bytes()
        if key in self._data:
            current -= _entry_size(key, self._data[key])
        if current + _entry_size(key, value) > self.quota_bytes:
            raise QuotaExceededError(
                f"Writing {key} ({len(value)} chars) would exceed quota of {self.quota_bytes}"
            )
        self._data[key] = value

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self, prefix: str = "") -> list[str]:
        return [k for k in self._data if k.startswith(prefix)]

    def usage_bytes(self) -> int:
        return sum(_entry_size(k, v) for k, v in self._data.items())


class SQLiteKeyValueStore:
    """SQLite-backed key-value store (one kv_store table)."""

    def __init__(self, path: str, quota_bytes: int = 5 * 1024 * 1024):
        self.path = path
        self.quota_bytes = quota_bytes
        self._shared_conn: Optional[sqlite3.Connection] = None
        if path == ":memory:":
            self._shared_conn = self._connect()
        else:
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        if self.path != ":memory:":
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    @contextmanager
    def get_connection(self) -> Iterator[sqlite3.Connection]:
        """Get a database connection.

        Usage:
            with store.get_connection() as conn:
                conn.execute(...)
                conn.commit()
        """
        if self._shared_conn is not None:
            yield self._shared_conn
            return
        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()

    def execute(self, sql: str, params: tuple = (), fetch: str = "none") -> Any:
        """Execute a SQL statement.

        Args:
            sql: SQL statement with ? placeholders
            params: Parameters tuple
            fetch: "none", "one", "all"

        Returns:
            None for "none", dict for "one", list[dict] for "all"
        """
        try:
            with self.get_connection() as conn:
                cursor = conn.execute(sql, params)
                if fetch == "one":
                    row = cursor.fetchone()
                    return dict(row) if row is not None else None
                if fetch == "all":
                    return [dict(row) for row in cursor.fetchall()]
                conn.commit()
                return None
        except sqlite3.Error as e:
            logger.error(f"SQLite error on {self.path}: {e}")
            raise StorageUnavailableError(f"Storage backend error: {e}") from e

    def _init_db(self) -> None:
        """Create the table if it doesn't exist."""
        self.execute(
            """CREATE TABLE IF NOT EXISTS kv_store (
                   key TEXT PRIMARY KEY,
                   value TEXT NOT NULL,
                   updated_at TEXT
               )"""
        )
        logger.info(f"Key-value store initialized: SQLite ({self.path})")

    def get_item(self, key: str) -> Optional[str]:
        row = self.execute("SELECT value FROM kv_store WHERE key = ?", (key,), fetch="one")
        return row["value"] if row else None

    def set_item(self, key: str, value: str) -> None:
        row = self.execute(
            """SELECT COALESCE(SUM(LENGTH(key) + LENGTH(value)), 0) AS used
               FROM kv_store WHERE key != ?""",
            (key,),
            fetch="one",
        )
        used = row["used"] if row else 0
        if used + _entry_size(key, value) > self.quota_bytes:
            raise QuotaExceededError(
                f"Writing {key} ({len(value)} chars) would exceed quota of {self.quota_bytes}"
            )
        self.execute(
            """INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
               ON CONFLICT(key) DO UPDATE SET
                   value = excluded.value,
                   updated_at = excluded.updated_at""",
            (key, value, datetime.now(timezone.utc).isoformat()),
        )

    def remove_item(self, key: str) -> None:
        self.execute("DELETE FROM kv_store WHERE key = ?", (key,))

    def keys(self, prefix: str = "") -> list[str]:
        rows = self.execute(
            "SELECT key FROM kv_store WHERE substr(key, 1, ?) = ? ORDER BY key",
            (len(prefix), prefix),
            fetch="all",
        )
        return [r["key"] for r in rows]

    def usage_bytes(self) -> int:
        row = self.execute(
            "SELECT COALESCE(SUM(LENGTH(key) + LENGTH(value)), 0) AS used FROM kv_store",
            fetch="one",
        )
        return int(row["used"]) if row else 0

    def close(self) -> None:
        if self._shared_conn is not None:
            self._shared_conn.close()
            self._shared_conn = None
