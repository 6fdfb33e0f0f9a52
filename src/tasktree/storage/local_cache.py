# src/tasktree/storage/local_cache.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
import time
from pathlib import Path

logger = logging.getLogger(__name__)


class SqliteLocalCache:
    """
    SQLite key/value store for serialized task snapshots.

    One row per key ("<user>:<collection>"); every save replaces the whole payload.

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(self, db_path: str | Path = "tasktree_cache.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        try:
            total = self.count_keys()
        except Exception:
            total = -1
        logger.info("SqliteLocalCache ready db=%s keys=%s", self._db_path, total)

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(Exception):
            conn.execute("PRAGMA journal_mode=WAL")

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS snapshots (
                    key TEXT PRIMARY KEY,
                    payload TEXT NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )
            conn.commit()
        finally:
            conn.close()

    # ---- public API ----

    def count_keys(self) -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute("SELECT COUNT(*) FROM snapshots").fetchone()
            return int(n)
        finally:
            conn.close()

    def load(self, key: str) -> str | None:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT payload FROM snapshots WHERE key = ?", (key,)).fetchone()
            return None if row is None else str(row["payload"])
        finally:
            conn.close()

    def save(self, key: str, payload: str) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO snapshots(key, payload, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET payload = excluded.payload, updated_at = excluded.updated_at
                """,
                (key, payload, time.time()),
            )
            conn.commit()
            logger.debug("Snapshot saved key=%s bytes=%d", key, len(payload))
        finally:
            conn.close()


class MemoryLocalCache:
    """In-process cache; used when persistence is disabled and in tests."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def load(self, key: str) -> str | None:
        return self._data.get(key)

    def save(self, key: str, payload: str) -> None:
        self._data[key] = payload
