"""
SQLite persistence for the short-lived keyed cache.

Every row carries an absolute expiry time; an expired row reads as missing and
is purged opportunistically on the next write.  Rows are scoped to a user
namespace so several users can share one database file without seeing each
other's staged edits.
"""

import logging
import sqlite3
import time
from pathlib import Path
from typing import Callable

logger = logging.getLogger(__name__)


class CacheStore:
    """Keyed string cache with per-entry TTL, backed by SQLite."""

    def __init__(self, db_path: Path, namespace: str, clock: Callable[[], float] = time.time):
        self.db_path = db_path
        self.namespace = namespace
        self.clock = clock
        self.conn: sqlite3.Connection | None = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def connect(self):
        """Initialize and connect to the cache database."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(self.db_path))
        self.conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self):
        """Create the cache_entries table if it doesn't exist."""
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS cache_entries (
                namespace TEXT NOT NULL,
                cache_key TEXT NOT NULL,
                value TEXT NOT NULL,
                expires_at REAL NOT NULL,
                updated_at REAL NOT NULL,
                PRIMARY KEY(namespace, cache_key)
            )
        """)
        self.conn.commit()

    # ------------------------------------------------------------------ #
    # Cache operations, all scoped to the current namespace              #
    # ------------------------------------------------------------------ #

    def get(self, key: str) -> str | None:
        """Return the live value for ``key``, or None if unset or expired."""
        row = self.conn.execute(
            "SELECT value, expires_at FROM cache_entries "
            "WHERE namespace = ? AND cache_key = ? LIMIT 1",
            (self.namespace, key),
        ).fetchone()
        if row is None:
            return None
        if row["expires_at"] <= self.clock():
            logger.debug(f"Cache entry {key} expired")
            return None
        return row["value"]

    def put(self, key: str, value: str, ttl_seconds: float):
        """Store ``value`` under ``key``, replacing any previous value and expiry."""
        now = self.clock()
        self.conn.execute(
            "INSERT INTO cache_entries (namespace, cache_key, value, expires_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?) "
            "ON CONFLICT(namespace, cache_key) DO UPDATE SET "
            "value = excluded.value, expires_at = excluded.expires_at, "
            "updated_at = excluded.updated_at",
            (self.namespace, key, value, now + ttl_seconds, now),
        )
        self._purge_expired(now)
        self.conn.commit()

    def remove(self, key: str):
        """Delete ``key`` if present."""
        self.conn.execute(
            "DELETE FROM cache_entries WHERE namespace = ? AND cache_key = ?",
            (self.namespace, key),
        )
        self.conn.commit()

    def _purge_expired(self, now: float):
        cursor = self.conn.execute(
            "DELETE FROM cache_entries WHERE namespace = ? AND expires_at <= ?",
            (self.namespace, now),
        )
        if cursor.rowcount:
            logger.debug(f"Purged {cursor.rowcount} expired cache entries")

    def close(self):
        """Close the database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None


def query_namespaces(db_path: Path) -> list:
    """
    Return per-namespace row counts for the cache database.

    Each row exposes: namespace, count, last_update.
    Returns an empty list when the DB file does not exist or has no table yet.
    """
    if not db_path.exists():
        return []
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    try:
        tables = {
            row["name"]
            for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
        }
        if "cache_entries" not in tables:
            return []
        cursor = conn.execute("""
            SELECT
                namespace,
                COUNT(*)        AS count,
                MAX(updated_at) AS last_update
            FROM cache_entries
            GROUP BY namespace
            ORDER BY namespace
        """)
        return cursor.fetchall()
    finally:
        conn.close()
