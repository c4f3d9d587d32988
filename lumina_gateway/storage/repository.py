"""
Repository pattern for data access.

Point reads, inserts and updates on the quota, cache and request-log
tables. No method spans more than one statement, so callers get no isolation
between a read and a later write.
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .db import get_connection
from .models import CacheEntry, UserQuota


class GatewayRepository:
    """Repository for quota counters and cached generations.

    Every method opens and closes its own connection so the repository can be
    called from worker threads without sharing a connection.
    """

    def __init__(self, db_path: str = "lumina_gateway.db"):
        """Initialize the repository with a database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path

    # -- quota ---------------------------------------------------------------

    def get_quota(self, user_id: str) -> Optional[UserQuota]:
        """Fetch a user's quota record.

        Args:
            user_id: Opaque user identity

        Returns:
            The stored record, or None if the user has never been counted
        """
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                "SELECT user_id, daily_usage, last_reset FROM user_quota WHERE user_id = ?",
                (user_id,)
            ).fetchone()
            if row is None:
                return None
            return UserQuota(user_id=row[0], daily_usage=row[1], last_reset=row[2])
        finally:
            conn.close()

    def insert_quota(self, quota: UserQuota) -> None:
        """Insert a new quota record.

        Args:
            quota: Record to create

        Raises:
            sqlite3.IntegrityError: If the user already has a record
        """
        conn = get_connection(self.db_path)
        try:
            conn.execute(
                "INSERT INTO user_quota (user_id, daily_usage, last_reset) VALUES (?, ?, ?)",
                (quota.user_id, quota.daily_usage, quota.last_reset)
            )
            conn.commit()
        finally:
            conn.close()

    def update_quota(self, quota: UserQuota) -> bool:
        """Overwrite an existing quota record.

        Args:
            quota: New values for the record

        Returns:
            True if a row was updated, False if the user had no record
        """
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                "UPDATE user_quota SET daily_usage = ?, last_reset = ? WHERE user_id = ?",
                (quota.daily_usage, quota.last_reset, quota.user_id)
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def increment_quota(self, user_id: str, today: str) -> int:
        """Atomically add one to a user's usage for ``today``.

        A single upsert statement, so concurrent callers never under-count.
        A record from an older day is restarted at 1.

        Args:
            user_id: Opaque user identity
            today: ISO date of the current quota window

        Returns:
            The usage after the increment
        """
        conn = get_connection(self.db_path)
        try:
            conn.execute(
                """
                INSERT INTO user_quota (user_id, daily_usage, last_reset)
                VALUES (?, 1, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    daily_usage = CASE
                        WHEN user_quota.last_reset = excluded.last_reset
                        THEN user_quota.daily_usage + 1
                        ELSE 1
                    END,
                    last_reset = excluded.last_reset
                """,
                (user_id, today)
            )
            # Read back before committing so the value is this call's own.
            row = conn.execute(
                "SELECT daily_usage FROM user_quota WHERE user_id = ?", (user_id,)
            ).fetchone()
            conn.commit()
            return row[0]
        finally:
            conn.close()

    # -- request log ---------------------------------------------------------

    def prune_requests(self, caller: str, before: float) -> int:
        """Delete a caller's logged requests older than ``before``.

        Returns:
            Number of rows removed
        """
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                "DELETE FROM request_log WHERE caller = ? AND requested_at <= ?",
                (caller, before)
            )
            conn.commit()
            return cursor.rowcount
        finally:
            conn.close()

    def request_times(self, caller: str, since: float) -> List[float]:
        """Timestamps of a caller's requests after ``since``, oldest first."""
        conn = get_connection(self.db_path)
        try:
            rows = conn.execute(
                """
                SELECT requested_at FROM request_log
                WHERE caller = ? AND requested_at > ? ORDER BY requested_at
                """,
                (caller, since)
            ).fetchall()
            return [row[0] for row in rows]
        finally:
            conn.close()

    def log_request(self, caller: str, requested_at: float) -> None:
        """Append one request timestamp (epoch seconds) for a caller."""
        conn = get_connection(self.db_path)
        try:
            conn.execute(
                "INSERT INTO request_log (caller, requested_at) VALUES (?, ?)",
                (caller, requested_at)
            )
            conn.commit()
        finally:
            conn.close()

    # -- cache ---------------------------------------------------------------

    def get_cache_entry(self, cache_hash: str) -> Optional[CacheEntry]:
        """Fetch the newest cache entry stored under a hash.

        Args:
            cache_hash: Cache key digest

        Returns:
            The most recently inserted entry, or None on a miss
        """
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                """
                SELECT hash, content, kind, inserted_at FROM cached_content
                WHERE hash = ? ORDER BY id DESC LIMIT 1
                """,
                (cache_hash,)
            ).fetchone()
            if row is None:
                return None
            return CacheEntry(
                hash=row[0],
                content=json.loads(row[1]),
                kind=row[2],
                inserted_at=datetime.fromisoformat(row[3])
            )
        finally:
            conn.close()

    def insert_cache_entry(self, cache_hash: str, content: Any, kind: str) -> CacheEntry:
        """Append a cache entry.

        Args:
            cache_hash: Cache key digest
            content: JSON-serializable result
            kind: Action name that produced the content

        Returns:
            The stored entry
        """
        entry = CacheEntry(
            hash=cache_hash,
            content=content,
            kind=kind,
            inserted_at=datetime.now(timezone.utc)
        )
        conn = get_connection(self.db_path)
        try:
            conn.execute(
                "INSERT INTO cached_content (hash, content, kind, inserted_at) VALUES (?, ?, ?, ?)",
                (entry.hash, json.dumps(content), entry.kind, entry.inserted_at.isoformat())
            )
            conn.commit()
        finally:
            conn.close()
        return entry

    def count_cache_entries(self) -> Dict[str, int]:
        """Count cache rows per action name.

        Returns:
            Mapping of kind to number of stored rows
        """
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                "SELECT kind, COUNT(*) FROM cached_content GROUP BY kind ORDER BY kind"
            )
            return {row[0]: row[1] for row in cursor.fetchall()}
        finally:
            conn.close()


# Global repository instance
_default_repository: Optional[GatewayRepository] = None


def get_repository(db_path: str = "lumina_gateway.db") -> GatewayRepository:
    """Get a repository instance.

    This function provides a singleton instance of the GatewayRepository.

    Args:
        db_path: Path to SQLite database file

    Returns:
        An instance of GatewayRepository
    """
    global _default_repository
    if _default_repository is None or _default_repository.db_path != db_path:
        _default_repository = GatewayRepository(db_path)
    return _default_repository


def initialize_schema(db_path: str = "lumina_gateway.db") -> None:
    """Create the quota, cache and request-log tables if they don't exist.

    ``cached_content`` is append-only: rows are never updated or deleted, and
    a lookup reads the newest row for a hash.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS user_quota (
                user_id TEXT PRIMARY KEY,
                daily_usage INTEGER NOT NULL DEFAULT 0,
                last_reset TEXT NOT NULL
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS cached_content (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                hash TEXT NOT NULL,
                content TEXT NOT NULL,
                kind TEXT NOT NULL,
                inserted_at TEXT NOT NULL
            )
        """)
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_cached_content_hash ON cached_content (hash)"
        )
        conn.execute("""
            CREATE TABLE IF NOT EXISTS request_log (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                caller TEXT NOT NULL,
                requested_at REAL NOT NULL
            )
        """)
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_request_log_caller ON request_log (caller, requested_at)"
        )
        conn.commit()
    finally:
        conn.close()
