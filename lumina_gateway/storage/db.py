"""
Database connection management.

Provides SQLite connection for quota and cache persistence.
"""

import sqlite3
from pathlib import Path


def get_connection(db_path: str = "lumina_gateway.db") -> sqlite3.Connection:
    """Create and return a SQLite database connection.

    Connections are short-lived and opened per operation, so they are safe to
    open from worker threads.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLite connection with a busy timeout for concurrent writers
    """
    path = Path(db_path)
    conn = sqlite3.connect(str(path), timeout=5.0)
    conn.execute("PRAGMA busy_timeout = 5000")
    return conn
