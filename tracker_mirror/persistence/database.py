"""SQLite connection handling and schema bootstrap."""

import sqlite3
from pathlib import Path

SCHEMA_STATEMENTS: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS it_user (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL DEFAULT '',
        is_enabled INTEGER NOT NULL DEFAULT 0,
        role_id INTEGER NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS it_issue (
        id TEXT PRIMARY KEY,
        epic_id TEXT NOT NULL DEFAULT '',
        created_at TEXT,
        updated_at TEXT,
        is_current_sprint INTEGER NOT NULL DEFAULT 0,
        status_name TEXT NOT NULL DEFAULT 'undefined',
        status_updated_at TEXT,
        summary TEXT NOT NULL DEFAULT '',
        developer_id TEXT,
        tester_id TEXT,
        developer_estimated INTEGER NOT NULL DEFAULT 0,
        developer_remaining INTEGER NOT NULL DEFAULT 0,
        developer_logged INTEGER NOT NULL DEFAULT 0,
        tester_estimated INTEGER NOT NULL DEFAULT 0,
        tester_remaining INTEGER NOT NULL DEFAULT 0,
        tester_logged INTEGER NOT NULL DEFAULT 0,
        component_name TEXT NOT NULL DEFAULT '',
        repository_name TEXT NOT NULL DEFAULT ''
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS it_history (
        id TEXT PRIMARY KEY,
        created_at TEXT,
        user_id TEXT,
        issue_id TEXT NOT NULL,
        field_name TEXT NOT NULL,
        field_value TEXT NOT NULL DEFAULT ''
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_it_history_issue
        ON it_history (issue_id)
    """,
)


def ensure_schema(conn: sqlite3.Connection) -> None:
    """Ensure the issue, user and history tables exist."""
    for statement in SCHEMA_STATEMENTS:
        conn.execute(statement)


def connect(db_path: str | Path, timeout: float = 30.0) -> sqlite3.Connection:
    """Open the mirror database in autocommit mode and bootstrap its schema.

    Every statement runs in its own transaction, so concurrent writers only
    race on single statements.

    Args:
        db_path: Path of the SQLite file (``":memory:"`` for a private database)
        timeout: Seconds to wait for a lock held by another writer

    Returns:
        Open connection with ``sqlite3.Row`` rows

    """
    conn = sqlite3.connect(str(db_path), timeout=timeout, isolation_level=None)
    conn.row_factory = sqlite3.Row
    ensure_schema(conn)
    return conn
