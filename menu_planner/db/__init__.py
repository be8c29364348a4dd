"""SQLite access for the planner's key/value entry table.

All SQL touching ``storage_entries`` lives here; :class:`SqliteStorage`
in :mod:`menu_planner.storage` opens a connection per operation and
hands it to these helpers.
"""

from __future__ import annotations

import sqlite3
from datetime import UTC, datetime
from pathlib import Path

SCHEMA_PATH = Path(__file__).parent / "schema.sql"
SCHEMA_VERSION = 1

_MEMORY_URI = "file:menu_planner_memory?mode=memory&cache=shared"

# Holds the shared in-memory database open between operations.
_memory_keepalive: sqlite3.Connection | None = None


def get_connection(db_path: str) -> sqlite3.Connection:
    """Open a connection to the planner database.

    ``:memory:`` maps to one named shared-cache database per process, so
    every connection sees the same entries.

    Args:
        db_path: Path to the SQLite database file, or ``:memory:``.

    Returns:
        Connection with name-addressable rows.
    """
    if db_path == ":memory:":
        conn = sqlite3.connect(_MEMORY_URI, uri=True)
    else:
        conn = sqlite3.connect(db_path, timeout=5.0)
        conn.execute("PRAGMA journal_mode=WAL")
    conn.row_factory = sqlite3.Row
    return conn


def schema_version(conn: sqlite3.Connection) -> int:
    """Version stamped by :func:`init_db`; 0 for a fresh file."""
    return int(conn.execute("PRAGMA user_version").fetchone()[0])


def init_db(db_path: str) -> None:
    """Create the entry table if needed and stamp the schema version.

    Safe to call on every start.

    Args:
        db_path: Path to the SQLite database file, or ``:memory:``.
    """
    global _memory_keepalive
    if db_path == ":memory:" and _memory_keepalive is None:
        _memory_keepalive = get_connection(db_path)

    conn = get_connection(db_path)
    try:
        if schema_version(conn) < SCHEMA_VERSION:
            conn.executescript(SCHEMA_PATH.read_text(encoding="utf-8"))
            conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
        conn.commit()
    finally:
        conn.close()


def fetch_entry(conn: sqlite3.Connection, key: str) -> str | None:
    """Stored value for ``key``, or None."""
    row = conn.execute(
        "SELECT value FROM storage_entries WHERE key = ?", (key,)
    ).fetchone()
    return row["value"] if row else None


def upsert_entry(conn: sqlite3.Connection, key: str, value: str) -> None:
    """Insert or replace one entry and touch its ``updated_at``.

    The caller commits.
    """
    conn.execute(
        "INSERT INTO storage_entries (key, value, updated_at)"
        " VALUES (?, ?, ?)"
        " ON CONFLICT(key) DO UPDATE SET"
        " value = excluded.value, updated_at = excluded.updated_at",
        (key, value, datetime.now(tz=UTC).isoformat()),
    )


def delete_entry(conn: sqlite3.Connection, key: str) -> None:
    """Remove one entry if present. The caller commits."""
    conn.execute("DELETE FROM storage_entries WHERE key = ?", (key,))


def entry_keys(conn: sqlite3.Connection, prefix: str = "") -> list[str]:
    """Keys starting with ``prefix``, sorted.

    The prefix is compared literally, so ``_`` and ``%`` are not wildcards.
    """
    rows = conn.execute(
        "SELECT key FROM storage_entries"
        " WHERE substr(key, 1, ?) = ? ORDER BY key",
        (len(prefix), prefix),
    ).fetchall()
    return [row["key"] for row in rows]
