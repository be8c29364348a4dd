"""Persistence port and adapters for planner state.

The planner never talks to a storage backend directly: it receives an
object satisfying :class:`StoragePort`, a string key/value store holding
one JSON document per key. Two adapters ship here: an in-memory store
(optionally quota-limited, for tests and ephemeral sessions) and a SQLite
store backed by :mod:`menu_planner.db`.

Read and write failures surface as :class:`StorageError`; the JSON helpers
catch them so callers degrade to in-memory operation.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from typing import Any, Protocol

from menu_planner.db import (
    delete_entry,
    entry_keys,
    fetch_entry,
    get_connection,
    init_db,
    upsert_entry,
)

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when a storage backend cannot read or write a key."""


class StorageQuotaError(StorageError):
    """Raised when a write would exceed the backend's capacity."""


class StoragePort(Protocol):
    """Minimal string key/value interface the planner persists through."""

    def get(self, key: str) -> str | None:
        """Return the stored value for a key, or None if absent."""
        ...  # pragma: no cover

    def set(self, key: str, value: str) -> None:
        """Store a value under a key, replacing any previous value."""
        ...  # pragma: no cover

    def remove(self, key: str) -> None:
        """Delete a key; missing keys are ignored."""
        ...  # pragma: no cover

    def keys(self, prefix: str = "") -> list[str]:
        """Return all stored keys starting with ``prefix``."""
        ...  # pragma: no cover


class MemoryStorage:
    """Dictionary-backed storage with an optional byte quota.

    Args:
        initial: Optional initial key/value pairs.
        quota_bytes: Maximum total size of stored values, or None.
    """

    def __init__(
        self,
        initial: dict[str, str] | None = None,
        quota_bytes: int | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            initial: Optional initial key/value pairs.
            quota_bytes: Maximum total size of stored values, or None.
        """
        self._data: dict[str, str] = dict(initial or {})
        self._quota = quota_bytes

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if self._quota is not None:
            used = sum(len(v.encode()) for k, v in self._data.items() if k != key)
            if used + len(value.encode()) > self._quota:
                raise StorageQuotaError(f"Quota exceeded writing {key!r}")
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self, prefix: str = "") -> list[str]:
        return sorted(k for k in self._data if k.startswith(prefix))


class SqliteStorage:
    """Key/value storage persisted in the ``storage_entries`` table.

    Uses the connection-per-operation pattern.

    Args:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str) -> None:
        """Initialize storage and ensure the schema exists.

        Args:
            db_path: Path to the SQLite database file.
        """
        self._db_path = db_path
        init_db(db_path)

    @property
    def db_path(self) -> str:
        """Path of the backing database."""
        return self._db_path

    def get(self, key: str) -> str | None:
        """Read a value.

        Args:
            key: Storage key.

        Returns:
            Stored string or None.

        Raises:
            StorageError: If the database cannot be read.
        """
        try:
            conn = get_connection(self._db_path)
            try:
                return fetch_entry(conn, key)
            finally:
                conn.close()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to read {key!r}: {exc}") from exc

    def set(self, key: str, value: str) -> None:
        """Write a value, replacing any previous one.

        Args:
            key: Storage key.
            value: String value.

        Raises:
            StorageError: If the database cannot be written.
        """
        try:
            conn = get_connection(self._db_path)
            try:
                upsert_entry(conn, key, value)
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to write {key!r}: {exc}") from exc

    def remove(self, key: str) -> None:
        """Delete a key.

        Raises:
            StorageError: If the database cannot be written.
        """
        try:
            conn = get_connection(self._db_path)
            try:
                delete_entry(conn, key)
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to remove {key!r}: {exc}") from exc

    def keys(self, prefix: str = "") -> list[str]:
        """List keys with a given prefix, sorted.

        Raises:
            StorageError: If the database cannot be read.
        """
        try:
            conn = get_connection(self._db_path)
            try:
                return entry_keys(conn, prefix)
            finally:
                conn.close()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to list keys: {exc}") from exc


# ---------------------------------------------------------------------------
# JSON helpers
# ---------------------------------------------------------------------------


def read_raw(storage: StoragePort, key: str) -> str | None:
    """Read a raw value, treating backend failures as a missing key.

    Args:
        storage: Storage backend.
        key: Storage key.

    Returns:
        Stored string, or None when absent or unreadable.
    """
    try:
        return storage.get(key)
    except StorageError:
        logger.warning("Storage read failed for %s; using defaults", key)
        return None


def read_json(storage: StoragePort, key: str, default: Any = None) -> Any:
    """Read and decode a JSON document.

    Args:
        storage: Storage backend.
        key: Storage key.
        default: Value returned when absent, unreadable or corrupt.

    Returns:
        Decoded JSON value or ``default``.
    """
    raw = read_raw(storage, key)
    if not raw:
        return default
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Corrupted JSON under %s; ignoring", key)
        return default


def write_raw(storage: StoragePort, key: str, value: str) -> bool:
    """Write a raw value, logging instead of raising on failure.

    Args:
        storage: Storage backend.
        key: Storage key.
        value: String to store.

    Returns:
        True if the write succeeded.
    """
    try:
        storage.set(key, value)
    except StorageError:
        logger.exception("Storage write failed for %s; keeping in memory", key)
        return False
    return True


def write_json(storage: StoragePort, key: str, value: Any) -> bool:
    """Encode and write a JSON document.

    Args:
        storage: Storage backend.
        key: Storage key.
        value: JSON-serializable value.

    Returns:
        True if the write succeeded.
    """
    return write_raw(storage, key, json.dumps(value, ensure_ascii=False))
