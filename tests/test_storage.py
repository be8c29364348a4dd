"""Tests for menu_planner.storage module."""

from __future__ import annotations

import logging
import sqlite3
from typing import TYPE_CHECKING
from unittest.mock import MagicMock, patch

import pytest

if TYPE_CHECKING:
    from pathlib import Path

from menu_planner.storage import (
    MemoryStorage,
    SqliteStorage,
    StorageError,
    StorageQuotaError,
    read_json,
    read_raw,
    write_json,
    write_raw,
)


@pytest.fixture()
def sqlite_storage(tmp_path: Path) -> SqliteStorage:
    """Create a SqliteStorage backed by a temporary file."""
    return SqliteStorage(str(tmp_path / "test.db"))


class TestMemoryStorage:
    """Tests for the in-memory adapter."""

    def test_get_set_remove(self) -> None:
        """Test basic key/value operations."""
        storage = MemoryStorage()
        assert storage.get("a") is None
        storage.set("a", "1")
        assert storage.get("a") == "1"
        storage.remove("a")
        storage.remove("missing")
        assert storage.get("a") is None

    def test_keys_by_prefix(self) -> None:
        """Test keys are filtered by prefix and sorted."""
        storage = MemoryStorage({"weeklyMenu:b": "", "weeklyMenu:a": "", "pantry": ""})
        assert storage.keys("weeklyMenu:") == ["weeklyMenu:a", "weeklyMenu:b"]
        assert len(storage.keys()) == 3

    def test_quota_exceeded(self) -> None:
        """Test writes beyond the quota raise and keep the old value."""
        storage = MemoryStorage({"a": "12345"}, quota_bytes=8)
        with pytest.raises(StorageQuotaError):
            storage.set("b", "12345")
        assert storage.get("b") is None

    def test_quota_replacing_key(self) -> None:
        """Test replacing a key only counts the new value."""
        storage = MemoryStorage({"a": "12345"}, quota_bytes=8)
        storage.set("a", "1234567")
        assert storage.get("a") == "1234567"


class TestSqliteStorage:
    """Tests for the SQLite adapter."""

    def test_set_and_get(self, sqlite_storage: SqliteStorage) -> None:
        """Test values round-trip, Unicode included."""
        sqlite_storage.set("recipes", '[{"title": "Борщ"}]')
        assert sqlite_storage.get("recipes") == '[{"title": "Борщ"}]'

    def test_upsert(self, sqlite_storage: SqliteStorage) -> None:
        """Test setting an existing key replaces its value."""
        sqlite_storage.set("k", "1")
        sqlite_storage.set("k", "2")
        assert sqlite_storage.get("k") == "2"
        assert sqlite_storage.keys() == ["k"]

    def test_remove(self, sqlite_storage: SqliteStorage) -> None:
        """Test removing a key."""
        sqlite_storage.set("k", "1")
        sqlite_storage.remove("k")
        assert sqlite_storage.get("k") is None

    def test_keys_prefix_is_literal(self, sqlite_storage: SqliteStorage) -> None:
        """Test prefix matching does not treat LIKE wildcards specially."""
        sqlite_storage.set("weeklyMenu:2024", "x")
        sqlite_storage.set("weekly_Menu", "x")
        sqlite_storage.set("cookedStatus:2024", "x")
        assert sqlite_storage.keys("weeklyMenu:") == ["weeklyMenu:2024"]
        assert sqlite_storage.keys("weekly_") == ["weekly_Menu"]

    def test_persists_across_instances(self, tmp_path: Path) -> None:
        """Test data survives reopening the database."""
        db_path = str(tmp_path / "test.db")
        SqliteStorage(db_path).set("k", "v")
        assert SqliteStorage(db_path).get("k") == "v"

    def test_errors_wrapped(self, sqlite_storage: SqliteStorage) -> None:
        """Test sqlite errors surface as StorageError."""
        with patch(
            "menu_planner.storage.get_connection",
            side_effect=sqlite3.OperationalError("disk I/O error"),
        ):
            with pytest.raises(StorageError):
                sqlite_storage.get("k")
            with pytest.raises(StorageError):
                sqlite_storage.set("k", "v")
            with pytest.raises(StorageError):
                sqlite_storage.keys()


class TestJsonHelpers:
    """Tests for read/write helpers."""

    def test_read_json_default_when_absent(self) -> None:
        """Test a missing key yields the default."""
        assert read_json(MemoryStorage(), "k", default=[]) == []

    def test_read_json_corrupt(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test corrupt JSON yields the default and logs a warning."""
        storage = MemoryStorage({"k": "{oops"})
        with caplog.at_level(logging.WARNING):
            assert read_json(storage, "k", default={}) == {}
        assert "Corrupted JSON" in caplog.text

    def test_write_json_keeps_unicode(self) -> None:
        """Test written JSON is not ASCII-escaped."""
        storage = MemoryStorage()
        assert write_json(storage, "k", {"name": "Меню 1"}) is True
        assert storage.get("k") == '{"name": "Меню 1"}'

    def test_write_failure_returns_false(self) -> None:
        """Test write failures are caught and reported."""
        storage = MemoryStorage(quota_bytes=1)
        assert write_raw(storage, "k", "too long") is False
        assert storage.get("k") is None

    def test_read_failure_returns_none(self) -> None:
        """Test read failures degrade to a missing key."""
        storage = MagicMock()
        storage.get.side_effect = StorageError("disk gone")
        assert read_raw(storage, "k") is None
        assert read_json(storage, "k", default=5) == 5
