"""Unit tests for sqlite connection helpers."""

import sqlite3
from unittest.mock import Mock

import pytest

from storemigration.database.connection_helper import (
    close_quietly,
    connect_sqlite,
    count_rows,
    sqlite_connection_factory,
)


def journal_mode(path):
    conn = sqlite3.connect(str(path))
    try:
        return conn.execute("PRAGMA journal_mode").fetchone()[0].lower()
    finally:
        conn.close()


class TestConnectSqlite:
    """Tests for connect_sqlite."""

    def test_journal_mode_left_alone_by_default(self, destination_store):
        connect_sqlite(destination_store.path).close()
        assert journal_mode(destination_store.path) == "delete"

    def test_wal_on_request(self, destination_store):
        connect_sqlite(destination_store.path, wal=True).close()
        assert journal_mode(destination_store.path) == "wal"

    def test_read_only_refuses_writes(self, destination_store):
        conn = connect_sqlite(destination_store.path, read_only=True)
        try:
            with pytest.raises(sqlite3.OperationalError):
                conn.execute("INSERT INTO COLLECTION VALUES ('c', 'name')")
        finally:
            conn.close()

    def test_read_only_does_not_create_missing_file(self, tmp_path):
        missing = tmp_path / "missing.db"
        with pytest.raises(sqlite3.OperationalError):
            connect_sqlite(missing, read_only=True)
        assert not missing.exists()


def test_count_rows_read_only(populated_legacy_store):
    legacy_store, _ = populated_legacy_store
    before = legacy_store.path.read_bytes()

    assert count_rows(sqlite_connection_factory(legacy_store.path, read_only=True), "USER") == 2
    assert legacy_store.path.read_bytes() == before


def test_close_quietly_reports_failure():
    resource = Mock()
    resource.close.side_effect = RuntimeError("already gone")

    assert close_quietly(resource, "cursor") is False
    assert close_quietly(None, "nothing") is True
