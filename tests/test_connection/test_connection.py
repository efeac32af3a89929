"""Tests for the SQLite Connection."""

from __future__ import annotations

import sqlite3

import pytest
from pydantic import ValidationError

from init_database.config import DatabaseConfig
from init_database.connection import Connection, QueryExecutionError, QueryLog
from init_database.data_mapper import DataMapperError


@pytest.fixture
def conn():
    connection = Connection({"db_path": ":memory:"})
    connection.query("CREATE TABLE items (id INTEGER PRIMARY KEY, label TEXT NOT NULL);")
    yield connection
    connection.close()


class TestConnectionLifecycle:
    def test_opens_lazily_and_once(self):
        connection = Connection({"db_path": ":memory:"})
        assert connection.in_transaction() is False
        raw = connection.get_raw_connection()
        assert isinstance(raw, sqlite3.Connection)
        assert connection.get_raw_connection() is raw
        connection.close()

    def test_close_then_reopen(self):
        connection = Connection({"db_path": ":memory:"})
        first = connection.get_raw_connection()
        connection.close()
        assert connection.get_raw_connection() is not first
        connection.close()

    def test_context_manager_closes(self):
        with Connection({"db_path": ":memory:"}) as connection:
            connection.query("SELECT 1")
            assert connection._conn is not None
        assert connection._conn is None

    def test_accepts_database_config(self):
        config = DatabaseConfig(db_path=":memory:", query_log=True)
        connection = Connection(config)
        assert connection.config is config
        assert connection.is_query_logging()

    def test_rejects_unknown_credentials(self):
        with pytest.raises(ValidationError):
            Connection({"db_path": ":memory:", "passwd": "secret"})

    def test_foreign_keys_enabled(self, conn):
        assert conn.query("PRAGMA foreign_keys;").scalar() == 1

    def test_file_database_creates_directory_and_uses_wal(self, tmp_path):
        db_path = tmp_path / "nested" / "app.db"
        with Connection({"db_path": str(db_path)}) as connection:
            assert connection.query("PRAGMA journal_mode;").scalar() == "wal"
        assert db_path.exists()

    def test_wal_can_be_disabled(self, tmp_path):
        db_path = tmp_path / "app.db"
        with Connection({"db_path": str(db_path), "wal_mode": False}) as connection:
            assert connection.query("PRAGMA journal_mode;").scalar() != "wal"


class TestConnectionQuery:
    def test_named_parameters(self, conn):
        conn.query("INSERT INTO items (label) VALUES (:label)", {"label": "flask"})
        mapper = conn.query("SELECT label FROM items WHERE id = :id", {"id": 1})
        assert mapper.rows() == [{"label": "flask"}]

    def test_insert_reports_affected_rows(self, conn):
        mapper = conn.query("INSERT INTO items (label) VALUES ('a'), ('b')")
        assert mapper.num_rows() == 2

    def test_last_insert_id(self, conn):
        conn.query("INSERT INTO items (label) VALUES ('a')")
        conn.query("INSERT INTO items (label) VALUES ('b')")
        assert conn.last_insert_id() == 2

    def test_fetch_modes(self, conn):
        conn.query("INSERT INTO items (label) VALUES ('a')")
        sql = "SELECT id, label FROM items"
        assert conn.query(sql, options={"fetch_mode": "tuple"}).rows() == [(1, "a")]
        row = conn.query(sql, options={"fetch_mode": "row"}).row()
        assert isinstance(row, sqlite3.Row)
        assert row["label"] == "a"

    def test_unknown_option_is_rejected_before_execution(self, conn):
        conn.set_query_logs(True)
        with pytest.raises(DataMapperError, match="Unknown query options"):
            conn.query("DELETE FROM items", options={"buffered": True})
        with pytest.raises(DataMapperError, match="Unknown fetch_mode"):
            conn.query("DELETE FROM items", options={"fetch_mode": "object"})
        assert conn.get_query_logs() == []

    def test_driver_error_is_wrapped(self, conn):
        with pytest.raises(QueryExecutionError) as exc_info:
            conn.query("SELECT * FROM missing WHERE id = :id", {"id": 7})
        err = exc_info.value
        assert err.sql == "SELECT * FROM missing WHERE id = :id"
        assert err.parameters == {"id": 7}
        assert isinstance(err.__cause__, sqlite3.Error)
        assert "no such table" in str(err)


class TestConnectionTransactions:
    def test_begin_commit(self, conn):
        assert conn.begin_transaction() is True
        assert conn.in_transaction() is True
        conn.query("INSERT INTO items (label) VALUES ('kept')")
        assert conn.commit() is True
        assert conn.in_transaction() is False
        assert conn.query("SELECT COUNT(*) FROM items").scalar() == 1

    def test_begin_rollback(self, conn):
        conn.begin_transaction()
        conn.query("INSERT INTO items (label) VALUES ('dropped')")
        assert conn.rollback() is True
        assert conn.in_transaction() is False
        assert conn.query("SELECT COUNT(*) FROM items").scalar() == 0

    def test_commit_and_rollback_without_transaction(self, conn):
        assert conn.commit() is False
        assert conn.rollback() is False

    def test_nested_begin_fails(self, conn):
        conn.begin_transaction()
        with pytest.raises(QueryExecutionError):
            conn.begin_transaction()
        conn.rollback()

    def test_statements_outside_transaction_autocommit(self, conn):
        conn.query("INSERT INTO items (label) VALUES ('a')")
        assert conn.in_transaction() is False


class TestQueryLog:
    def test_disabled_by_default(self, conn):
        conn.query("SELECT 1")
        assert conn.get_query_logs() == []

    def test_records_statements(self, conn):
        conn.set_query_logs(True)
        conn.query("INSERT INTO items (label) VALUES (:label)", {"label": "a"})
        conn.query("SELECT * FROM items")
        logs = conn.get_query_logs()
        assert [type(log) for log in logs] == [QueryLog, QueryLog]
        assert logs[0].parameters == {"label": "a"}
        assert logs[0].row_count == 1
        assert logs[1].query == "SELECT * FROM items"
        assert logs[1].duration_ms >= 0

    def test_get_query_logs_returns_a_copy(self, conn):
        conn.set_query_logs(True)
        conn.query("SELECT 1")
        conn.get_query_logs().clear()
        assert len(conn.get_query_logs()) == 1

    def test_clear_and_disable(self, conn):
        conn.set_query_logs(True)
        conn.query("SELECT 1")
        conn.clear_query_logs()
        conn.set_query_logs(False)
        conn.query("SELECT 1")
        assert conn.get_query_logs() == []
