"""Tests for the Database CRUD conveniences against in-memory SQLite."""

from __future__ import annotations

import sqlite3

import pytest

from init_database.config import AppConfig, DatabaseConfig, TransactionConfig
from init_database.connection import Connection, QueryExecutionError
from init_database.database import Database, DatabaseInvalidArgumentError
from init_database.query_builder import QueryBuilderError


# ── Construction ──────────────────────────────────────────────────────────────

class TestDatabaseConstruction:
    def test_uses_given_connection(self, connection):
        db = Database(connection)
        assert db.get_connection() is connection

    def test_builds_connection_from_mapping(self):
        db = Database({"db_path": ":memory:"})
        assert isinstance(db.get_connection(), Connection)
        assert isinstance(db.get_raw_connection(), sqlite3.Connection)

    def test_builds_connection_from_database_config(self):
        db = Database(DatabaseConfig(db_path=":memory:"))
        assert db.get_connection().config.db_path == ":memory:"

    def test_rejects_unsupported_argument(self):
        with pytest.raises(DatabaseInvalidArgumentError):
            Database("sqlite:///app.db")

    def test_rejects_invalid_parameters(self):
        with pytest.raises(DatabaseInvalidArgumentError, match="Invalid connection parameters"):
            Database({"db_path": ":memory:", "host": "localhost"})

    def test_rejects_default_attempts_below_one(self, connection):
        with pytest.raises(DatabaseInvalidArgumentError):
            Database(connection, default_attempts=0)

    def test_from_config(self):
        config = AppConfig(
            database=DatabaseConfig(db_path=":memory:"),
            transaction=TransactionConfig(default_attempts=3),
        )
        db = Database.from_config(config)
        result = db.transaction(lambda tx: tx.query("SELECT * FROM missing"))
        assert result.attempts == 3


# ── Create / read ─────────────────────────────────────────────────────────────

class TestCreateRead:
    def test_create_then_read_finds_the_row(self, db):
        assert db.create("users", {"name": "Ada", "age": 36}) is True
        found = db.read("users", conditions={"name": "Ada"})
        assert found.num_rows() >= 1
        assert found.row()["age"] == 36

    def test_insert_id(self, db):
        db.create("users", {"name": "Ada"})
        db.create("users", {"name": "Brian"})
        assert db.insert_id() == 2

    def test_create_batch_is_one_statement(self, db, connection):
        rows = [{"name": "a", "age": 1}, {"name": "b"}, {"name": "c", "age": 3}]
        assert db.create_batch("users", rows) is True
        assert len(connection.executed) == 1
        assert db.read("users").num_rows() == 3
        assert db.read("users", ["age"], {"name": "b"}).scalar() is None

    def test_read_with_selectors(self, seeded_db):
        mapper = seeded_db.read("users", ["id", "name"], {"status": "active"})
        assert mapper.columns() == ["id", "name"]
        assert mapper.rows() == [{"id": 1, "name": "Ada"}, {"id": 3, "name": "Chen"}]

    def test_read_with_single_column_selector(self, seeded_db, connection):
        mapper = seeded_db.read("users", "name", {"id": 2})
        assert mapper.rows() == [{"name": "Brian"}]
        assert connection.last_sql() == "SELECT name FROM users WHERE id = :id"

    def test_read_with_raw_selector(self, seeded_db):
        mapper = seeded_db.read("users", seeded_db.raw("COUNT(*) AS n"))
        assert mapper.scalar() == 3

    def test_read_with_mixed_conditions(self, seeded_db, connection):
        mapper = seeded_db.read("users", ["name"], {"status": "active", 0: "age >= 30"})
        assert mapper.column("name") == ["Ada"]
        assert connection.last_sql() == (
            "SELECT name FROM users WHERE status = :status AND age >= 30"
        )

    def test_read_with_condition_sequence(self, seeded_db):
        mapper = seeded_db.read("users", ["name"], ["age < 40", {"status": "active"}])
        assert mapper.column("name") == ["Ada", "Chen"]

    def test_read_uses_preconfigured_builder_state(self, seeded_db, connection):
        seeded_db.where("status", "active").order_by("age", "DESC").limit(1)
        mapper = seeded_db.read("users", ["name"])
        assert mapper.column("name") == ["Ada"]
        assert connection.last_sql() == (
            "SELECT name FROM users WHERE status = :status ORDER BY age DESC LIMIT 1"
        )

    def test_read_with_preconfigured_table(self, seeded_db):
        seeded_db.from_("users")
        assert seeded_db.read().num_rows() == 3

    def test_read_without_table(self, db):
        with pytest.raises(QueryBuilderError):
            db.read()


# ── Update / delete ───────────────────────────────────────────────────────────

class TestUpdateDelete:
    def test_update(self, seeded_db):
        assert seeded_db.update("users", {"status": "archived"}, {"id": 1}) is True
        assert seeded_db.read("users", ["status"], {"id": 1}).scalar() == "archived"

    def test_update_without_matches_returns_false(self, seeded_db):
        assert seeded_db.update("users", {"status": "archived"}, {"id": 99}) is False

    def test_update_batch(self, seeded_db, connection):
        ok = seeded_db.update_batch(
            "id", "users", [{"id": 1, "name": "a"}, {"id": 2, "name": "b"}]
        )
        assert ok is True
        assert len(connection.executed) == 1
        sql, params = connection.executed[0]
        assert sql.startswith("UPDATE users SET name = CASE WHEN id = :id THEN :name")
        assert "WHERE id IN (:id, :id_1)" in sql
        assert params == {"id": 1, "name": "a", "id_1": 2, "name_1": "b"}
        names = seeded_db.read("users", ["name"]).column("name")
        assert names == ["a", "b", "Chen"]

    def test_update_batch_with_conditions(self, seeded_db):
        ok = seeded_db.update_batch(
            "id",
            "users",
            [{"id": 1, "age": 40}, {"id": 2, "age": 60}],
            {"status": "active"},
        )
        assert ok is True
        ages = seeded_db.read("users", ["age"]).column("age")
        assert ages == [40, 52, 19]

    def test_delete_uses_preconfigured_table(self, seeded_db, connection):
        seeded_db.from_("users")
        assert seeded_db.delete(None, {"status": "archived"}) is True
        assert connection.executed[-1] == (
            "DELETE FROM users WHERE status = :status",
            {"status": "archived"},
        )
        assert seeded_db.read("users").num_rows() == 2

    def test_delete_with_mapping_inside_sequence(self, seeded_db):
        assert seeded_db.delete("users", [{"status": "archived"}]) is True
        assert seeded_db.read("users", conditions={"status": "archived"}).num_rows() == 0

    def test_delete_without_matches_returns_false(self, seeded_db):
        assert seeded_db.delete("users", {"name": "Nobody"}) is False


# ── Builder hygiene ───────────────────────────────────────────────────────────

class TestBuilderReset:
    def test_parameters_are_empty_after_every_call(self, seeded_db):
        seeded_db.create("users", {"name": "Dana"})
        assert seeded_db.get_parameter().all() == {}
        seeded_db.read("users", conditions={"name": "Dana"})
        assert seeded_db.get_parameter().all() == {}
        seeded_db.update("users", {"age": 1}, {"name": "Dana"})
        assert seeded_db.get_parameter().all() == {}
        seeded_db.delete("users", {"name": "Dana"})
        assert seeded_db.get_parameter().all() == {}

    def test_failed_call_leaves_no_residue(self, seeded_db, connection):
        with pytest.raises(QueryExecutionError):
            seeded_db.create("missing_table", {"secret": "x"})
        assert seeded_db.get_parameter().all() == {}

        seeded_db.read("users", ["name"], {"id": 1})
        sql, params = connection.executed[-1]
        assert sql == "SELECT name FROM users WHERE id = :id"
        assert params == {"id": 1}

    def test_builder_error_also_resets(self, db):
        db.where("status", "active")
        with pytest.raises(QueryBuilderError):
            db.create("users")
        assert db.get_parameter().all() == {}
        with pytest.raises(QueryBuilderError):
            db.generate_select_query()


# ── builder() / query log ─────────────────────────────────────────────────────

class TestBuilderAndQueryLog:
    def test_builder_shares_the_connection(self, seeded_db):
        seeded_db.where("status", "active")
        fresh = seeded_db.builder()
        assert fresh is not seeded_db
        assert fresh.get_connection() is seeded_db.get_connection()
        assert fresh.get_parameter() is not seeded_db.get_parameter()
        # The fresh builder starts empty; seeded_db keeps its pending condition.
        assert fresh.read("users").num_rows() == 3
        assert seeded_db.read("users").num_rows() == 2

    def test_query_log(self, db):
        assert db.enable_query_log() is db
        db.create("users", {"name": "Ada"})
        db.read("users")
        logs = db.get_query_logs()
        assert [log.query.split()[0] for log in logs] == ["INSERT", "SELECT"]
        assert logs[0].parameters == {"name": "Ada"}
        assert db.disable_query_log() is db
        db.read("users")
        assert len(db.get_query_logs()) == 2

    def test_query_log_is_connection_scoped(self, db):
        db.enable_query_log()
        db.builder().read("users")
        assert len(db.get_query_logs()) == 1

    def test_raw_query(self, seeded_db):
        mapper = seeded_db.query("SELECT name FROM users WHERE age > :age", {"age": 30})
        assert mapper.column("name") == ["Ada", "Brian"]
