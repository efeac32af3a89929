"""
Shared pytest fixtures for the init-database test suite.

Provides:
  - ``connection``: A ``RecordingConnection`` on a fresh in-memory SQLite
    database with the ``users`` table created. It records every statement
    executed through ``query()`` and every transaction call.
  - ``db``: A ``Database`` on that connection.
  - ``seeded_db``: ``db`` with three users inserted.
"""

from __future__ import annotations

from typing import Any, Generator, Optional

import pytest

from init_database.connection import Connection
from init_database.database import Database

USERS_DDL = """
CREATE TABLE users (
    id      INTEGER PRIMARY KEY,
    name    TEXT    NOT NULL,
    status  TEXT    NOT NULL DEFAULT 'active',
    age     INTEGER
);
"""

SEED_USERS = [
    {"name": "Ada", "status": "active", "age": 36},
    {"name": "Brian", "status": "archived", "age": 52},
    {"name": "Chen", "status": "active", "age": 19},
]


class RecordingConnection(Connection):
    """``Connection`` that remembers what was asked of it.

    Attributes:
        executed: ``(sql, parameters)`` for every ``query()`` call.
        calls:    ``"begin"`` / ``"commit"`` / ``"rollback"`` in call order.
    """

    def __init__(self, credentials: Any = None) -> None:
        super().__init__(credentials if credentials is not None else {"db_path": ":memory:"})
        self.executed: list[tuple[str, dict[str, Any]]] = []
        self.calls: list[str] = []

    def query(self, sql, parameters=None, options=None):
        self.executed.append((sql, dict(parameters or {})))
        return super().query(sql, parameters, options)

    def begin_transaction(self) -> bool:
        self.calls.append("begin")
        return super().begin_transaction()

    def commit(self) -> bool:
        self.calls.append("commit")
        return super().commit()

    def rollback(self) -> bool:
        self.calls.append("rollback")
        return super().rollback()

    def last_sql(self) -> Optional[str]:
        return self.executed[-1][0] if self.executed else None


# ── Database fixtures ─────────────────────────────────────────────────────────

@pytest.fixture
def connection() -> Generator[RecordingConnection, None, None]:
    """Yield an in-memory ``RecordingConnection`` with the ``users`` table.

    The set-up statement is cleared from ``executed`` before the test runs.
    """
    conn = RecordingConnection()
    conn.query(USERS_DDL)
    conn.executed.clear()
    yield conn
    conn.close()


@pytest.fixture
def db(connection: RecordingConnection) -> Database:
    return Database(connection)


@pytest.fixture
def seeded_db(db: Database, connection: RecordingConnection) -> Database:
    """``db`` with ``SEED_USERS`` inserted as ids 1, 2, 3."""
    assert db.create_batch("users", SEED_USERS)
    connection.executed.clear()
    return db
