"""
SQLite connection management.

``Connection`` owns one ``sqlite3.Connection`` that is opened lazily, at most
once, and configured the same way every time:
  - Foreign key enforcement (OFF by default in SQLite).
  - A busy timeout to handle lock contention gracefully.
  - Optional WAL journal mode for concurrent readers.
  - ``sqlite3.Row`` row factory.
  - Driver autocommit mode: nothing is wrapped in a transaction unless
    ``begin_transaction()`` is called, so transaction state is always explicit.

The query log and transaction state live here, not on ``Database``: every
``Database`` that shares a ``Connection`` sees the same log and the same open
transaction.

Usage::

    from init_database.connection import Connection

    with Connection({"db_path": "data/db/app.db"}) as conn:
        mapper = conn.query("SELECT * FROM users WHERE id = :id", {"id": 1})
"""

from __future__ import annotations

import logging
import sqlite3
import time
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Union

from init_database.config import DatabaseConfig
from init_database.data_mapper import DataMapper, DataMapperError, validate_fetch_mode

logger = logging.getLogger(__name__)

QUERY_OPTIONS = frozenset({"fetch_mode"})


class QueryExecutionError(RuntimeError):
    """Raised when the driver rejects a statement.

    Attributes:
        sql:        The statement that failed.
        parameters: The parameters it was executed with.
    """

    def __init__(self, sql: str, parameters: Any, cause: Exception) -> None:
        self.sql = sql
        self.parameters = parameters
        super().__init__(f"{cause} | SQL: {sql.strip()}")


@dataclass(frozen=True)
class QueryLog:
    """One executed statement, recorded while query logging is enabled."""

    query: str
    parameters: dict[str, Any]
    duration_ms: float
    row_count: int
    executed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class ConnectionInterface(ABC):
    """What ``Database`` needs from a connection."""

    @abstractmethod
    def query(
        self,
        sql: str,
        parameters: Optional[Mapping[str, Any]] = None,
        options: Optional[Mapping[str, Any]] = None,
    ) -> DataMapper:
        """Execute one statement and wrap its result."""

    @abstractmethod
    def begin_transaction(self) -> bool: ...

    @abstractmethod
    def commit(self) -> bool: ...

    @abstractmethod
    def rollback(self) -> bool: ...

    @abstractmethod
    def in_transaction(self) -> bool: ...

    @abstractmethod
    def set_query_logs(self, enabled: bool) -> None: ...

    @abstractmethod
    def get_query_logs(self) -> list[QueryLog]: ...

    @abstractmethod
    def last_insert_id(self) -> Optional[int]: ...

    @abstractmethod
    def get_raw_connection(self) -> Any:
        """The underlying driver connection."""

    @abstractmethod
    def close(self) -> None: ...


class Connection(ConnectionInterface):
    """SQLite implementation of ``ConnectionInterface``.

    Args:
        credentials: A ``DatabaseConfig`` or a mapping of its fields
            (``db_path``, ``wal_mode``, ``busy_timeout_ms``, ``foreign_keys``,
            ``query_log``). Use ``db_path=":memory:"`` for tests.

    Raises:
        pydantic.ValidationError: If ``credentials`` has unknown keys or
            invalid values.
    """

    def __init__(
        self,
        credentials: Union[DatabaseConfig, Mapping[str, Any], None] = None,
    ) -> None:
        if isinstance(credentials, DatabaseConfig):
            self.config = credentials
        else:
            self.config = DatabaseConfig(**dict(credentials or {}))

        self._conn: Optional[sqlite3.Connection] = None
        self._query_logging = self.config.query_log
        self._query_logs: list[QueryLog] = []

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    def get_raw_connection(self) -> sqlite3.Connection:
        """Return the driver connection, opening it on first use.

        Raises:
            sqlite3.OperationalError: If the database cannot be opened.
        """
        if self._conn is None:
            self._conn = self._open()
        return self._conn

    def _open(self) -> sqlite3.Connection:
        db_path = self.config.db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(
            db_path,
            timeout=self.config.busy_timeout_ms / 1000,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row

        try:
            # Pragmas must be set before any DML/DDL
            conn.execute(f"PRAGMA foreign_keys = {'ON' if self.config.foreign_keys else 'OFF'};")
            conn.execute(f"PRAGMA busy_timeout = {self.config.busy_timeout_ms};")
            if self.config.wal_mode and db_path != ":memory:":
                conn.execute("PRAGMA journal_mode = WAL;")
        except sqlite3.Error:
            conn.close()
            raise

        logger.info("Opened SQLite connection | db_path=%s", db_path)
        return conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.info("Closed SQLite connection | db_path=%s", self.config.db_path)

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ── Execution ─────────────────────────────────────────────────────────────

    def query(
        self,
        sql: str,
        parameters: Optional[Mapping[str, Any]] = None,
        options: Optional[Mapping[str, Any]] = None,
    ) -> DataMapper:
        """Execute one statement.

        Args:
            sql: SQL with ``:name`` (or ``?`` with a sequence) placeholders.
            parameters: Values to bind.
            options: Execution hints. Supported: ``fetch_mode``
                (``"dict"``, ``"tuple"`` or ``"row"``).

        Returns:
            ``DataMapper`` over the statement's result.

        Raises:
            DataMapperError: Unknown option or fetch mode (nothing is executed).
            QueryExecutionError: The driver rejected the statement.
        """
        options = dict(options or {})
        unknown = set(options) - QUERY_OPTIONS
        if unknown:
            raise DataMapperError(
                f"Unknown query options {sorted(unknown)}. Supported: {sorted(QUERY_OPTIONS)}."
            )
        fetch_mode = validate_fetch_mode(options.get("fetch_mode", "dict"))
        params = parameters if parameters is not None else {}

        conn = self.get_raw_connection()
        logger.debug("SQL: %s | params: %s", sql.strip(), params)

        started = time.perf_counter()
        try:
            mapper = DataMapper(conn.execute(sql, params), fetch_mode)
        except sqlite3.Error as exc:
            raise QueryExecutionError(sql, params, exc) from exc

        if self._query_logging:
            self._query_logs.append(
                QueryLog(
                    query=sql,
                    parameters=dict(params) if isinstance(params, Mapping) else {"args": list(params)},
                    duration_ms=(time.perf_counter() - started) * 1000,
                    row_count=mapper.num_rows(),
                )
            )
        return mapper

    def last_insert_id(self) -> Optional[int]:
        """Rowid of the most recent successful INSERT on this connection."""
        row = self.get_raw_connection().execute("SELECT last_insert_rowid() AS rowid;").fetchone()
        return int(row["rowid"]) if row is not None else None

    # ── Transactions ──────────────────────────────────────────────────────────

    def in_transaction(self) -> bool:
        return self._conn is not None and self._conn.in_transaction

    def begin_transaction(self) -> bool:
        """Open a transaction.

        Raises:
            QueryExecutionError: A transaction is already open, or the
                database is locked.
        """
        try:
            self.get_raw_connection().execute("BEGIN;")
        except sqlite3.Error as exc:
            raise QueryExecutionError("BEGIN;", {}, exc) from exc
        logger.debug("Transaction started")
        return True

    def commit(self) -> bool:
        """Commit the open transaction. Returns ``False`` when none is open."""
        if not self.in_transaction():
            return False
        try:
            self.get_raw_connection().commit()
        except sqlite3.Error as exc:
            raise QueryExecutionError("COMMIT;", {}, exc) from exc
        logger.debug("Transaction committed")
        return True

    def rollback(self) -> bool:
        """Roll back the open transaction. Returns ``False`` when none is open."""
        if not self.in_transaction():
            return False
        try:
            self.get_raw_connection().rollback()
        except sqlite3.Error as exc:
            raise QueryExecutionError("ROLLBACK;", {}, exc) from exc
        logger.debug("Transaction rolled back")
        return True

    # ── Query log ─────────────────────────────────────────────────────────────

    def set_query_logs(self, enabled: bool) -> None:
        self._query_logging = bool(enabled)

    def is_query_logging(self) -> bool:
        return self._query_logging

    def get_query_logs(self) -> list[QueryLog]:
        return list(self._query_logs)

    def clear_query_logs(self) -> None:
        self._query_logs.clear()
