"""
``Database`` — one object for a connection, a query builder and result mapping.

A ``Database`` owns exactly one ``QueryBuilder`` and shares one
``ConnectionInterface`` (the same connection may back several ``Database``
values, see ``builder()``). It offers:

  - CRUD conveniences (``create``, ``create_batch``, ``read``, ``update``,
    ``update_batch``, ``delete``) that drive the builder, execute through
    ``query()`` and reset the builder afterwards, on success *and* failure,
    so no bound value leaks into the next call.
  - ``transaction()``: runs a unit of work inside a transaction, rolling back
    and retrying on failure.
  - The builder's fluent methods (``where``, ``from_``, ``select``, ...),
    forwarded through a fixed method table. A call that returns the builder
    returns this ``Database`` instead, so chains keep working::

        db.from_("users").where("status", "active").limit(10)
        active = db.read()

Thread safety: none. The in-transaction check in ``transaction()`` is a
best-effort guard, not a lock; callers sharing a ``Connection`` between
threads must synchronise externally.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union

from pydantic import ValidationError

from init_database.config import AppConfig, DatabaseConfig
from init_database.connection import Connection, ConnectionInterface, QueryLog
from init_database.data_mapper import DataMapper
from init_database.query_builder import QueryBuilder, RawQuery

logger = logging.getLogger(__name__)

Values = Mapping[str, Any]
Conditions = Union[Mapping[Any, Any], Sequence[Any]]


# ── Exceptions ────────────────────────────────────────────────────────────────


class DatabaseError(RuntimeError):
    """Base class for errors raised by ``Database`` and ``DB`` themselves."""


class DatabaseInvalidArgumentError(DatabaseError, ValueError):
    """Raised for an unusable constructor argument or ``attempts < 1``."""


class TransactionConflictError(DatabaseError):
    """Raised when ``transaction()`` is called while one is already open."""

    def __init__(self) -> None:
        super().__init__(
            "A transaction is already open on this connection; "
            "finish it before starting another."
        )


# ── Transaction result ────────────────────────────────────────────────────────


class TransactionStatus(str, Enum):
    """Outcome of a ``transaction()`` call."""

    SUCCESS = "success"  # An attempt's commit (or test-mode rollback) acknowledged
    FAILED  = "failed"   # Every attempt failed


@dataclass(frozen=True)
class TransactionResult:
    """What ``transaction()`` returns.

    Truthiness follows ``status``: ``if db.transaction(work):`` is true only
    when an attempt ran the work to completion and the session ended with a
    positive acknowledgment.

    Attributes:
        status:       ``SUCCESS`` or ``FAILED``.
        attempts:     Attempts actually made.
        acknowledged: The last attempt's raw boolean: the commit / test-mode
                      rollback result, or, after a caught failure, the result
                      of the recovery rollback. A failed run can therefore
                      still be ``acknowledged=True``.
        errors:       Exceptions caught, one per failed attempt.
    """

    status: TransactionStatus
    attempts: int
    acknowledged: bool
    errors: tuple[Exception, ...] = ()

    @property
    def succeeded(self) -> bool:
        return self.status is TransactionStatus.SUCCESS

    @property
    def last_error(self) -> Optional[Exception]:
        return self.errors[-1] if self.errors else None

    def __bool__(self) -> bool:
        return self.succeeded


# ── Facade ────────────────────────────────────────────────────────────────────


class Database:
    """Facade over one connection and one query builder.

    Args:
        connection: A ``ConnectionInterface`` (shared, used as-is), a
            ``DatabaseConfig``, or a mapping of connection parameters from
            which a default SQLite ``Connection`` is built.
        builder_factory: Zero-argument callable producing an empty builder.
        default_attempts: Attempts used by ``transaction()`` when none are given.

    Raises:
        DatabaseInvalidArgumentError: ``connection`` is none of the above, or
            its parameters fail validation.
    """

    def __init__(
        self,
        connection: Union[ConnectionInterface, DatabaseConfig, Mapping[str, Any]],
        builder_factory: Callable[[], QueryBuilder] = QueryBuilder,
        default_attempts: int = 1,
    ) -> None:
        if isinstance(connection, ConnectionInterface):
            self._connection = connection
        elif isinstance(connection, (DatabaseConfig, Mapping)):
            try:
                self._connection = Connection(connection)
            except ValidationError as exc:
                raise DatabaseInvalidArgumentError(
                    f"Invalid connection parameters: {exc}"
                ) from exc
        else:
            raise DatabaseInvalidArgumentError(
                "Database needs a ConnectionInterface, a DatabaseConfig or a mapping "
                f"of connection parameters, got {type(connection).__name__}."
            )

        if default_attempts < 1:
            raise DatabaseInvalidArgumentError(
                f"default_attempts cannot be less than 1, got {default_attempts}."
            )

        self._builder_factory = builder_factory
        self._builder = builder_factory()
        self._default_attempts = default_attempts

    @classmethod
    def from_config(cls, config: AppConfig) -> "Database":
        """Build a ``Database`` from the application config."""
        return cls(
            config.database,
            default_attempts=config.transaction.default_attempts,
        )

    # ── Connection access ─────────────────────────────────────────────────────

    def get_connection(self) -> ConnectionInterface:
        return self._connection

    def get_raw_connection(self) -> Any:
        return self._connection.get_raw_connection()

    def builder(self) -> "Database":
        """A new ``Database`` on the same connection with a fresh, empty builder.

        The connection is shared by reference (not reopened); this instance's
        builder and bound parameters are left untouched.
        """
        return type(self)(
            self._connection,
            builder_factory=self._builder_factory,
            default_attempts=self._default_attempts,
        )

    def query(
        self,
        sql: str,
        parameters: Optional[Mapping[str, Any]] = None,
        options: Optional[Mapping[str, Any]] = None,
    ) -> DataMapper:
        """Execute literal SQL. Every convenience method ends up here."""
        return self._connection.query(sql, parameters, options)

    # ── CRUD conveniences ─────────────────────────────────────────────────────

    def create(self, table: Optional[str] = None, values: Optional[Values] = None) -> bool:
        """Insert one row. ``True`` if the driver reports an inserted row."""
        with self._statement() as builder:
            if table:
                builder.from_(table)
            if values:
                builder.set(values)
            result = self._execute(builder.generate_insert_query())
        return result.num_rows() > 0

    def create_batch(
        self,
        table: Optional[str] = None,
        values: Optional[Sequence[Values]] = None,
    ) -> bool:
        """Insert many rows with a single multi-row INSERT."""
        with self._statement() as builder:
            if table:
                builder.from_(table)
            for row in values or ():
                builder.set(row)
            result = self._execute(builder.generate_batch_insert_query())
        return result.num_rows() > 0

    def read(
        self,
        table: Optional[str] = None,
        selectors: Optional[Union[str, RawQuery, Sequence[str]]] = None,
        conditions: Optional[Conditions] = None,
    ) -> DataMapper:
        """SELECT from ``table`` (or the table already set on the builder).

        Args:
            table: Table to read; ``None`` keeps the builder's current table.
            selectors: A column or a sequence of columns to select; ``None``
                keeps the builder's columns (``*`` if none were chosen).
            conditions: See ``_apply_conditions``.
        """
        with self._statement() as builder:
            if table:
                builder.from_(table)
            if selectors:
                if isinstance(selectors, (str, RawQuery)):
                    selectors = (selectors,)
                builder.select(*selectors)
            self._apply_conditions(conditions)
            return self._execute(builder.generate_select_query())

    def update(
        self,
        table: Optional[str] = None,
        values: Optional[Values] = None,
        conditions: Optional[Conditions] = None,
    ) -> bool:
        with self._statement() as builder:
            if table:
                builder.from_(table)
            if values:
                builder.set(values)
            self._apply_conditions(conditions)
            result = self._execute(builder.generate_update_query())
        return result.num_rows() > 0

    def update_batch(
        self,
        reference_column: str,
        table: Optional[str] = None,
        values: Optional[Sequence[Values]] = None,
        conditions: Optional[Conditions] = None,
    ) -> bool:
        """Update many rows in one statement, matching rows on ``reference_column``.

        Every row in ``values`` must carry ``reference_column`` (typically the
        primary key); the remaining keys are the columns to update.
        """
        with self._statement() as builder:
            if table:
                builder.from_(table)
            for row in values or ():
                builder.set(row)
            self._apply_conditions(conditions)
            result = self._execute(builder.generate_update_batch_query(reference_column))
        return result.num_rows() > 0

    def delete(self, table: Optional[str] = None, conditions: Optional[Conditions] = None) -> bool:
        with self._statement() as builder:
            if table:
                builder.from_(table)
            self._apply_conditions(conditions)
            result = self._execute(builder.generate_delete_query())
        return result.num_rows() > 0

    def insert_id(self) -> Optional[int]:
        """Id of the most recently inserted row on the underlying connection."""
        return self._connection.last_insert_id()

    # ── Transactions ──────────────────────────────────────────────────────────

    def transaction(
        self,
        work: Callable[["Database"], Any],
        attempts: Optional[int] = None,
        test_mode: bool = False,
    ) -> TransactionResult:
        """Run ``work(self)`` inside a transaction, retrying on failure.

        Each attempt begins a brand-new transaction, calls ``work`` with this
        ``Database``, then commits or, with ``test_mode``, always rolls back
        so the work's SQL can be exercised without persisting anything. Any
        exception from the attempt is caught, the transaction rolled back and
        the next attempt started. The loop stops at the first attempt whose
        commit (or test-mode rollback) is acknowledged.

        Builder state left behind by an unsuccessful attempt is cleared, so
        every retry starts from an empty builder. ``KeyboardInterrupt`` and
        other ``BaseException`` subclasses are not retried: the transaction
        is rolled back and the exception re-raised.

        Args:
            work: The unit of work; receives this ``Database``.
            attempts: Maximum attempts; defaults to ``default_attempts``.
            test_mode: Roll back instead of committing.

        Returns:
            ``TransactionResult``, truthy only if an attempt succeeded.

        Raises:
            DatabaseInvalidArgumentError: ``attempts < 1``. Raised before the
                connection is touched.
            TransactionConflictError: A transaction is already open on the
                connection. No attempt is made.
        """
        if attempts is None:
            attempts = self._default_attempts
        if attempts < 1:
            raise DatabaseInvalidArgumentError(
                f"The number of transaction attempts cannot be less than 1, got {attempts}."
            )
        if self._connection.in_transaction():
            raise TransactionConflictError()

        acknowledged = False
        errors: list[Exception] = []

        for attempt in range(1, attempts + 1):
            try:
                self._connection.begin_transaction()
                work(self)
                acknowledged = (
                    self._connection.rollback() if test_mode else self._connection.commit()
                )
            except Exception as exc:
                errors.append(exc)
                acknowledged = self._connection.rollback()
                self._reset_builder()
                logger.warning(
                    "Transaction attempt %d/%d failed: %s", attempt, attempts, exc
                )
                continue
            except BaseException:
                # Interrupts are not retried, but the transaction must not stay open.
                if self._connection.in_transaction():
                    self._connection.rollback()
                self._reset_builder()
                raise

            if acknowledged:
                logger.info(
                    "Transaction %s on attempt %d/%d",
                    "rolled back (test mode)" if test_mode else "committed",
                    attempt, attempts,
                )
                return TransactionResult(
                    status=TransactionStatus.SUCCESS,
                    attempts=attempt,
                    acknowledged=True,
                    errors=tuple(errors),
                )
            self._reset_builder()

        logger.error("Transaction failed after %d attempt(s)", attempts)
        return TransactionResult(
            status=TransactionStatus.FAILED,
            attempts=attempts,
            acknowledged=bool(acknowledged),
            errors=tuple(errors),
        )

    # ── Query log ─────────────────────────────────────────────────────────────

    def enable_query_log(self) -> "Database":
        """Start recording statements on the (shared) connection."""
        self._connection.set_query_logs(True)
        return self

    def disable_query_log(self) -> "Database":
        self._connection.set_query_logs(False)
        return self

    def get_query_logs(self) -> list[QueryLog]:
        return self._connection.get_query_logs()

    # ── Private helpers ───────────────────────────────────────────────────────

    @contextmanager
    def _statement(self) -> Iterator[QueryBuilder]:
        """Yield the builder; afterwards clear its parameters and structure."""
        try:
            yield self._builder
        finally:
            self._reset_builder()

    def _reset_builder(self) -> None:
        self._builder.get_parameter().reset()
        self._builder.reset_structure()

    def _execute(self, sql: str) -> DataMapper:
        return self.query(sql, self._builder.get_parameter().all())

    def _apply_conditions(self, conditions: Optional[Conditions]) -> None:
        """Translate a conditions collection into ``where()`` calls.

        Mapping entries with a string key become ``where(key, value)``; entries
        with an integer key, and plain sequence elements, are pre-built
        condition expressions passed as ``where(value)``. A mapping inside a
        sequence contributes its items the same way, so simple equalities and
        raw expressions can be mixed::

            {"status": "active", 0: "age >= 18"}
            ["age >= 18", {"status": "active"}]
        """
        if not conditions:
            return

        if isinstance(conditions, Mapping):
            items = list(conditions.items())
        elif isinstance(conditions, (str, bytes)):
            items = [(0, conditions)]
        else:
            items = list(enumerate(conditions))

        for key, value in items:
            if isinstance(key, str):
                self._builder.where(key, value)
            elif isinstance(value, Mapping):
                self._apply_conditions(value)
            else:
                self._builder.where(value)


# ── Builder delegation ────────────────────────────────────────────────────────

FORWARDED_BUILDER_METHODS: tuple[str, ...] = (
    "select", "select_as", "select_count", "select_sum", "select_avg",
    "select_min", "select_max", "select_distinct",
    "from_", "table", "add_from",
    "join", "inner_join", "left_join", "right_join",
    "where", "and_where", "or_where",
    "where_in", "where_not_in", "or_where_in", "or_where_not_in",
    "between", "or_between", "not_between",
    "where_is_null", "where_is_not_null", "or_where_is_null", "or_where_is_not_null",
    "like", "or_like", "not_like", "start_like", "end_like",
    "group", "sub_query", "group_by", "having", "order_by", "limit", "offset",
    "set", "raw", "get_parameter", "set_parameter", "set_parameters", "reset_structure",
    "generate_insert_query", "generate_batch_insert_query", "generate_select_query",
    "generate_update_query", "generate_update_batch_query", "generate_delete_query",
)


def _forward(name: str) -> Callable[..., Any]:
    def method(self: Database, *args: Any, **kwargs: Any) -> Any:
        result = getattr(self._builder, name)(*args, **kwargs)
        return self if result is self._builder else result

    method.__name__ = name
    method.__qualname__ = f"Database.{name}"
    method.__doc__ = getattr(QueryBuilder, name).__doc__
    return method


for _name in FORWARDED_BUILDER_METHODS:
    setattr(Database, _name, _forward(_name))
