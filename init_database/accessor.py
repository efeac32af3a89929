"""
Process-wide ``Database`` accessor.

``DB`` holds at most one ``Database``, set explicitly at start-up::

    from init_database import DB

    DB.create_immutable({"db_path": "data/db/app.db"})
    DB.read("users", conditions={"status": "active"})

Once configured it cannot be replaced until ``DB.reset()`` is called (tests
do this between cases). ``DB.connect()`` builds an independent ``Database``
and leaves the shared one alone.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any, Optional, Union

from init_database.connection import ConnectionInterface, QueryLog
from init_database.data_mapper import DataMapper
from init_database.database import (
    Conditions,
    Database,
    DatabaseError,
    TransactionResult,
    Values,
)

logger = logging.getLogger(__name__)


class DB:
    """Static facade over the shared ``Database``."""

    _instance: Optional[Database] = None

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    @classmethod
    def create_immutable(cls, connection: Any, **kwargs: Any) -> Database:
        """Configure the shared ``Database``.

        Args:
            connection: Anything ``Database`` accepts.
            **kwargs: Passed to the ``Database`` constructor.

        Raises:
            DatabaseError: Already configured.
        """
        if cls._instance is not None:
            raise DatabaseError(
                "DB is already configured; call DB.reset() before configuring it again."
            )
        cls._instance = Database(connection, **kwargs)
        logger.debug("Shared Database configured")
        return cls._instance

    @classmethod
    def connect(cls, connection: Any, **kwargs: Any) -> Database:
        """A new ``Database``, independent of the shared one."""
        return Database(connection, **kwargs)

    @classmethod
    def get_database(cls) -> Database:
        if cls._instance is None:
            raise DatabaseError("DB is not configured; call DB.create_immutable() first.")
        return cls._instance

    @classmethod
    def is_configured(cls) -> bool:
        return cls._instance is not None

    @classmethod
    def reset(cls) -> None:
        """Forget the shared ``Database``. Its connection is not closed."""
        cls._instance = None

    # ── Delegation ────────────────────────────────────────────────────────────

    @classmethod
    def query(
        cls,
        sql: str,
        parameters: Optional[Mapping[str, Any]] = None,
        options: Optional[Mapping[str, Any]] = None,
    ) -> DataMapper:
        return cls.get_database().query(sql, parameters, options)

    @classmethod
    def builder(cls) -> Database:
        return cls.get_database().builder()

    @classmethod
    def create(cls, table: Optional[str] = None, values: Optional[Values] = None) -> bool:
        return cls.get_database().create(table, values)

    @classmethod
    def create_batch(
        cls, table: Optional[str] = None, values: Optional[Sequence[Values]] = None
    ) -> bool:
        return cls.get_database().create_batch(table, values)

    @classmethod
    def read(
        cls,
        table: Optional[str] = None,
        selectors: Optional[Union[str, Sequence[str]]] = None,
        conditions: Optional[Conditions] = None,
    ) -> DataMapper:
        return cls.get_database().read(table, selectors, conditions)

    @classmethod
    def update(
        cls,
        table: Optional[str] = None,
        values: Optional[Values] = None,
        conditions: Optional[Conditions] = None,
    ) -> bool:
        return cls.get_database().update(table, values, conditions)

    @classmethod
    def update_batch(
        cls,
        reference_column: str,
        table: Optional[str] = None,
        values: Optional[Sequence[Values]] = None,
        conditions: Optional[Conditions] = None,
    ) -> bool:
        return cls.get_database().update_batch(reference_column, table, values, conditions)

    @classmethod
    def delete(cls, table: Optional[str] = None, conditions: Optional[Conditions] = None) -> bool:
        return cls.get_database().delete(table, conditions)

    @classmethod
    def transaction(
        cls,
        work: Callable[[Database], Any],
        attempts: Optional[int] = None,
        test_mode: bool = False,
    ) -> TransactionResult:
        return cls.get_database().transaction(work, attempts, test_mode)

    @classmethod
    def insert_id(cls) -> Optional[int]:
        return cls.get_database().insert_id()

    @classmethod
    def enable_query_log(cls) -> Database:
        return cls.get_database().enable_query_log()

    @classmethod
    def disable_query_log(cls) -> Database:
        return cls.get_database().disable_query_log()

    @classmethod
    def get_query_logs(cls) -> list[QueryLog]:
        return cls.get_database().get_query_logs()

    @classmethod
    def get_connection(cls) -> ConnectionInterface:
        return cls.get_database().get_connection()
