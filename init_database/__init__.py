"""
init-database: a small SQLite data-access layer.

This package provides:

  init_database/database.py      — ``Database`` facade: CRUD, transactions, builder chaining.
  init_database/accessor.py      — ``DB``: the explicitly configured process-wide ``Database``.
  init_database/connection.py    — ``ConnectionInterface`` and the SQLite ``Connection``.
  init_database/data_mapper.py   — ``DataMapper``: rows and row counts of one statement.
  init_database/query_builder/   — ``QueryBuilder``, ``Parameters``, ``RawQuery``.
  init_database/config.py        — TOML + .env + environment configuration.
  init_database/cli.py           — ``init-database`` command line.

Typical use::

    from init_database import Database

    db = Database({"db_path": "data/db/app.db"})
    db.create("users", {"name": "Ada", "status": "active"})
    result = db.transaction(lambda tx: tx.delete("users", {"status": "archived"}), attempts=3)
"""

from init_database.accessor import DB
from init_database.connection import (
    Connection,
    ConnectionInterface,
    QueryExecutionError,
    QueryLog,
)
from init_database.data_mapper import DataMapper, DataMapperError
from init_database.database import (
    Database,
    DatabaseError,
    DatabaseInvalidArgumentError,
    TransactionConflictError,
    TransactionResult,
    TransactionStatus,
)
from init_database.query_builder import (
    Parameters,
    QueryBuilder,
    QueryBuilderError,
    RawQuery,
)

__all__ = [
    # facade
    "DB",
    "Database",
    "DatabaseError",
    "DatabaseInvalidArgumentError",
    "TransactionConflictError",
    "TransactionResult",
    "TransactionStatus",
    # connection
    "Connection",
    "ConnectionInterface",
    "QueryExecutionError",
    "QueryLog",
    # results
    "DataMapper",
    "DataMapperError",
    # query builder
    "Parameters",
    "QueryBuilder",
    "QueryBuilderError",
    "RawQuery",
]
