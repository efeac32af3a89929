"""
Result wrapper for one executed statement.

Statements that produce a result set (SELECT, ``RETURNING``, some PRAGMAs) are
read eagerly when the mapper is built, so ``num_rows()`` is the number of
rows returned. For INSERT / UPDATE / DELETE it is the driver-reported count of
affected rows.

Usage::

    mapper = db.read("users", conditions={"status": "active"})
    if mapper.num_rows():
        for user in mapper.as_models(User):
            ...
"""

from __future__ import annotations

import sqlite3
from typing import Any, Iterator, Optional, TypeVar

from pydantic import BaseModel

FETCH_MODES = frozenset({"dict", "tuple", "row"})

ModelT = TypeVar("ModelT", bound=BaseModel)


class DataMapperError(ValueError):
    """Raised for an unknown fetch mode or a column the result does not have."""


def validate_fetch_mode(fetch_mode: str) -> str:
    if fetch_mode not in FETCH_MODES:
        raise DataMapperError(
            f"Unknown fetch_mode '{fetch_mode}'. Must be one of {sorted(FETCH_MODES)}."
        )
    return fetch_mode


class DataMapper:
    """Row count and rows of an executed statement.

    Attributes:
        fetch_mode: ``"dict"`` (default), ``"tuple"`` or ``"row"`` (raw ``sqlite3.Row``).
        last_row_id: ``cursor.lastrowid`` as reported by the driver.
    """

    def __init__(self, cursor: sqlite3.Cursor, fetch_mode: str = "dict") -> None:
        self.fetch_mode = validate_fetch_mode(fetch_mode)
        self.last_row_id: Optional[int] = cursor.lastrowid

        if cursor.description is not None:
            self._columns = [d[0] for d in cursor.description]
            self._rows: list[sqlite3.Row] = cursor.fetchall()
            self._num_rows = len(self._rows)
        else:
            self._columns = []
            self._rows = []
            self._num_rows = max(cursor.rowcount, 0)

    def num_rows(self) -> int:
        """Rows returned (result sets) or rows affected (DML)."""
        return self._num_rows

    def columns(self) -> list[str]:
        return list(self._columns)

    def rows(self) -> list[Any]:
        return [self._convert(row) for row in self._rows]

    def row(self) -> Optional[Any]:
        """First row, or ``None`` when the result is empty."""
        return self._convert(self._rows[0]) if self._rows else None

    def column(self, name: str) -> list[Any]:
        """All values of one column, in row order."""
        if name not in self._columns:
            raise DataMapperError(f"Result has no column '{name}'. Columns: {self._columns}")
        index = self._columns.index(name)
        return [row[index] for row in self._rows]

    def scalar(self) -> Any:
        """First column of the first row, or ``None``."""
        return self._rows[0][0] if self._rows else None

    def as_models(self, model: type[ModelT]) -> list[ModelT]:
        """Validate every row into ``model``."""
        return [model.model_validate(dict(zip(self._columns, row))) for row in self._rows]

    def _convert(self, row: Any) -> Any:
        if self.fetch_mode == "dict":
            return dict(zip(self._columns, row))
        if self.fetch_mode == "tuple":
            return tuple(row)
        return row

    def __iter__(self) -> Iterator[Any]:
        return (self._convert(row) for row in self._rows)

    def __len__(self) -> int:
        return len(self._rows)

    def __repr__(self) -> str:
        return f"DataMapper(num_rows={self._num_rows}, columns={self._columns})"
