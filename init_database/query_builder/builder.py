"""
Fluent SQL query builder.

``QueryBuilder`` accumulates the structure of one statement (tables, columns,
joins, conditions, grouping, ordering, value rows) and emits SQLite SQL text on
demand. Every value is bound into the builder's ``Parameters`` store under a
named placeholder the moment it is supplied, so the emitted SQL and the
parameter snapshot always belong together.

Lifecycle of one statement::

    builder = QueryBuilder()
    builder.from_("users").where("status", "active").order_by("id", "DESC")
    sql = builder.generate_select_query()      # structure is reset here
    params = builder.get_parameter().all()     # snapshot
    ...execute...
    builder.get_parameter().reset()            # caller's responsibility

Generators reset the *structure* after emitting; the parameter store is only
cleared by an explicit ``reset()``, because the statement still needs it.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from typing import Any, Optional, Union

from init_database.query_builder.parameters import Parameters
from init_database.query_builder.raw import RawQuery


Column = Union[str, RawQuery]

COMPARISON_OPERATORS = frozenset({
    "=", "!=", "<>", "<", "<=", ">", ">=", "LIKE", "NOT LIKE", "GLOB", "IS", "IS NOT",
})
SET_OPERATORS = frozenset({"IN", "NOT IN"})
RANGE_OPERATORS = frozenset({"BETWEEN", "NOT BETWEEN"})
LOGICAL_CONNECTORS = frozenset({"AND", "OR"})
JOIN_TYPES = frozenset({"INNER", "LEFT", "LEFT OUTER", "RIGHT", "FULL", "CROSS"})
SORT_DIRECTIONS = frozenset({"ASC", "DESC"})
LIKE_SIDES = frozenset({"both", "start", "end", "none"})

_UNSET: Any = object()


class QueryBuilderError(ValueError):
    """Raised when a statement cannot be built from the accumulated state."""


class QueryBuilder:
    """Accumulates statement structure and emits SQL with named parameters.

    Args:
        parameters: Parameter store to bind into. Nested builders created by
            ``group()`` and ``sub_query()`` share their parent's store.
    """

    def __init__(self, parameters: Optional[Parameters] = None) -> None:
        self._parameters = parameters if parameters is not None else Parameters()
        self.reset_structure()

    # ── Structure & parameters ───────────────────────────────────────────────

    def reset_structure(self) -> "QueryBuilder":
        """Forget tables, columns, conditions and value rows. Parameters are kept."""
        self._tables: list[str] = []
        self._columns: list[str] = []
        self._joins: list[str] = []
        self._where: list[tuple[str, str]] = []
        self._having: list[tuple[str, str]] = []
        self._group_by: list[str] = []
        self._order_by: list[str] = []
        self._limit: Optional[int] = None
        self._offset: Optional[int] = None
        self._rows: list[dict[str, str]] = []
        return self

    def get_parameter(self) -> Parameters:
        return self._parameters

    def set_parameter(self, key: str, value: Any) -> "QueryBuilder":
        """Bind ``:key`` explicitly, overwriting any value already bound under it."""
        self._parameters.set(key, value)
        return self

    def set_parameters(self, parameters: Mapping[str, Any]) -> "QueryBuilder":
        self._parameters.merge(parameters)
        return self

    def raw(self, sql: str) -> RawQuery:
        return RawQuery(sql)

    # ── SELECT columns ───────────────────────────────────────────────────────

    def select(self, *columns: Union[Column, Iterable[Column]]) -> "QueryBuilder":
        for column in columns:
            if isinstance(column, (list, tuple, set)):
                self._columns.extend(str(c) for c in column)
            else:
                self._columns.append(str(column))
        return self

    def select_as(self, column: Column, alias: str) -> "QueryBuilder":
        self._columns.append(_aliased(column, alias))
        return self

    def select_count(self, column: Column = "*", alias: Optional[str] = None) -> "QueryBuilder":
        return self._select_function("COUNT", column, alias)

    def select_sum(self, column: Column, alias: Optional[str] = None) -> "QueryBuilder":
        return self._select_function("SUM", column, alias)

    def select_avg(self, column: Column, alias: Optional[str] = None) -> "QueryBuilder":
        return self._select_function("AVG", column, alias)

    def select_min(self, column: Column, alias: Optional[str] = None) -> "QueryBuilder":
        return self._select_function("MIN", column, alias)

    def select_max(self, column: Column, alias: Optional[str] = None) -> "QueryBuilder":
        return self._select_function("MAX", column, alias)

    def select_distinct(self, column: Column, alias: Optional[str] = None) -> "QueryBuilder":
        """Select ``DISTINCT column``. Must be the first selected column."""
        self._columns.append(_aliased(f"DISTINCT {column}", alias))
        return self

    def _select_function(
        self, function: str, column: Column, alias: Optional[str]
    ) -> "QueryBuilder":
        self._columns.append(_aliased(f"{function}({column})", alias))
        return self

    # ── Tables & joins ───────────────────────────────────────────────────────

    def from_(self, table: Column, alias: Optional[str] = None) -> "QueryBuilder":
        """Set the statement's target table, replacing any previous one."""
        self._tables = [_aliased(table, alias)]
        return self

    def table(self, table: Column) -> "QueryBuilder":
        return self.from_(table)

    def add_from(self, table: Column, alias: Optional[str] = None) -> "QueryBuilder":
        self._tables.append(_aliased(table, alias))
        return self

    def join(
        self,
        table: Column,
        on: Column,
        join_type: str = "INNER",
    ) -> "QueryBuilder":
        join_type = join_type.strip().upper()
        if join_type not in JOIN_TYPES:
            raise QueryBuilderError(
                f"Unknown join type '{join_type}'. Must be one of {sorted(JOIN_TYPES)}."
            )
        self._joins.append(f"{join_type} JOIN {table} ON {on}")
        return self

    def inner_join(self, table: Column, on: Column) -> "QueryBuilder":
        return self.join(table, on, "INNER")

    def left_join(self, table: Column, on: Column) -> "QueryBuilder":
        return self.join(table, on, "LEFT")

    def right_join(self, table: Column, on: Column) -> "QueryBuilder":
        return self.join(table, on, "RIGHT")

    # ── WHERE ────────────────────────────────────────────────────────────────

    def where(
        self,
        column: Column,
        value: Any = _UNSET,
        operator: str = "=",
        logical: str = "AND",
    ) -> "QueryBuilder":
        """Add a condition.

        ``where("status", "active")`` binds an equality; ``where("age", 18, ">=")``
        uses another operator; ``where("deleted_at = 0")`` (no value) appends a
        pre-built condition expression verbatim.

        Args:
            column: Column name, or a complete condition when ``value`` is omitted.
            value: Value to compare against. ``None`` with ``=`` / ``!=`` renders
                ``IS NULL`` / ``IS NOT NULL``. ``IN`` takes an iterable,
                ``BETWEEN`` a pair, and a ``RawQuery`` is inlined.
            operator: Comparison operator.
            logical: ``"AND"`` or ``"OR"``, how this condition joins the previous one.

        Raises:
            QueryBuilderError: Unknown operator or connector, or a value of the
                wrong shape for the operator.
        """
        self._where.append((_logical(logical), self._condition(column, value, operator)))
        return self

    def and_where(self, column: Column, value: Any = _UNSET, operator: str = "=") -> "QueryBuilder":
        return self.where(column, value, operator, "AND")

    def or_where(self, column: Column, value: Any = _UNSET, operator: str = "=") -> "QueryBuilder":
        return self.where(column, value, operator, "OR")

    def where_in(self, column: Column, values: Any, logical: str = "AND") -> "QueryBuilder":
        return self.where(column, values, "IN", logical)

    def where_not_in(self, column: Column, values: Any, logical: str = "AND") -> "QueryBuilder":
        return self.where(column, values, "NOT IN", logical)

    def or_where_in(self, column: Column, values: Any) -> "QueryBuilder":
        return self.where(column, values, "IN", "OR")

    def or_where_not_in(self, column: Column, values: Any) -> "QueryBuilder":
        return self.where(column, values, "NOT IN", "OR")

    def between(self, column: Column, low: Any, high: Any, logical: str = "AND") -> "QueryBuilder":
        return self.where(column, (low, high), "BETWEEN", logical)

    def or_between(self, column: Column, low: Any, high: Any) -> "QueryBuilder":
        return self.where(column, (low, high), "BETWEEN", "OR")

    def not_between(self, column: Column, low: Any, high: Any, logical: str = "AND") -> "QueryBuilder":
        return self.where(column, (low, high), "NOT BETWEEN", logical)

    def where_is_null(self, column: Column, logical: str = "AND") -> "QueryBuilder":
        return self.where(column, None, "IS", logical)

    def where_is_not_null(self, column: Column, logical: str = "AND") -> "QueryBuilder":
        return self.where(column, None, "IS NOT", logical)

    def or_where_is_null(self, column: Column) -> "QueryBuilder":
        return self.where_is_null(column, "OR")

    def or_where_is_not_null(self, column: Column) -> "QueryBuilder":
        return self.where_is_not_null(column, "OR")

    def like(
        self,
        column: Column,
        value: str,
        side: str = "both",
        logical: str = "AND",
    ) -> "QueryBuilder":
        """``column LIKE pattern``; ``side`` picks where the ``%`` wildcards go."""
        return self.where(column, _like_pattern(value, side), "LIKE", logical)

    def or_like(self, column: Column, value: str, side: str = "both") -> "QueryBuilder":
        return self.like(column, value, side, "OR")

    def not_like(
        self,
        column: Column,
        value: str,
        side: str = "both",
        logical: str = "AND",
    ) -> "QueryBuilder":
        return self.where(column, _like_pattern(value, side), "NOT LIKE", logical)

    def start_like(self, column: Column, value: str, logical: str = "AND") -> "QueryBuilder":
        return self.like(column, value, "start", logical)

    def end_like(self, column: Column, value: str, logical: str = "AND") -> "QueryBuilder":
        return self.like(column, value, "end", logical)

    def group(
        self,
        callback: Callable[["QueryBuilder"], Any],
        logical: str = "AND",
    ) -> "QueryBuilder":
        """Parenthesise the conditions ``callback`` adds to a nested builder."""
        nested = type(self)(parameters=self._parameters)
        callback(nested)
        if nested._where:
            self._where.append(
                (_logical(logical), f"({_render_conditions(nested._where)})")
            )
        return self

    def sub_query(
        self,
        callback: Callable[["QueryBuilder"], Any],
        alias: Optional[str] = None,
    ) -> RawQuery:
        """Build a parenthesised SELECT with a nested builder sharing this store."""
        nested = type(self)(parameters=self._parameters)
        callback(nested)
        return RawQuery(_aliased(f"({nested.generate_select_query()})", alias))

    # ── GROUP / HAVING / ORDER / LIMIT ───────────────────────────────────────

    def group_by(self, *columns: Column) -> "QueryBuilder":
        self._group_by.extend(str(c) for c in columns)
        return self

    def having(
        self,
        column: Column,
        value: Any = _UNSET,
        operator: str = "=",
        logical: str = "AND",
    ) -> "QueryBuilder":
        self._having.append((_logical(logical), self._condition(column, value, operator)))
        return self

    def order_by(self, column: Column, direction: str = "ASC") -> "QueryBuilder":
        direction = direction.strip().upper()
        if direction not in SORT_DIRECTIONS:
            raise QueryBuilderError(f"Sort direction must be ASC or DESC, got '{direction}'.")
        self._order_by.append(f"{column} {direction}")
        return self

    def limit(self, limit: int) -> "QueryBuilder":
        if limit < 0:
            raise QueryBuilderError(f"limit must be >= 0, got {limit}.")
        self._limit = int(limit)
        return self

    def offset(self, offset: int = 0) -> "QueryBuilder":
        if offset < 0:
            raise QueryBuilderError(f"offset must be >= 0, got {offset}.")
        self._offset = int(offset)
        return self

    # ── Value rows ───────────────────────────────────────────────────────────

    def set(self, column: Union[Column, Mapping[str, Any]], value: Any = _UNSET) -> "QueryBuilder":
        """Bind values for INSERT / UPDATE.

        ``set({"name": "a", "age": 3})`` starts a new value row (one row per
        call is how batch statements are assembled); ``set("name", "a")`` adds
        a column to the current row.
        """
        if isinstance(column, Mapping):
            if value is not _UNSET:
                raise QueryBuilderError("set() takes either a mapping or a column and a value.")
            row = {str(name): self._bind(name, val) for name, val in column.items()}
            if row:
                self._rows.append(row)
            return self

        if value is _UNSET:
            raise QueryBuilderError(f"set() needs a value for column '{column}'.")
        if not self._rows:
            self._rows.append({})
        self._rows[-1][str(column)] = self._bind(column, value)
        return self

    # ── SQL generators ───────────────────────────────────────────────────────

    def generate_insert_query(self) -> str:
        table = self._single_table("INSERT")
        row = self._merged_row()
        if not row:
            raise QueryBuilderError("INSERT needs at least one column value; call set() first.")

        sql = f"INSERT INTO {table} ({', '.join(row)}) VALUES ({', '.join(row.values())})"
        self.reset_structure()
        return sql

    def generate_batch_insert_query(self) -> str:
        """One multi-row INSERT. Columns missing from a row are written as NULL."""
        table = self._single_table("INSERT")
        if not self._rows:
            raise QueryBuilderError("Batch INSERT needs at least one value row.")

        columns = self._row_columns()
        values = ", ".join(
            "(" + ", ".join(row.get(column, "NULL") for column in columns) + ")"
            for row in self._rows
        )
        sql = f"INSERT INTO {table} ({', '.join(columns)}) VALUES {values}"
        self.reset_structure()
        return sql

    def generate_select_query(self) -> str:
        if not self._tables:
            raise QueryBuilderError("No table specified for SELECT; call from_() first.")

        parts = [
            f"SELECT {', '.join(self._columns) or '*'}",
            f"FROM {', '.join(self._tables)}",
        ]
        parts.extend(self._joins)
        if self._where:
            parts.append(f"WHERE {_render_conditions(self._where)}")
        if self._group_by:
            parts.append(f"GROUP BY {', '.join(self._group_by)}")
        if self._having:
            parts.append(f"HAVING {_render_conditions(self._having)}")
        if self._order_by:
            parts.append(f"ORDER BY {', '.join(self._order_by)}")
        if self._limit is not None:
            parts.append(f"LIMIT {self._limit}")
            if self._offset:
                parts.append(f"OFFSET {self._offset}")
        elif self._offset:
            # SQLite only accepts OFFSET after a LIMIT.
            parts.append(f"LIMIT -1 OFFSET {self._offset}")

        sql = " ".join(parts)
        self.reset_structure()
        return sql

    def generate_update_query(self) -> str:
        table = self._single_table("UPDATE")
        row = self._merged_row()
        if not row:
            raise QueryBuilderError("UPDATE needs at least one column value; call set() first.")

        assignments = ", ".join(f"{column} = {value}" for column, value in row.items())
        sql = f"UPDATE {table} SET {assignments}"
        if self._where:
            sql += f" WHERE {_render_conditions(self._where)}"
        self.reset_structure()
        return sql

    def generate_update_batch_query(self, reference_column: str) -> str:
        """One UPDATE for many rows, correlated on ``reference_column``.

        Each column becomes ``col = CASE WHEN ref = :ref THEN :col ... ELSE col END``
        and the statement is restricted to ``ref IN (...)`` plus any conditions
        already added with ``where()``.

        Raises:
            QueryBuilderError: No rows, a row without the reference column, or
                rows carrying nothing but the reference column.
        """
        table = self._single_table("UPDATE")
        if not self._rows:
            raise QueryBuilderError("Batch UPDATE needs at least one value row.")

        for index, row in enumerate(self._rows):
            if reference_column not in row:
                raise QueryBuilderError(
                    f"Batch UPDATE row {index} has no value for reference column "
                    f"'{reference_column}'."
                )

        columns = [c for c in self._row_columns() if c != reference_column]
        if not columns:
            raise QueryBuilderError(
                f"Batch UPDATE rows carry no columns besides '{reference_column}'."
            )

        assignments = []
        for column in columns:
            cases = " ".join(
                f"WHEN {reference_column} = {row[reference_column]} THEN {row[column]}"
                for row in self._rows
                if column in row
            )
            assignments.append(f"{column} = CASE {cases} ELSE {column} END")

        references = ", ".join(row[reference_column] for row in self._rows)
        where = f"{reference_column} IN ({references})"
        if self._where:
            where += f" AND ({_render_conditions(self._where)})"

        sql = f"UPDATE {table} SET {', '.join(assignments)} WHERE {where}"
        self.reset_structure()
        return sql

    def generate_delete_query(self) -> str:
        table = self._single_table("DELETE")
        sql = f"DELETE FROM {table}"
        if self._where:
            sql += f" WHERE {_render_conditions(self._where)}"
        self.reset_structure()
        return sql

    # ── Private helpers ──────────────────────────────────────────────────────

    def _single_table(self, statement: str) -> str:
        if not self._tables:
            raise QueryBuilderError(f"No table specified for {statement}; call from_() first.")
        return self._tables[0]

    def _merged_row(self) -> dict[str, str]:
        merged: dict[str, str] = {}
        for row in self._rows:
            merged.update(row)
        return merged

    def _row_columns(self) -> list[str]:
        columns: dict[str, None] = {}
        for row in self._rows:
            columns.update(dict.fromkeys(row))
        return list(columns)

    def _bind(self, column: Any, value: Any) -> str:
        if isinstance(value, RawQuery):
            return str(value)
        return self._parameters.add(str(column), value)

    def _condition(self, column: Column, value: Any, operator: str) -> str:
        if value is _UNSET:
            return str(column)

        op = operator.strip().upper()

        if op in SET_OPERATORS:
            if isinstance(value, RawQuery):
                return f"{column} {op} {value}"
            if isinstance(value, (str, bytes)) or not isinstance(value, Iterable):
                raise QueryBuilderError(f"{op} needs an iterable of values for '{column}'.")
            values = list(value)
            if not values:
                raise QueryBuilderError(f"{op} needs at least one value for '{column}'.")
            placeholders = ", ".join(self._bind(column, v) for v in values)
            return f"{column} {op} ({placeholders})"

        if op in RANGE_OPERATORS:
            try:
                low, high = value
            except (TypeError, ValueError) as exc:
                raise QueryBuilderError(f"{op} needs exactly two values for '{column}'.") from exc
            return f"{column} {op} {self._bind(column, low)} AND {self._bind(column, high)}"

        if op not in COMPARISON_OPERATORS:
            raise QueryBuilderError(f"Unknown operator '{operator}'.")

        if value is None:
            if op in ("=", "IS"):
                return f"{column} IS NULL"
            if op in ("!=", "<>", "IS NOT"):
                return f"{column} IS NOT NULL"
            raise QueryBuilderError(f"Operator '{op}' cannot compare '{column}' against NULL.")

        return f"{column} {op} {self._bind(column, value)}"


# ── Module helpers ─────────────────────────────────────────────────────────────

def _aliased(expression: Any, alias: Optional[str]) -> str:
    return f"{expression} AS {alias}" if alias else str(expression)


def _logical(logical: str) -> str:
    connector = logical.strip().upper()
    if connector not in LOGICAL_CONNECTORS:
        raise QueryBuilderError(f"Logical connector must be AND or OR, got '{logical}'.")
    return connector


def _render_conditions(conditions: list[tuple[str, str]]) -> str:
    parts = []
    for index, (logical, condition) in enumerate(conditions):
        parts.append(condition if index == 0 else f"{logical} {condition}")
    return " ".join(parts)


def _like_pattern(value: str, side: str) -> str:
    if side not in LIKE_SIDES:
        raise QueryBuilderError(f"LIKE side must be one of {sorted(LIKE_SIDES)}, got '{side}'.")
    if side == "both":
        return f"%{value}%"
    if side == "start":
        return f"{value}%"
    if side == "end":
        return f"%{value}"
    return value
