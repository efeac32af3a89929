"""
Fluent SQL query building for init-database.

  query_builder/raw.py        — ``RawQuery``: SQL fragments inlined verbatim.
  query_builder/parameters.py — ``Parameters``: named bound-value store.
  query_builder/builder.py    — ``QueryBuilder``: statement structure + SQL generators.

The builder only produces SQL text and bound values; it never talks to a
connection. ``Database`` drives it, executes the result, and resets the
parameter store after every statement.
"""

from init_database.query_builder.builder import QueryBuilder, QueryBuilderError
from init_database.query_builder.parameters import Parameters
from init_database.query_builder.raw import RawQuery

__all__ = [
    "Parameters",
    "QueryBuilder",
    "QueryBuilderError",
    "RawQuery",
]
