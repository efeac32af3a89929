"""
Raw SQL fragments.

A ``RawQuery`` is inlined into generated SQL verbatim instead of being bound
as a parameter. Use it for column expressions, sub-queries and conditions the
builder cannot express::

    db.where(RawQuery("created_at > DATE('now', '-7 day')"))
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RawQuery:
    """A SQL fragment that must never be escaped or parameterised."""

    sql: str

    def __str__(self) -> str:
        return self.sql
