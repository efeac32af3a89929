"""
Bound parameter store shared by a ``QueryBuilder`` and its nested builders.

Values are bound under named placeholders (``:name``). The store is filled
incrementally while a statement is being built and consumed as a whole when
it executes. Nothing clears it implicitly; the owner calls ``reset()`` once
the statement has run.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any, Iterator

_NON_IDENTIFIER = re.compile(r"[^0-9A-Za-z_]+")


class Parameters:
    """Ordered mapping of placeholder name → bound value."""

    def __init__(self) -> None:
        self._values: dict[str, Any] = {}

    def add(self, key: str, value: Any) -> str:
        """Bind ``value`` under a placeholder derived from ``key``.

        Args:
            key: Usually the column the value belongs to. Characters that are
                not valid in a placeholder name are replaced with ``_``.
            value: The value to bind.

        Returns:
            The placeholder text to embed in SQL, e.g. ``":name_1"``.
        """
        base = _NON_IDENTIFIER.sub("_", str(key)).strip("_") or "p"
        if base[0].isdigit():
            base = f"p_{base}"

        name = base
        suffix = 1
        while name in self._values:
            name = f"{base}_{suffix}"
            suffix += 1

        self._values[name] = value
        return f":{name}"

    def set(self, key: str, value: Any) -> None:
        """Bind ``value`` under an explicit placeholder, replacing any previous value.

        This includes placeholders ``add()`` generated: after
        ``where("id", 1)``, ``set("id", 99)`` rebinds ``:id`` to 99. Use it to
        supply values for hand-written ``:name`` placeholders (``RawQuery``
        fragments, ``where("created_at > :since")``); use ``add()`` when the
        name only needs to be unique.
        """
        self._values[key.lstrip(":")] = value

    def merge(self, parameters: Mapping[str, Any]) -> None:
        for key, value in parameters.items():
            self.set(key, value)

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key.lstrip(":"), default)

    def has(self, key: str) -> bool:
        return key.lstrip(":") in self._values

    def all(self) -> dict[str, Any]:
        """Return a snapshot copy of every bound value."""
        return dict(self._values)

    def reset(self) -> None:
        """Discard every bound value."""
        self._values.clear()

    def __len__(self) -> int:
        return len(self._values)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.has(key)

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __repr__(self) -> str:
        return f"Parameters({self._values!r})"
