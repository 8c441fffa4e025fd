from __future__ import annotations

import copy
from typing import Any, Protocol, runtime_checkable

from skuops.errors import AdapterError

"""TabularStore port and the in-memory implementation.

A table is a list of rows of raw cell values; row 0 holds the column
titles. ``write_table`` replaces the whole table. ``read_table`` of a table
that does not exist raises ``AdapterError``.
"""

__all__ = [
    "RawTable",
    "TabularStore",
    "InMemoryTabularStore",
    "trim_table",
]

RawTable = list[list[Any]]


@runtime_checkable
class TabularStore(Protocol):
    def read_table(self, name: str) -> RawTable: ...

    def write_table(self, name: str, rows: RawTable) -> None: ...

    def clear_table(self, name: str) -> None: ...

    def copy_table(self, name: str, target: Any) -> None: ...

    def has_table(self, name: str) -> bool: ...


def _cell_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    return isinstance(value, float) and value != value  # NaN


def trim_table(rows: RawTable) -> RawTable:
    """Drop trailing empty rows and trailing empty columns."""
    out = [list(r) for r in rows]
    while out and all(_cell_empty(c) for c in out[-1]):
        out.pop()
    width = 0
    for r in out:
        for i in range(len(r) - 1, -1, -1):
            if not _cell_empty(r[i]):
                width = max(width, i + 1)
                break
    return [r[:width] + [None] * (width - len(r[:width])) for r in out]


class InMemoryTabularStore:
    """Dict-backed store. Tables are deep-copied on the way in and out."""

    def __init__(self, tables: dict[str, RawTable] | None = None) -> None:
        self._tables: dict[str, RawTable] = {}
        for name, rows in (tables or {}).items():
            self._tables[name] = copy.deepcopy(list(rows))
        self.write_count = 0

    def read_table(self, name: str) -> RawTable:
        if name not in self._tables:
            raise AdapterError("table not found", worksheet=name, operation="read")
        return trim_table(copy.deepcopy(self._tables[name]))

    def write_table(self, name: str, rows: RawTable) -> None:
        self._tables[name] = copy.deepcopy([list(r) for r in rows])
        self.write_count += 1

    def clear_table(self, name: str) -> None:
        if name in self._tables:
            self._tables[name] = []

    def copy_table(self, name: str, target: Any) -> None:
        if not isinstance(target, InMemoryTabularStore):
            raise AdapterError("copy target must be an InMemoryTabularStore", worksheet=name, operation="copy")
        target.write_table(name, self.read_table(name))

    def has_table(self, name: str) -> bool:
        return name in self._tables

    def table_names(self) -> list[str]:
        return list(self._tables)
