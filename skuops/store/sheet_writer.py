from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from skuops.store.tabular import TabularStore

"""SheetWriter port for report-style output (header + value rows).

Unlike entity tables, report sheets carry no schema: the caller decides the
header and the cell values.
"""

__all__ = [
    "SheetWriter",
    "TabularSheetWriter",
]


@runtime_checkable
class SheetWriter(Protocol):
    def write_sheet(self, name: str, header: list[str], rows: list[list[Any]]) -> None: ...


class TabularSheetWriter:
    """Writes report sheets into a TabularStore (same workbook or another one)."""

    def __init__(self, store: TabularStore) -> None:
        self.store = store

    def write_sheet(self, name: str, header: list[str], rows: list[list[Any]]) -> None:
        self.store.write_table(name, [list(header), *[list(r) for r in rows]])
