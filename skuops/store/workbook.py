from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import pandas as pd

from skuops.errors import AdapterError
from skuops.store.tabular import RawTable, trim_table

"""Workbook-backed TabularStore (one worksheet per table).

Reads go through ``pd.ExcelFile(...).parse(header=None)`` so that row 0 of
the returned table is the title row exactly as it sits in the sheet.
Writes replace a single sheet in place through ``pd.ExcelWriter`` in append
mode (openpyxl engine); the file is opened and closed per call.
"""

__all__ = [
    "WorkbookTabularStore",
]

logger = logging.getLogger(__name__)

# Only truly empty cells are NaN; strings such as "NA" or "null" are codes.
_NA_VALUES = [""]


def _frame_to_rows(df: pd.DataFrame) -> RawTable:
    obj = df.astype(object)
    obj = obj.where(pd.notna(obj), None)
    return [list(r) for r in obj.values.tolist()]


class WorkbookTabularStore:
    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def _sheet_names(self) -> list[str]:
        if not self.path.exists():
            return []
        try:
            with pd.ExcelFile(self.path) as xls:
                return [str(n) for n in xls.sheet_names]
        except (OSError, ValueError) as e:
            raise AdapterError(f"cannot open workbook {self.path}: {e}", operation="open") from e

    def has_table(self, name: str) -> bool:
        return name in self._sheet_names()

    def read_table(self, name: str) -> RawTable:
        if not self.path.exists():
            raise AdapterError(f"workbook not found: {self.path}", worksheet=name, operation="read")
        try:
            with pd.ExcelFile(self.path) as xls:
                if name not in [str(n) for n in xls.sheet_names]:
                    raise AdapterError("table not found", worksheet=name, operation="read")
                df = xls.parse(name, header=None, keep_default_na=False, na_values=_NA_VALUES)
        except AdapterError:
            raise
        except (OSError, ValueError, KeyError) as e:
            raise AdapterError(str(e), worksheet=name, operation="read") from e
        return trim_table(_frame_to_rows(df))

    def write_table(self, name: str, rows: RawTable) -> None:
        df = pd.DataFrame([list(r) for r in rows])
        try:
            if self.path.exists():
                with pd.ExcelWriter(self.path, engine="openpyxl", mode="a", if_sheet_exists="replace") as writer:
                    df.to_excel(writer, sheet_name=name, header=False, index=False)
            else:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with pd.ExcelWriter(self.path, engine="openpyxl", mode="w") as writer:
                    df.to_excel(writer, sheet_name=name, header=False, index=False)
        except (OSError, ValueError, KeyError) as e:
            raise AdapterError(str(e), worksheet=name, operation="write") from e
        logger.debug("wrote %d rows to %s!%s", max(len(rows) - 1, 0), self.path.name, name)

    def clear_table(self, name: str) -> None:
        if self.has_table(name):
            self.write_table(name, [])

    def copy_table(self, name: str, target: Any) -> None:
        """Copy one table into another workbook (path or store)."""
        dest = target if hasattr(target, "write_table") else WorkbookTabularStore(target)
        dest.write_table(name, self.read_table(name))
