from __future__ import annotations

import logging
from typing import Any

from skuops.errors import AdapterError, SourceDataError
from skuops.models.entity import Entity, Row
from skuops.store.converter import coerce, format_date, is_blank, to_string
from skuops.store.tabular import RawTable, TabularStore

"""Typed adapter between raw tables and entity rows.

- Header cells are matched against field titles (whitespace-trimmed)
- Cells are coerced per FieldSpec type; computed fields are never read
- ``_row_number`` is the 1-based sheet row, so the first data row is 2
- Fully blank rows are skipped but still consume a row number
"""

__all__ = [
    "FIRST_DATA_ROW",
    "header_titles",
    "rows_from_table",
    "to_table_form",
    "TableAdapter",
]

logger = logging.getLogger(__name__)

FIRST_DATA_ROW = 2


def header_titles(raw: RawTable) -> list[str]:
    if not raw:
        return []
    return [(to_string(c) or "").strip() for c in raw[0]]


def rows_from_table(entity: Entity, raw: RawTable) -> list[Row]:
    """Materialize typed rows from a raw table.

    Raises:
        SourceDataError: the table has no title row, or a title of one of
            the entity's required fields is missing.
    """
    if not raw:
        raise SourceDataError(f"table '{entity.worksheet}' is empty")
    headers = header_titles(raw)
    positions = {title: i for i, title in enumerate(headers) if title}

    missing = [entity.fields[f].title for f in entity.required_fields if entity.fields[f].title not in positions]
    if missing:
        raise SourceDataError(f"table '{entity.worksheet}' missing columns: {missing}")

    columns: list[tuple[str, str, int | None]] = []
    for name, spec in entity.fields.items():
        if not spec.persisted:
            continue
        pos = positions.get(spec.title)
        if pos is None:
            logger.debug("%s: column '%s' absent, values default to empty", entity.worksheet, spec.title)
        columns.append((name, spec.type, pos))

    rows: list[Row] = []
    for offset, raw_row in enumerate(raw[1:]):
        if all(is_blank(c) for c in raw_row):
            continue
        row: Row = {}
        for name, field_type, pos in columns:
            cell: Any = raw_row[pos] if pos is not None and pos < len(raw_row) else None
            row[name] = coerce(cell, field_type)
        row["_row_number"] = FIRST_DATA_ROW + offset
        rows.append(row)
    return rows


def _write_value(value: Any, field_type: str) -> Any:
    if value is None:
        return None
    if field_type == "date":
        return format_date(value)
    return value


def to_table_form(entity: Entity, rows: list[Row]) -> RawTable:
    """Title row plus one list per row; persisted fields only, declaration order."""
    persisted = [(name, spec) for name, spec in entity.fields.items() if spec.persisted]
    table: RawTable = [[spec.title for _, spec in persisted]]
    for row in rows:
        table.append([_write_value(row.get(name), spec.type) for name, spec in persisted])
    return table


class TableAdapter:
    """Reads and writes whole entity tables through a TabularStore."""

    def __init__(self, store: TabularStore) -> None:
        self.store = store

    def read(self, entity: Entity) -> list[Row]:
        raw = self._call("read", entity.worksheet, self.store.read_table, entity.worksheet)
        return rows_from_table(entity, raw)

    def write(self, entity: Entity, rows: list[Row]) -> None:
        self._call("write", entity.worksheet, self.store.write_table, entity.worksheet, to_table_form(entity, rows))

    def clear(self, entity: Entity) -> None:
        self._call("clear", entity.worksheet, self.store.clear_table, entity.worksheet)

    @staticmethod
    def _call(operation: str, worksheet: str, fn, *args):
        try:
            return fn(*args)
        except AdapterError:
            raise
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise AdapterError(str(e), worksheet=worksheet, operation=operation) from e
