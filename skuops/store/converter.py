from __future__ import annotations

import math
from datetime import date, datetime
from typing import Any

import pandas as pd

"""Raw-cell coercion at the storage boundary.

Cells coming out of a workbook may be str, int, float (NaN for empty),
bool, ``datetime`` or ``pd.Timestamp``. Every reader goes through the
functions below so that the entity layer only ever sees ``str``, ``int``,
``float`` or ``None``.

Dates are kept as ``YYYY-MM-DD`` strings inside the entity layer. On write
they get a leading apostrophe so that the host does not re-parse them into
serial numbers; the apostrophe is stripped again on read.
"""

__all__ = [
    "is_blank",
    "to_number",
    "to_string",
    "to_date_str",
    "parse_date",
    "parse_datetime",
    "format_date",
    "format_timestamp",
    "canonical",
    "coerce",
    "DATE_FMT",
    "TIMESTAMP_FMT",
]

DATE_FMT = "%Y-%m-%d"
TIMESTAMP_FMT = "%Y-%m-%d %H:%M:%S"


def _is_bool(value: Any) -> bool:
    return pd.api.types.is_bool(value)


def is_blank(value: Any) -> bool:
    """None, NaN/NaT, booleans and whitespace-only strings count as blank."""
    if value is None or _is_bool(value):
        return True
    if isinstance(value, str):
        return value.strip() == ""
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _normalize_number(num: float) -> int | float:
    if num.is_integer():
        return int(num)
    return num


def to_number(value: Any) -> int | float | None:
    if is_blank(value):
        return None
    if isinstance(value, (date, datetime)):
        return None
    try:
        num = float(str(value).strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(num):
        return None
    return _normalize_number(num)


def to_string(value: Any) -> str | None:
    if is_blank(value):
        return None
    if isinstance(value, float) and value.is_integer():
        # codes read from numeric cells come back as floats
        return str(int(value))
    if pd.api.types.is_number(value) and not isinstance(value, (int, float)):
        return to_string(value.item())
    if isinstance(value, (pd.Timestamp, datetime)):
        return value.strftime(TIMESTAMP_FMT) if (value.hour or value.minute or value.second) else value.strftime(DATE_FMT)
    if isinstance(value, date):
        return value.strftime(DATE_FMT)
    return str(value)


def parse_datetime(value: Any) -> datetime | None:
    """Loose parse into a naive ``datetime``; None when unparseable."""
    if is_blank(value):
        return None
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime().replace(tzinfo=None)
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if not isinstance(value, str):
        return None
    text = value.strip().lstrip("'")
    if not text:
        return None
    ts = pd.to_datetime(text, errors="coerce")
    if pd.isna(ts):
        return None
    return ts.to_pydatetime().replace(tzinfo=None)


def parse_date(value: Any) -> date | None:
    dt = parse_datetime(value)
    return dt.date() if dt is not None else None


def to_date_str(value: Any) -> str | None:
    d = parse_date(value)
    return d.strftime(DATE_FMT) if d is not None else None


def format_date(value: Any) -> str | None:
    """Write form of a date: ``'YYYY-MM-DD``."""
    d = to_date_str(value)
    return f"'{d}" if d is not None else None


def format_timestamp(value: datetime) -> str:
    return value.strftime(TIMESTAMP_FMT)


def canonical(value: Any) -> str:
    """String form used for index keys and loose equality."""
    if is_blank(value):
        if _is_bool(value):
            return "true" if value else "false"
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (pd.Timestamp, datetime, date)):
        return to_date_str(value) or ""
    return str(value)


def coerce(value: Any, field_type: str) -> Any:
    """Coerce a raw cell to the declared field type."""
    if field_type == "number":
        return to_number(value)
    if field_type == "date":
        return to_date_str(value)
    if field_type == "string":
        return to_string(value)
    return value
