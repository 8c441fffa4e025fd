from __future__ import annotations

import re
from collections.abc import Callable, Mapping, Sequence
from datetime import date
from functools import cmp_to_key
from typing import Any

from skuops.errors import SchemaError
from skuops.models.entity import Row
from skuops.store.converter import parse_date, to_number

"""Structured query evaluation: filter -> sort -> paginate.

Filters compare typed values: a numeric cell is compared numerically, two
``YYYY-MM-DD``-looking values are compared as dates, anything else as
strings. A None cell never satisfies an ordering operator.
"""

__all__ = [
    "OPERATORS",
    "matches",
    "apply_filter",
    "apply_sort",
    "paginate",
    "run_query",
]

_DATE_LIKE = re.compile(r"^'?\d{4}[-/]\d{1,2}[-/]\d{1,2}")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _date_like(value: Any) -> bool:
    return isinstance(value, date) or (isinstance(value, str) and bool(_DATE_LIKE.match(value)))


def _pair(value: Any, operand: Any) -> tuple[Any, Any] | None:
    """Bring value and operand to one comparable type; None if impossible."""
    if value is None or operand is None:
        return None
    if _is_number(value):
        other = to_number(operand)
        return (value, other) if other is not None else None
    if _date_like(value) and _date_like(operand):
        a, b = parse_date(value), parse_date(operand)
        return (a, b) if a is not None and b is not None else None
    return str(value), str(operand)


def _ordered(op: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def check(value: Any, operand: Any) -> bool:
        pair = _pair(value, operand)
        return pair is not None and op(*pair)
    return check


def _equal(value: Any, operand: Any) -> bool:
    if value is None or operand is None:
        return value is None and operand is None
    pair = _pair(value, operand)
    return pair is not None and pair[0] == pair[1]


def _in(value: Any, operand: Sequence[Any]) -> bool:
    return any(_equal(value, o) for o in operand)


def _between(value: Any, operand: Sequence[Any]) -> bool:
    lo, hi = operand
    return _ordered(lambda a, b: a >= b)(value, lo) and _ordered(lambda a, b: a <= b)(value, hi)


def _like(value: Any, operand: str) -> bool:
    if value is None:
        return False
    pattern = ".*".join(re.escape(part) for part in str(operand).split("%"))
    return re.fullmatch(pattern, str(value), flags=re.IGNORECASE | re.DOTALL) is not None


OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "$in": _in,
    "$between": _between,
    "$gt": _ordered(lambda a, b: a > b),
    "$gte": _ordered(lambda a, b: a >= b),
    "$lt": _ordered(lambda a, b: a < b),
    "$lte": _ordered(lambda a, b: a <= b),
    "$ne": lambda value, operand: not _equal(value, operand),
    "$like": _like,
}


def _field_matches(value: Any, cond: Any) -> bool:
    if callable(cond):
        return bool(cond(value))
    if isinstance(cond, Mapping):
        for op, operand in cond.items():
            fn = OPERATORS.get(op)
            if fn is None:
                raise SchemaError(f"unknown query operator: {op}")
            if not fn(value, operand):
                return False
        return True
    if isinstance(cond, (list, tuple, set, frozenset)):
        return _in(value, list(cond))
    return _equal(value, cond)


def matches(row: Row, flt: Callable[[Row], bool] | Mapping[str, Any] | None) -> bool:
    if flt is None:
        return True
    if callable(flt):
        return bool(flt(row))
    return all(_field_matches(row.get(f), cond) for f, cond in flt.items())


def apply_filter(rows: list[Row], flt: Callable[[Row], bool] | Mapping[str, Any] | None) -> list[Row]:
    if flt is None:
        return list(rows)
    return [r for r in rows if matches(r, flt)]


def _sort_specs(sort: Any) -> list[tuple[str, bool]]:
    if sort is None:
        return []
    if isinstance(sort, str):
        return [(sort, False)]
    if isinstance(sort, Mapping):
        order = str(sort.get("order", "asc")).lower()
        return [(sort["field"], order == "desc")]
    specs: list[tuple[str, bool]] = []
    for item in sort:
        specs.extend(_sort_specs(item))
    return specs


def _compare(a: Any, b: Any) -> int:
    pair = _pair(a, b)
    if pair is None:
        pair = (str(a), str(b))
    x, y = pair
    return (x > y) - (x < y)


def apply_sort(rows: list[Row], sort: Any) -> list[Row]:
    """Sort by ``"field"``, ``{"field", "order"}`` or a list of those. None sorts last."""
    specs = _sort_specs(sort)
    if not specs:
        return list(rows)

    def cmp(r1: Row, r2: Row) -> int:
        for name, desc in specs:
            a, b = r1.get(name), r2.get(name)
            if a is None and b is None:
                continue
            if a is None:
                return 1
            if b is None:
                return -1
            c = _compare(a, b)
            if c:
                return -c if desc else c
        return 0

    return sorted(rows, key=cmp_to_key(cmp))


def paginate(rows: list[Row], limit: int | None = None, offset: int = 0) -> list[Row]:
    start = max(offset or 0, 0)
    if limit is None:
        return rows[start:]
    return rows[start:start + max(limit, 0)]


def run_query(rows: list[Row], flt: Any = None, sort: Any = None, limit: int | None = None, offset: int = 0) -> list[Row]:
    return paginate(apply_sort(apply_filter(rows, flt), sort), limit, offset)
