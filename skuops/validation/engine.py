from __future__ import annotations

import re
from collections import defaultdict
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from skuops.errors import SchemaError
from skuops.models.entity import Entity, Row
from skuops.store.converter import canonical, parse_date, to_number

"""Validation engine.

Runs the validators declared on each persisted field in declared order and
records at most one failure per field. Validators other than ``required``
do not look at empty values. The ``unique`` check is derived from the
entity's unique key and compares composite keys (string forms joined by
``¦``) against the other rows of ``all_data``.
"""

__all__ = [
    "FieldError",
    "EntityValidation",
    "ValidationReport",
    "register",
    "validate_entity",
    "validate_all",
    "format_errors",
    "composite_value",
    "COMPOSITE_SEPARATOR",
]

COMPOSITE_SEPARATOR = "¦"

# (value, params) -> failure message or None
ValidatorFn = Callable[[Any, Mapping[str, Any]], "str | None"]


@dataclass(frozen=True)
class FieldError:
    field: str
    title: str
    kind: str
    message: str

    def __str__(self) -> str:
        return f"{self.title} {self.message}"


@dataclass
class EntityValidation:
    valid: bool
    errors: list[FieldError] = field(default_factory=list)
    row_number: int | None = None

    @property
    def has_uniqueness_error(self) -> bool:
        return any(e.kind == "unique" for e in self.errors)


@dataclass
class ValidationReport:
    valid: bool
    items: list[EntityValidation] = field(default_factory=list)
    checked: int = 0

    @property
    def has_uniqueness_errors(self) -> bool:
        return any(item.has_uniqueness_error for item in self.items)

    @property
    def summary(self) -> str:
        failed = len(self.items)
        return f"{self.checked - failed}/{self.checked} rows valid"


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def _required(value: Any, params: Mapping[str, Any]) -> str | None:
    if _is_empty(value) or isinstance(value, bool):
        return "is required"
    return None


def _numeric(value: Any) -> int | float | None:
    if isinstance(value, bool):
        return None
    return to_number(value)


def _number(value: Any, params: Mapping[str, Any]) -> str | None:
    return "must be a number" if _numeric(value) is None else None


def _positive(value: Any, params: Mapping[str, Any]) -> str | None:
    num = _numeric(value)
    if num is None:
        return "must be a number"
    return "must be greater than 0" if num <= 0 else None


def _non_negative(value: Any, params: Mapping[str, Any]) -> str | None:
    num = _numeric(value)
    if num is None:
        return "must be a number"
    return "must not be negative" if num < 0 else None


def _range(value: Any, params: Mapping[str, Any]) -> str | None:
    num = _numeric(value)
    if num is None:
        return "must be a number"
    lo, hi = params.get("min"), params.get("max")
    if (lo is not None and num < lo) or (hi is not None and num > hi):
        return f"must be between {lo} and {hi}"
    return None


def _enum(value: Any, params: Mapping[str, Any]) -> str | None:
    allowed = [canonical(v) for v in params.get("values", ())]
    if canonical(value) not in allowed:
        return f"'{value}' is not one of: {', '.join(allowed)}"
    return None


def _pattern(value: Any, params: Mapping[str, Any]) -> str | None:
    regex = params["regex"]
    if re.search(regex, canonical(value)) is None:
        return f"'{value}' must match: {params.get('description') or regex}"
    return None


def _date(value: Any, params: Mapping[str, Any]) -> str | None:
    return f"'{value}' is not a valid date" if parse_date(value) is None else None


_VALIDATORS: dict[str, ValidatorFn] = {
    "required": _required,
    "number": _number,
    "positive": _positive,
    "non_negative": _non_negative,
    "range": _range,
    "enum": _enum,
    "pattern": _pattern,
    "date": _date,
}


def register(kind: str, fn: ValidatorFn) -> None:
    """Register (or replace) a validator kind."""
    _VALIDATORS[kind] = fn


def composite_value(row: Row, fields: Iterable[str]) -> str:
    return COMPOSITE_SEPARATOR.join(canonical(row.get(f)) for f in fields)


def _key_of(row: Row, entity: Entity) -> str | None:
    if not entity.unique_key:
        return None
    key = composite_value(row, entity.unique_key.fields)
    if not key.replace(COMPOSITE_SEPARATOR, "").strip():
        return None
    return key


def _unique_error(entity: Entity, key: str) -> FieldError:
    fields = entity.unique_key.fields
    titles = "+".join(entity.fields[f].title for f in fields)
    shown = key.replace(COMPOSITE_SEPARATOR, ", ")
    return FieldError("+".join(fields), titles, "unique", f"value ({shown}) is duplicated")


def _field_errors(row: Row, entity: Entity) -> list[FieldError]:
    errors: list[FieldError] = []
    for name, spec in entity.fields.items():
        if not spec.persisted:
            continue
        value = row.get(name)
        for validator in spec.validators:
            if validator.kind != "required" and _is_empty(value):
                continue
            fn = _VALIDATORS.get(validator.kind)
            if fn is None:
                raise SchemaError(f"unknown validator '{validator.kind}' on {entity.name}.{name}")
            message = fn(value, validator.params)
            if message:
                errors.append(FieldError(name, spec.title, validator.kind, message))
                break
    return errors


def validate_entity(row: Row, entity: Entity, all_data: Iterable[Row] | None = None) -> EntityValidation:
    """Validate one row; ``all_data`` enables the unique check (``row`` itself is skipped by identity)."""
    errors = _field_errors(row, entity)
    if all_data is not None:
        key = _key_of(row, entity)
        if key is not None:
            for other in all_data:
                if other is not row and _key_of(other, entity) == key:
                    errors.append(_unique_error(entity, key))
                    break
    return EntityValidation(not errors, errors, row.get("_row_number"))


def validate_all(rows: list[Row], entity: Entity) -> ValidationReport:
    """Validate every row of a prospective table, uniqueness included."""
    key_counts: dict[str, int] = defaultdict(int)
    keys: list[str | None] = []
    for row in rows:
        key = _key_of(row, entity)
        keys.append(key)
        if key is not None:
            key_counts[key] += 1

    items: list[EntityValidation] = []
    for row, key in zip(rows, keys, strict=True):
        errors = _field_errors(row, entity)
        if key is not None and key_counts[key] > 1:
            errors.append(_unique_error(entity, key))
        if errors:
            items.append(EntityValidation(False, errors, row.get("_row_number")))
    return ValidationReport(not items, items, len(rows))


def format_errors(report: ValidationReport | EntityValidation | Iterable[EntityValidation], table_name: str) -> str:
    """One display string, grouped by row number."""
    if isinstance(report, ValidationReport):
        items = report.items
    elif isinstance(report, EntityValidation):
        items = [report]
    else:
        items = list(report)
    lines = [f"table '{table_name}' has invalid rows:"]
    for item in items:
        if item.valid:
            continue
        label = f"Row {item.row_number}" if item.row_number is not None else "Row (new)"
        lines.append(f"  {label}: " + "; ".join(str(e) for e in item.errors))
    return "\n".join(lines)
