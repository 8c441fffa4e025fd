from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from skuops.store.converter import canonical

"""Entity declaration dataclasses.

An ``Entity`` is a named row set backed by one worksheet. Its ``fields``
mapping is ordered: persisted fields are written to the worksheet in
declaration order, computed fields are evaluated in declaration order
(so a computed field may read an earlier computed field).
"""

__all__ = [
    "Row",
    "FIELD_TYPES",
    "ValidatorSpec",
    "FieldSpec",
    "UniqueKey",
    "IndexConfig",
    "Entity",
]

Row = dict[str, Any]

FIELD_TYPES = ("string", "number", "date", "computed")


@dataclass(frozen=True)
class ValidatorSpec:
    kind: str
    params: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class FieldSpec:
    """Declaration of one field.

    ``default`` is a literal or a ``callable(row)``; it is applied on insert
    when the field is missing or None. ``compute`` receives ``(row, ctx)``.
    """
    title: str
    type: str = "string"
    validators: tuple[ValidatorSpec, ...] = ()
    compute: Callable[[Row, Any], Any] | None = None
    default: Any = None

    def __post_init__(self) -> None:
        if self.type not in FIELD_TYPES:
            raise ValueError(f"unknown field type {self.type!r} for {self.title!r}")
        if self.type == "computed" and self.compute is None:
            raise ValueError(f"computed field {self.title!r} needs a compute function")

    @property
    def persisted(self) -> bool:
        return self.type != "computed"

    def default_for(self, row: Row) -> Any:
        if callable(self.default):
            return self.default(row)
        return self.default


@dataclass(frozen=True)
class UniqueKey:
    """Ordered unique-key field names. Empty means the entity has no key."""
    fields: tuple[str, ...] = ()

    def __bool__(self) -> bool:
        return bool(self.fields)

    def __len__(self) -> int:
        return len(self.fields)

    def __iter__(self):
        return iter(self.fields)


@dataclass(frozen=True)
class IndexConfig:
    fields: tuple[str, ...]
    unique: bool = False

    @property
    def key(self) -> str:
        return "|".join(sorted(self.fields))

    @property
    def sorted_fields(self) -> tuple[str, ...]:
        return tuple(sorted(self.fields))


@dataclass(frozen=True)
class Entity:
    """Declared schema of one logical row set.

    ``sort_key`` orders rows before persistence; ties are broken by the
    unique key so that the resulting order is total.
    """
    name: str
    worksheet: str
    fields: Mapping[str, FieldSpec]
    required_fields: tuple[str, ...] = ()
    unique_key: UniqueKey = UniqueKey()
    sort_key: Callable[[Row], Any] | None = None
    import_date_field: str | None = None
    update_date_field: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))
        unknown = [f for f in (*self.required_fields, *self.unique_key.fields) if f not in self.fields]
        if unknown:
            raise ValueError(f"entity {self.name}: unknown fields {unknown}")

    def persisted_fields(self) -> list[str]:
        return [name for name, spec in self.fields.items() if spec.persisted]

    def computed_fields(self) -> list[str]:
        return [name for name, spec in self.fields.items() if not spec.persisted]

    def unique_value(self, row: Row) -> tuple[Any, ...]:
        return tuple(row.get(f) for f in self.unique_key.fields)

    def sort_rows(self, rows: Iterable[Row]) -> list[Row]:
        def tiebreak(row: Row) -> tuple[str, ...]:
            return tuple(canonical(row.get(f)) for f in self.unique_key.fields)

        if self.sort_key is None:
            return list(rows)
        key = self.sort_key
        return sorted(rows, key=lambda r: (key(r), tiebreak(r), r.get("_row_number") or 0))
