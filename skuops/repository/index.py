from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from skuops.models.entity import Entity, IndexConfig, Row
from skuops.validation.engine import COMPOSITE_SEPARATOR, composite_value

"""Single- and composite-field hash indexes per entity.

An index is keyed by its sorted field names joined with ``|``. Each bucket
key is the composite value of a row over those sorted fields. Rows whose
composite value is empty (all parts blank) are not indexed.

Unique indexes map a composite value to a single row; a later row with the
same value gets ``_index_error`` set and the first row stays in place.
"""

__all__ = [
    "IndexEngine",
    "index_key",
]


def index_key(fields: Iterable[str]) -> str:
    return "|".join(sorted(fields))


def _usable(value: str) -> bool:
    return bool(value.replace(COMPOSITE_SEPARATOR, "").strip())


@dataclass
class _Index:
    fields: tuple[str, ...]
    unique: bool
    buckets: dict[str, Any] = field(default_factory=dict)

    def add(self, row: Row) -> None:
        value = composite_value(row, self.fields)
        if not _usable(value):
            return
        if self.unique:
            if value in self.buckets:
                row["_index_error"] = (
                    f"duplicate value ({value.replace(COMPOSITE_SEPARATOR, ', ')}) on unique index {index_key(self.fields)}"
                )
                return
            self.buckets[value] = row
        else:
            self.buckets.setdefault(value, []).append(row)

    def get(self, value: str) -> list[Row]:
        hit = self.buckets.get(value)
        if hit is None:
            return []
        return [hit] if self.unique else list(hit)


class IndexEngine:
    def __init__(self) -> None:
        self._indexes: dict[str, dict[str, _Index]] = {}

    def rebuild(self, entity: Entity, rows: list[Row], configs: Iterable[IndexConfig] = ()) -> None:
        """Rebuild every index of ``entity`` from scratch over ``rows``."""
        indexes: dict[str, _Index] = {}
        for config in configs:
            indexes[config.key] = _Index(config.sorted_fields, config.unique)
        if entity.unique_key:
            unique = IndexConfig(entity.unique_key.fields, unique=True)
            indexes[unique.key] = _Index(unique.sorted_fields, True)

        for row in rows:
            row.pop("_index_error", None)
        for index in indexes.values():
            for row in rows:
                index.add(row)
        self._indexes[entity.name] = indexes

    def has_index(self, entity_name: str, fields: Iterable[str]) -> bool:
        return index_key(fields) in self._indexes.get(entity_name, {})

    def index_fields(self, entity_name: str) -> list[tuple[str, ...]]:
        return [idx.fields for idx in self._indexes.get(entity_name, {}).values()]

    def is_unique(self, entity_name: str, fields: Iterable[str]) -> bool:
        idx = self._indexes.get(entity_name, {}).get(index_key(fields))
        return bool(idx and idx.unique)

    def lookup(self, entity_name: str, condition: Mapping[str, Any]) -> list[Row] | None:
        """Rows whose indexed fields equal ``condition`` (string-coerced).

        Returns None when no index covers exactly the condition's fields, or
        when the composite value is blank (blank rows are not indexed, so the
        caller has to scan).
        """
        idx = self._indexes.get(entity_name, {}).get(index_key(condition))
        if idx is None:
            return None
        value = composite_value(condition, idx.fields)
        if not _usable(value):
            return None
        return idx.get(value)

    def bucket_sizes(self, entity_name: str, fields: Iterable[str]) -> dict[str, int]:
        idx = self._indexes.get(entity_name, {}).get(index_key(fields))
        if idx is None:
            return {}
        if idx.unique:
            return {value: 1 for value in idx.buckets}
        return {value: len(rows) for value, rows in idx.buckets.items()}

    def drop(self, entity_name: str) -> None:
        self._indexes.pop(entity_name, None)

    def clear(self) -> None:
        self._indexes.clear()
