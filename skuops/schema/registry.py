from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from functools import lru_cache
from types import MappingProxyType
from typing import Any

from skuops.errors import SchemaError
from skuops.models.entity import Entity, FieldSpec, UniqueKey

"""Schema registry: one immutable ``Entity`` per logical type.

``default_registry()`` builds the process-wide registry from
``skuops.schema.entities`` once; tests may build their own registry from
any entity list.
"""

__all__ = [
    "SchemaRegistry",
    "parse_unique_key",
    "default_registry",
]


def parse_unique_key(spec: Any) -> UniqueKey:
    """Parse a unique-key descriptor into an ordered ``UniqueKey``.

    Accepts None, a single field name, a composite string (``"a+b"`` or
    ``"a,b"``), a sequence of names, or a mapping with a ``fields`` entry.
    """
    if spec is None or spec == "":
        return UniqueKey()
    if isinstance(spec, UniqueKey):
        return spec
    if isinstance(spec, Mapping):
        return parse_unique_key(spec.get("fields"))
    if isinstance(spec, str):
        sep = "+" if "+" in spec else ","
        parts = [p.strip() for p in spec.split(sep)]
        return UniqueKey(tuple(p for p in parts if p))
    if isinstance(spec, Sequence):
        return UniqueKey(tuple(str(p).strip() for p in spec if str(p).strip()))
    raise SchemaError(f"unsupported unique key descriptor: {spec!r}")


class SchemaRegistry:
    def __init__(self, entities: Iterable[Entity]) -> None:
        table: dict[str, Entity] = {}
        for entity in entities:
            if entity.name in table:
                raise SchemaError(f"entity declared twice: {entity.name}")
            table[entity.name] = entity
        self._entities: Mapping[str, Entity] = MappingProxyType(table)

    def get(self, name: str) -> Entity:
        try:
            return self._entities[name]
        except KeyError:
            raise SchemaError(f"unknown entity: {name}") from None

    def __contains__(self, name: object) -> bool:
        return name in self._entities

    def names(self) -> list[str]:
        return list(self._entities)

    def entities(self) -> list[Entity]:
        return list(self._entities.values())

    parse_unique_key = staticmethod(parse_unique_key)

    def field(self, entity_name: str, field_name: str) -> FieldSpec:
        entity = self.get(entity_name)
        try:
            return entity.fields[field_name]
        except KeyError:
            raise SchemaError(f"unknown field {entity_name}.{field_name}") from None

    def title_of(self, entity_name: str, field_name: str) -> str:
        return self.field(entity_name, field_name).title

    def titles(self, entity_name: str, *, persisted_only: bool = True) -> list[str]:
        entity = self.get(entity_name)
        return [spec.title for spec in entity.fields.values() if spec.persisted or not persisted_only]

    def field_by_title(self, entity_name: str, title: str) -> str | None:
        for name, spec in self.get(entity_name).fields.items():
            if spec.title == title:
                return name
        return None

    def required_titles(self, entity_name: str) -> list[str]:
        entity = self.get(entity_name)
        return [entity.fields[f].title for f in entity.required_fields]


@lru_cache(maxsize=1)
def default_registry() -> SchemaRegistry:
    from skuops.schema.entities import ALL_ENTITIES

    return SchemaRegistry(ALL_ENTITIES)
