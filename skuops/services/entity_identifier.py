from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping

from skuops.errors import SchemaError
from skuops.models.entity import Entity
from skuops.schema.registry import SchemaRegistry

"""Header-based identification of the entity held in a staging table."""

__all__ = [
    "IMPORT_MODES",
    "EntityIdentifier",
]

logger = logging.getLogger(__name__)

IMPORT_MODES = ("overwrite", "append")


class EntityIdentifier:
    def __init__(self, registry: SchemaRegistry, importable: Mapping[str, str]) -> None:
        for name, mode in importable.items():
            registry.get(name)
            if mode not in IMPORT_MODES:
                raise SchemaError(f"{name}: unknown import mode '{mode}'")
        self._registry = registry
        self._importable = dict(importable)

    def importable_entities(self) -> list[Entity]:
        return [self._registry.get(name) for name in self._importable]

    def can_import(self, name: str) -> bool:
        return name in self._importable

    def get_import_mode(self, name: str) -> str:
        """``overwrite`` or ``append``; append requires a declared unique key."""
        if not self.can_import(name):
            raise SchemaError(f"entity '{name}' is not importable")
        mode = self._importable[name]
        if mode == "append" and not self._registry.get(name).unique_key:
            raise SchemaError(f"entity '{name}' has no unique key, it cannot be imported in append mode")
        return mode

    def identify(self, headers: Iterable[str]) -> Entity | None:
        """Entity whose required titles all appear in ``headers``.

        With several candidates the one with the largest required set wins.
        Ties keep declaration order.
        """
        present = {h.strip() for h in headers if h}
        best: Entity | None = None
        best_size = -1
        for entity in self.importable_entities():
            required = self._registry.required_titles(entity.name)
            if not required or not set(required) <= present:
                continue
            if len(required) > best_size:
                best, best_size = entity, len(required)
        if best is not None:
            logger.debug("identified staging table as %s", best.name)
        return best

    def describe_required_titles(self) -> str:
        lines = [
            f"  {entity.worksheet}: {', '.join(self._registry.required_titles(entity.name))}"
            for entity in self.importable_entities()
        ]
        return "\n".join(lines)
