from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

"""Result records returned by the services.

Plain frozen dataclasses; the CLI renders them through
``skuops.services.summary``.
"""

__all__ = [
    "ImportResult",
    "StageResult",
    "ConsolidationResult",
    "PromotionResult",
]


@dataclass(frozen=True)
class ImportResult:
    entity_name: str
    worksheet: str
    mode: str  # overwrite | append
    total: int
    new: int = 0
    updated: int = 0
    message: str = ""


@dataclass(frozen=True)
class StageResult:
    """Counts of one consolidation stage. Keys depend on the stage."""
    stage: str
    counts: dict[str, int] = field(default_factory=dict)


@dataclass
class ConsolidationResult:
    stages: list[StageResult] = field(default_factory=list)
    errors: list[tuple[str, Exception]] = field(default_factory=list)
    product_count: int = 0

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def partial(self) -> bool:
        return bool(self.errors) and bool(self.stages)


@dataclass(frozen=True)
class PromotionResult:
    level: str
    sheet_name: str
    header: list[str]
    rows: list[list[Any]]
    warnings: int = 0
