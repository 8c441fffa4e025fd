from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from types import MappingProxyType
from typing import Any

"""Compute context handed to every computed field as ``ctx``.

Frozen: compute functions read it and never mutate it. ``today`` is the
reference date for date-relative fields such as sales age.
"""

__all__ = [
    "ComputeContext",
]


@dataclass(frozen=True)
class ComputeContext:
    today: date = field(default_factory=date.today)
    brand_rates: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)
    profit_calculator: Any = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "brand_rates", MappingProxyType(dict(self.brand_rates)))
