from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from skuops.errors import FreshnessError
from skuops.services.statistics import SALES_WINDOW_DAYS, format_window, last_n_days_window
from skuops.store.converter import parse_datetime

"""Source freshness checks against the SystemRecord timestamps.

Consolidation requires each source table to have been imported within
``default_hours``. Promotion submission is stricter: regular products
consolidated within ``promotion_regular_product_hours``, inventory
consolidated today, and the last-7-days window equal to the current one.
"""

__all__ = [
    "FreshnessChecker",
]

logger = logging.getLogger(__name__)


class FreshnessChecker:
    def __init__(
        self,
        repository: Any,
        *,
        clock: Callable[[], datetime] = datetime.now,
        default_hours: float = 12,
        promotion_regular_product_hours: float = 5,
    ) -> None:
        self._repository = repository
        self._clock = clock
        self.default_hours = default_hours
        self.promotion_regular_product_hours = promotion_regular_product_hours

    def _timestamp(self, record: dict[str, Any], field: str, what: str) -> datetime:
        raw = record.get(field)
        if not raw:
            raise FreshnessError(f"no record of {what}, run it first")
        ts = parse_datetime(raw)
        if ts is None:
            raise FreshnessError(f"timestamp of {what} is malformed: {raw!r}")
        return ts

    def check_import(self, entity_name: str, hours: float | None = None) -> datetime:
        """Raise FreshnessError unless ``entity_name`` was imported within ``hours``."""
        entity = self._repository.registry.get(entity_name)
        limit = self.default_hours if hours is None else hours
        record = self._repository.get_system_record()
        what = f"importing '{entity.worksheet}'"
        ts = self._timestamp(record, entity.import_date_field, what)
        age = self._clock() - ts
        if age > timedelta(hours=limit):
            raise FreshnessError(
                f"'{entity.worksheet}' was imported {age.total_seconds() / 3600:.1f}h ago "
                f"(limit {limit:g}h), import it again"
            )
        logger.debug("fresh: %s imported at %s", entity.worksheet, ts)
        return ts

    def check_promotion(self) -> None:
        now = self._clock()
        record = self._repository.get_system_record()

        regular = self._timestamp(record, "update_date_of_regular_product", "updating from regular products")
        limit = self.promotion_regular_product_hours
        if now - regular > timedelta(hours=limit):
            raise FreshnessError(f"regular products were consolidated more than {limit:g}h ago, import and update them again")

        window = format_window(last_n_days_window(now.date(), SALES_WINDOW_DAYS))
        if record.get("update_date_of_last_7_days") != window:
            raise FreshnessError(f"last 7 days sales are not current (expected {window}), update product sales")

        inventory = self._timestamp(record, "update_date_of_inventory", "updating inventory")
        if inventory.date() != now.date():
            raise FreshnessError("inventory was not consolidated today, import and update it again")
