from __future__ import annotations

import math
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from skuops.errors import SourceDataError

"""Profit calculator: per-item profit, profit rate and activity prices.

Profit of one unit sold at ``sales_price``:

1. vip_discount      = round(s * vip_discount_rate)  if s > 50
                       round(s * vip_discount_rate, 1) otherwise
2. price_after_coupon = max(0, s - ops1 - ops2)
3. gross_profit      = price_after_coupon - cost
4. fixed_costs       = packaging_fee + shipping_cost
5. return_costs      = (1 / (1 - rr) - 1) * fixed_costs
   return_processing = rr * return_processing_fee
6. vip_cost          = vip_discount * vip_discount_bearing_ratio
7. platform_fee      = price_after_coupon * platform_commission
8. brand_fee         = max(0, price_after_coupon * (1 - platform_commission) - vip_cost) * brand_commission
9. profit            = gross - fixed - return_costs - return_processing - vip_cost - platform_fee - brand_fee

The return rate ``rr`` defaults to 0.3 and is clamped back to 0.3 when it
is below 0.3 or not below 1.
"""

__all__ = [
    "DEFAULT_RETURN_RATE",
    "ACTIVITY_LEVELS",
    "ProfitCheck",
    "ProfitCalculator",
    "round_half_up",
]

DEFAULT_RETURN_RATE = 0.3
NEW_ITEM_MAX_AGE_DAYS = 15

ACTIVITY_LEVELS = ("silver-limited", "silver", "top3", "gold", "direct-train")


def round_half_up(value: float, ndigits: int = 0) -> float | int:
    """Round half away from zero (spreadsheet rounding, not banker's)."""
    quantum = Decimal(1).scaleb(-ndigits)
    rounded = Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    return int(rounded) if ndigits == 0 else float(rounded)


def _num(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class ProfitCheck:
    valid: bool
    profit: float | None
    profit_rate: float | None
    warnings: list[str] = field(default_factory=list)


class ProfitCalculator:
    """Profit arithmetic over a brand-rate table.

    ``brand_rates`` maps brand SN to a BrandConfig row, or is a callable
    returning that mapping (so the table may be reloaded between calls).
    """

    def __init__(self, brand_rates: Mapping[str, Mapping[str, Any]] | Callable[[], Mapping[str, Mapping[str, Any]]]) -> None:
        self._brand_rates = brand_rates

    def _rates(self) -> Mapping[str, Mapping[str, Any]]:
        if callable(self._brand_rates):
            return self._brand_rates()
        return self._brand_rates

    def brand_config(self, brand_sn: str) -> Mapping[str, Any]:
        brand = self._rates().get(brand_sn)
        if not brand:
            raise SourceDataError(f"no brand config for brand SN '{brand_sn}', check the 'Brand Config' table")
        return brand

    def calculate_profit(
        self,
        brand_sn: str | None,
        cost_price: Any,
        sales_price: Any,
        user_operations_1: Any = 0,
        user_operations_2: Any = 0,
        return_rate: Any = DEFAULT_RETURN_RATE,
    ) -> float | None:
        """Profit rounded to 2 decimals; None when an input is missing or invalid.

        Raises:
            SourceDataError: the brand has no BrandConfig row.
        """
        if not brand_sn:
            return None
        cost = _num(cost_price)
        sales = _num(sales_price)
        ops1 = _num(user_operations_1 or 0)
        ops2 = _num(user_operations_2 or 0)
        rr = _num(return_rate or DEFAULT_RETURN_RATE)
        if None in (cost, sales, ops1, ops2, rr):
            return None
        if any(math.isnan(v) for v in (cost, sales, ops1, ops2, rr)):
            return None
        if cost <= 0 or sales <= 0 or ops1 < 0 or ops2 < 0 or rr <= 0:
            return None
        if rr < DEFAULT_RETURN_RATE or rr >= 1:
            rr = DEFAULT_RETURN_RATE

        brand = self.brand_config(brand_sn)
        rate = brand.get("vip_discount_rate") or 0
        vip_discount = 0.0
        if rate > 0:
            vip_discount = round_half_up(sales * rate) if sales > 50 else round_half_up(sales * rate, 1)

        price_after_coupon = max(0.0, sales - ops1 - ops2)
        gross_profit = price_after_coupon - cost
        fixed_costs = (brand.get("packaging_fee") or 0) + (brand.get("shipping_cost") or 0)
        return_multiplier = 1 / (1 - rr) - 1
        return_costs = return_multiplier * fixed_costs
        return_processing = rr * (brand.get("return_processing_fee") or 0)
        vip_cost = vip_discount * (brand.get("vip_discount_bearing_ratio") or 0)
        platform_commission = brand.get("platform_commission") or 0
        platform_fee = price_after_coupon * platform_commission
        brand_base = price_after_coupon * (1 - platform_commission) - vip_cost
        brand_fee = max(0.0, brand_base) * (brand.get("brand_commission") or 0)

        profit = (
            gross_profit
            - fixed_costs
            - return_costs
            - return_processing
            - vip_cost
            - platform_fee
            - brand_fee
        )
        return round_half_up(profit, 2)

    def calculate_profit_rate(self, brand_sn, cost_price, sales_price, user_operations_1=0, user_operations_2=0, return_rate=DEFAULT_RETURN_RATE) -> float | None:
        profit = self.calculate_profit(brand_sn, cost_price, sales_price, user_operations_1, user_operations_2, return_rate)
        if profit is None:
            return None
        return round_half_up(profit / float(cost_price), 5)

    @staticmethod
    def calculate_activity_price(silver_price: Any, level: str) -> float | int | None:
        silver = _num(silver_price)
        if silver is None or not math.isfinite(silver) or silver <= 0:
            return None
        if level == "silver-limited":
            return math.floor(silver * 0.95)
        if level == "silver":
            return silver
        if level == "top3":
            return round_half_up(silver / 0.9 + 0.06, 1)
        if level == "gold":
            return round_half_up(silver / 0.9 / 0.95 + 0.06 * 2, 1)
        if level == "direct-train":
            return round_half_up(silver / 0.9 / 0.95 / 0.95 + 0.06 * 3, 1)
        return None

    def validate_profit(
        self,
        brand_sn: str | None,
        cost_price: Any,
        sales_price: Any,
        marketing_positioning: str | None,
        sales_age: int | None,
        user_operations_1: Any = 0,
        user_operations_2: Any = 0,
        return_rate: Any = DEFAULT_RETURN_RATE,
    ) -> ProfitCheck:
        """Check profit against the thresholds of the item's positioning.

        New items (sales age unknown or at most 15 days) need profit >= 5
        and rate >= 50%. Otherwise traffic-style needs rate >= 5%,
        profit-style needs profit >= 5 and rate >= 35%, clearance-style has
        no threshold.
        """
        profit = self.calculate_profit(brand_sn, cost_price, sales_price, user_operations_1, user_operations_2, return_rate)
        rate = self.calculate_profit_rate(brand_sn, cost_price, sales_price, user_operations_1, user_operations_2, return_rate)
        if profit is None or rate is None:
            return ProfitCheck(False, profit, rate, ["profit cannot be calculated"])

        warnings: list[str] = []
        if not sales_age or sales_age <= NEW_ITEM_MAX_AGE_DAYS:
            if profit < 5:
                warnings.append("new item profit should be >= 5")
            if rate < 0.5:
                warnings.append("new item profit rate should be >= 50%")
        elif marketing_positioning == "traffic-style":
            if rate < 0.05:
                warnings.append("traffic-style profit rate should be >= 5%")
        elif marketing_positioning == "profit-style":
            if profit < 5:
                warnings.append("profit-style profit should be >= 5")
            if rate < 0.35:
                warnings.append("profit-style profit rate should be >= 35%")
        return ProfitCheck(not warnings, profit, rate, warnings)
