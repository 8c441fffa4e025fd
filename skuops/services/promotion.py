from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

from skuops.config.loader import AppConfig
from skuops.errors import SourceDataError, ValidationError
from skuops.models.entity import Row
from skuops.models.results import PromotionResult
from skuops.repository.repository import Repository
from skuops.services.freshness import FreshnessChecker
from skuops.services.profit import ACTIVITY_LEVELS, ProfitCalculator, round_half_up
from skuops.store.converter import canonical, to_number
from skuops.store.sheet_writer import SheetWriter

"""Promotion (activity) submission.

Produces the sheet submitted to the platform for one activity level:

1. check freshness (regular products, last 7 days window, inventory)
2. refresh Product prices from ProductPrice and save
3. select products (default: online and partially online)
4. reject missing price data and broken prices (silver below lowest)
5. compute activity price, profit and profit rate; collect warnings
6. ``silver-limited`` keeps one product per P_SPU
7. write the sheet through the SheetWriter
"""

__all__ = [
    "DEFAULT_STATUSES",
    "SHEET_NAME",
    "OUTPUT_FIELDS",
    "LIMITED_FIELDS",
    "LIMITED_VALUES",
    "PromotionSubmissionService",
]

logger = logging.getLogger(__name__)

DEFAULT_STATUSES = ("online", "partially online")
SHEET_NAME = "Promotion Submission"

OUTPUT_FIELDS = (
    "item_number",
    "style_number",
    "color",
    "p_spu",
    "mid",
    "activity_level",
    "activity_price",
    "activity_profit",
    "activity_profit_rate",
    "sales_age",
    "marketing_positioning",
    "is_out_of_stock",
    "finished_goods_total",
    "general_goods_total",
    "sellable_inventory",
    "sellable_days",
    "click_through_rate_of_last_7_days",
    "add_to_cart_rate_of_last_7_days",
    "purchase_rate_of_last_7_days",
    "warn_message",
)
LIMITED_FIELDS = ("is_limited", "limited_count", "limited_count_for_user", "can_promote")
# fixed values of the silver-limited columns: total quota, quota per user
LIMITED_VALUES = {"is_limited": "yes", "limited_count": 500, "limited_count_for_user": 10, "can_promote": "yes"}

# titles of fields that exist only on the submission sheet
_SHEET_TITLES = {
    "activity_level": "Activity Level",
    "activity_price": "Activity Price",
    "activity_profit": "Activity Profit",
    "activity_profit_rate": "Activity Profit Rate",
    "warn_message": "Warnings",
    "is_limited": "Is Limited",
    "limited_count": "Limited Count",
    "limited_count_for_user": "Limited Count Per User",
    "can_promote": "Can Promote",
}

_REFRESHED_FIELDS = ("design_number", "picture", "cost_price", "lowest_price", "silver_price")


def _format_problems(title: str, problems: list[tuple[str, str]]) -> str:
    lines = [f"{title}:"] + [f"  {item}: {reason}" for item, reason in problems]
    return "\n".join(lines)


def _cell(field: str, value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if "rate" in field:
            return value
        return round_half_up(value, 2)
    return str(value)


class PromotionSubmissionService:
    def __init__(
        self,
        repository: Repository,
        calculator: ProfitCalculator,
        writer: SheetWriter,
        config: AppConfig,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._repository = repository
        self._calculator = calculator
        self._writer = writer
        self.freshness = FreshnessChecker(
            repository,
            clock=clock,
            default_hours=config.freshness.default_hours,
            promotion_regular_product_hours=config.freshness.promotion_regular_product_hours,
        )

    def submit(self, level: str, condition: Mapping[str, Any] | None = None, *, sheet_name: str = SHEET_NAME) -> PromotionResult:
        if level not in ACTIVITY_LEVELS:
            raise ValidationError(f"unknown activity level '{level}', expected one of {', '.join(ACTIVITY_LEVELS)}")
        self.freshness.check_promotion()
        self.refresh_prices()

        products = self._repository.find("Product", condition or {"item_status": list(DEFAULT_STATUSES)})
        products = [p for p in products if p.get("item_number")]
        if not products:
            raise SourceDataError("no products match the submission filter")

        self._validate_price_data(products)
        self._validate_price_broken(products)
        styles = self._styles_with_different_prices(products)

        rows = [self._activity_row(p, level, styles) for p in products]
        if level == "silver-limited":
            by_spu: dict[Any, Row] = {}
            for row in rows:
                by_spu.setdefault(row.get("p_spu"), row)
            rows = list(by_spu.values())

        fields = OUTPUT_FIELDS + (LIMITED_FIELDS if level == "silver-limited" else ())
        header = [self._title(f) for f in fields]
        table = [[_cell(f, row.get(f)) for f in fields] for row in rows]
        self._writer.write_sheet(sheet_name, header, table)

        warned = sum(1 for row in rows if row["warn_message"])
        logger.info("promotion %s: %d products, %d with warnings", level, len(rows), warned)
        return PromotionResult(level, sheet_name, header, table, warned)

    def refresh_prices(self) -> int:
        """Copy ProductPrice values onto Product and save; returns the number of products refreshed."""
        prices = {r["item_number"]: r for r in self._repository.find_all("ProductPrice") if r.get("item_number")}
        products = self._repository.find_all("Product")
        refreshed = 0
        for product in products:
            price = prices.get(product.get("item_number"))
            if price is None:
                continue
            for name in _REFRESHED_FIELDS:
                product[name] = price.get(name)
            product["user_operations_1"] = price.get("user_operations_1") or 0
            product["user_operations_2"] = price.get("user_operations_2") or 0
            refreshed += 1
        self._repository.save("Product", products)
        return refreshed

    def _title(self, field: str) -> str:
        if field in _SHEET_TITLES:
            return _SHEET_TITLES[field]
        product = self._repository.registry.get("Product")
        spec = product.fields.get(field)
        return spec.title if spec is not None else field

    def _validate_price_data(self, products: list[Row]) -> None:
        problems: list[tuple[str, str]] = []
        for product in products:
            price = self._repository.find_one("ProductPrice", {"item_number": product["item_number"]})
            if price is None:
                problems.append((product["item_number"], "not found in the price table"))
            elif not (price.get("cost_price") and price.get("lowest_price") and price.get("silver_price")):
                problems.append((product["item_number"], "cost / lowest / silver price incomplete"))
        if problems:
            raise ValidationError(_format_problems("price data incomplete", problems))

    @staticmethod
    def _validate_price_broken(products: list[Row]) -> None:
        problems = [
            (p["item_number"], "silver price below lowest price")
            for p in products
            if (to_number(p.get("silver_price")) or 0) < (to_number(p.get("lowest_price")) or 0)
        ]
        if problems:
            raise ValidationError(_format_problems("broken prices", problems))

    @staticmethod
    def _styles_with_different_prices(products: list[Row]) -> set[str]:
        prices: dict[str, set[str]] = defaultdict(set)
        for product in products:
            if product.get("style_number"):
                prices[product["style_number"]].add(canonical(product.get("silver_price")))
        return {style for style, values in prices.items() if len(values) > 1}

    def _activity_row(self, product: Row, level: str, styles: set[str]) -> Row:
        calc = self._calculator
        warnings: list[str] = []
        if product.get("style_number") in styles:
            warnings.append("same style, different price")

        silver = to_number(product.get("silver_price"))
        final = to_number(product.get("final_price"))
        if silver is not None and final is not None and silver < final:
            warnings.append("silver price below final price, check the price level")

        return_rate = product.get("reject_and_return_rate_of_last_7_days")
        check = calc.validate_profit(
            product.get("brand_sn"),
            product.get("cost_price"),
            product.get("silver_price"),
            product.get("marketing_positioning"),
            product.get("sales_age"),
            product.get("user_operations_1"),
            product.get("user_operations_2"),
            return_rate,
        )
        if not check.valid:
            warnings.extend(check.warnings)

        if product.get("marketing_positioning") == "clearance-style" and (to_number(product.get("general_goods_total")) or 0) > 1:
            warnings.append("clearance: unbind combos")

        activity_price = calc.calculate_activity_price(product.get("silver_price"), level)
        activity_profit = calc.calculate_profit(
            product.get("brand_sn"),
            product.get("cost_price"),
            activity_price,
            product.get("user_operations_1"),
            product.get("user_operations_2"),
            return_rate,
        )
        cost = to_number(product.get("cost_price"))
        profit_rate = round_half_up(activity_profit / cost, 5) if activity_profit and cost else None

        row = {
            **product,
            "activity_level": level,
            "activity_price": activity_price,
            "activity_profit": activity_profit,
            "activity_profit_rate": profit_rate,
            "warn_message": "/".join(warnings),
        }
        if level == "silver-limited":
            row.update(LIMITED_VALUES)
        return row
