from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime
from typing import Any

from skuops.config.loader import AppConfig
from skuops.errors import SchemaError, SkuOpsError, SourceDataError, StateError
from skuops.models.entity import Row
from skuops.models.results import ConsolidationResult, StageResult
from skuops.repository.repository import Repository
from skuops.schema.entities import (
    FINISHED_GOODS_FIELDS,
    GENERAL_GOODS_FIELDS,
    INVENTORY_BUCKET_FIELDS,
    INVENTORY_KINDS,
    LAST_7_DAYS_SUM_FIELDS,
)
from skuops.services.freshness import FreshnessChecker
from skuops.services.profit import round_half_up
from skuops.services.progress import ProgressTracker
from skuops.services.statistics import SALES_WINDOW_DAYS, format_window, last_n_days_window
from skuops.services.statistics_fields import StatisticsFields
from skuops.store.converter import canonical, parse_date, to_number

"""Product consolidation.

Four stages update the Product table from its sources:

1. ``regular``   - descriptors, sellable inventory and out-of-stock sizes
2. ``price``     - cost / lowest / silver prices and user operations
3. ``inventory`` - finished-goods and general-goods (combo) stock buckets
4. ``sales``     - last-7-days sums and rates, per-style sales

Each stage first checks that its sources were imported recently enough.
Stage methods save Product and stamp their SystemRecord update date;
``update_all`` runs every stage against one working table, saves Product
once and stamps only the stages that succeeded.
"""

__all__ = [
    "STAGES",
    "REGULAR_COPY_FIELDS",
    "PRICE_FIELDS",
    "ProductConsolidationService",
    "out_of_stock_sizes",
]

logger = logging.getLogger(__name__)

STAGES = ("regular", "price", "inventory", "sales")

REGULAR_COPY_FIELDS = (
    "style_number",
    "color",
    "third_level_category",
    "item_status",
    "tag_price",
    "vipshop_price",
    "final_price",
    "sellable_days",
    "mid",
    "p_spu",
    "brand_sn",
)

PRICE_FIELDS = ("cost_price", "lowest_price", "silver_price", "user_operations_1", "user_operations_2")

# stage -> (source entities checked for freshness, SystemRecord fields stamped)
_STAGE_SOURCES: dict[str, tuple[tuple[str, ...], tuple[str, ...]]] = {
    "regular": (("RegularProduct",), ("update_date_of_regular_product",)),
    "price": (("ProductPrice",), ("update_date_of_product_price",)),
    "inventory": (("ComboProduct", "Inventory"), ("update_date_of_inventory",)),
    "sales": (("ProductSales",), ("update_date_of_product_sales",)),
}


def _num(value: Any) -> float:
    return to_number(value) or 0


def _size_key(size: str) -> tuple[bool, float, str]:
    n = to_number(size)
    return (n is None, n if n is not None else 0, size)


def out_of_stock_sizes(regulars: Iterable[Row]) -> str:
    """``/``-joined sizes that are online with zero sellable stock, numeric order."""
    sizes = [
        r["size"]
        for r in regulars
        if r.get("size") and r.get("size_status") == "online" and _num(r.get("sellable_inventory")) == 0
    ]
    return "/".join(sorted(sizes, key=_size_key))


def _ratio(numerator: float, denominator: float, ndigits: int = 4) -> float | None:
    if not denominator:
        return None
    return round_half_up(numerator / denominator, ndigits)


class ProductConsolidationService:
    def __init__(
        self,
        repository: Repository,
        config: AppConfig,
        clock: Callable[[], datetime] = datetime.now,
        statistics_fields: StatisticsFields | None = None,
    ) -> None:
        self._repository = repository
        self._config = config
        self._clock = clock
        self._statistics_fields = statistics_fields
        self.freshness = FreshnessChecker(
            repository,
            clock=clock,
            default_hours=config.freshness.default_hours,
            promotion_regular_product_hours=config.freshness.promotion_regular_product_hours,
        )
        # item_number -> statistics field -> value, filled by the sales stage
        self.period_values: dict[str, dict[str, Any]] = {}
        self._stage_fns: dict[str, Callable[[list[Row]], dict[str, int]]] = {
            "regular": self._apply_regular,
            "price": self._apply_price,
            "inventory": self._apply_inventory,
            "sales": self._apply_sales,
        }
        self._period_fields: tuple[str, ...] = ()
        self._window_stamp: str | None = None

    # ------------------------------------------------------------------
    # public stages
    # ------------------------------------------------------------------
    def update_from_regular_products(self) -> StageResult:
        return self._run_single("regular")

    def update_from_price_data(self) -> StageResult:
        return self._run_single("price")

    def update_from_inventory(self) -> StageResult:
        return self._run_single("inventory")

    def update_from_sales_data(self, period_fields: Sequence[str] = ()) -> StageResult:
        self._period_fields = tuple(period_fields)
        return self._run_single("sales")

    def update_all(self, stages: Sequence[str] = STAGES, *, period_fields: Sequence[str] = ()) -> ConsolidationResult:
        """Run ``stages`` in order, collecting per-stage errors instead of raising."""
        unknown = [s for s in stages if s not in STAGES]
        if unknown:
            raise ValueError(f"unknown stage(s): {unknown}")
        self._period_fields = tuple(period_fields)

        result = ConsolidationResult()
        products = self._products()
        succeeded: list[str] = []
        with ProgressTracker(len(stages)) as progress:
            for stage in stages:
                progress.start_stage(stage)
                work = [dict(p) for p in products]
                try:
                    self._check_sources(stage)
                    counts = self._stage_fns[stage](work)
                except SkuOpsError as e:
                    logger.warning("stage %s failed: %s", stage, e)
                    result.errors.append((stage, e))
                    progress.finish_stage(success=False)
                    continue
                except Exception as e:
                    logger.exception("stage %s failed unexpectedly", stage)
                    result.errors.append((stage, e))
                    progress.finish_stage(success=False)
                    continue
                products = work
                succeeded.append(stage)
                result.stages.append(StageResult(stage, counts))
                progress.finish_stage()

        if succeeded:
            try:
                self._repository.save("Product", products)
            except SkuOpsError as e:
                logger.error("saving products failed: %s", e)
                result.errors.append(("save", e))
                return result
            self._stamp(succeeded)
        result.product_count = len(products)
        return result

    # ------------------------------------------------------------------
    # internals
    # ------------------------------------------------------------------
    def _run_single(self, stage: str) -> StageResult:
        self._check_sources(stage)
        products = self._products()
        counts = self._stage_fns[stage](products)
        self._repository.save("Product", products)
        self._stamp([stage])
        logger.info("stage %s: %s", stage, counts)
        return StageResult(stage, counts)

    def _check_sources(self, stage: str) -> None:
        for entity_name in _STAGE_SOURCES[stage][0]:
            self.freshness.check_import(entity_name)

    def _stamp(self, stages: Iterable[str]) -> None:
        now = self._clock()
        fields: dict[str, Any] = {}
        for stage in stages:
            for name in _STAGE_SOURCES[stage][1]:
                fields[name] = now
            if stage == "sales" and self._window_stamp:
                fields["update_date_of_last_7_days"] = self._window_stamp
        self._repository.update_system_record(**fields)

    def _products(self) -> list[Row]:
        """Current Product rows; a missing or blank Product table counts as empty."""
        if not self._repository.exists("Product"):
            return []
        try:
            return self._repository.find_all("Product")
        except SourceDataError:
            worksheet = self._repository.registry.get("Product").worksheet
            if self._repository.store.read_table(worksheet):
                raise
            return []

    def _source(self, name: str) -> list[Row]:
        return self._repository.find_all(name)

    # -- stage 1 -------------------------------------------------------
    def _apply_regular(self, products: list[Row]) -> dict[str, int]:
        groups: dict[str, list[Row]] = defaultdict(list)
        for row in self._source("RegularProduct"):
            if row.get("item_number"):
                groups[row["item_number"]].append(row)

        updated = 0
        for product in products:
            regulars = groups.get(product.get("item_number"))
            if not regulars:
                continue
            self._copy_from_regulars(product, regulars)
            updated += 1

        existing = {p.get("item_number") for p in products}
        new = 0
        for item_number, regulars in groups.items():
            if item_number in existing:
                continue
            product: Row = {
                "item_number": item_number,
                "marketing_positioning": self._config.default_marketing_positioning,
            }
            self._copy_from_regulars(product, regulars)
            products.append(product)
            new += 1
        return {"total": len(products) - new, "updated": updated, "new": new}

    @staticmethod
    def _copy_from_regulars(product: Row, regulars: list[Row]) -> None:
        first = regulars[0]
        for name in REGULAR_COPY_FIELDS:
            product[name] = first.get(name)
        product["sellable_inventory"] = sum(_num(r.get("sellable_inventory")) for r in regulars)
        product["is_out_of_stock"] = out_of_stock_sizes(regulars)
        if product.get("item_status") != "offline":
            product["offline_reason"] = None

    # -- stage 2 -------------------------------------------------------
    def _apply_price(self, products: list[Row]) -> dict[str, int]:
        updated = skipped = 0
        for product in products:
            price = self._repository.find_one("ProductPrice", {"item_number": product.get("item_number")})
            changed = False
            if price is not None:
                for name in PRICE_FIELDS:
                    if canonical(product.get(name)) != canonical(price.get(name)):
                        product[name] = price.get(name)
                        changed = True
            if changed:
                updated += 1
            else:
                skipped += 1
        return {"updated": updated, "skipped": skipped}

    # -- stage 3 -------------------------------------------------------
    def _apply_inventory(self, products: list[Row]) -> dict[str, int]:
        codes: dict[str, list[str]] = defaultdict(list)
        for row in self._source("RegularProduct"):
            if row.get("item_number") and row.get("product_code"):
                codes[row["item_number"]].append(row["product_code"])
        skip = tuple(self._config.combo_skip_prefixes)

        updated = zero = 0
        for product in products:
            before = sum(_num(product.get(f)) for f in INVENTORY_BUCKET_FIELDS)
            for name in INVENTORY_BUCKET_FIELDS:
                product[name] = 0
            for code in codes.get(product.get("item_number"), ()):
                inventory = self._repository.find_one("Inventory", {"product_code": code})
                if inventory is not None:
                    for kind, target in zip(INVENTORY_KINDS, FINISHED_GOODS_FIELDS, strict=True):
                        product[target] += _num(inventory.get(f"{kind}_inventory"))
                for combo in self._repository.find("ComboProduct", {"product_code": code}):
                    sub_code = combo.get("sub_product_code") or ""
                    if skip and sub_code.startswith(skip):
                        continue
                    quantity = _num(combo.get("sub_product_quantity"))
                    child = self._repository.find_one("Inventory", {"product_code": sub_code})
                    if child is None or not quantity:
                        continue
                    for kind, target in zip(INVENTORY_KINDS, GENERAL_GOODS_FIELDS, strict=True):
                        product[target] += _num(child.get(f"{kind}_inventory")) / quantity
            after = sum(product[f] for f in INVENTORY_BUCKET_FIELDS)
            if after != before:
                updated += 1
            if after == 0:
                zero += 1
        return {"updated": updated, "zero_inventory": zero}

    # -- stage 4 -------------------------------------------------------
    def _apply_sales(self, products: list[Row]) -> dict[str, int]:
        today = self._clock().date()
        window = last_n_days_window(today, SALES_WINDOW_DAYS)
        start, end = window

        sums: dict[str, dict[str, float]] = defaultdict(lambda: dict.fromkeys(LAST_7_DAYS_SUM_FIELDS, 0))
        first_listing: dict[str, Any] = {}
        for row in self._source("ProductSales"):
            item = row.get("item_number")
            d = parse_date(row.get("sales_date"))
            if not item or d is None:
                continue
            if row.get("first_listing_time") and item not in first_listing:
                first_listing[item] = row["first_listing_time"]
            if start <= d <= end:
                bucket = sums[item]
                for metric in LAST_7_DAYS_SUM_FIELDS:
                    bucket[metric] += _num(row.get(metric))

        updated = skipped = 0
        for product in products:
            item = product.get("item_number")
            before = {name: canonical(product.get(name)) for name in (*LAST_7_DAYS_SUM_FIELDS.values(), "first_listing_time")}
            totals = sums.get(item) or dict.fromkeys(LAST_7_DAYS_SUM_FIELDS, 0)
            for metric, target in LAST_7_DAYS_SUM_FIELDS.items():
                product[target] = totals[metric]
            product["unit_price_of_last_7_days"] = _ratio(totals["sales_amount"], totals["sales_quantity"], 2)
            product["click_through_rate_of_last_7_days"] = _ratio(totals["product_details_uv"], totals["exposure_uv"])
            product["add_to_cart_rate_of_last_7_days"] = _ratio(totals["add_to_cart_uv"], totals["product_details_uv"])
            product["purchase_rate_of_last_7_days"] = _ratio(totals["customer_count"], totals["product_details_uv"])
            product["reject_and_return_rate_of_last_7_days"] = _ratio(
                totals["reject_and_return_count"], totals["sales_quantity"]
            )
            if not product.get("first_listing_time") and first_listing.get(item):
                product["first_listing_time"] = first_listing[item]
            after = {name: canonical(product.get(name)) for name in before}
            if after != before:
                updated += 1
            else:
                skipped += 1

        style_sales: dict[str, float] = defaultdict(float)
        for product in products:
            if product.get("style_number"):
                style_sales[product["style_number"]] += _num(product.get("sales_quantity_of_last_7_days"))
        for product in products:
            style = product.get("style_number")
            product["style_sales_of_last_7_days"] = (
                style_sales[style] if style else product.get("sales_quantity_of_last_7_days")
            )

        self._window_stamp = format_window(window)
        if self._period_fields:
            self._evaluate_period_fields(products)
        return {"updated": updated, "skipped": skipped}

    def _evaluate_period_fields(self, products: list[Row]) -> None:
        if self._statistics_fields is None:
            raise StateError("period values requested but no statistics fields are configured")
        catalog = self._statistics_fields.field_map()
        missing = [name for name in self._period_fields if name not in catalog]
        if missing:
            raise SchemaError(f"unknown statistics field(s): {missing}")
        self.period_values = {}
        for product in products:
            item = product.get("item_number")
            self.period_values[item] = {name: catalog[name].compute(product) for name in self._period_fields}
