from __future__ import annotations

from typing import Any

from skuops.models.entity import Entity, FieldSpec, Row, ValidatorSpec
from skuops.schema.registry import parse_unique_key
from skuops.services.profit import round_half_up
from skuops.store.converter import parse_date, to_number

"""Entity declarations for the operations workbook.

Field names are the identifiers used throughout the code; titles are the
column headers found in the worksheets. Computed fields take
``(row, ctx)`` where ``ctx`` is a ``skuops.repository.context.ComputeContext``.
"""

__all__ = [
    "ITEM_STATUSES",
    "MARKETING_POSITIONINGS",
    "INVENTORY_KINDS",
    "FINISHED_GOODS_FIELDS",
    "GENERAL_GOODS_FIELDS",
    "INVENTORY_BUCKET_FIELDS",
    "LAST_7_DAYS_SUM_FIELDS",
    "LAST_7_DAYS_RATE_FIELDS",
    "PRODUCT",
    "PRODUCT_PRICE",
    "REGULAR_PRODUCT",
    "INVENTORY",
    "COMBO_PRODUCT",
    "PRODUCT_SALES",
    "SYSTEM_RECORD",
    "BRAND_CONFIG",
    "REPORT_TEMPLATE",
    "ALL_ENTITIES",
]

ITEM_STATUSES = ("online", "partially online", "offline")
MARKETING_POSITIONINGS = ("traffic-style", "profit-style", "clearance-style")
OFFLINE_REASONS = (
    "new item delisted",
    "off season",
    "tag replaced",
    "brand transferred",
    "clearance",
    "duplicate listing",
    "qualification issue",
    "quality inspection",
)

# Inventory table column -> (title suffix) shared by finished and general goods buckets
INVENTORY_KINDS = {
    "main": "Main",
    "incoming": "Incoming",
    "finishing": "Finishing",
    "oversold": "Oversold",
    "prepare": "Prepare",
    "return": "Return",
    "purchase": "Purchase",
}
FINISHED_GOODS_FIELDS = tuple(f"finished_goods_{k}_inventory" for k in INVENTORY_KINDS)
GENERAL_GOODS_FIELDS = tuple(f"general_goods_{k}_inventory" for k in INVENTORY_KINDS)
INVENTORY_BUCKET_FIELDS = FINISHED_GOODS_FIELDS + GENERAL_GOODS_FIELDS

# ProductSales field -> Product "last 7 days" sum field
LAST_7_DAYS_SUM_FIELDS = {
    "exposure_uv": "exposure_uv_of_last_7_days",
    "product_details_uv": "product_details_uv_of_last_7_days",
    "add_to_cart_uv": "add_to_cart_uv_of_last_7_days",
    "customer_count": "customer_count_of_last_7_days",
    "reject_and_return_count": "reject_and_return_count_of_last_7_days",
    "sales_quantity": "sales_quantity_of_last_7_days",
    "sales_amount": "sales_amount_of_last_7_days",
}
LAST_7_DAYS_RATE_FIELDS = (
    "unit_price_of_last_7_days",
    "click_through_rate_of_last_7_days",
    "add_to_cart_rate_of_last_7_days",
    "purchase_rate_of_last_7_days",
    "reject_and_return_rate_of_last_7_days",
)


def _v(kind: str, **params: Any) -> ValidatorSpec:
    return ValidatorSpec(kind, params)


REQUIRED = _v("required")
POSITIVE = _v("positive")
NON_NEGATIVE = _v("non_negative")
DATE = _v("date")
RATIO = _v("range", min=0, max=1)


def _string(title: str, *validators: ValidatorSpec) -> FieldSpec:
    return FieldSpec(title, "string", tuple(validators))


def _number(title: str, *validators: ValidatorSpec) -> FieldSpec:
    return FieldSpec(title, "number", tuple(validators))


def _date(title: str, *validators: ValidatorSpec) -> FieldSpec:
    return FieldSpec(title, "date", (DATE, *validators))


def _computed(title: str, fn) -> FieldSpec:
    return FieldSpec(title, "computed", compute=fn)


def _sum_of(fields: tuple[str, ...]):
    def compute(row: Row, ctx: Any) -> Any:
        values = [to_number(row.get(f)) for f in fields]
        if all(v is None for v in values):
            return None
        return sum(v or 0 for v in values)
    return compute


# ---------------------------------------------------------------------------
# Product computed fields
# ---------------------------------------------------------------------------

def _link(row: Row, ctx: Any) -> str | None:
    mid = row.get("mid")
    return f"https://detail.vip.com/detail-1234-{mid}.html" if mid else None


def _sales_age(row: Row, ctx: Any) -> int | None:
    listed = parse_date(row.get("first_listing_time"))
    if listed is None:
        return None
    return (ctx.today - listed).days


def _first_order_price(row: Row, ctx: Any) -> Any:
    final = row.get("final_price")
    if not final:
        return None
    return round(final - (row.get("user_operations_1") or 0), 2)


def _super_vip_price(row: Row, ctx: Any) -> Any:
    final = row.get("final_price")
    if not final or not ctx.brand_rates:
        return None
    brand = ctx.brand_rates.get(row.get("brand_sn"))
    if not brand:
        return None
    rate = brand.get("vip_discount_rate") or 0
    discount = round_half_up(final * rate) if final > 50 else round_half_up(final * rate, 1)
    return round(final - discount - (row.get("user_operations_1") or 0), 2)


def _is_price_broken(row: Row, ctx: Any) -> str | None:
    final = row.get("final_price")
    lowest = row.get("lowest_price")
    if final and lowest:
        return "yes" if lowest > final else None
    return "(unknown)"


def _profit(row: Row, ctx: Any) -> Any:
    if ctx.profit_calculator is None:
        return None
    return ctx.profit_calculator.calculate_profit(
        row.get("brand_sn"),
        row.get("cost_price"),
        row.get("final_price"),
        row.get("user_operations_1"),
        row.get("user_operations_2"),
        row.get("reject_and_return_rate_of_last_7_days"),
    )


def _profit_rate(row: Row, ctx: Any) -> Any:
    profit = row.get("profit")
    cost = row.get("cost_price")
    if profit is None or not cost:
        return None
    return round(profit / cost, 5)


def _product_sort_key(row: Row) -> int:
    listed = parse_date(row.get("first_listing_time"))
    # newest listing first; rows without a date last
    return -listed.toordinal() if listed is not None else 0


def _bucket_fields(prefix: str, label: str) -> dict[str, FieldSpec]:
    return {
        f"{prefix}_{kind}_inventory": _number(f"{label} {suffix}", NON_NEGATIVE)
        for kind, suffix in INVENTORY_KINDS.items()
    }


PRODUCT = Entity(
    name="Product",
    worksheet="Products",
    fields={
        "item_number": _string("Item Number", REQUIRED),
        "style_number": _string("Style Number"),
        "color": _string("Color"),
        "link": _computed("Link", _link),
        "first_listing_time": _date("First Listing Time"),
        "sales_age": _computed("Sales Age", _sales_age),
        "item_status": _string("Item Status", _v("enum", values=ITEM_STATUSES)),
        "picture": _string("Picture"),
        "design_number": _string("Design Number"),
        "general_goods_style_number": _string("General Goods Style Number"),
        "listing_year": _number("Listing Year", _v("range", min=2000, max=2100)),
        "main_sales_season": _string(
            "Main Sales Season", _v("enum", values=("spring-autumn", "summer", "winter", "all-season"))
        ),
        "applicable_gender": _string("Applicable Gender", _v("enum", values=("boys", "girls", "unisex"))),
        "third_level_category": _string("Third Level Category"),
        "fourth_level_category": _string("Fourth Level Category"),
        "operation_classification": _string("Operation Classification"),
        "stocking_mode": _string(
            "Stocking Mode", _v("enum", values=("in-stock", "shared-general", "dedicated-general"))
        ),
        "offline_reason": _string("Offline Reason", _v("enum", values=OFFLINE_REASONS)),
        "marketing_positioning": _string("Marketing Positioning", _v("enum", values=MARKETING_POSITIONINGS)),
        "marketing_memorandum": _string("Marketing Memorandum"),
        "brand_sn": _string("Brand SN"),
        "mid": _string("MID", _v("pattern", regex=r"^69\d{17}$", description="19 digits starting with 69")),
        "p_spu": _string(
            "P_SPU", _v("pattern", regex=r"^SPU-[A-F0-9]{16}$", description="SPU- followed by 16 uppercase hex digits")
        ),
        "tag_price": _number("Tag Price", POSITIVE),
        "vipshop_price": _number("Vipshop Price", POSITIVE),
        "cost_price": _number("Cost Price", POSITIVE),
        "lowest_price": _number("Lowest Price", POSITIVE),
        "silver_price": _number("Silver Price", POSITIVE),
        "user_operations_1": _number("User Operations 1", NON_NEGATIVE),
        "user_operations_2": _number("User Operations 2", NON_NEGATIVE),
        "final_price": _number("Final Price", POSITIVE),
        "first_order_price": _computed("First Order Price", _first_order_price),
        "super_vip_price": _computed("Super VIP Price", _super_vip_price),
        "is_price_broken": _computed("Is Price Broken", _is_price_broken),
        "direct_train_price": _number("Direct Train", POSITIVE),
        "gold_price": _number("Gold Price", POSITIVE),
        "gold_limit": _number("Gold Limit", POSITIVE),
        "top3": _number("TOP3", POSITIVE),
        "silver_limit": _number("Silver Limit", POSITIVE),
        "sellable_inventory": _number("Sellable Inventory", NON_NEGATIVE),
        "sellable_days": _number("Sellable Days", NON_NEGATIVE),
        "is_out_of_stock": _string("Out Of Stock Sizes"),
        **_bucket_fields("finished_goods", "Finished"),
        **_bucket_fields("general_goods", "General"),
        "finished_goods_total": _computed("Finished Total", _sum_of(FINISHED_GOODS_FIELDS)),
        "general_goods_total": _computed("General Total", _sum_of(GENERAL_GOODS_FIELDS)),
        "total_inventory": _computed("Total Inventory", _sum_of(INVENTORY_BUCKET_FIELDS)),
        "exposure_uv_of_last_7_days": _number("Exposure UV (7d)", NON_NEGATIVE),
        "product_details_uv_of_last_7_days": _number("Details UV (7d)", NON_NEGATIVE),
        "add_to_cart_uv_of_last_7_days": _number("Add To Cart UV (7d)", NON_NEGATIVE),
        "customer_count_of_last_7_days": _number("Customers (7d)", NON_NEGATIVE),
        "reject_and_return_count_of_last_7_days": _number("Reject And Return (7d)", NON_NEGATIVE),
        "sales_quantity_of_last_7_days": _number("Sales Quantity (7d)", NON_NEGATIVE),
        "sales_amount_of_last_7_days": _number("Sales Amount (7d)", NON_NEGATIVE),
        "unit_price_of_last_7_days": _number("Unit Price (7d)", NON_NEGATIVE),
        "click_through_rate_of_last_7_days": _number("Click Through Rate (7d)", NON_NEGATIVE),
        "add_to_cart_rate_of_last_7_days": _number("Add To Cart Rate (7d)", NON_NEGATIVE),
        "purchase_rate_of_last_7_days": _number("Purchase Rate (7d)", NON_NEGATIVE),
        "reject_and_return_rate_of_last_7_days": _number("Reject And Return Rate (7d)", NON_NEGATIVE),
        "style_sales_of_last_7_days": _number("Style Sales (7d)", NON_NEGATIVE),
        "profit": _computed("Profit", _profit),
        "profit_rate": _computed("Profit Rate", _profit_rate),
    },
    unique_key=parse_unique_key("item_number"),
    sort_key=_product_sort_key,
)


PRODUCT_PRICE = Entity(
    name="ProductPrice",
    worksheet="Product Prices",
    fields={
        "item_number": _string("Item Number", REQUIRED),
        "design_number": _string("Design Number"),
        "picture": _string("Picture"),
        "cost_price": _number("Cost Price", REQUIRED, POSITIVE),
        "lowest_price": _number("Lowest Price", REQUIRED, POSITIVE),
        "silver_price": _number("Silver Price", REQUIRED, POSITIVE),
        "user_operations_1": _number("User Operations 1", NON_NEGATIVE),
        "user_operations_2": _number("User Operations 2", NON_NEGATIVE),
    },
    required_fields=("item_number", "cost_price", "lowest_price", "silver_price"),
    unique_key=parse_unique_key("item_number"),
    import_date_field="import_date_of_product_price",
    update_date_field="update_date_of_product_price",
)


REGULAR_PRODUCT = Entity(
    name="RegularProduct",
    worksheet="Regular Products",
    fields={
        "product_code": _string("Barcode", REQUIRED),
        "item_number": _string("Item Number", REQUIRED),
        "style_number": _string("Style Number"),
        "color": _string("Color"),
        "size": _string("Size"),
        "third_level_category": _string("Third Level Category"),
        "brand_sn": _string("Brand SN"),
        "brand": _string("Brand Name"),
        "size_status": _string("Size Status"),
        "item_status": _string("Item Status"),
        "tag_price": _number("Tag Price"),
        "vipshop_price": _number("Vipshop Price"),
        "final_price": _number("Final Price"),
        "sellable_inventory": _number("Sellable Inventory"),
        "sellable_days": _number("Sellable Days"),
        "p_spu": _string("P_SPU"),
        "mid": _string("MID"),
    },
    required_fields=("product_code", "item_number", "size", "size_status", "sellable_inventory"),
    import_date_field="import_date_of_regular_product",
    update_date_field="update_date_of_regular_product",
)


INVENTORY = Entity(
    name="Inventory",
    worksheet="Inventory",
    fields={
        "product_code": _string("Product Code", REQUIRED),
        "main_inventory": _number("Quantity", NON_NEGATIVE),
        "incoming_inventory": _number("Incoming Warehouse", NON_NEGATIVE),
        "finishing_inventory": _number("Finishing Workshop", NON_NEGATIVE),
        "oversold_inventory": _number("Oversold Workshop", NON_NEGATIVE),
        "prepare_inventory": _number("Prepare Workshop", NON_NEGATIVE),
        "return_inventory": _number("Return Warehouse", NON_NEGATIVE),
        "purchase_inventory": _number("Purchase In Transit", NON_NEGATIVE),
    },
    required_fields=("product_code", "main_inventory"),
    unique_key=parse_unique_key("product_code"),
    import_date_field="import_date_of_inventory",
    update_date_field="update_date_of_inventory",
)


COMBO_PRODUCT = Entity(
    name="ComboProduct",
    worksheet="Combo Products",
    fields={
        "product_code": _string("Combo Product Code", REQUIRED),
        "sub_product_code": _string("Product Code", REQUIRED),
        "sub_product_quantity": _number("Quantity", POSITIVE),
    },
    required_fields=("product_code", "sub_product_code", "sub_product_quantity"),
    unique_key=parse_unique_key("product_code+sub_product_code"),
    import_date_field="import_date_of_combo_product",
)


def _sales_date(row: Row):
    return parse_date(row.get("sales_date"))


def _sales_year(row: Row, ctx: Any) -> int | None:
    d = _sales_date(row)
    return d.year if d else None


def _year_month(row: Row, ctx: Any) -> str | None:
    d = _sales_date(row)
    return f"{d.year}-{d.month:02d}" if d else None


def _year_week(row: Row, ctx: Any) -> str | None:
    d = _sales_date(row)
    if d is None:
        return None
    iso_year, week, _ = d.isocalendar()
    return f"{iso_year}-W{week:02d}"


def _days_since_sale(row: Row, ctx: Any) -> int | None:
    d = _sales_date(row)
    return (ctx.today - d).days if d else None


def _sales_sort_key(row: Row) -> str:
    return row.get("sales_date") or ""


PRODUCT_SALES = Entity(
    name="ProductSales",
    worksheet="Product Sales",
    fields={
        "sales_date": _date("Date", REQUIRED),
        "item_number": _string("Item Number", REQUIRED),
        "exposure_uv": _number("Exposure UV", NON_NEGATIVE),
        "product_details_uv": _number("Details UV", NON_NEGATIVE),
        "add_to_cart_uv": _number("Add To Cart UV", NON_NEGATIVE),
        "customer_count": _number("Customers", NON_NEGATIVE),
        "reject_and_return_count": _number("Reject And Return", NON_NEGATIVE),
        "sales_quantity": _number("Sales Quantity", NON_NEGATIVE),
        "sales_amount": _number("Sales Amount", NON_NEGATIVE),
        "first_listing_time": _date("First Listing Time"),
        "sales_year": _computed("Sales Year", _sales_year),
        "year_month": _computed("Year Month", _year_month),
        "year_week": _computed("Year Week", _year_week),
        "days_since_sale": _computed("Days Since Sale", _days_since_sale),
    },
    required_fields=("sales_date", "item_number", "sales_quantity"),
    unique_key=parse_unique_key("item_number+sales_date"),
    sort_key=_sales_sort_key,
    import_date_field="import_date_of_product_sales",
    update_date_field="update_date_of_product_sales",
)


_SYSTEM_RECORD_SOURCES = {
    "product_price": "Product Price",
    "regular_product": "Regular Product",
    "inventory": "Inventory",
    "combo_product": "Combo Product",
    "product_sales": "Product Sales",
    "brand_config": "Brand Config",
}

SYSTEM_RECORD = Entity(
    name="SystemRecord",
    worksheet="System Record",
    fields={
        **{f"import_date_of_{k}": _string(f"{label} Import Date") for k, label in _SYSTEM_RECORD_SOURCES.items()},
        "update_date_of_product_price": _string("Product Price Update Date"),
        "update_date_of_regular_product": _string("Regular Product Update Date"),
        "update_date_of_inventory": _string("Inventory Update Date"),
        "update_date_of_product_sales": _string("Product Sales Update Date"),
        "update_date_of_last_7_days": _string("Last 7 Days Window"),
    },
)


BRAND_CONFIG = Entity(
    name="BrandConfig",
    worksheet="Brand Config",
    fields={
        "brand_sn": _string("Brand SN", REQUIRED),
        "brand_name": _string("Brand Name"),
        "packaging_fee": _number("Packaging Fee", NON_NEGATIVE),
        "shipping_cost": _number("Shipping Cost", NON_NEGATIVE),
        "return_processing_fee": _number("Return Processing Fee", NON_NEGATIVE),
        "vip_discount_rate": _number("VIP Discount Rate", RATIO),
        "vip_discount_bearing_ratio": _number("VIP Discount Bearing Ratio", RATIO),
        "platform_commission": _number("Platform Commission", RATIO),
        "brand_commission": _number("Brand Commission", RATIO),
    },
    required_fields=("brand_sn", "platform_commission", "brand_commission"),
    unique_key=parse_unique_key("brand_sn"),
    import_date_field="import_date_of_brand_config",
)


REPORT_TEMPLATE = Entity(
    name="ReportTemplate",
    worksheet="Report Templates",
    fields={
        "template_name": _string("Template Name", REQUIRED),
        "field_name": _string("Field Name", REQUIRED),
        "column_title": _string("Column Title"),
        "column_width": _number("Column Width", POSITIVE),
        "is_visible": FieldSpec("Visible", "string", (_v("enum", values=("yes", "no")),), default="yes"),
        "display_order": _number("Display Order", NON_NEGATIVE),
        "description": _string("Description"),
    },
    required_fields=("template_name", "field_name"),
    unique_key=parse_unique_key("template_name+field_name"),
)


ALL_ENTITIES = (
    PRODUCT,
    PRODUCT_PRICE,
    REGULAR_PRODUCT,
    INVENTORY,
    COMBO_PRODUCT,
    PRODUCT_SALES,
    SYSTEM_RECORD,
    BRAND_CONFIG,
    REPORT_TEMPLATE,
)
