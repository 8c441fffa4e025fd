from __future__ import annotations

from skuops.models.entity import IndexConfig

"""Declared (non-unique) indexes per entity.

The unique-key index of each entity is added automatically by the index
engine and is not listed here.
"""

__all__ = [
    "DEFAULT_INDEXES",
]

DEFAULT_INDEXES: dict[str, tuple[IndexConfig, ...]] = {
    "Product": (
        IndexConfig(("brand_sn", "item_status")),
        IndexConfig(("style_number",)),
        IndexConfig(("p_spu",)),
        IndexConfig(("item_status",)),
    ),
    "RegularProduct": (
        IndexConfig(("item_number",)),
        IndexConfig(("product_code",)),
    ),
    "ComboProduct": (
        IndexConfig(("product_code",)),
    ),
    "ProductSales": (
        IndexConfig(("item_number",)),
        IndexConfig(("sales_date",)),
    ),
}
