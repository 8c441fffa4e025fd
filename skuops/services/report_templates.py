from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from skuops.errors import SchemaError
from skuops.store.converter import canonical, to_number

"""Named report column lists kept in the "Report Templates" worksheet.

Each worksheet row is one column of one template; a template's columns
are ordered by ``display_order``. When no template is selected, or the
selected one has no rows, ``DEFAULT_COLUMNS`` is used.
"""

__all__ = [
    "DEFAULT_COLUMNS",
    "DEFAULT_TEMPLATES",
    "TemplateColumn",
    "ReportTemplateCatalog",
]

logger = logging.getLogger(__name__)

ENTITY = "ReportTemplate"

DEFAULT_COLUMNS = (
    "item_number",
    "style_number",
    "color",
    "third_level_category",
    "first_listing_time",
    "item_status",
    "cost_price",
    "silver_price",
    "final_price",
    "sellable_inventory",
)

DEFAULT_TEMPLATES = {
    "Inventory alert": (
        "item_number",
        "style_number",
        "color",
        "third_level_category",
        "sellable_inventory",
        "sellable_days",
        "finished_goods_total",
        "general_goods_total",
        "total_inventory",
        "is_out_of_stock",
        "sales_quantity_of_last_7_days",
    ),
    "Profit analysis": (
        "item_number",
        "style_number",
        "marketing_positioning",
        "cost_price",
        "silver_price",
        "final_price",
        "profit",
        "profit_rate",
        "user_operations_1",
        "user_operations_2",
    ),
    "Sales ranking": (
        "item_number",
        "style_number",
        "color",
        "third_level_category",
        "sales_quantity_of_last_7_days",
        "sales_amount_of_last_7_days",
        "unit_price_of_last_7_days",
        "style_sales_of_last_7_days",
    ),
}


@dataclass(frozen=True)
class TemplateColumn:
    field: str
    title: str | None = None
    width: int | None = None
    visible: bool = True
    order: int = 0

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> TemplateColumn:
        width = to_number(row.get("column_width"))
        order = to_number(row.get("display_order"))
        return cls(
            field=canonical(row.get("field_name")),
            title=canonical(row.get("column_title")) or None,
            width=int(width) if width is not None else None,
            visible=canonical(row.get("is_visible")) != "no",
            order=int(order) if order is not None else 0,
        )


class ReportTemplateCatalog:
    """Report templates read through a ``Repository``.

    Templates are loaded once and cached; call ``refresh`` after editing
    the worksheet.
    """

    def __init__(self, repository: Any) -> None:
        self._repository = repository
        self._templates: dict[str, list[TemplateColumn]] | None = None
        self._current: str | None = None

    def _load(self) -> dict[str, list[TemplateColumn]]:
        if self._templates is not None:
            return self._templates
        templates: dict[str, list[TemplateColumn]] = {}
        if self._repository.exists(ENTITY):
            for row in self._repository.find_all(ENTITY):
                name = canonical(row.get("template_name"))
                templates.setdefault(name, []).append(TemplateColumn.from_row(row))
        for columns in templates.values():
            columns.sort(key=lambda c: c.order)
        self._templates = templates
        logger.debug("loaded %d report templates", len(templates))
        return templates

    def refresh(self) -> None:
        self._templates = None

    def initialize_defaults(self) -> int:
        """Write ``DEFAULT_TEMPLATES`` when the worksheet holds no template.

        Returns the number of templates written.
        """
        if self._load():
            return 0
        rows = [
            {"template_name": name, "field_name": field, "display_order": order, "is_visible": "yes"}
            for name, fields in DEFAULT_TEMPLATES.items()
            for order, field in enumerate(fields, start=1)
        ]
        self._repository.save(ENTITY, rows)
        self.refresh()
        logger.info("report templates initialized: %s", ", ".join(DEFAULT_TEMPLATES))
        return len(DEFAULT_TEMPLATES)

    def template_names(self) -> list[str]:
        return sorted(self._load())

    def get(self, name: str) -> list[TemplateColumn]:
        templates = self._load()
        if name not in templates:
            raise SchemaError(f"unknown report template: {name}")
        return list(templates[name])

    @property
    def current(self) -> str | None:
        return self._current

    def set_current(self, name: str) -> bool:
        if name not in self._load():
            logger.warning("report template not found: %s", name)
            return False
        self._current = name
        return True

    def current_columns(self) -> list[TemplateColumn]:
        if self._current is not None:
            columns = self._load().get(self._current)
            if columns:
                return list(columns)
        return [TemplateColumn(field, order=i) for i, field in enumerate(DEFAULT_COLUMNS, start=1)]
