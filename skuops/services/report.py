from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, replace
from typing import Any

from skuops.errors import SchemaError
from skuops.models.entity import Row
from skuops.schema.registry import SchemaRegistry, default_registry
from skuops.services.report_templates import TemplateColumn
from skuops.services.statistics_fields import StatisticsFields
from skuops.store.sheet_writer import SheetWriter

"""Report planning: turn requested field names into concrete columns."""

__all__ = [
    "ReportColumn",
    "ReportPlanner",
]


@dataclass(frozen=True)
class ReportColumn:
    field: str
    title: str
    compute: Callable[[Row], Any] | None = None

    def value(self, row: Row) -> Any:
        if self.compute is not None:
            return self.compute(row)
        return row.get(self.field)


class ReportPlanner:
    def __init__(self, statistics_fields: StatisticsFields, registry: SchemaRegistry | None = None) -> None:
        self._stats = statistics_fields
        self._registry = registry or default_registry()

    def available_fields(self) -> list[dict[str, str]]:
        """Every name ``plan`` accepts before expansion, Product fields first."""
        product = self._registry.get("Product")
        fields = [
            {"field": name, "title": spec.title, "type": spec.type, "group": "Product", "description": ""}
            for name, spec in product.fields.items()
        ]
        fields.extend(
            {"field": s.field, "title": s.title, "type": s.type, "group": s.group, "description": s.description}
            for s in self._stats.all_fields()
        )
        return fields

    def plan(self, names: Iterable[str]) -> list[ReportColumn]:
        """Columns in request order.

        A name may be a Product field, a statistics field (expandable ones
        become one column per period) or an already expanded period field
        such as ``month_2024_03``. Duplicates are dropped.

        Raises:
            SchemaError: a name is none of the above.
        """
        product = self._registry.get("Product")
        declared = {f.field: f for f in self._stats.all_fields()}
        concrete: dict[str, Any] | None = None
        columns: list[ReportColumn] = []
        seen: set[str] = set()

        def add(column: ReportColumn) -> None:
            if column.field not in seen:
                seen.add(column.field)
                columns.append(column)

        for name in names:
            if name in product.fields:
                add(ReportColumn(name, product.fields[name].title))
            elif name in declared:
                for stat in self._stats.expand_field(declared[name]):
                    add(ReportColumn(stat.field, stat.title, stat.compute))
            else:
                if concrete is None:
                    concrete = self._stats.field_map()
                stat = concrete.get(name)
                if stat is None:
                    raise SchemaError(f"unknown report field: {name}")
                add(ReportColumn(stat.field, stat.title, stat.compute))
        return columns

    @staticmethod
    def build(products: Iterable[Row], columns: Sequence[ReportColumn]) -> tuple[list[str], list[list[Any]]]:
        header = [c.title for c in columns]
        rows = [[c.value(p) for c in columns] for p in products]
        return header, rows

    def write(self, writer: SheetWriter, sheet: str, products: Iterable[Row], names: Iterable[str]) -> int:
        columns = self.plan(names)
        header, rows = self.build(products, columns)
        writer.write_sheet(sheet, header, rows)
        return len(rows)

    def plan_template(self, template: Iterable[TemplateColumn]) -> list[ReportColumn]:
        """Columns of a report template.

        Hidden columns are skipped. A template title replaces the field's own
        title unless the field expands into several period columns.
        """
        columns: list[ReportColumn] = []
        seen: set[str] = set()
        for entry in template:
            if not entry.visible:
                continue
            planned = self.plan([entry.field])
            if entry.title and len(planned) == 1 and planned[0].field == entry.field:
                planned = [replace(planned[0], title=entry.title)]
            for column in planned:
                if column.field not in seen:
                    seen.add(column.field)
                    columns.append(column)
        return columns

    def write_template(
        self, writer: SheetWriter, sheet: str, products: Iterable[Row], template: Iterable[TemplateColumn]
    ) -> int:
        header, rows = self.build(products, self.plan_template(template))
        writer.write_sheet(sheet, header, rows)
        return len(rows)
