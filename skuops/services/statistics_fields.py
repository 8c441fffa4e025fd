from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import date
from typing import Any

from skuops.errors import SchemaError
from skuops.models.entity import Row
from skuops.services.statistics import StatisticsService

"""Statistics field catalog for report planning.

A ``summary`` field yields one value per product via ``compute``. An
``expandable`` field is a plan that ``expand_field`` turns into concrete
``computed`` fields, one per month, ISO week, day or recent date. The
expansion depends only on the service's ``today``; build a new catalog
after crossing a day boundary.
"""

__all__ = [
    "ExpandConfig",
    "StatisticsField",
    "StatisticsFields",
]


@dataclass(frozen=True)
class ExpandConfig:
    type: str  # month | week | day | recent
    year: int | None = None
    days: int | None = None
    label: str = ""
    is_current: bool = False


@dataclass(frozen=True)
class StatisticsField:
    field: str
    title: str
    type: str  # summary | expandable | computed
    group: str = ""
    description: str = ""
    width: int = 10
    format: str = "#,##0"
    compute: Callable[[Row], Any] | None = None
    expand: ExpandConfig | None = None
    parent_field: str | None = None


class StatisticsFields:
    def __init__(self, service: StatisticsService) -> None:
        self._service = service
        self._years = service.get_year_range()

    @property
    def today(self) -> date:
        return self._service.today

    def _summary(self, name: str, title: str, group: str, description: str, fn: Callable[[Row], Any], width: int = 12) -> StatisticsField:
        return StatisticsField(name, title, "summary", group, description, width, compute=fn)

    def _expandable(self, name: str, title: str, group: str, description: str, config: ExpandConfig, width: int = 10) -> StatisticsField:
        return StatisticsField(name, title, "expandable", group, description, width, expand=config)

    def all_fields(self) -> list[StatisticsField]:
        svc = self._service
        years = self._years
        labels = {"before_last": ("Before last", years.before_last), "last": ("Last", years.last), "current": ("This", years.current)}
        fields: list[StatisticsField] = []

        for key, (label, year) in labels.items():
            fields.append(self._summary(
                f"year_sales_{key}", f"{label} year ({year}) sales", "Yearly sales",
                f"Total sales quantity of {year}",
                lambda p, y=year: svc.get_year_total_sales(p.get("item_number"), y),
            ))
        for kind, adjective in (("month", "monthly"), ("week", "weekly"), ("day", "daily")):
            for key, (label, year) in labels.items():
                fields.append(self._expandable(
                    f"{kind}_sales_{key}", f"{label} year {adjective} sales", f"{adjective.capitalize()} sales",
                    f"Sales quantity of {year} per {kind}",
                    ExpandConfig(kind, year=year, label=label, is_current=(key == "current")),
                    width=12 if kind == "day" else 10,
                ))

        last_7 = (
            ("sales_last_7_days", "Sales (7d)", "sales_quantity"),
            ("uv_exposure_last_7_days", "Exposure UV (7d)", "exposure_uv"),
            ("uv_product_details_last_7_days", "Details UV (7d)", "product_details_uv"),
            ("uv_add_to_cart_last_7_days", "Add To Cart UV (7d)", "add_to_cart_uv"),
            ("reject_count_last_7_days", "Reject And Return (7d)", "reject_and_return_count"),
        )
        for name, title, metric in last_7:
            fields.append(self._summary(
                name, title, "Last 7 days", f"Sum of {metric} over the last 7 days",
                lambda p, m=metric: svc.get_last_n_days_sum(p.get("item_number"), 7, m),
                width=14,
            ))

        for days in (15, 30, 45):
            fields.append(self._expandable(
                f"sales_last_{days}_days", f"Sales (last {days} days)", f"Last {days} days",
                f"Daily sales quantity of the last {days} days",
                ExpandConfig("recent", days=days, label=f"Last {days} days"),
            ))
        return fields

    def get(self, name: str) -> StatisticsField:
        for f in self.all_fields():
            if f.field == name:
                return f
        raise SchemaError(f"unknown statistics field: {name}")

    def expand_field(self, stat: StatisticsField) -> list[StatisticsField]:
        if stat.type != "expandable" or stat.expand is None:
            return [stat]
        config = stat.expand
        if config.type == "month":
            return self._expand_month(config, stat)
        if config.type == "week":
            return self._expand_week(config, stat)
        if config.type == "day":
            return self._expand_day(config, stat)
        if config.type == "recent":
            return self._expand_recent(config, stat)
        return [stat]

    def _child(self, base: StatisticsField, name: str, title: str, description: str, fn: Callable[[Row], Any]) -> StatisticsField:
        return replace(
            base,
            field=name,
            title=title,
            type="computed",
            description=description,
            compute=fn,
            expand=None,
            parent_field=base.field,
        )

    def _expand_month(self, config: ExpandConfig, base: StatisticsField) -> list[StatisticsField]:
        svc = self._service
        year = config.year
        return [
            self._child(
                base, f"month_{year}_{month:02d}", f"{config.label} {year}-{month:02d}",
                f"Sales quantity of {year}-{month:02d}",
                lambda p, m=month: svc.get_month_sales(p.get("item_number"), year, m),
            )
            for month in svc.get_months_of_year(year)
        ]

    def _expand_week(self, config: ExpandConfig, base: StatisticsField) -> list[StatisticsField]:
        svc = self._service
        year = config.year
        return [
            self._child(
                base, f"week_{year}_{week:02d}", f"{config.label} {year}-W{week:02d}",
                f"Sales quantity of ISO week {week} of {year}",
                lambda p, w=week: svc.get_week_sales(p.get("item_number"), year, w),
            )
            for week in svc.get_weeks_of_year(year)
        ]

    def _expand_day(self, config: ExpandConfig, base: StatisticsField) -> list[StatisticsField]:
        svc = self._service
        year = config.year
        out: list[StatisticsField] = []
        for month, days in svc.get_days_of_year(year):
            for day in days:
                d = date(year, month, day)
                out.append(self._child(
                    base, f"day_{year}_{month:02d}_{day:02d}", f"{config.label} {year}-{month:02d}-{day:02d}",
                    f"Sales quantity of {d.isoformat()}",
                    lambda p, d=d: svc.get_day_sales(p.get("item_number"), d),
                ))
        return out

    def _expand_recent(self, config: ExpandConfig, base: StatisticsField) -> list[StatisticsField]:
        svc = self._service
        return [
            self._child(
                base, f"recent_{config.days}_{d.month:02d}_{d.day:02d}", f"{d.month:02d}-{d.day:02d}",
                f"{config.label}: sales quantity of {d.isoformat()}",
                lambda p, d=d: svc.get_day_sales(p.get("item_number"), d),
            )
            for d in svc.get_recent_days(config.days)
        ]

    def field_map(self) -> dict[str, StatisticsField]:
        """Every concrete (summary or expanded) field keyed by name."""
        out: dict[str, StatisticsField] = {}
        for stat in self.all_fields():
            for concrete in self.expand_field(stat):
                out[concrete.field] = concrete
        return out
