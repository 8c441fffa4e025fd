from __future__ import annotations

import calendar
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any

from skuops.store.converter import parse_date, to_number

"""Sales statistics over the ProductSales entity.

All period arithmetic is relative to an explicit ``today`` handed in at
construction; nothing here reads the wall clock. Weeks are ISO weeks
(Monday-based, week 1 holds the year's first Thursday).

Daily sums are built once per service instance; call ``reset()`` after
ProductSales changes.
"""

__all__ = [
    "YearRange",
    "StatisticsService",
    "SALES_METRICS",
    "iso_week",
    "max_iso_week",
    "last_n_days_window",
    "format_window",
    "SALES_WINDOW_DAYS",
]

logger = logging.getLogger(__name__)

# length of the "last 7 days" window behind the *_of_last_7_days fields
SALES_WINDOW_DAYS = 7

SALES_METRICS = (
    "exposure_uv",
    "product_details_uv",
    "add_to_cart_uv",
    "customer_count",
    "reject_and_return_count",
    "sales_quantity",
    "sales_amount",
)


@dataclass(frozen=True)
class YearRange:
    before_last: int
    last: int
    current: int

    def as_tuple(self) -> tuple[int, int, int]:
        return (self.before_last, self.last, self.current)


def iso_week(d: date) -> int:
    return d.isocalendar()[1]


def max_iso_week(year: int) -> int:
    """52 or 53. Dec 28 always falls in the last ISO week of its year."""
    return date(year, 12, 28).isocalendar()[1]


def last_n_days_window(today: date, days: int) -> tuple[date, date]:
    """``[today - days, today - 1]``, both ends inclusive."""
    return today - timedelta(days=days), today - timedelta(days=1)


def format_window(window: tuple[date, date]) -> str:
    start, end = window
    return f"{start.isoformat()}~{end.isoformat()}"


class StatisticsService:
    def __init__(self, repository: Any, today: date | None = None) -> None:
        self._repository = repository
        self.today = today or date.today()
        self._daily: dict[str, dict[date, dict[str, float]]] | None = None

    # -- calendar planning -------------------------------------------------
    def get_year_range(self) -> YearRange:
        y = self.today.year
        return YearRange(y - 2, y - 1, y)

    def get_current_week(self) -> int:
        return iso_week(self.today)

    def get_months_of_year(self, year: int) -> list[int]:
        last = self.today.month if year == self.today.year else 12
        return list(range(1, last + 1))

    def get_weeks_of_year(self, year: int) -> list[int]:
        if year == self.today.year:
            iso_year, week, _ = self.today.isocalendar()
            # around new year the ISO year of today may differ from the calendar year
            if iso_year == year:
                last = week
            elif iso_year > year:
                last = max_iso_week(year)
            else:
                last = 0
        else:
            last = max_iso_week(year)
        return list(range(1, last + 1))

    def get_days_of_year(self, year: int) -> list[tuple[int, list[int]]]:
        out: list[tuple[int, list[int]]] = []
        for month in self.get_months_of_year(year):
            if year == self.today.year and month == self.today.month:
                last = self.today.day
            else:
                last = calendar.monthrange(year, month)[1]
            out.append((month, list(range(1, last + 1))))
        return out

    def get_recent_days(self, days: int) -> list[date]:
        """The last ``days`` dates, oldest first, ending with today."""
        return [self.today - timedelta(days=offset) for offset in range(days - 1, -1, -1)]

    def last_7_days_range(self) -> str:
        return format_window(last_n_days_window(self.today, SALES_WINDOW_DAYS))

    # -- aggregation -------------------------------------------------------
    def reset(self) -> None:
        self._daily = None

    def _daily_sums(self) -> dict[str, dict[date, dict[str, float]]]:
        if self._daily is None:
            daily: dict[str, dict[date, dict[str, float]]] = defaultdict(lambda: defaultdict(lambda: defaultdict(float)))
            rows = self._repository.find_all("ProductSales") if self._repository.exists("ProductSales") else []
            for row in rows:
                d = parse_date(row.get("sales_date"))
                item = row.get("item_number")
                if d is None or not item:
                    continue
                bucket = daily[item][d]
                for metric in SALES_METRICS:
                    bucket[metric] += to_number(row.get(metric)) or 0
            self._daily = daily
            logger.debug("statistics: indexed sales of %d items", len(daily))
        return self._daily

    def _sum(self, item_number: str, predicate, metric: str) -> float:
        days = self._daily_sums().get(item_number)
        if not days:
            return 0
        total = sum(values.get(metric, 0) for d, values in days.items() if predicate(d))
        return int(total) if float(total).is_integer() else total

    def get_year_total_sales(self, item_number: str, year: int, metric: str = "sales_quantity") -> float:
        return self._sum(item_number, lambda d: d.year == year, metric)

    def get_month_sales(self, item_number: str, year: int, month: int, metric: str = "sales_quantity") -> float:
        return self._sum(item_number, lambda d: d.year == year and d.month == month, metric)

    def get_week_sales(self, item_number: str, year: int, week: int, metric: str = "sales_quantity") -> float:
        return self._sum(item_number, lambda d: d.isocalendar()[:2] == (year, week), metric)

    def get_day_sales(self, item_number: str, day: date, metric: str = "sales_quantity") -> float:
        return self._sum(item_number, lambda d: d == day, metric)

    def get_last_n_days_sum(self, item_number: str, days: int, metric: str = "sales_quantity") -> float:
        start, end = last_n_days_window(self.today, days)
        return self._sum(item_number, lambda d: start <= d <= end, metric)
