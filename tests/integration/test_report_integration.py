from __future__ import annotations

from datetime import date

import pytest

from skuops.errors import SchemaError
from skuops.services.report import ReportPlanner
from skuops.services.report_templates import TemplateColumn
from skuops.services.statistics import StatisticsService
from skuops.services.statistics_fields import StatisticsFields
from skuops.store.sheet_writer import TabularSheetWriter


@pytest.fixture()
def planner(repository):
    repository.save("Product", [{"item_number": "A", "style_number": "S1"}, {"item_number": "B"}])
    repository.save(
        "ProductSales",
        [
            {"item_number": "A", "sales_date": "2024-06-04", "sales_quantity": 3},
            {"item_number": "A", "sales_date": "2024-03-02", "sales_quantity": 7},
            {"item_number": "B", "sales_date": "2023-11-11", "sales_quantity": 2},
        ],
    )
    return ReportPlanner(StatisticsFields(StatisticsService(repository, date(2024, 6, 10))))


def test_plan_expands_and_deduplicates(planner):
    columns = planner.plan(["item_number", "month_sales_current", "week_2024_23", "item_number", "month_2024_03"])
    assert [c.field for c in columns] == [
        "item_number",
        "month_2024_01",
        "month_2024_02",
        "month_2024_03",
        "month_2024_04",
        "month_2024_05",
        "month_2024_06",
        "week_2024_23",
    ]
    assert columns[0].title == "Item Number"
    assert columns[-1].title == "This 2024-W23"


def test_unknown_field(planner):
    with pytest.raises(SchemaError, match="unknown report field: bogus"):
        planner.plan(["item_number", "bogus"])


def test_write_report_sheet(repository, store, planner):
    count = planner.write(
        TabularSheetWriter(store),
        "Report",
        repository.find_all("Product"),
        ["item_number", "year_sales_current", "year_sales_last", "month_2024_03", "sales_last_7_days"],
    )
    assert count == 2
    sheet = store.read_table("Report")
    assert sheet[0] == ["Item Number", "This year (2024) sales", "Last year (2023) sales", "This 2024-03", "Sales (7d)"]
    assert sheet[1] == ["A", 10, 0, 7, 3]
    assert sheet[2] == ["B", 0, 2, 0, 0]


def test_template_titles_and_hidden_columns(planner):
    columns = planner.plan_template(
        [
            TemplateColumn("item_number", title="SKU", order=1),
            TemplateColumn("cost_price", visible=False, order=2),
            TemplateColumn("month_sales_current", title="Monthly", order=3),
            TemplateColumn("sales_last_7_days", title="7 day sales", order=4),
        ]
    )
    assert [c.title for c in columns] == [
        "SKU",
        "This 2024-01",
        "This 2024-02",
        "This 2024-03",
        "This 2024-04",
        "This 2024-05",
        "This 2024-06",
        "7 day sales",
    ]


def test_write_template_sheet(repository, store, planner):
    count = planner.write_template(
        TabularSheetWriter(store),
        "Report",
        repository.find_all("Product"),
        [TemplateColumn("item_number"), TemplateColumn("style_number", title="Style"), TemplateColumn("year_sales_current")],
    )
    assert count == 2
    assert store.read_table("Report") == [
        ["Item Number", "Style", "This year (2024) sales"],
        ["A", "S1", 10],
        ["B", None, 0],
    ]


def test_available_fields(planner):
    fields = planner.available_fields()
    by_name = {f["field"]: f for f in fields}
    assert fields[0] == {"field": "item_number", "title": "Item Number", "type": "string", "group": "Product", "description": ""}
    assert by_name["profit"]["type"] == "computed"
    assert by_name["month_sales_current"]["group"] == "Monthly sales"
    assert by_name["sales_last_7_days"]["type"] == "summary"
    planner.plan([f["field"] for f in fields])
