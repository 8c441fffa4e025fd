from __future__ import annotations

import pytest

from skuops.errors import SchemaError, ValidationError
from skuops.services.report_templates import DEFAULT_COLUMNS, DEFAULT_TEMPLATES, ReportTemplateCatalog


def test_initialize_defaults_once(repository):
    catalog = ReportTemplateCatalog(repository)
    assert catalog.template_names() == []
    assert catalog.initialize_defaults() == 3
    assert catalog.template_names() == ["Inventory alert", "Profit analysis", "Sales ranking"]
    assert [c.field for c in catalog.get("Sales ranking")] == list(DEFAULT_TEMPLATES["Sales ranking"])
    assert catalog.initialize_defaults() == 0
    assert len(repository.find_all("ReportTemplate")) == sum(len(f) for f in DEFAULT_TEMPLATES.values())


def test_columns_follow_display_order(repository):
    repository.save(
        "ReportTemplate",
        [
            {"template_name": "Mine", "field_name": "color", "display_order": 3},
            {"template_name": "Mine", "field_name": "item_number", "display_order": 1, "column_title": "SKU"},
            {"template_name": "Mine", "field_name": "cost_price", "display_order": 2, "is_visible": "no", "column_width": 8},
        ],
    )
    columns = ReportTemplateCatalog(repository).get("Mine")
    assert [(c.field, c.title, c.visible) for c in columns] == [
        ("item_number", "SKU", True),
        ("cost_price", None, False),
        ("color", None, True),
    ]
    assert columns[1].width == 8


def test_current_template_and_default_columns(repository):
    catalog = ReportTemplateCatalog(repository)
    assert catalog.current is None
    assert [c.field for c in catalog.current_columns()] == list(DEFAULT_COLUMNS)

    assert catalog.set_current("Profit analysis") is False
    catalog.initialize_defaults()
    assert catalog.set_current("Profit analysis") is True
    assert catalog.current == "Profit analysis"
    assert catalog.current_columns()[2].field == "marketing_positioning"


def test_refresh_picks_up_worksheet_edits(repository):
    catalog = ReportTemplateCatalog(repository)
    catalog.initialize_defaults()
    repository.save("ReportTemplate", [{"template_name": "Only", "field_name": "item_number"}])
    assert catalog.template_names() == ["Inventory alert", "Profit analysis", "Sales ranking"]
    catalog.refresh()
    assert catalog.template_names() == ["Only"]


def test_unknown_template(repository):
    with pytest.raises(SchemaError, match="unknown report template: Nope"):
        ReportTemplateCatalog(repository).get("Nope")


def test_visible_flag_is_validated(repository):
    with pytest.raises(ValidationError, match="Visible"):
        repository.save("ReportTemplate", [{"template_name": "T", "field_name": "color", "is_visible": "maybe"}])
