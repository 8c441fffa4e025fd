from __future__ import annotations

import pytest

from skuops.config.loader import DEFAULT_IMPORTABLE
from skuops.errors import SchemaError
from skuops.services.entity_identifier import EntityIdentifier
from skuops.schema.registry import default_registry


@pytest.fixture()
def identifier():
    return EntityIdentifier(default_registry(), DEFAULT_IMPORTABLE)


def test_identify_by_required_titles(identifier):
    headers = ["Date", "Item Number", "Sales Quantity", "Sales Amount"]
    assert identifier.identify(headers).name == "ProductSales"
    assert identifier.identify(["Product Code", "Quantity", "Return Warehouse"]).name == "Inventory"


def test_largest_required_set_wins(identifier):
    # combo headers also satisfy Inventory's "Product Code" + "Quantity"
    headers = ["Combo Product Code", "Product Code", "Quantity"]
    assert identifier.identify(headers).name == "ComboProduct"


def test_titles_are_trimmed(identifier):
    assert identifier.identify([" Brand SN ", "Platform Commission", "Brand Commission "]).name == "BrandConfig"


def test_unknown_headers(identifier):
    assert identifier.identify(["Foo", "Bar"]) is None
    assert identifier.identify([]) is None


def test_non_importable_entities_are_not_candidates():
    identifier = EntityIdentifier(default_registry(), {"ProductSales": "append"})
    assert identifier.identify(["Product Code", "Quantity"]) is None
    assert not identifier.can_import("Inventory")


def test_import_modes(identifier):
    assert identifier.get_import_mode("ProductSales") == "append"
    assert identifier.get_import_mode("Inventory") == "overwrite"
    with pytest.raises(SchemaError, match="not importable"):
        identifier.get_import_mode("Product")


def test_append_requires_unique_key():
    identifier = EntityIdentifier(default_registry(), {"RegularProduct": "append"})
    with pytest.raises(SchemaError, match="no unique key"):
        identifier.get_import_mode("RegularProduct")


def test_bad_configuration_is_rejected():
    with pytest.raises(SchemaError, match="unknown import mode"):
        EntityIdentifier(default_registry(), {"Inventory": "merge"})
    with pytest.raises(SchemaError, match="unknown entity"):
        EntityIdentifier(default_registry(), {"Nope": "overwrite"})


def test_describe_required_titles(identifier):
    lines = identifier.describe_required_titles().splitlines()
    assert "  Product Sales: Date, Item Number, Sales Quantity" in lines
    assert len(lines) == len(DEFAULT_IMPORTABLE)
