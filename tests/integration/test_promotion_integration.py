from __future__ import annotations

from unittest.mock import Mock

import pytest

from skuops.errors import FreshnessError, SourceDataError, ValidationError
from skuops.services.promotion import LIMITED_FIELDS, LIMITED_VALUES, SHEET_NAME, PromotionSubmissionService
from skuops.store.sheet_writer import TabularSheetWriter

"""Promotion submission sheet generation."""

SPU = "SPU-00000000000000A1"


@pytest.fixture()
def ready(repository):
    repository.save(
        "BrandConfig",
        [
            {
                "brand_sn": "X",
                "packaging_fee": 1,
                "shipping_cost": 5,
                "return_processing_fee": 2,
                "vip_discount_rate": 0.05,
                "vip_discount_bearing_ratio": 0.5,
                "platform_commission": 0.1,
                "brand_commission": 0.05,
            }
        ],
    )
    base = {"brand_sn": "X", "style_number": "S1", "p_spu": SPU, "final_price": 100, "marketing_positioning": "profit-style"}
    repository.save(
        "Product",
        [
            {"item_number": "A", "item_status": "online", **base},
            {"item_number": "B", "item_status": "partially online", **base},
            {"item_number": "C", "item_status": "offline", **base},
        ],
    )
    repository.save(
        "ProductPrice",
        [
            {"item_number": "A", "cost_price": 30, "lowest_price": 80, "silver_price": 90},
            {"item_number": "B", "cost_price": 30, "lowest_price": 80, "silver_price": 95},
        ],
    )
    repository.update_system_record(
        update_date_of_regular_product="2024-06-10 08:00:00",
        update_date_of_last_7_days="2024-06-03~2024-06-09",
        update_date_of_inventory="2024-06-10 01:00:00",
    )
    return repository.load_brand_context()


@pytest.fixture()
def make_service(repository, store, app_config, clock):
    def build(writer=None):
        return PromotionSubmissionService(
            repository, repository.context.profit_calculator, writer or TabularSheetWriter(store), app_config, clock
        )
    return build


def test_gold_submission_sheet(repository, store, ready, make_service):
    result = make_service().submit("gold")

    assert result.sheet_name == SHEET_NAME
    assert result.header[:3] == ["Item Number", "Style Number", "Color"]
    assert "Activity Price" in result.header and "Is Limited" not in result.header
    sheet = store.read_table(SHEET_NAME)
    assert sheet[0] == result.header
    items = [row[0] for row in sheet[1:]]
    assert items == ["A", "B"]

    price_col = result.header.index("Activity Price")
    warn_col = result.header.index("Warnings")
    a = sheet[1]
    assert a[price_col] == 105.4
    assert "same style, different price" in a[warn_col]
    assert "silver price below final price" in a[warn_col]
    assert result.warnings == 2
    # prices were refreshed onto Product before selection
    assert repository.find_one("Product", {"item_number": "B"})["silver_price"] == 95


def test_silver_limited_keeps_one_product_per_spu(ready, make_service):
    result = make_service().submit("silver-limited")

    assert len(result.rows) == 1
    header = result.header
    row = result.rows[0]
    assert row[header.index("Item Number")] == "A"
    assert row[header.index("Activity Price")] == 85
    assert row[header.index("Is Limited")] == "yes"
    assert row[header.index("Limited Count")] == 500
    assert tuple(LIMITED_VALUES) == LIMITED_FIELDS
    assert row[-len(LIMITED_FIELDS):] == [LIMITED_VALUES[f] for f in LIMITED_FIELDS]


def test_custom_condition(ready, make_service):
    result = make_service().submit("silver", {"item_number": "A"})
    assert [row[0] for row in result.rows] == ["A"]


def test_broken_price_is_rejected(repository, ready, make_service):
    repository.update("ProductPrice", {"item_number": "B"}, {"lowest_price": 100})
    writer = Mock()
    with pytest.raises(ValidationError, match="B: silver price below lowest price"):
        make_service(writer).submit("top3")
    writer.write_sheet.assert_not_called()


def test_incomplete_price_data(repository, ready, make_service):
    repository.delete("ProductPrice", {"item_number": "B"})
    with pytest.raises(ValidationError, match="B: not found in the price table"):
        make_service(Mock()).submit("top3")


def test_stale_data_blocks_submission(repository, ready, make_service):
    repository.update_system_record(update_date_of_inventory="2024-06-09 23:00:00")
    writer = Mock()
    with pytest.raises(FreshnessError):
        make_service(writer).submit("gold")
    writer.write_sheet.assert_not_called()


def test_unknown_level(ready, make_service):
    with pytest.raises(ValidationError, match="unknown activity level"):
        make_service(Mock()).submit("platinum")


def test_nothing_selected(ready, make_service):
    with pytest.raises(SourceDataError):
        make_service(Mock()).submit("gold", {"item_status": "partially online", "brand_sn": "none"})
