from __future__ import annotations

from datetime import date, datetime

import pytest

from skuops.errors import AdapterError, SourceDataError, StateError, TransactionError, UniquenessError, ValidationError
from skuops.repository.context import ComputeContext
from skuops.repository.repository import Repository

TODAY = date(2024, 6, 10)

"""Repository reads, writes and cache behaviour over an in-memory store."""


@pytest.fixture()
def seeded(store, repository):
    repository.save(
        "Product",
        [
            {"item_number": "A", "brand_sn": "X", "item_status": "online", "marketing_positioning": "profit-style"},
            {"item_number": "B", "brand_sn": "X", "item_status": "online", "marketing_positioning": "traffic-style"},
            {"item_number": "C", "brand_sn": "X", "item_status": "offline", "marketing_positioning": "profit-style"},
            {"item_number": "D", "brand_sn": "Y", "item_status": "online", "marketing_positioning": "profit-style"},
        ],
    )
    return repository


def _items(rows):
    return sorted(r["item_number"] for r in rows)


def test_duplicate_unique_key_leaves_state_untouched(seeded, store):
    before = seeded.find_all("Product")
    writes = store.write_count
    with pytest.raises(UniquenessError):
        seeded.save("Product", [{"item_number": "A"}, {"item_number": "A"}])
    assert seeded.find_all("Product") == before
    assert store.write_count == writes


def test_validation_error_is_not_uniqueness(seeded):
    with pytest.raises(ValidationError) as info:
        seeded.save("Product", [{"item_number": "A", "tag_price": -3}])
    assert not isinstance(info.value, UniquenessError)
    assert "Row 2" in str(info.value)


def test_prefix_index_query_filters_remaining_fields(seeded):
    cond = {"brand_sn": "X", "item_status": "online", "marketing_positioning": "profit-style"}
    assert _items(seeded.find("Product", cond)) == ["A"]
    wider = seeded.find("Product", {"brand_sn": "X", "item_status": "online"})
    assert _items(wider) == ["A", "B"]


def test_find_matches_brute_force_scan(seeded):
    for cond in ({"brand_sn": "X"}, {"item_status": "online"}, {"brand_sn": "Y", "item_status": "online"}):
        expected = [r for r in seeded.find_all("Product") if all(r.get(k) == v for k, v in cond.items())]
        assert _items(seeded.find("Product", cond)) == _items(expected)


def test_blank_condition_matches_scan(repository):
    repository.save("Product", [{"item_number": "A", "style_number": "S1"}, {"item_number": "B"}])
    scan = [r["item_number"] for r in repository.find_all("Product") if not r.get("style_number")]
    assert scan == ["B"]
    assert _items(repository.find("Product", {"style_number": ""})) == scan
    assert _items(repository.find("Product", {"style_number": ["", "S1"]})) == ["A", "B"]
    assert _items(repository.find("Product", {"style_number": ["S1"]})) == ["A"]


def test_find_ignores_none_and_accepts_lists(seeded):
    assert _items(seeded.find("Product", {"brand_sn": "X", "item_status": None})) == ["A", "B", "C"]
    assert _items(seeded.find("Product", {"item_status": ["offline"], "brand_sn": ["X", "Y"]})) == ["C"]


def test_find_one_uses_unique_index(seeded):
    assert seeded.find_one("Product", {"item_number": "C"})["item_status"] == "offline"
    assert seeded.find_one("Product", {"item_number": "Z"}) is None


def test_reads_are_snapshots(seeded):
    row = seeded.find_one("Product", {"item_number": "A"})
    row["brand_sn"] = "changed"
    seeded.find_all("Product")[0]["brand_sn"] = "changed"
    assert seeded.find_one("Product", {"item_number": "A"})["brand_sn"] == "X"


def test_round_trip_through_store(store, repository):
    rows = [
        {"item_number": "A", "first_listing_time": "2024-06-01", "tag_price": 129, "brand_sn": "X"},
        {"item_number": "B", "first_listing_time": "2024-05-01", "tag_price": 59.9},
    ]
    repository.save("Product", rows)
    fresh = Repository(store, context=ComputeContext(today=TODAY))
    loaded = fresh.find_all("Product")
    assert [(r["item_number"], r["first_listing_time"], r["tag_price"]) for r in loaded] == [
        ("A", "2024-06-01", 129),
        ("B", "2024-05-01", 59.9),
    ]
    # dates are stored as text with a leading apostrophe
    raw = store.read_table("Products")
    column = raw[0].index("First Listing Time")
    assert raw[1][column] == "'2024-06-01"


def test_computed_fields_are_pure_and_not_persisted(store, repository):
    repository.save("Product", [{"item_number": "A", "first_listing_time": "2024-06-01", "mid": "6912345678901234567"}])
    first = repository.refresh("Product")
    second = repository.refresh("Product")
    assert first[0]["sales_age"] == second[0]["sales_age"] == 9
    assert first[0]["link"].endswith("6912345678901234567.html")
    assert "Sales Age" not in store.read_table("Products")[0]


def test_missing_table_raises_adapter_error(repository):
    with pytest.raises(AdapterError):
        repository.find_all("Inventory")
    assert not repository.exists("Inventory")


def test_missing_required_title_is_source_data_error(store):
    store.write_table("Inventory", [["Product Code"], ["P1"]])
    with pytest.raises(SourceDataError, match="Quantity"):
        Repository(store).find_all("Inventory")


def test_add_assigns_row_number_and_rejects_duplicates(seeded):
    added = seeded.add("Product", {"item_number": "E"})
    assert added["_row_number"] == 6
    with pytest.raises(UniquenessError):
        seeded.add("Product", {"item_number": "E"})


def test_add_validate_only_does_not_write(seeded, store):
    writes = store.write_count
    seeded.add("Product", {"item_number": "E"}, validate_only=True)
    assert store.write_count == writes
    assert seeded.find_one("Product", {"item_number": "E"}) is None


def test_add_many_is_all_or_nothing(seeded):
    with pytest.raises(UniquenessError):
        seeded.add_many("Product", [{"item_number": "E"}, {"item_number": "E"}])
    assert seeded.find_one("Product", {"item_number": "E"}) is None
    added = seeded.add_many("Product", [{"item_number": "E"}, {"item_number": "F"}])
    assert [r["item_number"] for r in added] == ["E", "F"]


def test_update_single_and_multi(seeded):
    assert seeded.update("Product", {"item_number": "A"}, {"color": "red"}) == 1
    with pytest.raises(StateError, match="multi=True"):
        seeded.update("Product", {"brand_sn": "X"}, {"color": "blue"})
    assert seeded.update_many("Product", {"brand_sn": "X"}, {"color": "blue"}) == 3
    assert seeded.find_one("Product", {"item_number": "A"})["color"] == "blue"


def test_update_without_match(seeded):
    with pytest.raises(StateError, match="no row matches"):
        seeded.update("Product", {"item_number": "Z"}, {"color": "red"})
    assert seeded.update("Product", {"item_number": "Z"}, {"color": "red"}, upsert=True) == 1
    assert seeded.find_one("Product", {"item_number": "Z"})["color"] == "red"


def test_update_cannot_create_duplicate(seeded):
    with pytest.raises(UniquenessError):
        seeded.update("Product", {"item_number": "A"}, {"item_number": "B"})


def test_upsert(seeded):
    assert seeded.upsert("Product", {"item_number": "A", "color": "red"}) == "updated"
    assert seeded.upsert("Product", {"item_number": "N", "color": "red"}) == "inserted"
    with pytest.raises(StateError):
        seeded.upsert("Product", {"color": "red"})


def test_delete(seeded):
    assert seeded.delete("Product", {"item_number": "A"}) == 1
    with pytest.raises(StateError):
        seeded.delete("Product", {"brand_sn": "X"})
    assert seeded.delete("Product", {"brand_sn": "X"}, multi=True) == 2
    assert _items(seeded.find_all("Product")) == ["D"]


def test_transaction_keeps_earlier_saves(repository):
    with pytest.raises(TransactionError) as info:
        repository.transaction(
            {
                "Product": [{"item_number": "A"}],
                "Inventory": [{"product_code": "P1", "main_inventory": 1}, {"product_code": "P1", "main_inventory": 2}],
            }
        )
    assert [name for name, _ in info.value.errors] == ["Inventory"]
    assert _items(repository.find_all("Product")) == ["A"]


def test_clear_empties_table_and_cache(seeded, store):
    seeded.clear("Product")
    assert store.read_table("Products") == []
    with pytest.raises(SourceDataError):
        seeded.find_all("Product")


def test_register_indexes_after_load(seeded):
    seeded.register_indexes("Product", [["color"], {"fields": "brand_sn+marketing_positioning"}])
    engine = seeded.index_engine()
    assert engine.has_index("Product", ["color"])
    assert engine.has_index("Product", ["brand_sn", "marketing_positioning"])


def test_system_record_stamps_timestamps(repository):
    assert repository.get_system_record() == {}
    record = repository.update_system_record(import_date_of_inventory=datetime(2024, 6, 10, 8, 30, 5))
    assert record["import_date_of_inventory"] == "2024-06-10 08:30:05"
    repository.update_system_record(update_date_of_inventory="2024-06-10 09:00:00")
    assert len(repository.find_all("SystemRecord")) == 1


def test_brand_context_enables_profit(store, repository):
    repository.save(
        "BrandConfig",
        [{"brand_sn": "X", "platform_commission": 0.1, "brand_commission": 0.05, "vip_discount_rate": 0.05}],
    )
    repository.save("Product", [{"item_number": "A", "brand_sn": "X", "cost_price": 50, "final_price": 100}])
    assert repository.find_one("Product", {"item_number": "A"})["profit"] is None
    repository.load_brand_context()
    product = repository.find_one("Product", {"item_number": "A"})
    assert product["profit"] is not None
    assert product["super_vip_price"] == 95
