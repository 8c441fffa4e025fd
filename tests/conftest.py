# Shared pytest fixtures
from __future__ import annotations
import tempfile
from datetime import date, datetime
from pathlib import Path
from typing import Any

import pytest

from skuops.config.loader import default_config
from skuops.logging.init import reset_logging
from skuops.repository.context import ComputeContext
from skuops.repository.repository import Repository
from skuops.schema.registry import default_registry
from skuops.store.tabular import InMemoryTabularStore

TODAY = date(2024, 6, 10)
NOW = datetime(2024, 6, 10, 9, 0, 0)


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return """workbook: ./data/operations.xlsx
staging_table: Import Data
log_directory: ./logs
importable_entities:
  ProductPrice: overwrite
  RegularProduct: overwrite
  Inventory: overwrite
  ComboProduct: overwrite
  ProductSales: append
  BrandConfig: overwrite
freshness:
  default_hours: 12
  promotion_regular_product_hours: 5
combo_skip_prefixes: [YH, FL]
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "skuops.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture(autouse=True)
def _clean_logging():
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def clock():
    return lambda: NOW


@pytest.fixture()
def app_config():
    return default_config("./data/operations.xlsx")


@pytest.fixture()
def store() -> InMemoryTabularStore:
    return InMemoryTabularStore()


@pytest.fixture()
def repository(store: InMemoryTabularStore) -> Repository:
    return Repository(store, context=ComputeContext(today=TODAY))


@pytest.fixture()
def table_of():
    """Build a raw table (title row first) for an entity from field-keyed dicts."""
    registry = default_registry()

    def build(entity_name: str, rows: list[dict[str, Any]], fields: list[str] | None = None) -> list[list[Any]]:
        entity = registry.get(entity_name)
        names = fields or [n for n in entity.persisted_fields() if any(n in r for r in rows)]
        return [[entity.fields[n].title for n in names], *[[r.get(n) for n in names] for r in rows]]

    return build
