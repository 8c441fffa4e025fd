from __future__ import annotations

from pathlib import Path

import pytest

from skuops.cli.__main__ import main as cli_main
from skuops.store.workbook import WorkbookTabularStore

"""Exit code contract: 0 success, 1 fatal, 2 partial consolidation failure."""

STAGING = "Import Data"


@pytest.fixture(autouse=True)
def _no_config_env(monkeypatch):
    monkeypatch.delenv("SKUOPS_CONFIG", raising=False)


@pytest.fixture()
def workbook(temp_workdir: Path, write_config) -> WorkbookTabularStore:
    return WorkbookTabularStore(temp_workdir / "data" / "operations.xlsx")


def test_missing_config_is_fatal(temp_workdir: Path, capsys):
    code = cli_main(["import"])
    assert code == 1
    assert "ERROR config:" in capsys.readouterr().out


def test_missing_workbook_is_fatal(temp_workdir: Path, write_config, capsys):
    code = cli_main(["import"])
    assert code == 1
    assert "ERROR workbook not found" in capsys.readouterr().out


def test_import_success(workbook, capsys):
    workbook.write_table(
        STAGING,
        [["Date", "Item Number", "Sales Quantity"], ["2024-06-01", "A", 3], ["2024-06-02", "B", 1]],
    )
    code = cli_main(["import"])
    out = capsys.readouterr().out
    assert code == 0
    assert "SUMMARY import entity=ProductSales mode=append total=2 new=2 updated=0" in out
    assert workbook.read_table(STAGING) == []


def test_unknown_staging_headers_are_fatal(workbook, temp_workdir: Path, capsys):
    workbook.write_table(STAGING, [["Foo", "Bar"], [1, 2]])
    code = cli_main(["import"])
    out = capsys.readouterr().out
    assert code == 1
    assert "ERROR import:" in out
    logs = list((temp_workdir / "logs").glob("errors-*.log"))
    assert len(logs) == 1
    assert "SOURCE_DATA_ERROR" in logs[0].read_text(encoding="utf-8")


def test_consolidate_without_imports_is_partial(workbook, capsys):
    workbook.write_table(STAGING, [["Product Code", "Quantity"]])
    code = cli_main(["consolidate"])
    out = capsys.readouterr().out
    assert code == 2
    assert "SUMMARY consolidate stages=0/4 products=0 errors=4" in out


def test_inspect(workbook, capsys):
    workbook.write_table(STAGING, [["Product Code", "Quantity"], ["P1", 3]])
    code = cli_main(["inspect"])
    out = capsys.readouterr().out
    assert code == 0
    assert "WORKBOOK: ./data/operations.xlsx" in out
    assert "STAGING (Import Data): rows=1 entity=Inventory" in out
