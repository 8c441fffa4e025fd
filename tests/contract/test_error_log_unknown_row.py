from __future__ import annotations

import json
from pathlib import Path

import pytest

from skuops.errors import AdapterError, FreshnessError, SourceDataError
from skuops.logging.error_log import ErrorLogBuffer

"""Table-level failures are logged with the row sentinel -1.

Only row-level validation failures carry a real row number (first data row
is 2); everything that cannot be pinned to one row uses -1.
"""


@pytest.mark.parametrize(
    "exc, error_type",
    [
        (SourceDataError("no entity matches the staging headers"), "SOURCE_DATA_ERROR"),
        (AdapterError("table not found", worksheet="Import Data", operation="read"), "ADAPTER_ERROR"),
        (FreshnessError("Inventory imported 13.0h ago (limit 12h)"), "FRESHNESS_ERROR"),
    ],
)
def test_table_level_errors_use_minus_one(tmp_path: Path, exc, error_type):
    buffer = ErrorLogBuffer(tmp_path)
    buffer.record_exception("Import Data", "-", exc)
    record = json.loads(buffer.flush().read_text(encoding="utf-8").splitlines()[0])
    assert record["row"] == -1
    assert record["error_type"] == error_type
    assert record["entity"] == "-"


def test_row_level_error_keeps_row_number(tmp_path: Path):
    buffer = ErrorLogBuffer(tmp_path)
    record = buffer.record_exception("Import Data", "Inventory", SourceDataError("bad"), row=7)
    assert record.row == 7
