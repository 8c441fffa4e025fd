from __future__ import annotations

import math
from datetime import date, datetime

import pandas as pd
import pytest

from skuops.store.converter import (
    canonical,
    coerce,
    format_date,
    is_blank,
    parse_date,
    parse_datetime,
    to_date_str,
    to_number,
    to_string,
)

"""Cell coercion at the storage boundary."""


@pytest.mark.parametrize("value", [None, "", "   ", True, False, float("nan"), pd.NaT])
def test_blank_values(value):
    assert is_blank(value)


def test_numbers_are_coerced():
    assert to_number("12") == 12
    assert isinstance(to_number(12.0), int)
    assert to_number(" 3.5 ") == 3.5
    assert to_number("abc") is None
    assert to_number(True) is None
    assert to_number(math.inf) is None


def test_strings_from_numeric_cells_drop_trailing_zero():
    assert to_string(110.0) == "110"
    assert to_string("  x ") == "  x "
    assert to_string(False) is None


def test_dates_normalize_and_strip_apostrophe():
    assert to_date_str("'2024-06-01") == "2024-06-01"
    assert to_date_str(datetime(2024, 6, 1, 13, 5)) == "2024-06-01"
    assert to_date_str(pd.Timestamp("2024-06-01")) == "2024-06-01"
    assert to_date_str("not a date") is None
    assert parse_date("2024/06/01") == date(2024, 6, 1)


def test_date_write_form_has_leading_apostrophe():
    assert format_date("2024-06-01") == "'2024-06-01"
    assert format_date(None) is None


@pytest.mark.parametrize("raw", ["2024-06-01", "'2024-06-01", date(2024, 6, 1), datetime(2024, 6, 1, 8, 30)])
def test_date_round_trip(raw):
    written = format_date(raw)
    assert coerce(written, "date") == "2024-06-01"


def test_parse_datetime_keeps_time():
    assert parse_datetime("2024-06-10 09:00:00") == datetime(2024, 6, 10, 9, 0, 0)
    assert parse_datetime(12) is None


def test_canonical_forms():
    assert canonical(None) == ""
    assert canonical(3.0) == "3"
    assert canonical(True) == "true"
    assert canonical(date(2024, 6, 1)) == "2024-06-01"
    assert canonical("A") == "A"


def test_coerce_per_type():
    assert coerce("5", "number") == 5
    assert coerce(5, "string") == "5"
    assert coerce("2024-6-1", "date") == "2024-06-01"
    assert coerce(object, "computed") is object
