from datetime import date, datetime

import pytest

from src.overtime_ledger.overtime_ledger.common.datetime_utils import format_minutes, minutes_to_hours, parse_iso_date
from src.overtime_ledger.overtime_ledger.common.validators import clean_notes, optional_month_year, require_id
from src.overtime_ledger.overtime_ledger.core.exceptions import ValidationError


def test_parse_iso_date_accepts_dates_and_strings():
    assert parse_iso_date("2024-03-04") == date(2024, 3, 4)
    assert parse_iso_date(datetime(2024, 3, 4, 23, 59)) == date(2024, 3, 4)


def test_format_minutes():
    assert format_minutes(420) == "7h 0m"
    assert format_minutes(75) == "1h 15m"
    assert minutes_to_hours(90) == 1.5


def test_month_and_year_go_together():
    assert optional_month_year(None, None) == (None, None)
    assert optional_month_year("3", "2024") == (3, 2024)
    with pytest.raises(ValidationError, match="Both month and year"):
        optional_month_year(3, "")


def test_require_id_and_notes():
    assert require_id("7", "worker_id") == 7
    with pytest.raises(ValidationError, match="entry_id"):
        require_id("x", "entry_id")
    assert clean_notes(None) == ""
    assert clean_notes("  late delivery ") == "late delivery"
