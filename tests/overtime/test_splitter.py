import pytest

from src.overtime_ledger.overtime_ledger.core.constants import PAID_LIMIT_MINUTES
from src.overtime_ledger.overtime_ledger.overtime.splitter import OvertimeSplitter


def test_all_paid_when_allowance_is_available():
    split = OvertimeSplitter().split(600, 8, already_paid_minutes=0)

    assert split.base_minutes == 480
    assert split.overtime_minutes == 120
    assert split.paid_minutes == 120
    assert split.unpaid_minutes == 0
    assert split.remaining_paid_before == PAID_LIMIT_MINUTES
    assert split.remaining_paid_after == PAID_LIMIT_MINUTES - 120


def test_entry_crossing_the_cap_is_split():
    split = OvertimeSplitter().split(520, 8, already_paid_minutes=4300)

    assert split.overtime_minutes == 40
    assert split.paid_minutes == 20
    assert split.unpaid_minutes == 20
    assert split.remaining_paid_after == 0


def test_everything_unpaid_once_cap_is_reached():
    split = OvertimeSplitter().split(540, 8, already_paid_minutes=PAID_LIMIT_MINUTES)

    assert split.paid_minutes == 0
    assert split.unpaid_minutes == 60


def test_baseline_above_cap_is_treated_as_exhausted():
    split = OvertimeSplitter().split(540, 8, already_paid_minutes=PAID_LIMIT_MINUTES + 100)

    assert split.remaining_paid_before == 0
    assert split.paid_minutes == 0


@pytest.mark.parametrize("worked", [0, 300, 480])
def test_no_overtime_returns_none(worked):
    assert OvertimeSplitter().split(worked, 8, already_paid_minutes=0) is None


def test_fractional_base_hours():
    splitter = OvertimeSplitter()

    assert splitter.base_minutes(7.5) == 450
    assert splitter.overtime_minutes(500, 7.5) == 50


def test_custom_paid_limit():
    split = OvertimeSplitter(paid_limit_minutes=60).split(600, 8, already_paid_minutes=30)

    assert split.paid_minutes == 30
    assert split.unpaid_minutes == 90
