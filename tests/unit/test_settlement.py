"""Unit tests for settlement date calculation"""

import logging
import pytest
from datetime import date, datetime

from card_billing.domain.exceptions import InvalidChargeMonthError
from card_billing.domain.settlement import calculate_settlement_date, compute_settlement_date
from card_billing.utils.date_utils import last_day_of_month


def test_settlement_date_on_weekday_is_unchanged():
    """2024-07-25 is a Thursday"""
    assert compute_settlement_date("202406", "25") == "20240725"


def test_settlement_date_weekend_rolls_forward():
    """2024-09-21 is a Saturday, next weekday is Monday the 23rd"""
    assert compute_settlement_date("202408", "21") == "20240923"


def test_settlement_date_crosses_year_boundary():
    """December charges settle in January; 2025-01-25 is a Saturday"""
    assert compute_settlement_date("202412", "25") == "20250127"


def test_settlement_day_clamped_to_short_month():
    """Day 30 against February clamps to the month's actual last day"""
    assert compute_settlement_date("202401", "30") == "20240229"  # leap year, Thursday
    assert compute_settlement_date("202301", "31") == "20230228"  # Tuesday


def test_settlement_roll_stays_within_settlement_month():
    """2024-03-31 is a Sunday; rolling forward would leave March, so use the last weekday"""
    assert compute_settlement_date("202402", "31") == "20240329"
    # 2024-11-30 is a Saturday; December is never used
    assert compute_settlement_date("202410", "31") == "20241129"


def test_settlement_accepts_integer_day():
    assert calculate_settlement_date("202406", 25) == date(2024, 7, 25)


@pytest.mark.parametrize("charge_month", ["202312", "202401", "202402", "202403", "202406", "202408", "202411"])
@pytest.mark.parametrize("day", [1, 6, 15, 28, 29, 30, 31])
def test_settlement_date_law(charge_month: str, day: int):
    """Following month, Monday-Friday, never past that month's last day"""
    settlement = datetime.strptime(compute_settlement_date(charge_month, day), "%Y%m%d").date()

    year, month = int(charge_month[:4]), int(charge_month[4:])
    expected_year, expected_month = (year + 1, 1) if month == 12 else (year, month + 1)

    assert (settlement.year, settlement.month) == (expected_year, expected_month)
    assert settlement.weekday() < 5
    assert settlement.day <= last_day_of_month(expected_year, expected_month)


def test_calculate_settlement_date_rejects_bad_input():
    with pytest.raises(InvalidChargeMonthError):
        calculate_settlement_date("2024-6", "25")
    with pytest.raises(ValueError):
        calculate_settlement_date("202406", "0")
    with pytest.raises(ValueError):
        calculate_settlement_date("202406", "twenty")


def test_compute_settlement_date_falls_back_and_logs(caplog: pytest.LogCaptureFixture):
    """Malformed input degrades to one month from today instead of failing"""
    with caplog.at_level(logging.WARNING, logger="card_billing.domain.settlement"):
        result = compute_settlement_date("2024-06", "25", today=date(2024, 1, 31))

    assert result == "20240229"
    degraded = [r for r in caplog.records if getattr(r, "degraded", False)]
    assert len(degraded) == 1
    assert degraded[0].levelname == "WARNING"
