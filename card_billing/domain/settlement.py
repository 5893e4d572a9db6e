"""Settlement (payment due) date calculation for monthly bills"""

import logging
from datetime import date

from card_billing.utils.date_utils import (
    DATE_FORMAT,
    add_months,
    is_business_day,
    last_day_of_month,
    next_business_day,
    parse_month,
    previous_business_day,
)

logger = logging.getLogger(__name__)


def calculate_settlement_date(charge_month: str, settlement_day: str | int) -> date:
    """
    Resolve the settlement date for a charge month.

    Rules:
    - Settlement happens in the month following the charge month
    - The preferred day is clamped to that month's last day (31 -> 30 in a 30-day month)
    - Saturdays and Sundays roll forward to the next weekday
    - A roll that would leave the settlement month falls back to the month's last weekday,
      so the date never slips into the month after; a plain day-by-day roll would
      move ("202410", "31") to 2024-12-02, this rule gives 2024-11-29

    Raises:
        InvalidChargeMonthError: charge_month is not YYYYMM
        ValueError: settlement_day is not a day number between 1 and 31

    Example:
        ("202406", "25") -> 2024-07-25 (Thursday, unchanged)
        ("202408", "21") -> 2024-09-23 (21st is a Saturday, rolled to Monday)
    """
    day = int(settlement_day)
    if not 1 <= day <= 31:
        raise ValueError(f"Settlement day out of range: {settlement_day!r}")

    settlement_month = add_months(parse_month(charge_month), 1)
    last_day = last_day_of_month(settlement_month.year, settlement_month.month)
    candidate = settlement_month.replace(day=min(day, last_day))

    if is_business_day(candidate):
        return candidate

    rolled = next_business_day(candidate)
    if rolled.month != settlement_month.month:
        return previous_business_day(candidate)
    return rolled


def compute_settlement_date(
    charge_month: str,
    settlement_day: str | int,
    today: date | None = None,
) -> str:
    """
    Settlement date as YYYYMMDD. Never raises.

    On malformed input the result degrades to one month from today, which breaks
    the same-day-every-month expectation, so the fallback is logged as a warning.
    """
    try:
        return calculate_settlement_date(charge_month, settlement_day).strftime(DATE_FORMAT)
    except (ValueError, TypeError) as e:
        fallback = add_months(today or date.today(), 1).strftime(DATE_FORMAT)
        logger.warning(
            "Settlement date calculation failed, using fallback",
            extra={
                "charge_month": charge_month,
                "settlement_day": str(settlement_day),
                "fallback_date": fallback,
                "error": str(e),
                "degraded": True,
            },
        )
        return fallback
