"""Date manipulation utilities for charge months and settlement dates"""

import re
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from dateutil.relativedelta import relativedelta

from card_billing.domain.exceptions import InvalidChargeMonthError

MONTH_FORMAT = "%Y%m"
DATE_FORMAT = "%Y%m%d"
TIME_FORMAT = "%H%M%S"

_MONTH_PATTERN = re.compile(r"^\d{6}$")


def now_in(tz_name: str) -> datetime:
    """Current wall-clock time in the issuer's timezone"""
    return datetime.now(ZoneInfo(tz_name))


def format_month(d: date) -> str:
    return d.strftime(MONTH_FORMAT)


def parse_month(charge_month: str) -> date:
    """Parse YYYYMM into the first day of that month"""
    if not isinstance(charge_month, str) or not _MONTH_PATTERN.match(charge_month):
        raise InvalidChargeMonthError(f"Charge month must be YYYYMM, got {charge_month!r}")
    year, month = int(charge_month[:4]), int(charge_month[4:])
    if not 1 <= month <= 12:
        raise InvalidChargeMonthError(f"Month out of range in {charge_month!r}")
    return date(year, month, 1)


def add_months(d: date, months: int) -> date:
    """Shift a date by whole months, clamping the day to the target month's length"""
    return d + relativedelta(months=months)


def previous_month(charge_month: str) -> str:
    return format_month(add_months(parse_month(charge_month), -1))


def last_day_of_month(year: int, month: int) -> int:
    return (date(year, month, 1) + relativedelta(day=31)).day


def is_business_day(d: date) -> bool:
    """Monday-Friday; no holiday calendar is consulted"""
    return d.weekday() < 5


def next_business_day(d: date) -> date:
    """Roll forward day by day until a weekday is reached (d itself if it is one)"""
    while not is_business_day(d):
        d += timedelta(days=1)
    return d


def previous_business_day(d: date) -> date:
    while not is_business_day(d):
        d -= timedelta(days=1)
    return d
