"""
Billing period calculator

Monthly windows are anchored to the day-of-month of enrollment, not to
calendar-month boundaries:

    enrollment 2024-01-15, index 0  ->  2024-01-15 00:00:00 .. 2024-02-14 23:59:59
    enrollment 2024-01-15, index 11 ->  2024-12-15 00:00:00 .. 2025-01-14 23:59:59

When the anchor day does not exist in a target month (enrollment on the
31st, February, ...) the day is clamped to the month's last day, and each
period ends one second before the next period starts.
"""
import calendar
from datetime import datetime, timedelta, timezone
from typing import Any, List, Tuple

from .dates import parse_enrollment_date
from .models import BillingPeriod


def payment_month_year(enrollment_date: Any, index: int) -> Tuple[int, int]:
    """
    Calendar (month, year) a period index falls in

    Args:
        enrollment_date: registration anchor date
        index: months since the anchor month (>= 0)

    Returns:
        (month 1-12, year)
    """
    if index < 0:
        raise ValueError(f"period index must be >= 0, got {index}")

    anchor = parse_enrollment_date(enrollment_date)

    # zero-based month arithmetic
    payment_month = anchor.month - 1 + index
    payment_year = anchor.year
    while payment_month >= 12:
        payment_month -= 12
        payment_year += 1

    return payment_month + 1, payment_year


def _anchored_day(year: int, month: int, day: int) -> datetime:
    last_day = calendar.monthrange(year, month)[1]
    return datetime(year, month, min(day, last_day), tzinfo=timezone.utc)


def _next_month(month: int, year: int) -> Tuple[int, int]:
    if month == 12:
        return 1, year + 1
    return month + 1, year


def compute_period(enrollment_date: Any, index: int) -> BillingPeriod:
    """
    Billing period for an enrollment date and a period index

    Raises:
        InvalidEnrollmentDate: enrollment date missing or malformed
        ValueError: negative index
    """
    anchor = parse_enrollment_date(enrollment_date)
    month, year = payment_month_year(anchor, index)
    next_month, next_year = _next_month(month, year)

    start = _anchored_day(year, month, anchor.day)
    end = _anchored_day(next_year, next_month, anchor.day) - timedelta(seconds=1)

    return BillingPeriod(index=index, start=start, end=end)


def compute_periods(enrollment_date: Any, count: int = 12) -> List[BillingPeriod]:
    """First `count` billing periods of an enrollment"""
    anchor = parse_enrollment_date(enrollment_date)
    return [compute_period(anchor, i) for i in range(count)]
