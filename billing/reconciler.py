"""
Payment reconciler

Decides, per period index, whether a registration's month is already paid
and whether it may be paid at all.

Both checks are coarse:

- paid: some payment's `payment_start` falls in the same calendar month/year
  as the period. Not an exact range match, so two enrollments whose periods
  land in the same calendar month can both match one payment.
- eligible: an index is blocked ("before registration") only when
  `index < registration month` and the current year is the registration
  year. The rule does not carry across year boundaries.
"""
from datetime import datetime
from typing import Any, Iterable, List, Optional

from loguru import logger

from .dates import parse_enrollment_date, to_utc, utc_now
from .models import Payment, PeriodStatus
from .periods import payment_month_year


def is_period_paid(payments: Iterable[Payment], enrollment_date: Any, index: int) -> bool:
    """True iff a payment's start shares the period's (month, year)"""
    month, year = payment_month_year(enrollment_date, index)

    for payment in payments:
        start = payment.payment_start
        if start.month == month and start.year == year:
            return True
    return False


def is_period_eligible(enrollment_date: Any, index: int, current_date: Optional[Any] = None) -> bool:
    """False only for indices before the registration month of the current year"""
    anchor = parse_enrollment_date(enrollment_date)
    today = to_utc(current_date) if current_date is not None else utc_now()

    # registration month is zero-based here, like the index
    before_registration = index < anchor.month - 1 and anchor.year == today.year
    return not before_registration


def period_status(
    payments: Iterable[Payment],
    enrollment_date: Any,
    index: int,
    current_date: Optional[Any] = None,
) -> PeriodStatus:
    """Status shown on a month button"""
    if not is_period_eligible(enrollment_date, index, current_date):
        return PeriodStatus.BEFORE_REGISTRATION
    if is_period_paid(payments, enrollment_date, index):
        return PeriodStatus.PAID
    return PeriodStatus.AVAILABLE


def month_grid(
    payments: Iterable[Payment],
    enrollment_date: Any,
    current_date: Optional[datetime] = None,
    months: int = 12,
) -> List[PeriodStatus]:
    """Statuses of the month picker (indices 0..months-1)"""
    payments = list(payments)
    anchor = parse_enrollment_date(enrollment_date)
    today = to_utc(current_date) if current_date is not None else utc_now()

    grid = [period_status(payments, anchor, i, today) for i in range(months)]
    logger.debug(
        f"month grid for {anchor.date()}: "
        f"{sum(1 for s in grid if s == PeriodStatus.PAID)} paid, "
        f"{sum(1 for s in grid if s == PeriodStatus.BEFORE_REGISTRATION)} blocked"
    )
    return grid
