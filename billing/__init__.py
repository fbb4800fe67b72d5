"""
Membership billing-cycle engine

- Billing periods anchored to the enrollment day-of-month
- Payment reconciliation against those periods
- Enrollment-fee ("matricula") gating of monthly billing
"""

from .exceptions import (
    BillingError,
    InvalidEnrollmentDate,
    EnrollmentNotPaid,
    EnrollmentAlreadyPaid,
    PeriodUnavailable,
    InvalidPaymentAmount,
    PaymentSubmissionFailed,
    RegistrationUpdateFailed,
)
from .models import (
    BillingPeriod,
    Club,
    Group,
    Payment,
    Registration,
    RegistrationState,
    PeriodStatus,
    MemberCount,
)
from .periods import compute_period, compute_periods, payment_month_year
from .reconciler import is_period_paid, is_period_eligible, period_status, month_grid
from .tracker import RegistrationStateTracker
from .events import BillingEvent, BillingEventType, BillingEventPublisher

__all__ = [
    # Errors
    "BillingError",
    "InvalidEnrollmentDate",
    "EnrollmentNotPaid",
    "EnrollmentAlreadyPaid",
    "PeriodUnavailable",
    "InvalidPaymentAmount",
    "PaymentSubmissionFailed",
    "RegistrationUpdateFailed",
    # Models
    "BillingPeriod",
    "Club",
    "Group",
    "Payment",
    "Registration",
    "RegistrationState",
    "PeriodStatus",
    "MemberCount",
    # Periods
    "compute_period",
    "compute_periods",
    "payment_month_year",
    # Reconciler
    "is_period_paid",
    "is_period_eligible",
    "period_status",
    "month_grid",
    # Tracker
    "RegistrationStateTracker",
    # Events
    "BillingEvent",
    "BillingEventType",
    "BillingEventPublisher",
]
