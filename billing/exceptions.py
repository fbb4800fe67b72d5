"""
Billing errors
"""
from typing import Optional


class BillingError(Exception):
    """Base class for billing engine errors"""


class InvalidEnrollmentDate(BillingError, ValueError):
    """Enrollment date is missing or cannot be parsed"""

    def __init__(self, value, message: Optional[str] = None):
        self.value = value
        super().__init__(message or f"Invalid enrollment date: {value!r}")


class EnrollmentNotPaid(BillingError):
    """Monthly billing attempted before the enrollment fee was recorded"""

    def __init__(self, registration_id: Optional[str]):
        self.registration_id = registration_id
        super().__init__(
            f"Registration {registration_id} has no enrollment payment; "
            "record the enrollment fee first"
        )


class EnrollmentAlreadyPaid(BillingError):
    """Enrollment fee recorded twice while overwrites are disabled"""

    def __init__(self, registration_id: Optional[str]):
        self.registration_id = registration_id
        super().__init__(f"Registration {registration_id} enrollment fee is already paid")


class PeriodUnavailable(BillingError):
    """Billing period is already paid or not yet billable"""

    def __init__(self, registration_id: Optional[str], index: int, reason: str):
        self.registration_id = registration_id
        self.index = index
        self.reason = reason
        super().__init__(f"Period {index} of registration {registration_id} unavailable: {reason}")


class InvalidPaymentAmount(BillingError, ValueError):
    """Group monthly fee is missing or not a positive number"""

    def __init__(self, amount):
        self.amount = amount
        super().__init__(f"Invalid payment amount: {amount!r}")


class PaymentSubmissionFailed(BillingError):
    """Remote payment call failed; local state was rolled back"""

    def __init__(self, registration_id: Optional[str], cause: Exception):
        self.registration_id = registration_id
        self.cause = cause
        super().__init__(f"Payment for registration {registration_id} failed: {cause}")


class RegistrationUpdateFailed(BillingError):
    """Remote registration update failed; local state was rolled back"""

    def __init__(self, registration_id: Optional[str], cause: Exception):
        self.registration_id = registration_id
        self.cause = cause
        super().__init__(f"Update of registration {registration_id} failed: {cause}")
