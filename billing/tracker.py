"""
Registration state tracker

Unregistered -> RegisteredUnpaid -> RegisteredPaid

Enrollment fee ("matricula") payment gates all monthly billing. Every
mutation is optimistic: the local Registration is changed first and
restored if the collaborator call fails. Operations on the same
registration are not serialized.
"""
import math
import uuid
from collections import defaultdict
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from loguru import logger

from club_api.config import billing_config

from .dates import parse_enrollment_date, to_utc, utc_now
from .events import BillingEvent, BillingEventPublisher, BillingEventType
from .exceptions import (
    EnrollmentAlreadyPaid,
    EnrollmentNotPaid,
    InvalidPaymentAmount,
    PaymentSubmissionFailed,
    PeriodUnavailable,
    RegistrationUpdateFailed,
)
from .models import Group, Payment, Registration, RegistrationState, reference_id
from .periods import compute_period
from .reconciler import is_period_eligible, is_period_paid

PROVISIONAL_PREFIX = "pending-"


def _checked_amount(amount: Any, allow_zero: bool = False) -> float:
    try:
        value = float(amount)
    except (TypeError, ValueError):
        raise InvalidPaymentAmount(amount)
    if math.isnan(value) or math.isinf(value) or value < 0 or (value == 0 and not allow_zero):
        raise InvalidPaymentAmount(amount)
    return value


class RegistrationStateTracker:
    """Enrollment-fee state and monthly payments per registration"""

    def __init__(
        self,
        api,
        publisher: Optional[BillingEventPublisher] = None,
        allow_enrollment_overwrite: Optional[bool] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Args:
            api: collaborator exposing async update_registration(id, patch)
                and create_payment(record)
            publisher: billing event publisher (a private one if omitted)
            allow_enrollment_overwrite: repeat enrollment payments overwrite
                the previous one (True) or fail (False); defaults to config
            clock: current time source
        """
        if allow_enrollment_overwrite is None:
            allow_enrollment_overwrite = billing_config.allow_enrollment_overwrite

        self.api = api
        self.publisher = publisher or BillingEventPublisher()
        self.allow_enrollment_overwrite = allow_enrollment_overwrite
        self._clock = clock
        self._payments: Dict[str, List[Payment]] = defaultdict(list)

    @staticmethod
    def state_of(registration: Optional[Registration]) -> RegistrationState:
        if registration is None:
            return RegistrationState.UNREGISTERED
        return registration.state

    # ==================== recorded payments ====================

    def record_payments(self, registration_id: str, payments: Iterable[Payment]) -> None:
        """Seed known payments of a registration (e.g. loaded from the API)"""
        known = self._payments[registration_id]
        known_ids = {p.id for p in known if p.id}
        for payment in payments:
            if payment.id and payment.id in known_ids:
                continue
            known.append(payment)

    def payments_for(self, registration_id: str) -> List[Payment]:
        return list(self._payments.get(registration_id, []))

    # ==================== enrollment fee ====================

    async def pay_enrollment(
        self,
        registration: Registration,
        amount: Any,
        timestamp: Optional[Any] = None,
    ) -> Registration:
        """
        Record the enrollment fee

        A repeat call overwrites the previous timestamp/amount (last write
        wins) unless overwrites are disabled.

        Raises:
            EnrollmentAlreadyPaid: repeat call with overwrites disabled
            InvalidPaymentAmount: amount is not a non-negative number
            PaymentSubmissionFailed: update_registration failed (rolled back)
        """
        already_paid = registration.is_enrollment_paid
        if already_paid and not self.allow_enrollment_overwrite:
            raise EnrollmentAlreadyPaid(registration.id)

        value = _checked_amount(amount, allow_zero=True)
        paid_at = to_utc(timestamp) if timestamp is not None else self._clock()

        previous = {
            "registration_pay": registration.registration_pay,
            "registration_amount": registration.registration_amount,
        }
        if already_paid:
            logger.warning(
                f"Overwriting enrollment payment of registration {registration.id} "
                f"({previous['registration_pay']} / {previous['registration_amount']})"
            )

        registration.registration_pay = paid_at
        registration.registration_amount = value

        try:
            await self.api.update_registration(
                registration.id,
                {"registration_pay": paid_at.isoformat(), "registration_amount": value},
            )
        except Exception as e:
            registration.registration_pay = previous["registration_pay"]
            registration.registration_amount = previous["registration_amount"]
            logger.error(f"Enrollment payment failed for {registration.id}: {e}")
            raise PaymentSubmissionFailed(registration.id, e) from e

        self.publisher.publish(BillingEvent(
            event_type=(
                BillingEventType.ENROLLMENT_OVERWRITTEN if already_paid
                else BillingEventType.ENROLLMENT_PAID
            ),
            registration_id=registration.id,
            data={"registration_pay": paid_at.isoformat(), "registration_amount": value},
            old_data={k: (v.isoformat() if isinstance(v, datetime) else v) for k, v in previous.items()}
            if already_paid else None,
        ))
        return registration

    async def edit_registration_date(self, registration: Registration, new_date: Any) -> Registration:
        """
        Move the enrollment anchor date

        Only allowed while the enrollment fee is unpaid; once billing has
        started the anchor of every period is fixed.

        Raises:
            EnrollmentAlreadyPaid: enrollment fee already recorded
            InvalidEnrollmentDate: new_date missing or malformed
            RegistrationUpdateFailed: update_registration failed (rolled back)
        """
        if registration.is_enrollment_paid:
            raise EnrollmentAlreadyPaid(registration.id)

        anchor = parse_enrollment_date(new_date)
        previous = registration.registration_date
        registration.registration_date = anchor

        try:
            await self.api.update_registration(
                registration.id, {"registration_date": anchor.isoformat()}
            )
        except Exception as e:
            registration.registration_date = previous
            logger.error(f"Registration date update failed for {registration.id}: {e}")
            raise RegistrationUpdateFailed(registration.id, e) from e

        logger.info(f"Registration {registration.id} date: {previous.date()} -> {anchor.date()}")
        self.publisher.publish(BillingEvent(
            event_type=BillingEventType.REGISTRATION_DATE_CHANGED,
            registration_id=registration.id,
            data={"registration_date": anchor.isoformat()},
            old_data={"registration_date": previous.isoformat()},
        ))
        return registration

    # ==================== monthly fee ====================

    async def pay_period(
        self,
        registration: Registration,
        index: int,
        group: Group,
        current_date: Optional[Any] = None,
    ) -> Payment:
        """
        Pay billing period `index` of a registration at the group's monthly fee

        Raises:
            EnrollmentNotPaid: enrollment fee not recorded yet
            PeriodUnavailable: negative index, period already paid or before registration
            InvalidPaymentAmount: group has no usable monthly fee
            PaymentSubmissionFailed: create_payment failed (rolled back)
        """
        if index < 0:
            raise PeriodUnavailable(registration.id, index, "invalid index")
        if not registration.is_enrollment_paid:
            raise EnrollmentNotPaid(registration.id)

        today = to_utc(current_date) if current_date is not None else self._clock()
        anchor = registration.registration_date
        known = self.payments_for(registration.id)

        if not is_period_eligible(anchor, index, today):
            raise PeriodUnavailable(registration.id, index, "before registration")
        if is_period_paid(known, anchor, index):
            raise PeriodUnavailable(registration.id, index, "already paid")

        amount = _checked_amount(group.monthly_fee)
        period = compute_period(anchor, index)
        payment = Payment(
            athlete_id=registration.athlete_id,
            group_id=registration.group_id,
            amount=amount,
            payment_date=self._clock(),
            payment_start=period.start,
            payment_end=period.end,
        )

        provisional_id = f"{PROVISIONAL_PREFIX}{uuid.uuid4().hex}"
        registration.monthly_payments.append(provisional_id)

        try:
            response = await self.api.create_payment(payment.to_record())
        except Exception as e:
            registration.monthly_payments.remove(provisional_id)
            logger.error(f"Payment of period {index} failed for {registration.id}: {e}")
            self.publisher.publish(BillingEvent(
                event_type=BillingEventType.PAYMENT_ROLLED_BACK,
                registration_id=registration.id,
                data={"index": index, "error": str(e)},
            ))
            raise PaymentSubmissionFailed(registration.id, e) from e

        payment_id = reference_id(response)
        if payment_id:
            position = registration.monthly_payments.index(provisional_id)
            registration.monthly_payments[position] = payment_id
        else:
            logger.warning(f"create_payment returned no id; keeping {provisional_id}")
            payment_id = provisional_id

        saved = payment.model_copy(update={"id": payment_id})
        self._payments[registration.id].append(saved)

        logger.info(
            f"Period {index} paid for {registration.id}: "
            f"{period.start.date()} ~ {period.end.date()} ({amount})"
        )
        self.publisher.publish(BillingEvent(
            event_type=BillingEventType.PAYMENT_CREATED,
            registration_id=registration.id,
            data={"payment_id": payment_id, "index": index, **payment.to_record()},
        ))
        return saved
