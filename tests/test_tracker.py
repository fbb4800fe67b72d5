"""
Unit tests for the registration state tracker

Tests cover:
1. Lifecycle states
2. Enrollment payment (last write wins, strict mode, rollback)
3. Monthly payment gating on the enrollment fee
4. Period availability, fee validation
5. Optimistic append and rollback of monthly payments
6. Enrollment date editing while unpaid
"""

import pytest
from unittest.mock import AsyncMock

from billing.events import BillingEventPublisher, BillingEventType
from billing.exceptions import (
    BillingError,
    EnrollmentAlreadyPaid,
    EnrollmentNotPaid,
    InvalidEnrollmentDate,
    InvalidPaymentAmount,
    PaymentSubmissionFailed,
    PeriodUnavailable,
    RegistrationUpdateFailed,
)
from billing.models import Group, Registration, RegistrationState
from billing.periods import compute_period
from billing.tracker import PROVISIONAL_PREFIX, RegistrationStateTracker
from club_api.client import ClubApiError

from conftest import make_payment, utc


def make_tracker(api, now, **kwargs):
    publisher = BillingEventPublisher()
    tracker = RegistrationStateTracker(api, publisher=publisher, clock=lambda: now, **kwargs)
    return tracker, publisher


# =============================================================================
# States
# =============================================================================

class TestRegistrationState:
    """Lifecycle states"""

    def test_unregistered(self):
        assert RegistrationStateTracker.state_of(None) == RegistrationState.UNREGISTERED

    def test_registered_unpaid(self, unpaid_registration):
        assert RegistrationStateTracker.state_of(unpaid_registration) == RegistrationState.REGISTERED_UNPAID

    def test_registered_paid(self, paid_registration):
        assert RegistrationStateTracker.state_of(paid_registration) == RegistrationState.REGISTERED_PAID

    def test_populated_references_normalized(self, unpaid_registration):
        assert unpaid_registration.athlete_id == "ath1"
        assert unpaid_registration.athlete_name == "Ana"
        assert unpaid_registration.group_id == "grp1"
        assert unpaid_registration.group_name == "Sub-12"

    def test_payments_without_enrollment_rejected(self):
        """monthly_payments must be empty while registration_pay is null"""
        with pytest.raises(ValueError):
            Registration.model_validate({
                "_id": "bad",
                "athlete_id": "a",
                "group_id": "g",
                "registration_date": "2024-01-15",
                "registration_pay": None,
                "monthly_payments": ["pay1"],
            })


# =============================================================================
# Enrollment fee
# =============================================================================

@pytest.mark.asyncio
class TestPayEnrollment:
    """Tests for pay_enrollment"""

    async def test_records_enrollment(self, fake_api, unpaid_registration, fixed_now):
        tracker, publisher = make_tracker(fake_api, fixed_now)

        await tracker.pay_enrollment(unpaid_registration, 200, utc(2024, 1, 20, 9))

        assert unpaid_registration.registration_pay == utc(2024, 1, 20, 9)
        assert unpaid_registration.registration_amount == 200
        assert unpaid_registration.state == RegistrationState.REGISTERED_PAID
        fake_api.update_registration.assert_awaited_once_with(
            "reg1",
            {"registration_pay": "2024-01-20T09:00:00+00:00", "registration_amount": 200.0},
        )
        assert publisher.get_recent_events()[-1].event_type == BillingEventType.ENROLLMENT_PAID

    async def test_defaults_to_clock(self, fake_api, unpaid_registration, fixed_now):
        tracker, _ = make_tracker(fake_api, fixed_now)

        await tracker.pay_enrollment(unpaid_registration, 200)

        assert unpaid_registration.registration_pay == fixed_now

    async def test_second_call_last_write_wins(self, fake_api, unpaid_registration, fixed_now):
        """No guard: a repeat call overwrites timestamp and amount"""
        tracker, publisher = make_tracker(fake_api, fixed_now, allow_enrollment_overwrite=True)

        await tracker.pay_enrollment(unpaid_registration, 200, utc(2024, 1, 20))
        await tracker.pay_enrollment(unpaid_registration, 250, utc(2024, 2, 3))

        assert unpaid_registration.registration_pay == utc(2024, 2, 3)
        assert unpaid_registration.registration_amount == 250
        assert fake_api.update_registration.await_count == 2

        last = publisher.get_recent_events()[-1]
        assert last.event_type == BillingEventType.ENROLLMENT_OVERWRITTEN
        assert last.old_data["registration_amount"] == 200

    async def test_strict_mode_rejects_repeat(self, fake_api, unpaid_registration, fixed_now):
        tracker, _ = make_tracker(fake_api, fixed_now, allow_enrollment_overwrite=False)

        await tracker.pay_enrollment(unpaid_registration, 200, utc(2024, 1, 20))
        with pytest.raises(EnrollmentAlreadyPaid):
            await tracker.pay_enrollment(unpaid_registration, 250, utc(2024, 2, 3))

        assert unpaid_registration.registration_amount == 200
        assert fake_api.update_registration.await_count == 1

    async def test_failure_rolls_back(self, fake_api, unpaid_registration, fixed_now):
        fake_api.update_registration = AsyncMock(side_effect=ClubApiError("down", 503))
        tracker, _ = make_tracker(fake_api, fixed_now)

        with pytest.raises(PaymentSubmissionFailed) as exc_info:
            await tracker.pay_enrollment(unpaid_registration, 200)

        assert isinstance(exc_info.value.cause, ClubApiError)
        assert unpaid_registration.registration_pay is None
        assert unpaid_registration.registration_amount is None

    async def test_invalid_amount(self, fake_api, unpaid_registration, fixed_now):
        tracker, _ = make_tracker(fake_api, fixed_now)

        with pytest.raises(InvalidPaymentAmount):
            await tracker.pay_enrollment(unpaid_registration, "abc")
        fake_api.update_registration.assert_not_awaited()


# =============================================================================
# Monthly fee
# =============================================================================

@pytest.mark.asyncio
class TestPayPeriod:
    """Tests for pay_period"""

    async def test_unpaid_enrollment_blocks_every_index(self, fake_api, unpaid_registration, group, fixed_now):
        """EnrollmentNotPaid, no Payment created, monthly_payments untouched"""
        tracker, _ = make_tracker(fake_api, fixed_now)

        for index in (0, 1, 5, 11):
            with pytest.raises(EnrollmentNotPaid):
                await tracker.pay_period(unpaid_registration, index, group)

        fake_api.create_payment.assert_not_awaited()
        assert unpaid_registration.monthly_payments == []
        assert tracker.payments_for("reg1") == []

    async def test_pays_period_at_group_fee(self, fake_api, paid_registration, group, fixed_now):
        tracker, publisher = make_tracker(fake_api, fixed_now)

        payment = await tracker.pay_period(paid_registration, 0, group)

        record = fake_api.create_payment.await_args.args[0]
        assert record["amount"] == 150.0
        assert record["athlete_id"] == "ath1"
        assert record["group_id"] == "grp1"
        assert record["payment_start"] == "2024-01-15T00:00:00+00:00"
        assert record["payment_end"] == "2024-02-14T23:59:59+00:00"
        assert record["payment_date"] == fixed_now.isoformat()

        assert payment.id == "pay1"
        assert paid_registration.monthly_payments == ["pay1"]
        assert tracker.payments_for("reg2") == [payment]
        assert publisher.get_recent_events()[-1].event_type == BillingEventType.PAYMENT_CREATED

    async def test_paid_period_unavailable(self, fake_api, paid_registration, group, fixed_now):
        tracker, _ = make_tracker(fake_api, fixed_now)
        await tracker.pay_period(paid_registration, 0, group)

        with pytest.raises(PeriodUnavailable) as exc_info:
            await tracker.pay_period(paid_registration, 0, group)

        assert exc_info.value.reason == "already paid"
        assert fake_api.create_payment.await_count == 1
        assert paid_registration.monthly_payments == ["pay1"]

    async def test_recorded_payments_count_as_paid(self, fake_api, paid_registration, group, fixed_now):
        """Payments loaded from the API block their months"""
        tracker, _ = make_tracker(fake_api, fixed_now)
        tracker.record_payments("reg2", [make_payment(utc(2024, 3, 15), _id="old1")])
        tracker.record_payments("reg2", [make_payment(utc(2024, 3, 15), _id="old1")])

        assert len(tracker.payments_for("reg2")) == 1
        with pytest.raises(PeriodUnavailable):
            await tracker.pay_period(paid_registration, 2, group)

    async def test_before_registration_unavailable(self, fake_api, group):
        """May enrollment: index 2 is blocked during the registration year"""
        now = utc(2024, 6, 1)
        registration = Registration.model_validate({
            "_id": "reg3",
            "athlete_id": "ath1",
            "group_id": "grp1",
            "registration_date": "2024-05-10",
            "registration_pay": "2024-05-10",
        })
        tracker, _ = make_tracker(fake_api, now)

        with pytest.raises(PeriodUnavailable) as exc_info:
            await tracker.pay_period(registration, 2, group)

        assert exc_info.value.reason == "before registration"
        fake_api.create_payment.assert_not_awaited()

    @pytest.mark.parametrize("fee", [None, 0, float("nan"), -10])
    async def test_invalid_group_fee(self, fake_api, paid_registration, fixed_now, fee):
        group = Group.model_validate({"_id": "grp1", "monthly_fee": fee})
        tracker, _ = make_tracker(fake_api, fixed_now)

        with pytest.raises(InvalidPaymentAmount):
            await tracker.pay_period(paid_registration, 0, group)

        fake_api.create_payment.assert_not_awaited()
        assert paid_registration.monthly_payments == []

    async def test_optimistic_append_visible_during_call(self, fake_api, paid_registration, group, fixed_now):
        """The provisional id is in place while the request is in flight"""
        seen = []

        async def create_payment(record):
            seen.extend(paid_registration.monthly_payments)
            return {"_id": "pay7"}

        fake_api.create_payment = AsyncMock(side_effect=create_payment)
        tracker, _ = make_tracker(fake_api, fixed_now)

        await tracker.pay_period(paid_registration, 1, group)

        assert len(seen) == 1
        assert seen[0].startswith(PROVISIONAL_PREFIX)
        assert paid_registration.monthly_payments == ["pay7"]

    async def test_failure_rolls_back(self, fake_api, paid_registration, group, fixed_now):
        fake_api.create_payment = AsyncMock(side_effect=ClubApiError("boom", 500))
        tracker, publisher = make_tracker(fake_api, fixed_now)

        with pytest.raises(PaymentSubmissionFailed):
            await tracker.pay_period(paid_registration, 0, group)

        assert paid_registration.monthly_payments == []
        assert tracker.payments_for("reg2") == []
        assert publisher.get_recent_events()[-1].event_type == BillingEventType.PAYMENT_ROLLED_BACK

    async def test_bare_id_response(self, fake_api, paid_registration, group, fixed_now):
        fake_api.create_payment = AsyncMock(return_value="pay9")
        tracker, _ = make_tracker(fake_api, fixed_now)

        payment = await tracker.pay_period(paid_registration, 0, group)

        assert payment.id == "pay9"
        assert paid_registration.monthly_payments == ["pay9"]

    async def test_keeps_existing_payment_ids(self, fake_api, group, fixed_now):
        registration = Registration.model_validate({
            "_id": "reg4",
            "athlete_id": "ath1",
            "group_id": "grp1",
            "registration_date": "2024-01-15",
            "registration_pay": "2024-01-15",
            "monthly_payments": ["old1", {"_id": "old2"}],
        })
        tracker, _ = make_tracker(fake_api, fixed_now)

        await tracker.pay_period(registration, 3, group)

        assert registration.monthly_payments == ["old1", "old2", "pay1"]

    async def test_negative_index_rejected(self, fake_api, group):
        """Negative indices fail with a billing error in any year"""
        registration = Registration.model_validate({
            "_id": "reg5",
            "athlete_id": "ath1",
            "group_id": "grp1",
            "registration_date": "2023-05-10",
            "registration_pay": "2023-05-10",
        })
        tracker, _ = make_tracker(fake_api, utc(2024, 6, 1))

        with pytest.raises(PeriodUnavailable) as exc_info:
            await tracker.pay_period(registration, -1, group)

        assert exc_info.value.reason == "invalid index"
        assert isinstance(exc_info.value, BillingError)
        fake_api.create_payment.assert_not_awaited()
        assert registration.monthly_payments == []

    async def test_negative_index_checked_first(self, fake_api, unpaid_registration, group, fixed_now):
        tracker, _ = make_tracker(fake_api, fixed_now)

        with pytest.raises(PeriodUnavailable):
            await tracker.pay_period(unpaid_registration, -3, group)


# =============================================================================
# Registration date
# =============================================================================

@pytest.mark.asyncio
class TestEditRegistrationDate:
    """Tests for edit_registration_date"""

    async def test_moves_anchor(self, fake_api, unpaid_registration, fixed_now):
        tracker, publisher = make_tracker(fake_api, fixed_now)

        await tracker.edit_registration_date(unpaid_registration, "2024-02-03")

        assert unpaid_registration.registration_date == utc(2024, 2, 3)
        fake_api.update_registration.assert_awaited_once_with(
            "reg1", {"registration_date": "2024-02-03T00:00:00+00:00"}
        )
        event = publisher.get_recent_events()[-1]
        assert event.event_type == BillingEventType.REGISTRATION_DATE_CHANGED
        assert event.old_data == {"registration_date": "2024-01-15T00:00:00+00:00"}

    async def test_new_anchor_drives_periods(self, fake_api, unpaid_registration, fixed_now):
        tracker, _ = make_tracker(fake_api, fixed_now)

        await tracker.edit_registration_date(unpaid_registration, "2024-02-03")

        assert compute_period(unpaid_registration.registration_date, 0).end == utc(2024, 3, 2, 23, 59, 59)

    async def test_paid_enrollment_locks_date(self, fake_api, paid_registration, fixed_now):
        tracker, _ = make_tracker(fake_api, fixed_now)

        with pytest.raises(EnrollmentAlreadyPaid):
            await tracker.edit_registration_date(paid_registration, "2024-02-03")

        assert paid_registration.registration_date == utc(2024, 1, 15)
        fake_api.update_registration.assert_not_awaited()

    @pytest.mark.parametrize("value", [None, "", "not-a-date"])
    async def test_invalid_date(self, fake_api, unpaid_registration, fixed_now, value):
        tracker, _ = make_tracker(fake_api, fixed_now)

        with pytest.raises(InvalidEnrollmentDate):
            await tracker.edit_registration_date(unpaid_registration, value)

        assert unpaid_registration.registration_date == utc(2024, 1, 15)
        fake_api.update_registration.assert_not_awaited()

    async def test_failure_rolls_back(self, fake_api, unpaid_registration, fixed_now):
        fake_api.update_registration = AsyncMock(side_effect=ClubApiError("down", 503))
        tracker, publisher = make_tracker(fake_api, fixed_now)

        with pytest.raises(RegistrationUpdateFailed) as exc_info:
            await tracker.edit_registration_date(unpaid_registration, "2024-02-03")

        assert isinstance(exc_info.value.cause, ClubApiError)
        assert unpaid_registration.registration_date == utc(2024, 1, 15)
        assert publisher.get_recent_events() == []
