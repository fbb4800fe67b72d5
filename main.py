"""
Club billing operator CLI
"""
import asyncio
import sys
from typing import Optional
from loguru import logger

from billing import (
    BillingError,
    Registration,
    RegistrationStateTracker,
    compute_periods,
    month_grid,
)
from club_api.client import ClubApiClient, ClubApiError
from dashboard import ClubMembersLoader, DashboardState, UnpaidRegistrationsLoader


# logging setup
logger.remove()
logger.add(
    sys.stderr,
    format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
    level="INFO"
)
logger.add(
    "logs/billing_{time:YYYY-MM-DD}.log",
    rotation="1 day",
    retention="30 days",
    level="DEBUG"
)


async def find_registration(api: ClubApiClient, assignment_id: str, registration_id: str) -> Optional[Registration]:
    registrations = await api.list_registrations_by_assignment(assignment_id)
    for registration in registrations:
        if registration.id == registration_id:
            return registration
    return None


async def show_members() -> int:
    """Athlete/coach counts per club"""
    async with ClubApiClient() as api:
        async with DashboardState() as state:
            await ClubMembersLoader(api).load(state)

            if state.last_error:
                print(f"Error: {state.last_error}")
                return 1
            if not state.members_known:
                print("Member counts unavailable (upstream kept failing)")
                return 1

            print("\n=== Club members ===")
            for club in state.clubs:
                count = state.member_count(club.id)
                print(f"  {club.name or club.id}: {count.athletes} athletes, {count.coaches} coaches")
    return 0


async def show_unpaid(assignment_id: str) -> int:
    """Registrations without enrollment payment"""
    async with ClubApiClient() as api:
        async with DashboardState(assignment_id) as state:
            await UnpaidRegistrationsLoader(api).load(state)

            if state.last_error:
                print(f"Error: {state.last_error}")
                return 1

            print(f"\n=== Unpaid enrollments: {state.unpaid_count} ===")
            for reg in state.unpaid_registrations:
                print(
                    f"  {reg.id}  {reg.athlete_name or reg.athlete_id}  "
                    f"{reg.group_name or reg.group_id}  {reg.registration_date.date().isoformat()}"
                )
    return 0


def show_periods(enrollment_date: str, count: int) -> int:
    """Billing periods of an enrollment date"""
    print(f"\n=== Billing periods from {enrollment_date} ===")
    for period in compute_periods(enrollment_date, count):
        print(f"  #{period.index:<3} {period.start:%d/%m/%Y} - {period.end:%d/%m/%Y %H:%M:%S}")
    return 0


async def load_tracker(api: ClubApiClient, registration: Registration) -> RegistrationStateTracker:
    """Tracker seeded with the registration's recorded payments"""
    payments = await api.list_payments_by_athlete(registration.athlete_id)
    tracker = RegistrationStateTracker(api)
    tracker.record_payments(
        registration.id,
        [p for p in payments if p.group_id == registration.group_id],
    )
    return tracker


async def show_months(assignment_id: str, registration_id: str) -> int:
    """Month picker of a registration (paid / available / before registration)"""
    async with ClubApiClient() as api:
        registration = await find_registration(api, assignment_id, registration_id)
        if registration is None:
            print(f"Registration {registration_id} not found in assignment {assignment_id}")
            return 1

        tracker = await load_tracker(api, registration)
        grid = month_grid(tracker.payments_for(registration.id), registration.registration_date)
        periods = compute_periods(registration.registration_date, len(grid))

        print(f"\n=== Months of {registration.athlete_name or registration.athlete_id} ===")
        if not registration.is_enrollment_paid:
            print("  (enrollment fee unpaid, monthly payments are blocked)")
        for period, status in zip(periods, grid):
            print(f"  #{period.index:<3} {period.start:%d/%m/%Y} - {period.end:%d/%m/%Y}  {status.value}")
    return 0


async def edit_date(assignment_id: str, registration_id: str, new_date: str) -> int:
    """Change the enrollment date of an unpaid registration"""
    async with ClubApiClient() as api:
        registration = await find_registration(api, assignment_id, registration_id)
        if registration is None:
            print(f"Registration {registration_id} not found in assignment {assignment_id}")
            return 1

        tracker = RegistrationStateTracker(api)
        await tracker.edit_registration_date(registration, new_date)
        print(f"Registration date: {registration.registration_date.date().isoformat()}")
    return 0


async def pay_enrollment(assignment_id: str, registration_id: str, amount: float) -> int:
    """Record an enrollment fee"""
    async with ClubApiClient() as api:
        registration = await find_registration(api, assignment_id, registration_id)
        if registration is None:
            print(f"Registration {registration_id} not found in assignment {assignment_id}")
            return 1

        tracker = RegistrationStateTracker(api)
        await tracker.pay_enrollment(registration, amount)
        print(f"Enrollment paid: {registration.registration_pay.isoformat()} ({amount})")
    return 0


async def pay_month(assignment_id: str, registration_id: str, index: int) -> int:
    """Record a monthly fee for billing period `index`"""
    async with ClubApiClient() as api:
        registration = await find_registration(api, assignment_id, registration_id)
        if registration is None:
            print(f"Registration {registration_id} not found in assignment {assignment_id}")
            return 1

        group = await api.get_group(registration.group_id)
        tracker = await load_tracker(api, registration)
        payment = await tracker.pay_period(registration, index, group)
        print(
            f"Payment {payment.id}: {payment.amount} for "
            f"{payment.payment_start:%d/%m/%Y} - {payment.payment_end:%d/%m/%Y}"
        )
    return 0


async def main():
    """Entry point"""
    import argparse

    parser = argparse.ArgumentParser(description="Club membership billing")
    parser.add_argument(
        "--mode",
        choices=["members", "unpaid", "periods", "months", "edit-date", "pay-enrollment", "pay-month"],
        default="members",
        help="Run mode"
    )
    parser.add_argument("--assignment", help="Assignment id")
    parser.add_argument("--registration", help="Registration id")
    parser.add_argument("--date", help="Enrollment date (YYYY-MM-DD)")
    parser.add_argument("--count", type=int, default=12, help="Number of periods")
    parser.add_argument("--index", type=int, help="Billing period index")
    parser.add_argument("--amount", type=float, help="Enrollment fee amount")

    args = parser.parse_args()

    try:
        if args.mode == "members":
            code = await show_members()

        elif args.mode == "unpaid":
            if not args.assignment:
                parser.error("--assignment is required")
            code = await show_unpaid(args.assignment)

        elif args.mode == "periods":
            if not args.date:
                parser.error("--date is required")
            code = show_periods(args.date, args.count)

        elif args.mode == "months":
            if not (args.assignment and args.registration):
                parser.error("--assignment and --registration are required")
            code = await show_months(args.assignment, args.registration)

        elif args.mode == "edit-date":
            if not (args.assignment and args.registration and args.date):
                parser.error("--assignment, --registration and --date are required")
            code = await edit_date(args.assignment, args.registration, args.date)

        elif args.mode == "pay-enrollment":
            if not (args.assignment and args.registration and args.amount is not None):
                parser.error("--assignment, --registration and --amount are required")
            code = await pay_enrollment(args.assignment, args.registration, args.amount)

        else:
            if not (args.assignment and args.registration and args.index is not None):
                parser.error("--assignment, --registration and --index are required")
            code = await pay_month(args.assignment, args.registration, args.index)

    except (BillingError, ClubApiError) as e:
        logger.error(f"{type(e).__name__}: {e}")
        code = 1

    if code:
        sys.exit(code)


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
