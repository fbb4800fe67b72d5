"""
Pytest configuration and fixtures for the club billing tests
"""

import pytest
import sys
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from billing.models import Group, Payment, Registration


UTC = timezone.utc


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=UTC)


def make_payment(start: datetime, end: datetime = None, **overrides) -> Payment:
    data = {
        "_id": overrides.pop("_id", "pay-x"),
        "athlete_id": "ath1",
        "group_id": "grp1",
        "amount": 150,
        "payment_date": start,
        "payment_start": start,
        "payment_end": end or start,
    }
    data.update(overrides)
    return Payment.model_validate(data)


@pytest.fixture(scope="function")
def fixed_now():
    """Clock frozen at 2024-06-01 UTC"""
    return utc(2024, 6, 1, 12, 0, 0)


@pytest.fixture(scope="function")
def unpaid_registration():
    """Registration without enrollment payment (populated references, as the API returns them)"""
    return Registration.model_validate({
        "_id": "reg1",
        "athlete_id": {"_id": "ath1", "name": "Ana"},
        "group_id": {"_id": "grp1", "name": "Sub-12"},
        "assignment_id": "asg1",
        "registration_date": "2024-01-15T00:00:00.000Z",
        "registration_pay": None,
        "registration_amount": None,
        "monthly_payments": [],
    })


@pytest.fixture(scope="function")
def paid_registration():
    """Registration with enrollment fee paid"""
    return Registration.model_validate({
        "_id": "reg2",
        "athlete_id": "ath1",
        "group_id": "grp1",
        "registration_date": "2024-01-15T00:00:00.000Z",
        "registration_pay": "2024-01-16T10:00:00.000Z",
        "registration_amount": 200,
        "monthly_payments": [],
    })


@pytest.fixture(scope="function")
def group():
    """Group with a monthly fee"""
    return Group.model_validate({"_id": "grp1", "name": "Sub-12", "club_id": "club1", "monthly_fee": 150})


@pytest.fixture(scope="function")
def fake_api():
    """Collaborator double with async CRUD methods"""
    api = MagicMock()
    api.update_registration = AsyncMock(return_value={"_id": "reg1"})
    api.create_payment = AsyncMock(return_value={"_id": "pay1"})
    return api
