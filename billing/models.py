"""
Billing data models (Pydantic)

Records arrive from the club API as JSON with Mongo-style `_id` keys and,
depending on the endpoint, with references either as plain ids or as
populated objects. Models normalize both to string ids.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .dates import parse_enrollment_date, to_utc


def reference_id(value: Any) -> Optional[str]:
    """Plain id or populated object -> string id"""
    if value is None or value == "":
        return None
    if isinstance(value, dict):
        inner = value.get("_id", value.get("id"))
        return str(inner) if inner not in (None, "") else None
    return str(value)


def reference_name(value: Any) -> Optional[str]:
    """Display name of a populated reference, if any"""
    if isinstance(value, dict):
        return value.get("name")
    return None


class RegistrationState(str, Enum):
    """Enrollment lifecycle"""
    UNREGISTERED = "unregistered"
    REGISTERED_UNPAID = "registered_unpaid"
    REGISTERED_PAID = "registered_paid"


class PeriodStatus(str, Enum):
    """Month picker status of one billing period"""
    AVAILABLE = "available"
    PAID = "paid"
    BEFORE_REGISTRATION = "before_registration"


class BillingPeriod(BaseModel):
    """Derived billing window, never persisted"""
    index: int = Field(..., ge=0, description="Months since the enrollment anchor month")
    start: datetime = Field(..., description="Period start (UTC)")
    end: datetime = Field(..., description="Period end, inclusive (UTC)")


class Club(BaseModel):
    """Club"""
    id: str = Field(..., alias="_id")
    name: Optional[str] = None

    class Config:
        populate_by_name = True
        extra = "allow"


class Group(BaseModel):
    """
    Training group

    Roster fields (athletes, athletes_added, coaches, members) are kept raw;
    membership.roster turns them into typed membership records.
    """
    id: str = Field(..., alias="_id")
    name: Optional[str] = None
    club_id: Optional[str] = None
    monthly_fee: Optional[float] = None

    class Config:
        populate_by_name = True
        extra = "allow"

    @field_validator("club_id", mode="before")
    @classmethod
    def normalize_club(cls, v):
        return reference_id(v)

    def roster(self) -> Dict[str, Any]:
        """Raw payload including the legacy roster fields"""
        return self.model_dump(by_alias=True)


class Payment(BaseModel):
    """Recorded monthly fee payment"""
    id: Optional[str] = Field(None, alias="_id")
    athlete_id: str
    group_id: str
    amount: float
    payment_date: datetime
    payment_start: datetime
    payment_end: datetime

    class Config:
        populate_by_name = True
        extra = "ignore"

    @field_validator("id", "athlete_id", "group_id", mode="before")
    @classmethod
    def normalize_reference(cls, v):
        return reference_id(v)

    @field_validator("payment_date", "payment_start", "payment_end", mode="before")
    @classmethod
    def parse_utc(cls, v):
        return to_utc(v)

    def to_record(self) -> Dict[str, Any]:
        """createPayment request body"""
        return {
            "amount": self.amount,
            "group_id": self.group_id,
            "athlete_id": self.athlete_id,
            "payment_date": self.payment_date.isoformat(),
            "payment_start": self.payment_start.isoformat(),
            "payment_end": self.payment_end.isoformat(),
        }


class Registration(BaseModel):
    """One athlete's enrollment in one group"""
    id: Optional[str] = Field(None, alias="_id")
    athlete_id: str
    group_id: str
    assignment_id: Optional[str] = None
    registration_date: datetime
    registration_pay: Optional[datetime] = None
    registration_amount: Optional[float] = None
    monthly_payments: List[str] = Field(default_factory=list)

    # populated references, display only
    athlete_name: Optional[str] = None
    group_name: Optional[str] = None

    class Config:
        populate_by_name = True
        extra = "ignore"

    @model_validator(mode="before")
    @classmethod
    def unpack_references(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if data.get("athlete_name") is None:
            data["athlete_name"] = reference_name(data.get("athlete_id"))
        if data.get("group_name") is None:
            data["group_name"] = reference_name(data.get("group_id"))
        for key in ("athlete_id", "group_id", "assignment_id"):
            if key in data:
                data[key] = reference_id(data[key])
        if data.get("monthly_payments") is None:
            data["monthly_payments"] = []
        else:
            data["monthly_payments"] = [
                reference_id(p) for p in data["monthly_payments"] if reference_id(p)
            ]
        return data

    @field_validator("registration_date", mode="before")
    @classmethod
    def parse_anchor(cls, v):
        return parse_enrollment_date(v)

    @field_validator("registration_pay", mode="before")
    @classmethod
    def parse_pay(cls, v):
        return None if v in (None, "") else to_utc(v)

    @model_validator(mode="after")
    def check_payments_require_enrollment(self) -> "Registration":
        if self.registration_pay is None and self.monthly_payments:
            raise ValueError("monthly_payments must be empty while registration_pay is null")
        return self

    @property
    def state(self) -> RegistrationState:
        if self.registration_pay is None:
            return RegistrationState.REGISTERED_UNPAID
        return RegistrationState.REGISTERED_PAID

    @property
    def is_enrollment_paid(self) -> bool:
        return self.registration_pay is not None


class MemberCount(BaseModel):
    """Deduplicated roster counts of one club"""
    athletes: int = 0
    coaches: int = 0
