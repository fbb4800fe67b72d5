"""
Date parsing

The club API sends ISO-8601 strings. Every value is interpreted in UTC:
naive timestamps are taken as UTC, offset-aware ones are converted.
Calendar components (day/month/year) are always read in UTC.
"""
from datetime import date, datetime, timezone
from typing import Any

from .exceptions import InvalidEnrollmentDate


def to_utc(value: Any) -> datetime:
    """ISO string / date / datetime -> aware UTC datetime"""
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, date):
        moment = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueError("empty date string")
        # fromisoformat only accepts the "Z" suffix from 3.11 on
        if text.endswith("Z") or text.endswith("z"):
            text = text[:-1] + "+00:00"
        moment = datetime.fromisoformat(text)
    else:
        raise ValueError(f"unsupported date value: {value!r}")

    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def parse_enrollment_date(value: Any) -> datetime:
    """Enrollment anchor date; fails fast instead of propagating bad dates"""
    if value is None:
        raise InvalidEnrollmentDate(value, "Enrollment date is missing")
    try:
        return to_utc(value)
    except (TypeError, ValueError) as e:
        raise InvalidEnrollmentDate(value) from e


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
