"""
shared/utils/validators.py
Pure validation rules for booking input. Each check returns the cleaned
value or raises ValueError with a client-facing message, so the same
functions back the Pydantic field validators and direct calls.
"""

import re
from datetime import date
from typing import Optional

PHONE_RE = re.compile(r"^[0-9]{10}$")
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
TIME_RE = re.compile(r"^([01][0-9]|2[0-3]):[0-5][0-9]$")

ADULT_GENDERS = frozenset({"male", "female", "other", "prefer_not_to_say"})
KUNDLI_GENDERS = frozenset({"male", "female", "other"})

MIN_ADULT_AGE = 18
MAX_AGE = 100


def years_before(day: date, years: int) -> date:
    """Same calendar day `years` earlier; 29 Feb falls back to 28 Feb."""
    try:
        return day.replace(year=day.year - years)
    except ValueError:
        return day.replace(year=day.year - years, day=28)


def check_name(value: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValueError("Name is required")
    return value


def check_phone(value: str) -> str:
    value = (value or "").strip()
    if not PHONE_RE.match(value):
        raise ValueError("Please enter a valid 10-digit phone number")
    return value


def check_email(value: Optional[str], required: bool = True) -> Optional[str]:
    """Empty strings count as absent."""
    value = (value or "").strip()
    if not value:
        if required:
            raise ValueError("Email is required")
        return None
    if not EMAIL_RE.match(value):
        raise ValueError("Please enter a valid email address")
    return value.lower()


def check_gender(value: str, allowed: frozenset) -> str:
    value = (value or "").strip().lower()
    if value not in allowed:
        raise ValueError(f"Gender must be one of: {', '.join(sorted(allowed))}")
    return value


def check_adult_dob(dob: date, today: Optional[date] = None) -> date:
    """Born no later than 18 years ago today and no earlier than 100 years ago."""
    today = today or date.today()
    if dob > years_before(today, MIN_ADULT_AGE):
        raise ValueError(f"You must be at least {MIN_ADULT_AGE} years old")
    if dob < years_before(today, MAX_AGE):
        raise ValueError("Please enter a valid date of birth")
    return dob


def check_birth_date(
    dob: date,
    max_age_years: Optional[int] = None,
    today: Optional[date] = None,
) -> date:
    today = today or date.today()
    if dob > today:
        raise ValueError("Birth date cannot be in the future")
    if max_age_years is not None and dob < years_before(today, max_age_years):
        raise ValueError(f"Birth date cannot be more than {max_age_years} years ago")
    return dob


def check_time(value: str) -> str:
    value = (value or "").strip()
    if not TIME_RE.match(value):
        raise ValueError("Time must be in HH:MM (24-hour) format")
    return value


def check_meeting_date(day: date, today: Optional[date] = None) -> date:
    today = today or date.today()
    if day < today:
        raise ValueError("Please select a future date")
    return day


def check_required_text(value: Optional[str], label: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValueError(f"{label} is required")
    return value
