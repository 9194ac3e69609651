# app/services/validation.py
"""
Format and business-rule checks for patient data and appointment date/time.

These helpers never raise for malformed strings: they return a
ValidationResult listing every broken rule so the caller can report all of
them at once. Passing something that is not a string is a programming error
and raises TypeError.
"""
from __future__ import annotations
import re
from datetime import date
from typing import Optional

from ..config import settings
from ..schemas import ValidationResult
from . import timeutils

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_PATTERN = re.compile(r"^\+?[\d\s\-()]+$")

NAME_TOO_SHORT = "Name must be at least 2 characters"
INVALID_EMAIL = "Invalid email address"
INVALID_PHONE = "Invalid phone number"
INVALID_DATE = "Invalid date format"
INVALID_TIME = "Invalid time format"
DATE_IN_PAST = "Cannot book appointments in the past"


def _require_str(value, field: str) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{field} must be a string, got {type(value).__name__}")
    return value


def date_too_far_message(months: int) -> str:
    return f"Cannot book appointments more than {months} months in advance"


def is_valid_email(value) -> bool:
    """Standalone email shape check, safe on any input."""
    if not isinstance(value, str) or not value:
        return False
    return bool(EMAIL_PATTERN.match(value))


def validate_patient(name: str, email: str, phone: str) -> ValidationResult:
    name = _require_str(name, "name")
    email = _require_str(email, "email")
    phone = _require_str(phone, "phone")

    errors = []
    if len(name.strip()) < 2:
        errors.append(NAME_TOO_SHORT)
    if not EMAIL_PATTERN.match(email):
        errors.append(INVALID_EMAIL)
    if not PHONE_PATTERN.match(phone):
        errors.append(INVALID_PHONE)
    return ValidationResult.from_errors(errors)


def validate_datetime(date_str: str, time_str: str, today: Optional[date] = None) -> ValidationResult:
    """
    Date must be YYYY-MM-DD inside the booking window; time must be canonical
    HH:MM. A malformed date skips the window checks, the time is always checked.
    """
    date_str = _require_str(date_str, "date")
    time_str = _require_str(time_str, "time")

    errors = []
    day = timeutils.parse_iso_date(date_str)
    if day is None:
        errors.append(INVALID_DATE)
    else:
        min_date, max_date = timeutils.policy_window(today)
        if day < min_date:
            errors.append(DATE_IN_PAST)
        if day > max_date:
            errors.append(date_too_far_message(settings.BOOKING_WINDOW_MONTHS))

    if not timeutils.is_canonical_time(time_str):
        errors.append(INVALID_TIME)

    return ValidationResult.from_errors(errors)
