# app/errors.py
from __future__ import annotations
import enum
from typing import List


class ErrorKind(str, enum.Enum):
    """Failure families reported to callers of the booking services."""
    validation = "validation"
    not_found = "not_found"
    availability_conflict = "availability_conflict"
    compensation_gap = "compensation_gap"
    unavailable = "unavailable"


class InvalidTimeFormat(ValueError):
    """Raised when a clock time is in no recognized format."""


class ValidationFailed(ValueError):
    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__(", ".join(self.errors))


class DoctorNotFound(LookupError):
    pass


class LLMUnavailable(RuntimeError):
    """The language model could not produce a usable answer."""


class ActionDecodeError(ValueError):
    """The language model output doesn't fit the action schema."""
