# app/services/availability.py
from __future__ import annotations
import logging
from typing import Iterable, List

from ..errors import ValidationFailed
from ..schemas import Slot
from . import timeutils
from .validation import validate_datetime

logger = logging.getLogger(__name__)

# Only the date part matters when listing slots
_ANY_TIME = "09:00"


class AvailabilityResolver:
    def __init__(self, backend):
        self.backend = backend

    def list_slots(self, doctor_id: str, date: str) -> List[Slot]:
        """
        Open slots of ``doctor_id`` on ``date`` in backend order.
        Raises ValidationFailed when the date is malformed or outside the
        booking window.
        """
        check = validate_datetime(date, _ANY_TIME)
        if not check.valid:
            raise ValidationFailed(check.errors)

        rows = self.backend.get_available_slots(doctor_id, date) or []
        return [Slot(time=r["time"], is_available=True) for r in rows if r.get("is_available")]

    def open_times(self, doctor_id: str, date: str) -> List[str]:
        """HH:MM of every open slot, for suggestions."""
        out = []
        for s in self.list_slots(doctor_id, date):
            t = timeutils.parse_clock(s.time)
            if t is not None:
                out.append(timeutils.format_clock(t))
        return out


def is_slot_open(slots: Iterable[Slot], requested_time: str) -> bool:
    """
    True if ``requested_time`` is one of ``slots``. Both sides are parsed as
    clock times, so "09:00" matches "09:00:00"; strings that don't parse
    never match.
    """
    wanted = timeutils.parse_clock(requested_time)
    if wanted is None:
        return False
    for slot in slots:
        if slot.is_available and timeutils.parse_clock(slot.time) == wanted:
            return True
    return False
