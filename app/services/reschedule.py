# app/services/reschedule.py
from __future__ import annotations
import enum
import logging
from typing import Any, Dict, Optional

from ..errors import ErrorKind, InvalidTimeFormat, ValidationFailed
from ..schemas import BookingOutcome
from .availability import is_slot_open
from .booking import SLOT_NOT_AVAILABLE, BookingService
from .timeutils import normalize_time
from .validation import INVALID_EMAIL, INVALID_TIME, is_valid_email, validate_datetime

logger = logging.getLogger(__name__)

APPOINTMENT_NOT_FOUND = "Appointment not found"
CANCEL_OLD_FAILED = "Failed to cancel existing appointment"
BOOK_NEW_FAILED = "Failed to book new appointment"
RESCHEDULE_FAILED = "Failed to reschedule appointment. Please try again."
RESCHEDULED_OK = "Appointment rescheduled successfully"
COMPENSATION_GAP = (
    "Your previous appointment was cancelled but the new appointment could not be booked. "
    "Please contact the clinic so we can restore your booking."
)
RESCHEDULE_NOTE = "Rescheduled appointment"
PLACEHOLDER_NAME = "Patient"


class RescheduleStep(str, enum.Enum):
    validating = "validating"
    locating = "locating"
    checking_slot = "checking_slot"
    cancelling_old = "cancelling_old"
    booking_new = "booking_new"


class RescheduleSaga:
    """
    Moves an appointment by cancelling the old one and booking a new one.

    The backend offers no multi-statement transaction, so the two writes are
    separate. Everything that can be checked is checked before the cancel; if
    the cancel fails nothing else happens. If the book fails after a
    successful cancel the patient is left without an appointment and the
    outcome is ``ErrorKind.compensation_gap`` so the caller can offer manual
    recovery.
    """

    def __init__(self, booking: BookingService):
        self.booking = booking
        self.backend = booking.backend
        self.availability = booking.availability

    def reschedule(self, appointment_id: str, patient_email: str, new_date: str, new_time: str) -> BookingOutcome:
        step = RescheduleStep.validating
        if not is_valid_email(patient_email):
            return self._fail(step, ErrorKind.validation, INVALID_EMAIL)
        try:
            time = normalize_time(new_time)
        except (InvalidTimeFormat, TypeError):
            return self._fail(step, ErrorKind.validation, INVALID_TIME)
        check = validate_datetime(new_date, time)
        if not check.valid:
            return self._fail(step, ErrorKind.validation, *check.errors)

        try:
            step = RescheduleStep.locating
            target = self._locate(appointment_id, patient_email)
            if target is None:
                return self._fail(step, ErrorKind.not_found, APPOINTMENT_NOT_FOUND)

            step = RescheduleStep.checking_slot
            doctor_name = target.get("doctor_name") or self.backend.get_doctor_by_id(target["doctor_id"])["name"]
            slots = self.availability.list_slots(target["doctor_id"], new_date)
            if not is_slot_open(slots, time):
                return self._fail(step, ErrorKind.availability_conflict, SLOT_NOT_AVAILABLE)

            step = RescheduleStep.cancelling_old
            cancelled = self.backend.cancel_appointment(appointment_id, patient_email)
            if not cancelled.get("success"):
                logger.info("Cancel of %s refused: %s", appointment_id, cancelled.get("error"))
                return self._fail(step, ErrorKind.not_found, CANCEL_OLD_FAILED)
        except ValidationFailed as e:
            return self._fail(step, ErrorKind.validation, *e.errors)
        except Exception:
            logger.exception("Reschedule error at step %s: appointment=%s", step.value, appointment_id)
            return self._fail(step, ErrorKind.unavailable, RESCHEDULE_FAILED)

        # From here on the old appointment no longer exists
        step = RescheduleStep.booking_new
        reason = BOOK_NEW_FAILED
        try:
            outcome = self.booking.commit(
                target.get("patient_name") or PLACEHOLDER_NAME,
                patient_email,
                target.get("patient_phone") or "",
                target["doctor_id"],
                new_date,
                time,
                RESCHEDULE_NOTE,
                doctor_name=doctor_name,
            )
            if outcome.success:
                logger.info("Rescheduled %s -> %s", appointment_id, outcome.appointment.id)
                self.booking.notify(
                    "send_reschedule", target.get("patient_phone"), outcome.appointment.doctor, new_date, time,
                )
                return outcome.model_copy(update={"message": RESCHEDULED_OK})
            reason = outcome.errors[0] if outcome.errors else BOOK_NEW_FAILED
        except Exception:
            logger.exception("Reschedule error at step %s after cancelling %s", step.value, appointment_id)

        logger.error(
            "Compensation gap: appointment %s of %s cancelled, new booking %s %s failed (%s)",
            appointment_id, patient_email, new_date, time, reason,
        )
        return BookingOutcome.rejected(ErrorKind.compensation_gap, reason, COMPENSATION_GAP)

    def _locate(self, appointment_id: str, patient_email: str) -> Optional[Dict[str, Any]]:
        for appt in self.backend.get_patient_appointments(patient_email) or []:
            if str(appt.get("id")) == str(appointment_id):
                return appt
        return None

    def _fail(self, step: RescheduleStep, kind: ErrorKind, *errors: str) -> BookingOutcome:
        logger.info("Reschedule rejected at %s (%s): %s", step.value, kind.value, list(errors))
        return BookingOutcome.rejected(kind, *errors)
