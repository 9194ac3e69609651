# app/services/booking.py
from __future__ import annotations
import enum
import logging
from typing import Any, Dict, List, Optional

from ..errors import ErrorKind, InvalidTimeFormat, ValidationFailed
from ..schemas import AppointmentRequest, AppointmentSummary, BookingOutcome
from . import notifications
from .availability import AvailabilityResolver, is_slot_open
from .timeutils import normalize_time
from .validation import INVALID_EMAIL, INVALID_TIME, is_valid_email, validate_datetime, validate_patient

logger = logging.getLogger(__name__)

INVALID_DOCTOR = "Invalid doctor selected"
SLOT_NOT_AVAILABLE = "Selected time slot is not available"
BOOK_FAILED = "Failed to book appointment. Please try again."
CANCEL_FAILED = "Failed to cancel appointment. Please try again."
CANCELLED_OK = "Appointment cancelled successfully"


class BookingStage(str, enum.Enum):
    validating = "validating"
    checking_doctor = "checking_doctor"
    checking_slot = "checking_slot"
    committing = "committing"
    confirmed = "confirmed"
    rejected = "rejected"


class BookingService:
    """
    Books and cancels appointments against the backend.

    A booking walks validating -> checking_doctor -> checking_slot ->
    committing and ends confirmed or rejected. The slot is re-checked right
    before committing even when the caller has just shown a slot list; the
    backend still has the last word when two requests race for one slot.
    Nothing raises out of ``book``/``cancel``: every failure comes back as a
    BookingOutcome with an ErrorKind.
    """

    def __init__(self, backend, availability: Optional[AvailabilityResolver] = None, notifier=notifications):
        self.backend = backend
        self.availability = availability or AvailabilityResolver(backend)
        self.notifier = notifier

    def book(self, request: AppointmentRequest) -> BookingOutcome:
        stage = BookingStage.validating
        patient = request.patient
        try:
            try:
                time = normalize_time(request.time)
            except InvalidTimeFormat:
                return self._reject(stage, ErrorKind.validation, INVALID_TIME)

            errors = (
                validate_patient(patient.name, patient.email, patient.phone).errors
                + validate_datetime(request.date, time).errors
            )
            if errors:
                return self._reject(stage, ErrorKind.validation, *errors)

            stage = self._advance(BookingStage.checking_doctor, request)
            try:
                doctor = self.backend.get_doctor_by_id(request.doctor_id)
            except Exception as e:
                logger.info("Doctor lookup failed for %s: %s", request.doctor_id, e)
                return self._reject(stage, ErrorKind.not_found, INVALID_DOCTOR)

            stage = self._advance(BookingStage.checking_slot, request)
            slots = self.availability.list_slots(request.doctor_id, request.date)
            if not is_slot_open(slots, time):
                logger.info("Requested %s not in open slots %s", time, [s.time for s in slots])
                return self._reject(stage, ErrorKind.availability_conflict, SLOT_NOT_AVAILABLE)

            stage = self._advance(BookingStage.committing, request)
            outcome = self.commit(
                patient.name, patient.email, patient.phone,
                request.doctor_id, request.date, time, request.notes,
                doctor_name=doctor["name"],
            )
            if outcome.success:
                self._advance(BookingStage.confirmed, request)
                self.notify("send_confirmation", patient.phone, outcome.appointment.doctor, request.date, time)
            else:
                self._advance(BookingStage.rejected, request)
            return outcome
        except ValidationFailed as e:
            return self._reject(stage, ErrorKind.validation, *e.errors)
        except Exception:
            logger.exception("Booking error at stage %s", stage.value)
            return self._reject(stage, ErrorKind.unavailable, BOOK_FAILED)

    def commit(self, name: str, email: str, phone: str, doctor_id: str,
               date: str, time: str, notes: Optional[str] = None,
               doctor_name: Optional[str] = None) -> BookingOutcome:
        """
        Atomic booking through the backend. A backend refusal (usually the
        slot was taken meanwhile) is returned with the backend's own reason.
        Unexpected errors propagate to the caller.
        The doctor name is resolved before the write; nothing after a
        successful backend book may fail.
        """
        if not doctor_name:
            doctor_name = self.backend.get_doctor_by_id(doctor_id)["name"]

        result = self.backend.book_appointment(name, email, phone, doctor_id, date, time, notes)
        if not result.get("success"):
            return BookingOutcome.rejected(ErrorKind.availability_conflict, result.get("error") or SLOT_NOT_AVAILABLE)

        return BookingOutcome(
            success=True,
            appointment=AppointmentSummary(
                id=str(result["appointment_id"]),
                doctor=doctor_name,
                date=date,
                time=time,
                patient_email=email,
            ),
        )

    def cancel(self, appointment_id: str, patient_email: str) -> BookingOutcome:
        if not is_valid_email(patient_email):
            return BookingOutcome.rejected(ErrorKind.validation, INVALID_EMAIL)

        try:
            phone = self._phone_for(appointment_id, patient_email)
            result = self.backend.cancel_appointment(appointment_id, patient_email)
            if not result.get("success"):
                return BookingOutcome.rejected(ErrorKind.not_found, result.get("error") or CANCEL_FAILED)
        except Exception:
            logger.exception("Cancellation error: appointment=%s", appointment_id)
            return BookingOutcome.rejected(ErrorKind.unavailable, CANCEL_FAILED)

        self.notify("send_cancellation", phone, appointment_id)
        return BookingOutcome(success=True, message=CANCELLED_OK)

    def patient_appointments(self, patient_email: str) -> List[Dict[str, Any]]:
        if not is_valid_email(patient_email):
            raise ValidationFailed([INVALID_EMAIL])
        return self.backend.get_patient_appointments(patient_email)

    # ------------------ internal ------------------

    def _advance(self, stage: BookingStage, request: AppointmentRequest) -> BookingStage:
        logger.debug("booking %s %s %s -> %s", request.doctor_id, request.date, request.time, stage.value)
        return stage

    def _reject(self, stage: BookingStage, kind: ErrorKind, *errors: str) -> BookingOutcome:
        logger.info("Booking rejected at %s (%s): %s", stage.value, kind.value, list(errors))
        return BookingOutcome.rejected(kind, *errors)

    def _phone_for(self, appointment_id: str, patient_email: str) -> Optional[str]:
        for appt in self.backend.get_patient_appointments(patient_email) or []:
            if str(appt.get("id")) == str(appointment_id):
                return appt.get("patient_phone")
        return None

    def notify(self, name: str, *args) -> None:
        try:
            getattr(self.notifier, name)(*args)
        except Exception as e:
            logger.warning("Notification %s failed: %s", name, e)
