# app/services/backend.py
"""
Persistence backend used by the booking services.

Every public method runs in its own database transaction, so each call is
atomic on its own. The booking and cancel methods report expected failures
as ``{"success": False, "error": "..."}`` rather than raising; lookups that
fail raise (``DoctorNotFound``) like the remote API they stand in for.
"""
from __future__ import annotations
import logging
from contextlib import contextmanager
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..database import SessionLocal
from .. import models
from . import timeutils
from ..errors import DoctorNotFound

logger = logging.getLogger(__name__)

SLOT_TAKEN = "Time slot is already booked"
OUTSIDE_SCHEDULE = "Requested time is outside the doctor's schedule"
DOCTOR_MISSING = "Doctor not found"
APPOINTMENT_MISSING = "Appointment not found"
ALREADY_CANCELLED = "Appointment is already cancelled"


def _doctor_dict(doc: models.Doctor) -> Dict[str, Any]:
    return {
        "id": doc.id,
        "name": doc.name,
        "specialization": doc.specialization,
        "consultation_fee": float(doc.consultation_fee or 0),
        "bio": doc.bio,
    }


def _slot_grid(schedules: List[models.DoctorSchedule], day: date) -> List[tuple[time, time]]:
    """(start, end) of every slot cut from the doctor's working blocks on ``day``."""
    out = []
    for block in sorted(schedules, key=lambda s: s.start_time):
        if block.weekday != day.weekday():
            continue
        delta = timedelta(minutes=block.slot_minutes)
        cur = datetime.combine(day, block.start_time)
        end = datetime.combine(day, block.end_time)
        while cur + delta <= end:
            out.append((cur.time(), (cur + delta).time()))
            cur += delta
    return out


class SqlBackend:
    def __init__(self, session_factory=SessionLocal):
        self._session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
        finally:
            db.close()

    # ====== Clinic / doctors ======
    def get_clinic_info(self) -> Optional[Dict[str, Any]]:
        with self._session() as db:
            info = db.execute(select(models.ClinicInfo)).scalars().first()
            if info is None:
                return None
            return {
                "name": info.name,
                "address": info.address,
                "phone": info.phone,
                "email": info.email,
                "opening_hours": info.opening_hours or {},
            }

    def get_doctors(self) -> List[Dict[str, Any]]:
        with self._session() as db:
            docs = db.execute(select(models.Doctor).order_by(models.Doctor.name)).scalars().all()
            return [_doctor_dict(d) for d in docs]

    def get_doctor_by_id(self, doctor_id: str) -> Dict[str, Any]:
        with self._session() as db:
            doc = db.get(models.Doctor, doctor_id)
            if doc is None:
                raise DoctorNotFound(doctor_id)
            return _doctor_dict(doc)

    # ====== Slots ======
    def get_available_slots(self, doctor_id: str, date_str: str) -> List[Dict[str, Any]]:
        """
        Every slot of the doctor's grid for that date, flagged with
        ``is_available``. Times come back as ``HH:MM:SS``.
        """
        day = date.fromisoformat(date_str)
        with self._session() as db:
            doc = db.get(models.Doctor, doctor_id)
            if doc is None:
                return []
            taken = set(
                db.execute(
                    select(models.Appointment.start_time)
                    .where(models.Appointment.doctor_id == doctor_id)
                    .where(models.Appointment.appointment_date == day)
                    .where(models.Appointment.status == models.AppointmentStatus.scheduled)
                ).scalars().all()
            )
            slots = [
                {"time": start.isoformat(), "is_available": start not in taken}
                for start, _ in _slot_grid(doc.schedules, day)
            ]
        logger.debug("slots doctor=%s date=%s -> %s", doctor_id, date_str, slots)
        return slots

    # ====== Transactions ======
    def book_appointment(self, patient_name: str, patient_email: str, patient_phone: str,
                         doctor_id: str, appointment_date: str, start_time: str,
                         notes: Optional[str] = None) -> Dict[str, Any]:
        day = date.fromisoformat(appointment_date)
        start = timeutils.parse_clock(start_time)
        if start is None:
            return {"success": False, "error": OUTSIDE_SCHEDULE}

        with self._session() as db:
            doc = db.get(models.Doctor, doctor_id)
            if doc is None:
                return {"success": False, "error": DOCTOR_MISSING}

            grid = dict(_slot_grid(doc.schedules, day))
            if start not in grid:
                return {"success": False, "error": OUTSIDE_SCHEDULE}

            clash = db.execute(
                select(models.Appointment.id)
                .where(models.Appointment.doctor_id == doctor_id)
                .where(models.Appointment.appointment_date == day)
                .where(models.Appointment.start_time == start)
                .where(models.Appointment.status == models.AppointmentStatus.scheduled)
            ).first()
            if clash:
                return {"success": False, "error": SLOT_TAKEN}

            try:
                patient = self._upsert_patient(db, patient_name, patient_email, patient_phone)
            except IntegrityError:
                # Another request created this patient first; use that row
                db.rollback()
                logger.info("Patient %s created concurrently, retrying lookup", patient_email)
                patient = self._upsert_patient(db, patient_name, patient_email, patient_phone)

            appt = models.Appointment(
                doctor_id=doctor_id,
                patient_id=patient.id,
                appointment_date=day,
                start_time=start,
                end_time=grid[start],
                status=models.AppointmentStatus.scheduled,
                notes=notes,
            )
            db.add(appt)
            try:
                db.commit()
            except IntegrityError:
                # A concurrent booking for the same slot committed first
                db.rollback()
                logger.info("Booking lost the race: doctor=%s %s %s", doctor_id, appointment_date, start_time)
                return {"success": False, "error": SLOT_TAKEN}

            logger.info("Appointment booked: id=%s doctor=%s %s %s", appt.id, doctor_id, appointment_date, start_time)
            return {"success": True, "appointment_id": appt.id}

    def _find_patient(self, db: Session, email: str) -> Optional[models.Patient]:
        return db.execute(select(models.Patient).where(models.Patient.email == email)).scalars().first()

    def _upsert_patient(self, db: Session, name: str, email: str, phone: str) -> models.Patient:
        """Get-or-create by email. The flush raises IntegrityError if a concurrent insert won."""
        patient = self._find_patient(db, email)
        if patient is None:
            patient = models.Patient(name=name, email=email, phone=phone)
            db.add(patient)
        else:
            patient.name = name or patient.name
            patient.phone = phone or patient.phone
        db.flush()
        return patient

    def cancel_appointment(self, appointment_id: str, patient_email: str) -> Dict[str, Any]:
        with self._session() as db:
            appt = db.execute(
                select(models.Appointment)
                .join(models.Patient)
                .where(models.Appointment.id == appointment_id)
                .where(models.Patient.email == patient_email)
            ).scalars().first()
            if appt is None:
                return {"success": False, "error": APPOINTMENT_MISSING}
            if appt.status == models.AppointmentStatus.cancelled:
                return {"success": False, "error": ALREADY_CANCELLED}
            appt.status = models.AppointmentStatus.cancelled
            db.commit()
            logger.info("Appointment cancelled: id=%s", appointment_id)
            return {"success": True}

    def get_patient_appointments(self, patient_email: str, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Scheduled appointments that haven't started yet, earliest first."""
        now = now or timeutils.local_now()
        today, clock = now.date(), now.time().replace(microsecond=0)
        with self._session() as db:
            rows = db.execute(
                select(models.Appointment)
                .join(models.Patient)
                .where(models.Patient.email == patient_email)
                .where(models.Appointment.status == models.AppointmentStatus.scheduled)
                .where(or_(
                    models.Appointment.appointment_date > today,
                    and_(models.Appointment.appointment_date == today, models.Appointment.start_time > clock),
                ))
                .order_by(models.Appointment.appointment_date, models.Appointment.start_time)
            ).scalars().all()
            return [
                {
                    "id": a.id,
                    "doctor_id": a.doctor_id,
                    "doctor_name": a.doctor.name if a.doctor else None,
                    "appointment_date": a.appointment_date.isoformat(),
                    "start_time": a.start_time.isoformat(),
                    "end_time": a.end_time.isoformat(),
                    "status": a.status.value,
                    "patient_name": a.patient.name if a.patient else None,
                    "patient_phone": a.patient.phone if a.patient else None,
                }
                for a in rows
            ]
