from datetime import datetime, time, timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from app import models
from app.errors import DoctorNotFound, ValidationFailed
from app.schemas import Slot
from app.services import timeutils
from app.services.availability import AvailabilityResolver, is_slot_open
from app.services.backend import SqlBackend
from app.services.validation import DATE_IN_PAST


def test_slots_cover_the_working_day(backend, gp_id, monday):
    slots = AvailabilityResolver(backend).list_slots(gp_id, monday)
    assert len(slots) == 16
    assert slots[0].time == "09:00:00"
    assert slots[-1].time == "16:30:00"
    assert all(s.is_available for s in slots)


def test_no_slots_on_days_off(backend, gp_id, saturday):
    assert AvailabilityResolver(backend).list_slots(gp_id, saturday) == []


def test_unknown_doctor_has_no_slots(backend, monday):
    assert AvailabilityResolver(backend).list_slots("no-such-doctor", monday) == []
    with pytest.raises(DoctorNotFound):
        backend.get_doctor_by_id("no-such-doctor")


def test_booked_slot_is_filtered_out(backend, gp_id, monday):
    res = backend.book_appointment("John Doe", "john@example.com", "5550123", gp_id, monday, "09:00")
    assert res["success"]

    resolver = AvailabilityResolver(backend)
    assert "09:00" not in resolver.open_times(gp_id, monday)
    assert len(resolver.list_slots(gp_id, monday)) == 15


def test_past_date_is_rejected(backend, gp_id):
    yesterday = (timeutils.local_today() - timedelta(days=1)).isoformat()
    with pytest.raises(ValidationFailed) as exc:
        AvailabilityResolver(backend).list_slots(gp_id, yesterday)
    assert exc.value.errors == [DATE_IN_PAST]


def test_is_slot_open_compares_clock_times():
    slots = [Slot(time="09:00:00"), Slot(time="09:30:00"), Slot(time="10:00:00", is_available=False)]
    assert is_slot_open(slots, "09:00")
    assert is_slot_open(slots, "09:30:00")
    assert not is_slot_open(slots, "10:00")
    assert not is_slot_open(slots, "9:00")
    assert not is_slot_open(slots, "09:15")
    assert not is_slot_open([], "09:00")


def test_backend_refuses_second_booking_of_a_slot(backend, gp_id, monday):
    first = backend.book_appointment("John Doe", "john@example.com", "5550123", gp_id, monday, "11:00")
    second = backend.book_appointment("Jane Roe", "jane@example.com", "5550199", gp_id, monday, "11:00:00")
    assert first["success"]
    assert second == {"success": False, "error": "Time slot is already booked"}


def test_unique_index_guards_active_slots(backend, session_factory, gp_id, monday):
    day = timeutils.parse_iso_date(monday)
    start = timeutils.parse_clock("12:00")
    end = timeutils.parse_clock("12:30")
    db = session_factory()
    try:
        patient = models.Patient(name="John Doe", email="john@example.com", phone="5550123")
        db.add(patient)
        db.flush()
        for status in (models.AppointmentStatus.cancelled, models.AppointmentStatus.scheduled):
            db.add(models.Appointment(doctor_id=gp_id, patient_id=patient.id, appointment_date=day,
                                      start_time=start, end_time=end, status=status))
        # A cancelled row doesn't hold the slot
        db.commit()

        db.add(models.Appointment(doctor_id=gp_id, patient_id=patient.id, appointment_date=day,
                                  start_time=start, end_time=end))
        with pytest.raises(IntegrityError):
            db.commit()
        db.rollback()
    finally:
        db.close()


def test_patient_appointments_are_upcoming_and_ordered(backend, gp_id, monday):
    later = (timeutils.parse_iso_date(monday) + timedelta(days=7)).isoformat()
    backend.book_appointment("John Doe", "john@example.com", "5550123", gp_id, later, "09:00")
    backend.book_appointment("John Doe", "john@example.com", "5550123", gp_id, monday, "15:00")
    backend.book_appointment("John Doe", "john@example.com", "5550123", gp_id, monday, "10:00")

    rows = backend.get_patient_appointments("john@example.com")
    assert [(r["appointment_date"], r["start_time"]) for r in rows] == [
        (monday, "10:00:00"), (monday, "15:00:00"), (later, "09:00:00"),
    ]
    assert rows[0]["doctor_name"] == "Dr. Sarah Johnson"
    assert rows[0]["patient_phone"] == "5550123"


def test_appointments_already_started_today_are_not_upcoming(backend, session_factory, gp_id):
    today = timeutils.local_today()
    db = session_factory()
    try:
        patient = models.Patient(name="John Doe", email="john@example.com", phone="5550123")
        db.add(patient)
        db.flush()
        for day, start in ((today, time(9, 0)), (today, time(15, 0)), (today + timedelta(days=1), time(9, 0))):
            db.add(models.Appointment(doctor_id=gp_id, patient_id=patient.id, appointment_date=day,
                                      start_time=start, end_time=time(start.hour, 30)))
        db.commit()
    finally:
        db.close()

    rows = backend.get_patient_appointments("john@example.com", now=datetime.combine(today, time(12, 0)))
    assert [(r["appointment_date"], r["start_time"]) for r in rows] == [
        (today.isoformat(), "15:00:00"),
        ((today + timedelta(days=1)).isoformat(), "09:00:00"),
    ]


class PatientInsertedConcurrently(SqlBackend):
    """The first patient lookup misses a row that is already there, as when a parallel request wins."""

    missed = False

    def _find_patient(self, db, email):
        if not self.missed:
            self.missed = True
            return None
        return super()._find_patient(db, email)


def test_concurrent_patient_creation_reuses_the_row(backend, session_factory, gp_id, monday):
    assert backend.book_appointment("John Doe", "john@example.com", "5550123", gp_id, monday, "09:00")["success"]

    racing = PatientInsertedConcurrently(session_factory=session_factory)
    res = racing.book_appointment("John Doe", "john@example.com", "5550123", gp_id, monday, "09:30")

    assert res["success"]
    rows = backend.get_patient_appointments("john@example.com")
    assert [r["start_time"] for r in rows] == ["09:00:00", "09:30:00"]
    db = session_factory()
    try:
        assert len(db.query(models.Patient).all()) == 1
    finally:
        db.close()
