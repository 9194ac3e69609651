from datetime import timedelta

from app.errors import ErrorKind
from app.services import timeutils
from app.services.backend import SLOT_TAKEN, SqlBackend
from app.services.booking import SLOT_NOT_AVAILABLE, BookingService
from app.services.reschedule import (
    APPOINTMENT_NOT_FOUND,
    CANCEL_OLD_FAILED,
    COMPENSATION_GAP,
    RESCHEDULED_OK,
    RescheduleSaga,
)
from app.services.validation import INVALID_TIME


class BookRefusingBackend(SqlBackend):
    """Cancels fine, then refuses every new booking."""

    def book_appointment(self, *args, **kwargs):
        return {"success": False, "error": SLOT_TAKEN}


class CancelRefusingBackend(SqlBackend):
    def cancel_appointment(self, appointment_id, patient_email):
        return {"success": False, "error": "locked"}


def _book(booking, make_request, **kw):
    outcome = booking.book(make_request(**kw))
    assert outcome.success
    return outcome.appointment


def test_reschedule_moves_the_appointment(saga, booking, backend, notifier, make_request, gp_id, monday):
    old = _book(booking, make_request, time="10:00")

    outcome = saga.reschedule(old.id, "john@example.com", monday, "3:00 PM")

    assert outcome.success
    assert outcome.message == RESCHEDULED_OK
    assert outcome.appointment.time == "15:00"
    assert outcome.appointment.id != old.id

    rows = backend.get_patient_appointments("john@example.com")
    assert [(r["id"], r["start_time"]) for r in rows] == [(outcome.appointment.id, "15:00:00")]
    assert rows[0]["patient_name"] == "John Doe"
    assert "10:00" in booking.availability.open_times(gp_id, monday)
    assert notifier.sent[-1] == ("reschedule", "+1-555-0123", "Dr. Sarah Johnson", monday, "15:00")


def test_taken_slot_leaves_old_appointment_alone(saga, booking, backend, make_request, monday):
    old = _book(booking, make_request, time="10:00")
    _book(booking, make_request, time="11:00", name="Jane Roe", email="jane@example.com")

    outcome = saga.reschedule(old.id, "john@example.com", monday, "11:00")

    assert outcome.error_kind == ErrorKind.availability_conflict
    assert outcome.errors == [SLOT_NOT_AVAILABLE]
    assert [r["id"] for r in backend.get_patient_appointments("john@example.com")] == [old.id]


def test_unknown_appointment(saga, monday):
    outcome = saga.reschedule("missing-id", "john@example.com", monday, "10:00")
    assert outcome.error_kind == ErrorKind.not_found
    assert outcome.errors == [APPOINTMENT_NOT_FOUND]


def test_other_patients_appointment_is_not_found(saga, booking, make_request, monday):
    old = _book(booking, make_request)
    outcome = saga.reschedule(old.id, "jane@example.com", monday, "15:00")
    assert outcome.error_kind == ErrorKind.not_found


def test_bad_time_is_rejected_before_anything_else(saga, booking, backend, make_request, monday):
    old = _book(booking, make_request)
    outcome = saga.reschedule(old.id, "john@example.com", monday, "25:00")
    assert outcome.error_kind == ErrorKind.validation
    assert outcome.errors == [INVALID_TIME]
    assert len(backend.get_patient_appointments("john@example.com")) == 1


def test_date_outside_window(saga, booking, make_request):
    old = _book(booking, make_request)
    far = (timeutils.local_today() + timedelta(days=200)).isoformat()
    outcome = saga.reschedule(old.id, "john@example.com", far, "10:00")
    assert outcome.error_kind == ErrorKind.validation


def test_failed_cancel_stops_the_saga(session_factory, booking, notifier, make_request, monday):
    old = _book(booking, make_request, time="10:00")
    refusing = CancelRefusingBackend(session_factory=session_factory)
    saga = RescheduleSaga(BookingService(refusing, notifier=notifier))

    outcome = saga.reschedule(old.id, "john@example.com", monday, "15:00")

    assert outcome.error_kind == ErrorKind.not_found
    assert outcome.errors == [CANCEL_OLD_FAILED]
    rows = refusing.get_patient_appointments("john@example.com")
    assert [r["id"] for r in rows] == [old.id]


def test_failed_rebook_reports_compensation_gap(session_factory, booking, notifier, make_request, monday):
    old = _book(booking, make_request, time="10:00")
    refusing = BookRefusingBackend(session_factory=session_factory)
    saga = RescheduleSaga(BookingService(refusing, notifier=notifier))

    outcome = saga.reschedule(old.id, "john@example.com", monday, "15:00")

    assert not outcome.success
    assert outcome.error_kind == ErrorKind.compensation_gap
    assert outcome.errors == [SLOT_TAKEN, COMPENSATION_GAP]
    # Old appointment is gone and nothing replaced it
    assert refusing.get_patient_appointments("john@example.com") == []


def test_doctor_read_failure_after_rebook_is_not_a_gap(doctor_read_breaks_after_booking, booking, notifier,
                                                       make_request, monday):
    old = _book(booking, make_request, time="10:00")
    flaky = doctor_read_breaks_after_booking
    saga = RescheduleSaga(BookingService(flaky, notifier=notifier))

    outcome = saga.reschedule(old.id, "john@example.com", monday, "15:00")

    assert outcome.success
    assert outcome.error_kind is None
    assert outcome.appointment.doctor == "Dr. Sarah Johnson"
    rows = flaky.get_patient_appointments("john@example.com")
    assert [(r["id"], r["start_time"]) for r in rows] == [(outcome.appointment.id, "15:00:00")]


def test_day_without_slots_leaves_old_appointment_alone(saga, booking, backend, make_request, saturday):
    old = _book(booking, make_request, time="10:00")

    outcome = saga.reschedule(old.id, "john@example.com", saturday, "10:00")

    assert outcome.error_kind == ErrorKind.availability_conflict
    assert outcome.errors == [SLOT_NOT_AVAILABLE]
    rows = backend.get_patient_appointments("john@example.com")
    assert [(r["id"], r["status"]) for r in rows] == [(old.id, "scheduled")]
