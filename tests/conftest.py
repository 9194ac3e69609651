from datetime import date, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.agent.actions import ClassifiedAction, decode_action
from app.scripts.seed import seed
from app.services import timeutils
from app.services.backend import SqlBackend
from app.services.booking import BookingService
from app.services.reschedule import RescheduleSaga
from app.schemas import AppointmentRequest, PatientInfo


class FakeNotifier:
    def __init__(self):
        self.sent = []

    def send_confirmation(self, *args):
        self.sent.append(("confirmation",) + args)

    def send_cancellation(self, *args):
        self.sent.append(("cancellation",) + args)

    def send_reschedule(self, *args):
        self.sent.append(("reschedule",) + args)


class DoctorLookupFailsAfterBooking(SqlBackend):
    """Doctor reads start failing as soon as a booking has been written."""

    booked = False

    def book_appointment(self, *args, **kwargs):
        result = super().book_appointment(*args, **kwargs)
        self.booked = self.booked or result.get("success", False)
        return result

    def get_doctor_by_id(self, doctor_id):
        if self.booked:
            raise ConnectionError("backend unreachable")
        return super().get_doctor_by_id(doctor_id)


class FakeLLM:
    """Returns queued answers in order and records what it was asked."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def classify(self, transcript, context=None):
        self.calls.append((list(transcript), dict(context or {})))
        r = self.responses.pop(0)
        if isinstance(r, Exception):
            raise r
        return r if isinstance(r, ClassifiedAction) else decode_action(r)


def next_weekday(weekday: int) -> date:
    """First date strictly after today that falls on ``weekday``."""
    d = timeutils.local_today() + timedelta(days=1)
    while d.weekday() != weekday:
        d += timedelta(days=1)
    return d


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, future=True)


@pytest.fixture
def backend(engine, session_factory):
    seed(session_factory=session_factory, bind=engine)
    return SqlBackend(session_factory=session_factory)


@pytest.fixture
def doctor_read_breaks_after_booking(backend, session_factory):
    return DoctorLookupFailsAfterBooking(session_factory=session_factory)


@pytest.fixture
def doctors(backend):
    return {d["name"]: d for d in backend.get_doctors()}


@pytest.fixture
def gp_id(doctors):
    # Mon-Thu, 09:00-17:00, 30 minute slots
    return doctors["Dr. Sarah Johnson"]["id"]


@pytest.fixture
def monday():
    return next_weekday(0).isoformat()


@pytest.fixture
def saturday():
    return next_weekday(5).isoformat()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def booking(backend, notifier):
    return BookingService(backend, notifier=notifier)


@pytest.fixture
def saga(booking):
    return RescheduleSaga(booking)


@pytest.fixture
def make_request(gp_id, monday):
    def _make(time="10:00", name="John Doe", email="john@example.com", phone="+1-555-0123",
              doctor_id=None, day=None):
        return AppointmentRequest(
            patient=PatientInfo(name=name, email=email, phone=phone),
            doctor_id=doctor_id or gp_id,
            date=day or monday,
            time=time,
        )
    return _make


@pytest.fixture
def make_llm():
    return FakeLLM
