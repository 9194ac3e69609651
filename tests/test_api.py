import pytest
from fastapi.testclient import TestClient

from app.dependencies import get_backend, get_llm
from app.errors import LLMUnavailable
from app.main import app


@pytest.fixture
def llm(make_llm):
    return make_llm()


@pytest.fixture
def client(backend, llm):
    app.dependency_overrides[get_backend] = lambda: backend
    app.dependency_overrides[get_llm] = lambda: llm
    yield TestClient(app)
    app.dependency_overrides.clear()


def _book_body(gp_id, day, time="10:00", email="john@example.com"):
    return {
        "patientName": "John Doe",
        "patientEmail": email,
        "patientPhone": "+1-555-0123",
        "doctorId": gp_id,
        "date": day,
        "time": time,
    }


def test_root_and_health(client):
    assert client.get("/").json()["ok"] is True
    assert client.get("/health").json()["status"] == "ok"


def test_clinic_info_and_doctors(client, gp_id):
    assert client.get("/api/clinic-info").json()["phone"] == "+1-555-0100"
    names = [d["name"] for d in client.get("/api/doctors").json()["doctors"]]
    assert "Dr. Sarah Johnson" in names
    assert client.get(f"/api/doctors/{gp_id}").json()["specialization"] == "General Practice"
    assert client.get("/api/doctors/nobody").status_code == 404


def test_book_then_cancel_round_trip(client, gp_id, monday):
    slots = client.get("/api/slots", params={"doctor_id": gp_id, "date": monday}).json()["slots"]
    assert {"time": "10:00:00", "is_available": True} in slots

    r = client.post("/api/appointments", json=_book_body(gp_id, monday))
    assert r.status_code == 201
    appointment_id = r.json()["appointment"]["id"]

    times = [s["time"] for s in client.get("/api/slots", params={"doctor_id": gp_id, "date": monday}).json()["slots"]]
    assert "10:00:00" not in times

    mine = client.get("/api/appointments", params={"email": "john@example.com"}).json()["appointments"]
    assert [a["id"] for a in mine] == [appointment_id]

    r = client.post(f"/api/appointments/{appointment_id}/cancel", json={"patientEmail": "john@example.com"})
    assert r.status_code == 200
    assert r.json()["success"] is True

    times = [s["time"] for s in client.get("/api/slots", params={"doctor_id": gp_id, "date": monday}).json()["slots"]]
    assert "10:00:00" in times


def test_double_booking_is_400(client, gp_id, monday):
    assert client.post("/api/appointments", json=_book_body(gp_id, monday)).status_code == 201
    r = client.post("/api/appointments", json=_book_body(gp_id, monday, email="jane@example.com"))
    assert r.status_code == 400
    assert r.json() == {"errors": ["Selected time slot is not available"], "errorKind": "availability_conflict"}


def test_invalid_booking_lists_errors(client, gp_id, monday):
    body = dict(_book_body(gp_id, monday), patientEmail="nope", patientName="J")
    r = client.post("/api/appointments", json=body)
    assert r.status_code == 400
    assert r.json()["errors"] == ["Name must be at least 2 characters", "Invalid email address"]


def test_slots_with_bad_date(client, gp_id):
    r = client.get("/api/slots", params={"doctor_id": gp_id, "date": "tomorrow"})
    assert r.status_code == 400
    assert r.json()["errors"] == ["Invalid date format"]


def test_appointments_need_a_valid_email(client):
    assert client.get("/api/appointments", params={"email": "nope"}).status_code == 400


def test_reschedule_endpoint(client, gp_id, monday):
    appointment_id = client.post("/api/appointments", json=_book_body(gp_id, monday)).json()["appointment"]["id"]

    r = client.post(
        f"/api/appointments/{appointment_id}/reschedule",
        json={"patientEmail": "john@example.com", "newDate": monday, "newTime": "4:00 PM"},
    )
    assert r.status_code == 200
    assert r.json()["appointment"]["time"] == "16:00"


def test_chat_turn(client, llm):
    llm.responses.append({"action": "greeting", "fulfillment_text": "Welcome to Riverside!", "data": {}})

    r = client.post("/api/chat", json={
        "message": "hi",
        "conversationHistory": [{"role": "assistant", "content": "Hello"}],
        "sessionData": {},
    })

    assert r.status_code == 200
    body = r.json()
    assert body["message"] == "Welcome to Riverside!"
    assert body["action"] == "greeting"
    assert body["requiresConfirmation"] is False
    assert [t["role"] for t in body["conversationHistory"]] == ["assistant", "user", "assistant"]
    assert body["sessionMerge"] == {}


def test_chat_stays_200_when_model_is_down(client, llm):
    llm.responses.append(LLMUnavailable("quota exceeded"))
    r = client.post("/api/chat", json={"message": "book me in"})
    assert r.status_code == 200
    assert r.json()["action"] == "escalate_to_human"


def test_chat_rejects_empty_message(client):
    assert client.post("/api/chat", json={"message": ""}).status_code == 422
