# app/services/notifications.py
from typing import Optional

from .twilio_client import send_sms


def send_confirmation(phone: Optional[str], doctor: str, date: str, time: str) -> None:
    """Booking notice."""
    body = (
        "Appointment confirmed\n"
        f"Doctor: {doctor}\n"
        f"Date and time: {date} {time}\n"
        "Reply or chat with us if you need to reschedule or cancel."
    )
    _send(phone, body)


def send_cancellation(phone: Optional[str], appointment_id: str) -> None:
    body = (
        "Appointment cancelled\n"
        f"Reference: {appointment_id}\n"
        "If you need a new appointment, just let us know."
    )
    _send(phone, body)


def send_reschedule(phone: Optional[str], doctor: str, date: str, time: str) -> None:
    body = (
        "Appointment rescheduled\n"
        f"Doctor: {doctor}\n"
        f"New date and time: {date} {time}"
    )
    _send(phone, body)

# ------------------ internal ------------------

def _send(phone: Optional[str], body: str) -> None:
    send_sms(phone or "", body)
