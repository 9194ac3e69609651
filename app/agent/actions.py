# app/agent/actions.py
"""
Closed set of actions the language model may answer with, and the decoder
that turns its raw JSON into a typed ClassifiedAction or rejects it.
"""
from __future__ import annotations
import enum
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import ActionDecodeError

APOLOGY_TEXT = "I apologize, but I'm having trouble processing that. Could you please rephrase your request?"


class Action(str, enum.Enum):
    greeting = "greeting"
    provide_info = "provide_info"
    check_availability = "check_availability"
    book_appointment = "book_appointment"
    cancel_appointment = "cancel_appointment"
    reschedule_appointment = "reschedule_appointment"
    collect_patient_info = "collect_patient_info"
    escalate_to_human = "escalate_to_human"
    clarification_needed = "clarification_needed"
    recommend_doctor = "recommend_doctor"


class _Payload(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)


class CheckAvailabilityData(_Payload):
    doctor_id: Optional[str] = None
    date: Optional[str] = None


class BookAppointmentData(_Payload):
    doctor_id: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    patient_name: Optional[str] = None
    patient_email: Optional[str] = None
    patient_phone: Optional[str] = None
    notes: Optional[str] = None

    def is_complete(self) -> bool:
        return all([
            self.patient_name, self.patient_email, self.patient_phone,
            self.doctor_id, self.date, self.time,
        ])


class RescheduleData(_Payload):
    appointment_id: Optional[str] = None
    patient_email: Optional[str] = None
    new_date: Optional[str] = None
    new_time: Optional[str] = None


class CancelData(_Payload):
    appointment_id: Optional[str] = None
    patient_email: Optional[str] = None


class CollectPatientInfoData(_Payload):
    missing_fields: List[str] = Field(default_factory=list)


class RecommendDoctorData(_Payload):
    doctor_id: Optional[str] = None
    specialization: Optional[str] = None


class FreeData(_Payload):
    pass


PAYLOADS: Dict[Action, Type[_Payload]] = {
    Action.check_availability: CheckAvailabilityData,
    Action.book_appointment: BookAppointmentData,
    Action.reschedule_appointment: RescheduleData,
    Action.cancel_appointment: CancelData,
    Action.collect_patient_info: CollectPatientInfoData,
    Action.recommend_doctor: RecommendDoctorData,
}


class ClassifiedAction(BaseModel):
    model_config = ConfigDict(frozen=True)

    action: Action
    fulfillment_text: str
    data: _Payload = Field(default_factory=FreeData)
    requires_confirmation: bool = False

    def data_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in self.data.model_dump().items() if v not in (None, "", [])}

    def to_wire(self) -> Dict[str, Any]:
        return {
            "action": self.action.value,
            "fulfillment_text": self.fulfillment_text,
            "data": self.data_dict(),
            "requires_confirmation": self.requires_confirmation,
        }


def _text(value: Any) -> Optional[str]:
    # Models sometimes send ids or times as numbers
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


def decode_action(raw: Any) -> ClassifiedAction:
    """
    Decodes a parsed JSON object into a ClassifiedAction. The data payload is
    checked against the model registered for its action tag. Raises
    ActionDecodeError for anything that doesn't fit.
    """
    if not isinstance(raw, dict):
        raise ActionDecodeError(f"expected an object, got {type(raw).__name__}")

    try:
        action = Action(raw.get("action"))
    except ValueError:
        raise ActionDecodeError(f"unknown action {raw.get('action')!r}")

    text = raw.get("fulfillment_text")
    if not isinstance(text, str):
        raise ActionDecodeError("fulfillment_text must be a string")

    data = raw.get("data") or {}
    if not isinstance(data, dict):
        raise ActionDecodeError("data must be an object")

    confirm = raw.get("requires_confirmation")
    if confirm is not None and not isinstance(confirm, bool):
        raise ActionDecodeError("requires_confirmation must be a boolean")

    payload_cls = PAYLOADS.get(action, FreeData)
    coerced = {k: _text(v) if k in payload_cls.model_fields and k != "missing_fields" else v for k, v in data.items()}
    try:
        payload = payload_cls.model_validate(coerced)
    except ValidationError as e:
        raise ActionDecodeError(f"invalid data for {action.value}: {e}") from e

    return ClassifiedAction(
        action=action,
        fulfillment_text=text,
        data=payload,
        requires_confirmation=bool(confirm),
    )


def clarification_fallback(text: str = APOLOGY_TEXT) -> ClassifiedAction:
    return ClassifiedAction(action=Action.clarification_needed, fulfillment_text=text)
