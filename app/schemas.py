from __future__ import annotations
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .errors import ErrorKind


class _CamelModel(BaseModel):
    # Browser clients send camelCase bodies
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ===== Domain =====

class PatientInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    email: str
    phone: str


class AppointmentRequest(BaseModel):
    patient: PatientInfo
    doctor_id: str
    date: str
    time: str
    notes: Optional[str] = None


class Slot(BaseModel):
    time: str
    is_available: bool = True


class ValidationResult(BaseModel):
    valid: bool
    errors: List[str] = Field(default_factory=list)

    @classmethod
    def from_errors(cls, errors: List[str]) -> "ValidationResult":
        return cls(valid=not errors, errors=errors)


class AppointmentSummary(BaseModel):
    id: str
    doctor: str
    date: str
    time: str
    patient_email: str


class BookingOutcome(BaseModel):
    success: bool
    appointment: Optional[AppointmentSummary] = None
    message: Optional[str] = None
    errors: List[str] = Field(default_factory=list)
    error_kind: Optional[ErrorKind] = None

    @classmethod
    def rejected(cls, kind: ErrorKind, *errors: str) -> "BookingOutcome":
        return cls(success=False, errors=list(errors), error_kind=kind)

    def as_result(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


# ===== Conversation =====

class ConversationTurn(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant", "system"]
    content: str


class TurnResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    reply: str
    action: str
    data: Dict[str, Any] = Field(default_factory=dict)
    action_result: Optional[Dict[str, Any]] = None
    requires_confirmation: bool = False
    transcript: List[ConversationTurn] = Field(default_factory=list)
    session_merge: Dict[str, Any] = Field(default_factory=dict)


# ===== HTTP =====

class BookRequest(_CamelModel):
    patient_name: str
    patient_email: str
    patient_phone: str
    doctor_id: str
    date: str
    time: str
    notes: Optional[str] = None

    def to_request(self) -> AppointmentRequest:
        return AppointmentRequest(
            patient=PatientInfo(name=self.patient_name, email=self.patient_email, phone=self.patient_phone),
            doctor_id=self.doctor_id,
            date=self.date,
            time=self.time,
            notes=self.notes,
        )


class CancelRequest(_CamelModel):
    patient_email: str


class RescheduleRequest(_CamelModel):
    patient_email: str
    new_date: str
    new_time: str


class SlotsResponse(BaseModel):
    slots: List[Slot]


class ChatRequest(_CamelModel):
    message: str = Field(..., min_length=1)
    conversation_history: List[ConversationTurn] = Field(default_factory=list)
    session_data: Dict[str, Any] = Field(default_factory=dict)


class ChatResponse(_CamelModel):
    message: str
    action: str
    data: Dict[str, Any] = Field(default_factory=dict)
    action_result: Optional[Dict[str, Any]] = None
    requires_confirmation: bool = False
    conversation_history: List[ConversationTurn] = Field(default_factory=list)
    session_merge: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_turn(cls, turn: TurnResult) -> "ChatResponse":
        return cls(
            message=turn.reply,
            action=turn.action,
            data=turn.data,
            action_result=turn.action_result,
            requires_confirmation=turn.requires_confirmation,
            conversation_history=turn.transcript,
            session_merge=turn.session_merge,
        )
