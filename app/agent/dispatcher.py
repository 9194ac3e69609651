# app/agent/dispatcher.py
"""
One conversational turn: ask the language model what the patient wants, run
the matching booking operation and shape the reply.

The dispatcher keeps no state between calls. Transcript and session data come
in with every call and go back out as new values: the updated transcript and
a proposed session merge that the caller may apply.
"""
from __future__ import annotations
import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from ..errors import ActionDecodeError, ErrorKind, LLMUnavailable, ValidationFailed
from ..schemas import AppointmentRequest, ConversationTurn, PatientInfo, TurnResult
from ..services import timeutils
from ..services.booking import BookingService
from ..services.reschedule import RescheduleSaga
from ..services.validation import is_valid_email
from .actions import Action, ClassifiedAction, clarification_fallback, decode_action

logger = logging.getLogger(__name__)

MISSING_RESCHEDULE_INFO = (
    "Missing required information for rescheduling. "
    "Please provide your email, new date, and new time."
)
NO_UPCOMING_APPOINTMENTS = "No upcoming appointments found for this email"
AVAILABILITY_ERROR = "Could not check availability right now"
GENERIC_ERROR = (
    "I apologize, but I encountered an error. "
    "Please try again or contact our staff directly."
)

ActionResult = Optional[Dict[str, Any]]


def _assistant_turn(action: ClassifiedAction) -> ConversationTurn:
    return ConversationTurn(role="assistant", content=json.dumps(action.to_wire(), ensure_ascii=False))


def _email_reprompt(email: Optional[str]) -> ClassifiedAction:
    if email:
        text = (
            f'I noticed the email address "{email}" doesn\'t seem to be valid. '
            "Email addresses must include an @ symbol (like: name@example.com). "
            "Could you please provide your email address again?"
        )
    else:
        text = (
            "To continue I need your email address (like: name@example.com). "
            "Could you please share it?"
        )
    return decode_action({
        "action": Action.collect_patient_info.value,
        "fulfillment_text": text,
        "data": {"missing_fields": ["patient_email"]},
    })


class ConversationDispatcher:
    def __init__(self, backend, llm, booking: Optional[BookingService] = None,
                 rescheduler: Optional[RescheduleSaga] = None):
        self.backend = backend
        self.llm = llm
        self.booking = booking or BookingService(backend)
        self.availability = self.booking.availability
        self.rescheduler = rescheduler or RescheduleSaga(self.booking)

    # ====== Turn entry point ======
    def handle_turn(self, message: str, transcript: Sequence[ConversationTurn],
                    session_data: Optional[Mapping[str, Any]] = None) -> TurnResult:
        session_data = dict(session_data or {})
        history = list(transcript) + [ConversationTurn(role="user", content=message)]
        context = self.build_context(session_data)

        try:
            action = self.llm.classify(history, context)
        except LLMUnavailable as e:
            logger.warning("LLM unavailable, escalating: %s", e)
            return self._escalation(history, context)
        except Exception:
            logger.exception("LLM call failed")
            return self._safe_reply(history)

        try:
            return self.dispatch(history, session_data, action, context)
        except Exception:
            logger.exception("Dispatch failed for action %s", getattr(action, "action", action))
            return self._safe_reply(history)

    def build_context(self, session_data: Mapping[str, Any]) -> Dict[str, Any]:
        context: Dict[str, Any] = {
            "session_data": dict(session_data),
            "today": timeutils.local_today().isoformat(),
        }
        try:
            context["clinic_info"] = self.backend.get_clinic_info()
            context["doctors"] = self.backend.get_doctors()
        except Exception:
            logger.exception("Could not load clinic context")
        return context

    # ====== Dispatch ======
    def dispatch(self, transcript: Sequence[ConversationTurn], session_data: Mapping[str, Any],
                 action: Union[ClassifiedAction, Dict[str, Any]],
                 context: Optional[Dict[str, Any]] = None) -> TurnResult:
        """
        Runs the operation behind ``action``. A raw dict is decoded first; if
        it doesn't fit the action schema the turn becomes a clarification
        request and nothing else runs.
        """
        if not isinstance(action, ClassifiedAction):
            try:
                action = decode_action(action)
            except ActionDecodeError as e:
                logger.warning("Rejected action payload: %s", e)
                action = clarification_fallback()

        handler = self._HANDLERS.get(action.action)
        result = handler(self, list(transcript), session_data, action, context or {}) if handler else None
        if isinstance(result, TurnResult):
            return result
        return self._finish(transcript, session_data, action, result)

    def _check_availability(self, transcript, session_data, action, context) -> Union[TurnResult, ActionResult]:
        data = action.data
        if not (data.doctor_id and data.date):
            return None
        try:
            slots = self.availability.list_slots(data.doctor_id, data.date)
        except ValidationFailed as e:
            return {"slots": [], "error": ", ".join(e.errors)}
        except Exception:
            logger.exception("Availability check failed: doctor=%s date=%s", data.doctor_id, data.date)
            return {"slots": [], "error": AVAILABILITY_ERROR}

        if slots:
            return {"slots": [s.model_dump() for s in slots]}

        # No slots: let the model say so instead of inventing availability
        updated = transcript + [
            _assistant_turn(action),
            ConversationTurn(
                role="system",
                content=(
                    f"No slots are available for the requested date {data.date}. "
                    "The doctor may not work on this day or all slots are booked. "
                    "Inform the patient and suggest checking another date."
                ),
            ),
        ]
        follow_context = {**context, "no_slots_available": True, "requested_date": data.date}
        try:
            follow = self.llm.classify(updated, follow_context)
        except LLMUnavailable as e:
            logger.warning("LLM unavailable for no-slots reply: %s", e)
            follow = clarification_fallback(
                f"There are no available slots on {data.date}. Would you like to try another date?"
            )
        return self._finish(updated, session_data, follow, {"slots": []}, echo=action)

    def _book_appointment(self, transcript, session_data, action, context) -> Union[TurnResult, ActionResult]:
        data = action.data
        if not is_valid_email(data.patient_email):
            return self._reprompt_email(transcript, session_data, action, data.patient_email)
        if not data.is_complete():
            return None

        outcome = self.booking.book(AppointmentRequest(
            patient=PatientInfo(name=data.patient_name, email=data.patient_email, phone=data.patient_phone),
            doctor_id=data.doctor_id,
            date=data.date,
            time=data.time,
            notes=data.notes,
        ))
        return outcome.as_result()

    def _reschedule_appointment(self, transcript, session_data, action, context) -> Union[TurnResult, ActionResult]:
        data = action.data
        if data.patient_email and not is_valid_email(data.patient_email):
            return self._reprompt_email(transcript, session_data, action, data.patient_email)

        appointment_id = data.appointment_id
        if not appointment_id and data.patient_email:
            try:
                upcoming = self.booking.patient_appointments(data.patient_email)
            except Exception:
                logger.exception("Could not look up appointments for reschedule")
                upcoming = None
            if upcoming:
                appointment_id = str(upcoming[0]["id"])
            elif upcoming == [] and data.new_date and data.new_time:
                return {"success": False, "errors": [NO_UPCOMING_APPOINTMENTS], "error_kind": ErrorKind.not_found.value}

        if appointment_id and data.patient_email and data.new_date and data.new_time:
            outcome = self.rescheduler.reschedule(appointment_id, data.patient_email, data.new_date, data.new_time)
            return outcome.as_result()
        return {"success": False, "errors": [MISSING_RESCHEDULE_INFO], "error_kind": ErrorKind.validation.value}

    def _cancel_appointment(self, transcript, session_data, action, context) -> Union[TurnResult, ActionResult]:
        data = action.data
        if data.patient_email and not is_valid_email(data.patient_email):
            return self._reprompt_email(transcript, session_data, action, data.patient_email)
        if data.appointment_id and data.patient_email:
            return self.booking.cancel(data.appointment_id, data.patient_email).as_result()
        return None

    _HANDLERS = {
        Action.check_availability: _check_availability,
        Action.book_appointment: _book_appointment,
        Action.reschedule_appointment: _reschedule_appointment,
        Action.cancel_appointment: _cancel_appointment,
    }

    # ====== Response shaping ======
    def _finish(self, transcript: Sequence[ConversationTurn], session_data: Mapping[str, Any],
                action: ClassifiedAction, action_result: ActionResult,
                echo: Optional[ClassifiedAction] = None) -> TurnResult:
        merge_source = echo or action
        return TurnResult(
            reply=action.fulfillment_text,
            action=action.action.value,
            data=action.data_dict(),
            action_result=action_result,
            requires_confirmation=action.requires_confirmation,
            transcript=list(transcript) + [_assistant_turn(action)],
            session_merge=self._session_merge(session_data, merge_source, action_result),
        )

    def _reprompt_email(self, transcript, session_data, action: ClassifiedAction,
                        email: Optional[str]) -> TurnResult:
        reprompt = _email_reprompt(email)
        facts = {k: v for k, v in action.data_dict().items() if k != "patient_email"}
        merge = {k: v for k, v in facts.items() if session_data.get(k) != v}
        return TurnResult(
            reply=reprompt.fulfillment_text,
            action=reprompt.action.value,
            data=reprompt.data_dict(),
            action_result=None,
            requires_confirmation=False,
            transcript=list(transcript) + [_assistant_turn(reprompt)],
            session_merge=merge,
        )

    @staticmethod
    def _session_merge(session_data: Mapping[str, Any], action: ClassifiedAction,
                       action_result: ActionResult) -> Dict[str, Any]:
        facts: Dict[str, Any] = {}
        if action.action not in (Action.collect_patient_info, Action.clarification_needed):
            facts.update(action.data_dict())
        doctor_id = facts.get("doctor_id")
        if doctor_id:
            facts["selected_doctor_id"] = doctor_id
        if facts.get("date"):
            facts["selected_date"] = facts["date"]
        appointment = (action_result or {}).get("appointment")
        if isinstance(appointment, dict) and appointment.get("id"):
            facts["last_appointment_id"] = appointment["id"]
        return {k: v for k, v in facts.items() if session_data.get(k) != v}

    def _escalation(self, history: List[ConversationTurn], context: Dict[str, Any]) -> TurnResult:
        info = context.get("clinic_info") or {}
        text = (
            "I'm having trouble processing your request right now. Here's what I can help you with:\n\n"
            f"• Book an appointment - Please call us at {info.get('phone') or 'our front desk'}\n"
            "• Check availability - Visit our website\n"
            f"• General questions - Email us at {info.get('email') or 'our clinic email'}"
        )
        return TurnResult(reply=text, action=Action.escalate_to_human.value, transcript=history)

    def _safe_reply(self, history: List[ConversationTurn]) -> TurnResult:
        return TurnResult(reply=GENERIC_ERROR, action=Action.clarification_needed.value, transcript=history)
