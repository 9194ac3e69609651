# app/services/llm.py
from __future__ import annotations
import json
import logging
import re
from typing import Any, Dict, List, Optional, Sequence

from openai import APIConnectionError, APITimeoutError, OpenAI, OpenAIError

from ..agent.actions import Action, ClassifiedAction, clarification_fallback, decode_action
from ..config import settings
from ..errors import ActionDecodeError, LLMUnavailable
from ..schemas import ConversationTurn
from . import timeutils

logger = logging.getLogger(__name__)

CONNECTION_TROUBLE = (
    "I'm having trouble connecting right now. Could you please rephrase your request? "
    "Or you can call us directly at our clinic."
)

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def _extract_json(s: str) -> str:
    if not s:
        return "{}"
    s = _FENCE.sub("", s.strip()).strip()
    if s.startswith("{") and s.endswith("}"):
        return s
    m = re.search(r"\{.*\}", s, re.DOTALL)
    return m.group(0) if m else s


def _clinic_block(info: Optional[Dict[str, Any]]) -> str:
    if not info:
        return "Not available"
    return (
        f"- Address: {info.get('address')}\n"
        f"- Phone: {info.get('phone')}\n"
        f"- Email: {info.get('email')}\n"
        f"- Hours: {json.dumps(info.get('opening_hours') or {}, indent=2)}"
    )


def _doctors_block(doctors: Optional[Sequence[Dict[str, Any]]]) -> str:
    if not doctors:
        return "Not available"
    return "\n".join(
        f"- {d['name']} ({d.get('specialization')}) - Fee: ${d.get('consultation_fee')} [ID: {d['id']}]"
        for d in doctors
    )


class LLMClient:
    """
    Classifies a conversation into one of the closed actions.

    Timeouts and connection errors degrade to a clarification reply; any
    other API failure raises LLMUnavailable. Requests are never retried.
    """

    def __init__(self, client: Optional[OpenAI] = None, model: Optional[str] = None):
        self._client = client
        self.model = model or settings.LLM_MODEL

    def _get_client(self) -> OpenAI:
        if self._client is None:
            try:
                self._client = OpenAI(
                    api_key=settings.LLM_API_KEY,
                    base_url=settings.LLM_BASE_URL,
                    timeout=settings.LLM_TIMEOUT_SECONDS,
                    max_retries=0,
                )
            except OpenAIError as e:
                raise LLMUnavailable(f"LLM client not configured: {e}") from e
        return self._client

    def classify(self, transcript: Sequence[ConversationTurn], context: Optional[Dict[str, Any]] = None) -> ClassifiedAction:
        messages: List[Dict[str, str]] = [{"role": "system", "content": self.build_system_prompt(context or {})}]
        messages += [{"role": t.role, "content": t.content} for t in transcript]

        client = self._get_client()
        try:
            resp = client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=settings.LLM_TEMPERATURE,
                max_tokens=settings.LLM_MAX_TOKENS,
                response_format={"type": "json_object"},
                timeout=settings.LLM_TIMEOUT_SECONDS,
            )
        except (APITimeoutError, APIConnectionError) as e:
            logger.warning("LLM timeout/connection error, returning fallback: %s", e)
            return clarification_fallback(CONNECTION_TROUBLE)
        except OpenAIError as e:
            logger.exception("LLM API error: %s", e)
            raise LLMUnavailable(str(e)) from e

        content = (resp.choices[0].message.content or "") if resp.choices else ""
        return self.parse_structured_response(content)

    def parse_structured_response(self, content: str) -> ClassifiedAction:
        try:
            return decode_action(json.loads(_extract_json(content)))
        except (ValueError, ActionDecodeError) as e:
            logger.warning("Unusable LLM response (%s). Raw content: %r", e, content[:500])
            return clarification_fallback()

    def build_system_prompt(self, context: Dict[str, Any]) -> str:
        info = context.get("clinic_info")
        doctors = context.get("doctors")
        session = context.get("session_data") or {}
        today = context.get("today") or timeutils.local_today().isoformat()
        first_id = doctors[0]["id"] if doctors else "uuid-here"
        actions = ", ".join(f'"{a.value}"' for a in Action)

        prompt = f"""You are an AI receptionist for {(info or {}).get('name') or 'our clinic'}. Your role is to assist patients professionally and efficiently.

CLINIC INFORMATION:
{_clinic_block(info)}

AVAILABLE DOCTORS:
{_doctors_block(doctors)}

IMPORTANT: When booking appointments, you MUST use the doctor's ID in the "doctor_id" field, NOT the doctor's name.

CAPABILITIES:
1. Greet patients warmly and professionally
2. Answer questions about clinic hours, location, fees, and services
3. Check doctor availability and schedules
4. Book, reschedule, or cancel appointments
5. Collect and validate patient information (name, email, phone)
6. Recommend a doctor based on the patient's needs
7. Escalate complex medical questions or complaints to human staff

RESPONSE FORMAT:
You MUST respond with a JSON object containing:
{{
  "action": "<action_type>",
  "fulfillment_text": "<friendly response to patient>",
  "data": {{<optional structured data>}},
  "requires_confirmation": <true/false>
}}

ACTIONS: one of {actions}

DATA FIELD EXAMPLES:
- For "check_availability": {{"doctor_id": "{first_id}", "date": "YYYY-MM-DD"}}
- For "book_appointment": {{"doctor_id": "{first_id}", "date": "YYYY-MM-DD", "time": "14:00", "patient_name": "John Doe", "patient_email": "john@example.com", "patient_phone": "+1-555-0123"}}
- For "reschedule_appointment": {{"patient_email": "john@example.com", "new_date": "YYYY-MM-DD", "new_time": "15:00"}}
- For "cancel_appointment": {{"appointment_id": "uuid", "patient_email": "john@example.com"}}
- For "collect_patient_info": {{"missing_fields": ["name", "email", "phone"]}}
- For "recommend_doctor": {{"doctor_id": "{first_id}", "specialization": "Cardiology"}}

For rescheduling you don't need the appointment_id: once you have the patient's email, new_date and new_time, use "reschedule_appointment" and the system finds the appointment from the email.

CRITICAL DATE/TIME FORMAT RULES:
- ALWAYS use YYYY-MM-DD for dates and HH:MM 24-hour format for times ("4 PM" is "16:00", not "04:00")
- When the patient says "Thursday", calculate the actual date
- Current date for reference: {today}

IMPORTANT RULES:
1. Never provide medical advice - escalate medical questions
2. Confirm appointment details before booking; use "requires_confirmation": true when booking, cancelling or rescheduling
3. For booking you need: doctor, date, time, patient name, email, phone
4. NEVER make up available time slots - only use "check_availability" to get real slots
5. If checking availability returns no slots, tell the patient the doctor is not available that day and suggest another date
6. NEVER say an appointment is booked, rescheduled or cancelled until the action completes - say you're "checking" or "processing"
7. ALWAYS respond with valid JSON only, no additional text

PRIVACY:
- Treat all patient data as Protected Health Information (PHI)"""

        if session:
            prompt += f"\n\nKNOWN SESSION FACTS:\n{json.dumps(session, indent=2, default=str)}"
        if context.get("no_slots_available"):
            prompt += (
                f"\n\nNOTE: There are no available slots on {context.get('requested_date')}. "
                "Do not offer any time on that date."
            )
        return prompt
