# app/services/twilio_client.py
import logging
import re

from twilio.rest import Client
from ..config import settings

logger = logging.getLogger(__name__)


def _normalize_number(number: str) -> str:
    """'+1 (555) 010-0123' -> '+15550100123'."""
    if not number:
        return number
    digits = re.sub(r"[^\d]", "", number)
    return f"+{digits}" if digits else ""


def get_twilio_client() -> Client | None:
    if not settings.TWILIO_ACCOUNT_SID or not settings.TWILIO_AUTH_TOKEN:
        return None
    return Client(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN)


def send_sms(to: str, body: str) -> dict:
    """
    Sends a text message through Twilio.
    - DRY_RUN=true: nothing is sent; logs and returns {"dry_run": True, ...}
    - Missing credentials: MOCK mode (nothing is sent), returns {"mock": True, ...}
    - Send error: logged and returned as {"error": "..."}
    """
    to_norm = _normalize_number(to)
    from_norm = _normalize_number(settings.TWILIO_SMS_FROM or "")
    flat = body.replace("\n", " | ")

    if settings.DRY_RUN:
        logger.info("[DRY_RUN SMS] to=%s body=%s", to_norm, flat)
        return {"dry_run": True, "to": to_norm, "body": body}

    if not to_norm:
        logger.info("[SMS SKIPPED] no destination number body=%s", flat)
        return {"skipped": True, "body": body}

    client = get_twilio_client()
    if client is None or not from_norm:
        logger.info("[SMS MOCK] to=%s body=%s", to_norm, flat)
        return {"mock": True, "to": to_norm, "body": body}

    try:
        msg = client.messages.create(from_=from_norm, to=to_norm, body=body)
        return {"sid": msg.sid, "to": to_norm}
    except Exception as e:
        logger.warning("[SMS ERROR] to=%s err=%s", to_norm, e)
        return {"error": str(e), "to": to_norm}
