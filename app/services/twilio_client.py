# app/services/twilio_client.py
import logging
from typing import Optional

from twilio.rest import Client

from ..config import settings

logger = logging.getLogger(__name__)

_WA_PREFIX = "whatsapp:"


def whatsapp_address(number: str) -> str:
    """'+33 6 12 34 56 78' / 'whatsapp: 33612345678' → 'whatsapp:+33612345678'."""
    if not number:
        return number
    digits = number.strip()
    if digits.startswith(_WA_PREFIX):
        digits = digits[len(_WA_PREFIX):]
    digits = digits.replace(" ", "").lstrip("+")
    return f"{_WA_PREFIX}+{digits}"


def get_twilio_client() -> Optional[Client]:
    if not (settings.TWILIO_ACCOUNT_SID and settings.TWILIO_AUTH_TOKEN):
        return None
    return Client(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN)


def send_whatsapp(to: str, body: str) -> dict:
    """
    Sends a WhatsApp text through Twilio.
    - DRY_RUN: only logged, returns {"dry_run": True, ...}
    - No credentials or sender: MOCK mode, returns {"mock": True, ...}
    - Twilio errors propagate; notifications.deliver_each logs them per recipient.
    """
    recipient = whatsapp_address(to)
    sender = whatsapp_address(settings.TWILIO_WHATSAPP_FROM or "")

    if settings.DRY_RUN:
        logger.info("[DRY_RUN WHATSAPP] to=%s body=%s", recipient, body.replace("\n", " | "))
        return {"dry_run": True, "to": recipient}

    client = get_twilio_client()
    if client is None or not sender:
        logger.info("[WA MOCK] to=%s", recipient)
        return {"mock": True, "to": recipient}

    msg = client.messages.create(from_=sender, to=recipient, body=body)
    logger.info("WhatsApp sent: to=%s sid=%s", recipient, msg.sid)
    return {"sid": msg.sid, "to": recipient}
