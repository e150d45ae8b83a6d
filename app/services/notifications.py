# app/services/notifications.py
"""
Patient-facing messages. Delivery is fire-and-forget for the scheduling
code: a failing recipient is logged and never breaks the booking flow.
"""
import logging
from typing import Callable, Iterable, Optional

from .. import models
from .email_client import send_email
from .twilio_client import send_whatsapp

logger = logging.getLogger(__name__)


def send_reminder(email: str, patient_name: str, doctor_name: str, message: str) -> None:
    """Reminder before an appointment (custom text or the generated default)."""
    body = (
        f"Hello {patient_name},\n\n"
        f"{message}\n\n"
        f"{doctor_name}"
    )
    send_email(email, "Appointment reminder", body)


def send_absence_notification(email: str, patient_name: str, doctor_name: str, appointment_time: str) -> None:
    """Tells the patient their absence was recorded."""
    body = (
        f"Hello {patient_name},\n\n"
        f"Your absence at your appointment of {appointment_time} has been recorded.\n"
        "Please contact the clinic if you want to book a new appointment.\n\n"
        f"{doctor_name}"
    )
    send_email(email, f"Absence recorded - appointment of {appointment_time}", body)


def send_disruption_notice(email: str, patient_name: str, doctor_name: str, appointment_time: str,
                           message: Optional[str] = None) -> None:
    """Appointment cancelled because the doctor is unavailable."""
    body = (
        f"Hello {patient_name},\n\n"
        f"Your appointment of {appointment_time} is cancelled: the doctor is unavailable.\n"
    )
    if message:
        body += f"\n{message}\n"
    body += f"\nPlease contact the clinic to book a new slot.\n\n{doctor_name}"
    send_email(email, f"Appointment cancelled - {appointment_time}", body)


def send_whatsapp_text(phone: str, body: str) -> None:
    send_whatsapp(phone, body)


# ------------------ helpers ------------------

def email_recipients(appointment: models.Appointment) -> dict[str, str]:
    """{email: patient name} for every participant, primary first, without duplicates."""
    out: dict[str, str] = {}
    candidates = []
    if appointment.patient is not None:
        candidates.append(appointment.patient)
    candidates += appointment.participants
    for p in candidates:
        if p.email and p.email not in out:
            out[p.email] = p.name or "Patient"
    return out


def phone_recipients(appointment: models.Appointment) -> dict[str, str]:
    out: dict[str, str] = {}
    for p in appointment.participants:
        if p.phone_number and p.phone_number not in out:
            out[p.phone_number] = p.name or "Patient"
    return out


def deliver_each(recipients: Iterable[str], send: Callable[[str], None]) -> tuple[int, int]:
    """Calls send(recipient) for each one; failures are logged and counted. Returns (sent, failed)."""
    sent = failed = 0
    for to in recipients:
        try:
            send(to)
            sent += 1
        except Exception:
            failed += 1
            logger.exception("Notification to %s failed", to)
    return sent, failed
