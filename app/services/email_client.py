# app/services/email_client.py
import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from ..config import settings

logger = logging.getLogger(__name__)


def _from_header() -> str:
    return f'"{settings.EMAIL_FROM_NAME}" <{settings.EMAIL_FROM}>'


def send_email(to: str, subject: str, text: str, html: Optional[str] = None) -> dict:
    """
    Sends an email over SMTP.
    - DRY_RUN=true: nothing is sent, only logged; returns {"dry_run": True, ...}
    - No SMTP_HOST configured: MOCK mode (only logged); returns {"mock": True, ...}
    - Delivery errors are raised; callers decide whether they matter.
    """
    if settings.DRY_RUN:
        logger.info("[DRY_RUN EMAIL] to=%s subject=%s body=%s", to, subject, text.replace("\n", " | "))
        return {"dry_run": True, "to": to, "subject": subject}

    if not settings.SMTP_HOST:
        logger.info("[EMAIL MOCK] to=%s subject=%s", to, subject)
        return {"mock": True, "to": to, "subject": subject}

    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = _from_header()
    msg["To"] = to
    msg.attach(MIMEText(text, "plain", "utf-8"))
    if html:
        msg.attach(MIMEText(html, "html", "utf-8"))

    port = settings.SMTP_PORT
    if port == 465:
        server = smtplib.SMTP_SSL(settings.SMTP_HOST, port, context=ssl.create_default_context(),
                                  timeout=settings.SMTP_TIMEOUT)
    else:
        server = smtplib.SMTP(settings.SMTP_HOST, port, timeout=settings.SMTP_TIMEOUT)

    try:
        if port != 465 and settings.SMTP_USE_TLS:
            server.starttls(context=ssl.create_default_context())
        if settings.SMTP_USERNAME:
            server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD or "")
        server.sendmail(settings.EMAIL_FROM, [to], msg.as_string())
    finally:
        server.quit()

    logger.info("Email sent: to=%s subject=%s", to, subject)
    return {"sent": True, "to": to}
