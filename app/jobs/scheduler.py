import logging
from datetime import datetime, timedelta
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy import update
from sqlalchemy.orm import Session, selectinload

from ..database import SessionLocal
from ..config import settings
from ..models import Appointment, AppointmentPatient, UPCOMING_STATUSES
from ..services import notifications
from ..services.clock import now_local, human_datetime

logger = logging.getLogger(__name__)

_scheduler: Optional[BackgroundScheduler] = None


def _claim(db: Session, appointment_id: int, now: datetime) -> bool:
    """
    Marks the reminder as sent only if nobody did it before (conditional
    UPDATE). Whoever gets rowcount == 1 owns the sending.
    """
    result = db.execute(
        update(Appointment)
        .where(Appointment.id == appointment_id)
        .where(Appointment.reminder_sent_at.is_(None))
        .values(reminder_sent_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


def _default_message(appt: Appointment) -> str:
    return f"Reminder: your appointment is scheduled on {human_datetime(appt.start_time)}."


def run_reminder_scan(db: Session, now: Optional[datetime] = None) -> int:
    """Sends the reminders due in [now, now + window]. Returns how many appointments were reminded."""
    now = now or now_local()
    window_end = now + timedelta(minutes=settings.REMINDER_WINDOW_MINUTES)

    appts = (
        db.query(Appointment)
        .options(
            selectinload(Appointment.patient),
            selectinload(Appointment.appointment_patients).selectinload(AppointmentPatient.patient),
            selectinload(Appointment.doctor),
        )
        .filter(
            Appointment.notify_reminder.is_(True),
            Appointment.reminder_sent_at.is_(None),
            Appointment.status.in_(UPCOMING_STATUSES),
            Appointment.start_time >= now,
            Appointment.start_time <= window_end,
        )
        .all()
    )
    logger.debug("Reminder scan: %s candidates", len(appts))

    reminded = 0
    for a in appts:
        # read everything we need before the claim commit expires the instance
        message = a.reminder_message or _default_message(a)
        doctor_name = a.doctor.display_name if a.doctor else "Your doctor"
        emails = notifications.email_recipients(a)
        phones = notifications.phone_recipients(a) if settings.WHATSAPP_REMINDERS else {}

        if not _claim(db, a.id, now):
            continue
        reminded += 1

        notifications.deliver_each(
            emails,
            lambda to: notifications.send_reminder(to, emails[to], doctor_name, message),
        )
        if phones:
            notifications.deliver_each(phones, lambda to: notifications.send_whatsapp_text(to, message))
        logger.info("Reminder sent: appointment=%s recipients=%s", a.id, len(emails) + len(phones))

    return reminded


def reminder_job():
    db: Session = SessionLocal()
    try:
        run_reminder_scan(db)
    except Exception:
        logger.exception("Reminder job failed")
        db.rollback()
    finally:
        db.close()


def start_scheduler() -> BackgroundScheduler:
    global _scheduler
    scheduler = BackgroundScheduler(timezone=settings.TIMEZONE)
    scheduler.add_job(
        reminder_job,
        IntervalTrigger(seconds=settings.REMINDER_INTERVAL_SECONDS),
        id="appointment_reminders",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    scheduler.start()
    _scheduler = scheduler
    logger.info("Reminder scheduler started (every %ss)", settings.REMINDER_INTERVAL_SECONDS)
    return scheduler


def stop_scheduler() -> None:
    global _scheduler
    if _scheduler is not None:
        _scheduler.shutdown(wait=False)
        _scheduler = None


def scheduler_running() -> bool:
    return _scheduler is not None and _scheduler.running
