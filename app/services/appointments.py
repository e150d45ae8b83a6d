# app/services/appointments.py
"""
Booking lifecycle: create / update / status / delete of appointments.

Every temporal change goes through the conflict guard (unless the caller
explicitly skips it) and every significant change is written to the audit
trail in the same transaction as the change itself.
"""
from __future__ import annotations
import logging
from datetime import datetime, date, timedelta
from typing import Optional

from sqlalchemy.orm import Session, selectinload

from ..config import settings
from .. import models, schemas
from ..errors import BadRequestError, ForbiddenError, NotFoundError
from . import conflicts, directory, history, notifications
from .clock import now_local, to_local_naive, day_bounds, human_datetime

logger = logging.getLogger(__name__)

AUDITED_FIELDS = ("title", "description", "notes")


# ====== Queries ======
def _with_details(q):
    return q.options(
        selectinload(models.Appointment.patient),
        selectinload(models.Appointment.appointment_patients).selectinload(models.AppointmentPatient.patient),
        selectinload(models.Appointment.consultation_type),
        selectinload(models.Appointment.doctor),
    )


def find_one(db: Session, appointment_id: int, doctor_id: int) -> models.Appointment:
    appt = _with_details(db.query(models.Appointment)).filter(models.Appointment.id == appointment_id).first()
    if not appt:
        raise NotFoundError("Appointment not found")
    if appt.doctor_id != doctor_id:
        raise ForbiddenError("Access denied")
    return appt


def find_all(db: Session, doctor_id: int, day: Optional[date] = None,
             start_date: Optional[datetime] = None, end_date: Optional[datetime] = None,
             status: Optional[models.AppointmentStatus] = None, patient_id: Optional[int] = None,
             consultation_type_id: Optional[int] = None, page: int = 1, limit: int = 50) -> dict:
    q = db.query(models.Appointment).filter(models.Appointment.doctor_id == doctor_id)

    # A single day wins over a start/end range
    if day is not None:
        day_start, day_end = day_bounds(day)
        q = q.filter(models.Appointment.start_time >= day_start, models.Appointment.start_time < day_end)
    else:
        if start_date is not None:
            q = q.filter(models.Appointment.start_time >= to_local_naive(start_date))
        if end_date is not None:
            q = q.filter(models.Appointment.start_time <= to_local_naive(end_date))

    if status is not None:
        q = q.filter(models.Appointment.status == status)
    if patient_id is not None:
        q = q.filter(models.Appointment.appointment_patients.any(
            models.AppointmentPatient.patient_id == patient_id))
    if consultation_type_id is not None:
        q = q.filter(models.Appointment.consultation_type_id == consultation_type_id)

    total = q.count()
    appointments = (
        _with_details(q)
        .order_by(models.Appointment.start_time.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {"appointments": appointments, "total": total, "page": page, "limit": limit}


def get_upcoming(db: Session, doctor_id: int, limit: Optional[int] = None,
                 now: Optional[datetime] = None) -> list[models.Appointment]:
    return (
        _with_details(db.query(models.Appointment))
        .filter(models.Appointment.doctor_id == doctor_id)
        .filter(models.Appointment.start_time >= (now or now_local()))
        .filter(models.Appointment.status.in_(models.UPCOMING_STATUSES))
        .order_by(models.Appointment.start_time.asc())
        .limit(limit or settings.UPCOMING_LIMIT)
        .all()
    )


def get_by_date(db: Session, doctor_id: int, day: date) -> list[models.Appointment]:
    day_start, day_end = day_bounds(day)
    return (
        _with_details(db.query(models.Appointment))
        .filter(models.Appointment.doctor_id == doctor_id)
        .filter(models.Appointment.start_time >= day_start)
        .filter(models.Appointment.start_time < day_end)
        .order_by(models.Appointment.start_time.asc())
        .all()
    )


# ====== Validation helpers ======
def _resolve_patient_ids(patient_id: Optional[int], patient_ids: Optional[list[int]]) -> Optional[list[int]]:
    """patient_ids wins over the legacy patient_id; order kept, duplicates dropped."""
    if patient_ids:
        ids = patient_ids
    elif patient_id is not None:
        ids = [patient_id]
    else:
        return None
    return list(dict.fromkeys(ids))


def _validate_times(start: datetime, end: datetime) -> None:
    if start >= end:
        raise BadRequestError("Start time must be before end time")
    if start < now_local():
        raise BadRequestError("Cannot schedule appointment in the past")
    if end - start > timedelta(hours=settings.MAX_APPOINTMENT_HOURS):
        raise BadRequestError(f"Appointment duration cannot exceed {settings.MAX_APPOINTMENT_HOURS} hours")


def _check_type_enabled_for_patients(db: Session, consultation_type_id: int,
                                     patients: list[models.Patient]) -> None:
    for p in patients:
        if not directory.is_consultation_type_enabled_for_patient(db, p.id, consultation_type_id):
            raise BadRequestError(f"Consultation type is not enabled for patient {p.name or p.id}")


def _lock_doctor(db: Session, doctor_id: int) -> None:
    """
    Serializes the check-then-write of bookings per doctor: concurrent
    writers for the same doctor wait here until the first one commits.
    (SELECT ... FOR UPDATE; SQLite ignores it and is single-writer anyway.)
    """
    db.query(models.Doctor).filter(models.Doctor.id == doctor_id).with_for_update().first()


def _reactivates(old: models.AppointmentStatus, new: models.AppointmentStatus) -> bool:
    return old == models.AppointmentStatus.CANCELLED and new != models.AppointmentStatus.CANCELLED


# ====== Lifecycle ======
def create(db: Session, doctor_id: int, data: schemas.AppointmentCreate) -> models.Appointment:
    patient_ids = _resolve_patient_ids(data.patient_id, data.patient_ids)
    if not patient_ids:
        raise BadRequestError("At least one patient is required")
    patients = [directory.verify_patient_belongs_to_doctor(db, pid, doctor_id) for pid in patient_ids]

    if data.consultation_type_id is not None:
        directory.find_enabled_consultation_type(db, data.consultation_type_id, doctor_id)
        _check_type_enabled_for_patients(db, data.consultation_type_id, patients)

    start = to_local_naive(data.start_time)
    end = to_local_naive(data.end_time)
    _validate_times(start, end)

    try:
        _lock_doctor(db, doctor_id)
        if not data.skip_conflict_check:
            conflicts.ensure_bookable(db, doctor_id, start, end)

        appt = models.Appointment(
            doctor_id=doctor_id,
            patient_id=patient_ids[0],
            consultation_type_id=data.consultation_type_id,
            start_time=start,
            end_time=end,
            status=data.status,
            title=data.title,
            description=data.description,
            notes=data.notes,
            notify_reminder=data.notify_reminder,
            reminder_message=data.reminder_message,
        )
        appt.appointment_patients = [
            models.AppointmentPatient(patient_id=pid, is_primary=(i == 0))
            for i, pid in enumerate(patient_ids)
        ]
        db.add(appt)
        db.flush()
        history.log_creation(db, appt, doctor_id, patient_ids)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Appointment created: id=%s doctor=%s %s → %s patients=%s",
                appt.id, doctor_id, start.isoformat(), end.isoformat(), patient_ids)
    return find_one(db, appt.id, doctor_id)


def update(db: Session, appointment_id: int, doctor_id: int, data: schemas.AppointmentUpdate) -> models.Appointment:
    appt = find_one(db, appointment_id, doctor_id)
    sent = data.model_fields_set

    # --- patients ---
    new_patient_ids = None
    if "patient_id" in sent or "patient_ids" in sent:
        new_patient_ids = _resolve_patient_ids(data.patient_id, data.patient_ids)
        if not new_patient_ids:
            raise BadRequestError("At least one patient is required")
    new_patients = None
    if new_patient_ids:
        new_patients = [directory.verify_patient_belongs_to_doctor(db, pid, doctor_id) for pid in new_patient_ids]

    # --- consultation type ---
    new_type = None
    if data.consultation_type_id is not None and data.consultation_type_id != appt.consultation_type_id:
        new_type = directory.find_enabled_consultation_type(db, data.consultation_type_id, doctor_id)
    effective_type_id = new_type.id if new_type else appt.consultation_type_id
    if effective_type_id is not None and (new_type is not None or new_patients is not None):
        _check_type_enabled_for_patients(db, effective_type_id, new_patients or appt.participants)

    # --- times ---
    old_start, old_end = appt.start_time, appt.end_time
    new_start = to_local_naive(data.start_time) if data.start_time is not None else old_start
    new_end = to_local_naive(data.end_time) if data.end_time is not None else old_end
    rescheduled = (new_start, new_end) != (old_start, old_end)
    if rescheduled:
        _validate_times(new_start, new_end)

    try:
        if rescheduled:
            _lock_doctor(db, doctor_id)
            if not data.skip_conflict_check:
                conflicts.ensure_bookable(db, doctor_id, new_start, new_end, exclude_appointment_id=appt.id)
            appt.start_time, appt.end_time = new_start, new_end
            # moved appointment gets a fresh reminder
            appt.reminder_sent_at = None
            history.log_reschedule(db, appt.id, doctor_id, old_start, old_end, new_start, new_end)

        if new_type is not None:
            old_name = appt.consultation_type.name if appt.consultation_type else None
            appt.consultation_type_id = new_type.id
            appt.consultation_type = new_type
            history.log_consultation_type_change(db, appt.id, doctor_id, old_name, new_type.name)

        changes = {}
        for field in AUDITED_FIELDS:
            if field in sent:
                before, after = getattr(appt, field), getattr(data, field)
                if before != after:
                    changes[field] = (before, after)
                    setattr(appt, field, after)
        if changes:
            history.log_update(db, appt.id, doctor_id, changes)

        if data.status is not None and data.status != appt.status:
            # a cancelled booking coming back must still fit its slot
            if _reactivates(appt.status, data.status) and not data.skip_conflict_check:
                _lock_doctor(db, doctor_id)
                conflicts.ensure_bookable(db, doctor_id, appt.start_time, appt.end_time,
                                          exclude_appointment_id=appt.id)
            history.log_status_change(db, appt.id, doctor_id, appt.status, data.status)
            appt.status = data.status

        if data.notify_reminder is not None:
            appt.notify_reminder = data.notify_reminder
        if "reminder_message" in sent:
            appt.reminder_message = data.reminder_message

        if new_patient_ids:
            # Replaced wholesale: old join rows are deleted before the new ones go in
            appt.appointment_patients.clear()
            db.flush()
            appt.appointment_patients.extend(
                models.AppointmentPatient(patient_id=pid, is_primary=(i == 0))
                for i, pid in enumerate(new_patient_ids)
            )
            appt.patient_id = new_patient_ids[0]

        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Appointment updated: id=%s rescheduled=%s", appointment_id, rescheduled)
    db.expire_all()
    return find_one(db, appointment_id, doctor_id)


def update_status(db: Session, appointment_id: int, doctor_id: int,
                  status: models.AppointmentStatus) -> models.Appointment:
    """
    Any status may be written over any other; only a real change is audited.
    Leaving CANCELLED re-runs the conflict guard on the stored interval.
    """
    appt = find_one(db, appointment_id, doctor_id)
    if appt.status == status:
        return appt
    try:
        if _reactivates(appt.status, status):
            _lock_doctor(db, doctor_id)
            conflicts.ensure_bookable(db, doctor_id, appt.start_time, appt.end_time,
                                      exclude_appointment_id=appt.id)
        history.log_status_change(db, appt.id, doctor_id, appt.status, status)
        appt.status = status
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("Appointment status: id=%s → %s", appointment_id, status.value)
    return find_one(db, appointment_id, doctor_id)


def remove(db: Session, appointment_id: int, doctor_id: int) -> None:
    """Hard delete. Not audited (cancellation is the audited path); past history stays."""
    appt = find_one(db, appointment_id, doctor_id)
    db.delete(appt)
    db.commit()
    logger.info("Appointment deleted: id=%s doctor=%s", appointment_id, doctor_id)


def send_absence_notification(db: Session, appointment_id: int, doctor_id: int) -> dict:
    appt = find_one(db, appointment_id, doctor_id)
    recipients = notifications.email_recipients(appt)
    if not recipients:
        raise BadRequestError("No patients with email addresses found")

    doctor_name = appt.doctor.display_name if appt.doctor else "Your doctor"
    when = human_datetime(appt.start_time)
    sent, failed = notifications.deliver_each(
        recipients,
        lambda to: notifications.send_absence_notification(to, recipients[to], doctor_name, when),
    )
    return {"sent": sent, "failed": failed}
