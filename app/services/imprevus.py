# app/services/imprevus.py
"""
Imprevus: unavailability a doctor declares on short notice (illness,
emergency...). When it blocks time slots, creating one cancels the
bookings it overlaps and optionally warns the patients.
"""
from __future__ import annotations
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import update as sql_update
from sqlalchemy.orm import Session

from .. import models, schemas
from ..errors import BadRequestError, ForbiddenError, NotFoundError
from . import conflicts, notifications
from .clock import to_local_naive, human_datetime

logger = logging.getLogger(__name__)


def _validate_range(start: datetime, end: datetime) -> None:
    if start >= end:
        raise BadRequestError("Start date must be before end date")


# ====== Lookups ======
def get_affected_appointments(db: Session, doctor_id: int, start: datetime, end: datetime) -> list[models.Appointment]:
    """Non-cancelled bookings of the doctor overlapping [start, end), with patients and type."""
    start, end = to_local_naive(start), to_local_naive(end)
    _validate_range(start, end)
    return conflicts.find_overlapping_appointments(db, doctor_id, start, end, with_details=True)


def check_time_slot_blocked(db: Session, doctor_id: int, start: datetime, end: datetime) -> bool:
    return conflicts.is_blocked_by_disruption(db, doctor_id, start, end)


def find_one(db: Session, imprevu_id: int, doctor_id: int) -> models.Imprevu:
    imprevu = db.get(models.Imprevu, imprevu_id)
    if not imprevu:
        raise NotFoundError("Imprevu not found")
    if imprevu.doctor_id != doctor_id:
        raise ForbiddenError("Access denied")
    return imprevu


def find_all(db: Session, doctor_id: int, start_date: Optional[datetime] = None,
             end_date: Optional[datetime] = None, page: int = 1, limit: int = 50) -> dict:
    q = db.query(models.Imprevu).filter(models.Imprevu.doctor_id == doctor_id)
    if start_date is not None and end_date is not None:
        q = q.filter(models.Imprevu.start_date < to_local_naive(end_date),
                     models.Imprevu.end_date > to_local_naive(start_date))
    elif start_date is not None:
        q = q.filter(models.Imprevu.end_date >= to_local_naive(start_date))
    elif end_date is not None:
        q = q.filter(models.Imprevu.start_date <= to_local_naive(end_date))

    total = q.count()
    imprevus = (
        q.order_by(models.Imprevu.start_date.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {"imprevus": imprevus, "total": total, "page": page, "limit": limit}


# ====== Cascade ======
def _select_to_cancel(affected: list[models.Appointment],
                      consultation_type_ids: Optional[list[int]],
                      appointment_ids: Optional[list[int]]) -> list[models.Appointment]:
    """
    consultation_type_ids: empty or None = no narrowing.
    appointment_ids: None = keep everything left (legacy "cancel all");
    [] = the doctor deselected everything, cancel none.
    """
    selected = affected
    if consultation_type_ids:
        selected = [a for a in selected if a.consultation_type_id in consultation_type_ids]
    if appointment_ids is not None:
        wanted = set(appointment_ids)
        selected = [a for a in selected if a.id in wanted]
    return selected


def _bulk_cancel(db: Session, appointment_ids: list[int]) -> None:
    """One UPDATE for the whole batch (no per-appointment audit rows)."""
    if not appointment_ids:
        return
    db.execute(
        sql_update(models.Appointment)
        .where(models.Appointment.id.in_(appointment_ids))
        .values(status=models.AppointmentStatus.CANCELLED)
        .execution_options(synchronize_session=False)
    )


def _notify_cancelled(imprevu: models.Imprevu, cancelled: list[models.Appointment], doctor_name: str) -> None:
    for appt in cancelled:
        recipients = notifications.email_recipients(appt)
        when = human_datetime(appt.start_time)
        notifications.deliver_each(
            recipients,
            lambda to: notifications.send_disruption_notice(to, recipients[to], doctor_name, when, imprevu.message),
        )


def _doctor_name(db: Session, doctor_id: int) -> str:
    doctor = db.get(models.Doctor, doctor_id)
    return doctor.display_name if doctor else "Your doctor"


# ====== CRUD ======
def create(db: Session, doctor_id: int, data: schemas.ImprevuCreate) -> models.Imprevu:
    start = to_local_naive(data.start_date)
    end = to_local_naive(data.end_date)
    _validate_range(start, end)

    cancelled: list[models.Appointment] = []
    try:
        imprevu = models.Imprevu(
            doctor_id=doctor_id,
            start_date=start,
            end_date=end,
            notify_patients=data.notify_patients,
            block_time_slots=data.block_time_slots,
            reason=data.reason,
            message=data.message,
            cancelled_appointments_count=0,
        )
        db.add(imprevu)

        if data.block_time_slots:
            affected = conflicts.find_overlapping_appointments(db, doctor_id, start, end, with_details=True)
            cancelled = _select_to_cancel(affected, data.consultation_type_ids, data.appointment_ids)
            logger.info("Imprevu doctor=%s affected=%s to_cancel=%s",
                        doctor_id, len(affected), [a.id for a in cancelled])
            _bulk_cancel(db, [a.id for a in cancelled])
            imprevu.cancelled_appointments_count = len(cancelled)

        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(imprevu)
    if imprevu.notify_patients and cancelled:
        _notify_cancelled(imprevu, cancelled, _doctor_name(db, doctor_id))
    return imprevu


def cancel_affected_appointments(db: Session, imprevu_id: int, doctor_id: int) -> dict:
    """Re-runs the cascade on demand: every booking still overlapping the imprevu is cancelled."""
    imprevu = find_one(db, imprevu_id, doctor_id)
    affected = conflicts.find_overlapping_appointments(
        db, doctor_id, imprevu.start_date, imprevu.end_date, with_details=True)
    ids = [a.id for a in affected]
    try:
        _bulk_cancel(db, ids)
        imprevu.cancelled_appointments_count = (imprevu.cancelled_appointments_count or 0) + len(ids)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Imprevu %s: cancelled %s more appointments", imprevu_id, len(ids))
    if imprevu.notify_patients and affected:
        _notify_cancelled(imprevu, affected, _doctor_name(db, doctor_id))
    return {"cancelled_count": len(ids), "appointment_ids": ids}


def update(db: Session, imprevu_id: int, doctor_id: int, data: schemas.ImprevuUpdate) -> models.Imprevu:
    """Edits the record only; bookings are not re-evaluated."""
    imprevu = find_one(db, imprevu_id, doctor_id)
    values = data.model_dump(exclude_unset=True)

    start = to_local_naive(values.pop("start_date")) if values.get("start_date") else imprevu.start_date
    end = to_local_naive(values.pop("end_date")) if values.get("end_date") else imprevu.end_date
    values.pop("start_date", None)
    values.pop("end_date", None)
    _validate_range(start, end)

    imprevu.start_date, imprevu.end_date = start, end
    for field, value in values.items():
        # reason and message may be cleared; the flags may not
        if value is None and field in ("notify_patients", "block_time_slots"):
            continue
        setattr(imprevu, field, value)
    db.commit()
    db.refresh(imprevu)
    return imprevu


def remove(db: Session, imprevu_id: int, doctor_id: int) -> None:
    imprevu = find_one(db, imprevu_id, doctor_id)
    db.delete(imprevu)
    db.commit()
