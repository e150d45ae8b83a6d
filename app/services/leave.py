# app/services/leave.py
from __future__ import annotations
import logging
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from .. import models
from ..errors import NotFoundError, BadRequestError
from .clock import day_bounds

logger = logging.getLogger(__name__)

_NOT_COUNTED = (models.AppointmentStatus.CANCELLED, models.AppointmentStatus.COMPLETED)


# ====== Blocking predicates (used by the conflict guard and the slot generator) ======
def is_date_blocked_by_pto(db: Session, doctor_id: int, day: date) -> bool:
    count = (
        db.query(models.DoctorPTO)
        .filter(models.DoctorPTO.doctor_id == doctor_id)
        .filter(models.DoctorPTO.start_date <= day)
        .filter(models.DoctorPTO.end_date >= day)
        .count()
    )
    return count > 0


def is_range_blocked_by_pto(db: Session, doctor_id: int, start: datetime, end: datetime) -> bool:
    """
    Both sides are compared as whole days: [start, end) touches the days
    start.date() .. (end - 1µs).date().
    """
    first_day = start.date()
    last_day = (end - timedelta(microseconds=1)).date() if end > start else first_day
    count = (
        db.query(models.DoctorPTO)
        .filter(models.DoctorPTO.doctor_id == doctor_id)
        .filter(models.DoctorPTO.start_date <= last_day)
        .filter(models.DoctorPTO.end_date >= first_day)
        .count()
    )
    return count > 0


# ====== CRUD ======
def find_all(db: Session, doctor_id: int) -> list[models.DoctorPTO]:
    return (
        db.query(models.DoctorPTO)
        .filter(models.DoctorPTO.doctor_id == doctor_id)
        .order_by(models.DoctorPTO.start_date.asc())
        .all()
    )


def find_one(db: Session, pto_id: int, doctor_id: int) -> models.DoctorPTO:
    pto = (
        db.query(models.DoctorPTO)
        .filter(models.DoctorPTO.id == pto_id)
        .filter(models.DoctorPTO.doctor_id == doctor_id)
        .first()
    )
    if not pto:
        raise NotFoundError("PTO not found")
    return pto


def create(db: Session, doctor_id: int, label: str, start_date: date, end_date: date,
           announcements: int = 2) -> models.DoctorPTO:
    _validate_dates(start_date, end_date)
    pto = models.DoctorPTO(
        doctor_id=doctor_id,
        label=label,
        start_date=start_date,
        end_date=end_date,
        announcements=announcements,
        appointments_count=count_affected_appointments(db, doctor_id, start_date, end_date),
    )
    db.add(pto)
    db.commit()
    db.refresh(pto)
    logger.info("PTO created: id=%s doctor=%s %s..%s affected=%s",
                pto.id, doctor_id, start_date, end_date, pto.appointments_count)
    return pto


def update(db: Session, pto_id: int, doctor_id: int, label: Optional[str] = None,
           start_date: Optional[date] = None, end_date: Optional[date] = None,
           announcements: Optional[int] = None) -> models.DoctorPTO:
    pto = find_one(db, pto_id, doctor_id)

    if label is not None:
        pto.label = label
    if announcements is not None:
        pto.announcements = announcements

    if start_date is not None or end_date is not None:
        start = start_date or pto.start_date
        end = end_date or pto.end_date
        _validate_dates(start, end)
        pto.start_date = start
        pto.end_date = end
        pto.appointments_count = count_affected_appointments(db, doctor_id, start, end)

    db.commit()
    db.refresh(pto)
    return pto


def remove(db: Session, pto_id: int, doctor_id: int) -> None:
    pto = find_one(db, pto_id, doctor_id)
    db.delete(pto)
    db.commit()


def count_affected_appointments(db: Session, doctor_id: int, start_date: date, end_date: date) -> int:
    range_start, _ = day_bounds(start_date)
    _, range_end = day_bounds(end_date)
    return (
        db.query(models.Appointment)
        .filter(models.Appointment.doctor_id == doctor_id)
        .filter(models.Appointment.start_time >= range_start)
        .filter(models.Appointment.start_time < range_end)
        .filter(models.Appointment.status.notin_(_NOT_COUNTED))
        .count()
    )


def _validate_dates(start: date, end: date) -> None:
    if start > end:
        raise BadRequestError("Start date must be before or equal to end date")
