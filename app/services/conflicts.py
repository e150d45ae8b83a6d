# app/services/conflicts.py
"""
Conflict guard: does [start, end) collide with a booking, a disruption
(imprevu) or a leave period of the doctor?

Intervals are half-open everywhere. Callers validate start < end before
getting here.
"""
from __future__ import annotations
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session, selectinload

from .. import models
from ..errors import ConflictError
from . import leave


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start < b_end and b_start < a_end


def find_overlapping_appointments(db: Session, doctor_id: int, start: datetime, end: datetime,
                                  exclude_appointment_id: Optional[int] = None,
                                  with_details: bool = False) -> list[models.Appointment]:
    """Non-cancelled appointments of the doctor overlapping [start, end), by start time."""
    q = (
        db.query(models.Appointment)
        .filter(models.Appointment.doctor_id == doctor_id)
        .filter(models.Appointment.status != models.AppointmentStatus.CANCELLED)
        .filter(models.Appointment.start_time < end)
        .filter(models.Appointment.end_time > start)
    )
    if exclude_appointment_id is not None:
        q = q.filter(models.Appointment.id != exclude_appointment_id)
    if with_details:
        q = q.options(
            selectinload(models.Appointment.patient),
            selectinload(models.Appointment.appointment_patients).selectinload(models.AppointmentPatient.patient),
            selectinload(models.Appointment.consultation_type),
        )
    return q.order_by(models.Appointment.start_time.asc()).all()


def find_blocking_imprevus(db: Session, doctor_id: int, start: datetime, end: datetime) -> list[models.Imprevu]:
    return (
        db.query(models.Imprevu)
        .filter(models.Imprevu.doctor_id == doctor_id)
        .filter(models.Imprevu.block_time_slots.is_(True))
        .filter(models.Imprevu.start_date < end)
        .filter(models.Imprevu.end_date > start)
        .all()
    )


def has_conflict(db: Session, doctor_id: int, start: datetime, end: datetime,
                 exclude_appointment_id: Optional[int] = None) -> bool:
    q = (
        db.query(models.Appointment.id)
        .filter(models.Appointment.doctor_id == doctor_id)
        .filter(models.Appointment.status != models.AppointmentStatus.CANCELLED)
        .filter(models.Appointment.start_time < end)
        .filter(models.Appointment.end_time > start)
    )
    if exclude_appointment_id is not None:
        q = q.filter(models.Appointment.id != exclude_appointment_id)
    return q.first() is not None


def is_blocked_by_disruption(db: Session, doctor_id: int, start: datetime, end: datetime) -> bool:
    return len(find_blocking_imprevus(db, doctor_id, start, end)) > 0


def is_blocked_by_leave(db: Session, doctor_id: int, start: datetime, end: datetime) -> bool:
    return leave.is_range_blocked_by_pto(db, doctor_id, start, end)


def ensure_bookable(db: Session, doctor_id: int, start: datetime, end: datetime,
                    exclude_appointment_id: Optional[int] = None) -> None:
    """Raises ConflictError with a code telling which source blocks the interval."""
    if has_conflict(db, doctor_id, start, end, exclude_appointment_id):
        raise ConflictError("Time slot conflicts with existing appointment",
                            code=ConflictError.APPOINTMENT_OVERLAP)
    if is_blocked_by_disruption(db, doctor_id, start, end):
        raise ConflictError("Time slot is blocked by an unavailability",
                            code=ConflictError.DISRUPTION_BLOCKED)
    if is_blocked_by_leave(db, doctor_id, start, end):
        raise ConflictError("Time slot falls within the doctor's leave",
                            code=ConflictError.PTO_BLOCKED)
