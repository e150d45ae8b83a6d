# app/services/timeplans.py
"""Weekly availability template of a doctor (one plan per weekday)."""
from __future__ import annotations
import logging
from typing import Optional

from sqlalchemy.orm import Session, selectinload

from .. import models
from ..errors import BadRequestError, NotFoundError
from .clock import parse_hhmm

logger = logging.getLogger(__name__)


def get_timeplans(db: Session, doctor_id: int) -> list[models.DoctorTimeplan]:
    plans = (
        db.query(models.DoctorTimeplan)
        .options(selectinload(models.DoctorTimeplan.time_slots).selectinload(models.DoctorTimeSlot.consultation_types))
        .filter(models.DoctorTimeplan.doctor_id == doctor_id)
        .all()
    )
    order = list(models.DayOfWeek)
    return sorted(plans, key=lambda p: order.index(p.day_of_week))


def get_timeplan_for_day(db: Session, doctor_id: int, day_of_week: models.DayOfWeek) -> Optional[models.DoctorTimeplan]:
    return (
        db.query(models.DoctorTimeplan)
        .options(selectinload(models.DoctorTimeplan.time_slots).selectinload(models.DoctorTimeSlot.consultation_types))
        .filter(models.DoctorTimeplan.doctor_id == doctor_id)
        .filter(models.DoctorTimeplan.day_of_week == day_of_week)
        .first()
    )


def active_time_slots(timeplan: Optional[models.DoctorTimeplan],
                      consultation_type_id: Optional[int] = None) -> list[models.DoctorTimeSlot]:
    """Active slots of an active plan, restricted to those allowing the type (if given)."""
    if timeplan is None or not timeplan.is_active:
        return []
    out = []
    for ts in timeplan.time_slots:
        if not ts.is_active:
            continue
        if consultation_type_id is not None and not any(ct.id == consultation_type_id for ct in ts.consultation_types):
            continue
        out.append(ts)
    return out


def upsert_timeplan(db: Session, doctor_id: int, day_of_week: models.DayOfWeek,
                    time_slots: list[dict], is_active: bool = True) -> models.DoctorTimeplan:
    """
    Replaces the plan of that weekday. Each item of time_slots:
    {"start_time": "HH:MM", "end_time": "HH:MM", "consultation_type_ids": [...], "is_active": bool}
    """
    types_by_id = _validate_consultation_types(db, doctor_id, time_slots)
    for ts in time_slots:
        _validate_range(ts["start_time"], ts["end_time"])

    plan = get_timeplan_for_day(db, doctor_id, day_of_week)
    if plan is None:
        plan = models.DoctorTimeplan(doctor_id=doctor_id, day_of_week=day_of_week)
        db.add(plan)
    plan.is_active = is_active

    # Slots are replaced wholesale
    plan.time_slots.clear()
    for ts in time_slots:
        plan.time_slots.append(models.DoctorTimeSlot(
            start_time=ts["start_time"],
            end_time=ts["end_time"],
            is_active=ts.get("is_active", True),
            consultation_types=[types_by_id[i] for i in ts.get("consultation_type_ids", [])],
        ))

    db.commit()
    logger.info("Timeplan saved: doctor=%s day=%s slots=%s", doctor_id, day_of_week.value, len(time_slots))
    return get_timeplan_for_day(db, doctor_id, day_of_week)


def delete_timeplan(db: Session, doctor_id: int, day_of_week: models.DayOfWeek) -> None:
    plan = get_timeplan_for_day(db, doctor_id, day_of_week)
    if plan is None:
        raise NotFoundError("Timeplan not found")
    db.delete(plan)
    db.commit()


def _validate_range(start: str, end: str) -> None:
    try:
        s, e = parse_hhmm(start), parse_hhmm(end)
    except ValueError:
        raise BadRequestError("Time slot bounds must use the HH:MM format")
    if s >= e:
        raise BadRequestError("Time slot start must be before its end")


def _validate_consultation_types(db: Session, doctor_id: int, time_slots: list[dict]) -> dict[int, models.ConsultationType]:
    wanted = {i for ts in time_slots for i in ts.get("consultation_type_ids", [])}
    if not wanted:
        return {}
    found = (
        db.query(models.ConsultationType)
        .filter(models.ConsultationType.doctor_id == doctor_id)
        .filter(models.ConsultationType.id.in_(wanted))
        .all()
    )
    if len(found) != len(wanted):
        raise BadRequestError("Some consultation types do not belong to this doctor")
    return {ct.id: ct for ct in found}
