# app/services/availability.py
from __future__ import annotations
import logging
from datetime import datetime, date, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ..config import settings
from .. import models
from . import conflicts, directory, leave, timeplans
from .clock import now_local, day_bounds, parse_hhmm, format_hhmm

logger = logging.getLogger(__name__)


# ====== Busy windows of a day: bookings + disruptions ======
def _busy_windows(db: Session, doctor_id: int, day: date) -> list[tuple[datetime, datetime]]:
    day_start, day_end = day_bounds(day)
    busy = [(a.start_time, a.end_time)
            for a in conflicts.find_overlapping_appointments(db, doctor_id, day_start, day_end)]
    busy += [(i.start_date, i.end_date)
             for i in conflicts.find_blocking_imprevus(db, doctor_id, day_start, day_end)]
    logger.debug("busy_windows doctor=%s day=%s %s", doctor_id, day,
                 [(a.isoformat(), b.isoformat()) for a, b in busy])
    return busy


# ====== Available slots ======
def get_available_slots(db: Session, doctor_id: int, day: date,
                        consultation_type_id: Optional[int] = None,
                        now: Optional[datetime] = None) -> dict:
    """
    Walks every active time slot of the weekday from its opening time, one
    consultation (duration + rest) at a time, so two offered candidates can
    never overlap each other once booked.

    Returns {"date", "consultation_type_id", "slots": [{"time": "HH:MM", "available": bool}]}.
    """
    result = {"date": day.isoformat(), "consultation_type_id": consultation_type_id, "slots": []}

    plan = timeplans.get_timeplan_for_day(db, doctor_id, models.DayOfWeek.for_date(day))
    time_slots = timeplans.active_time_slots(plan, consultation_type_id)
    if not time_slots:
        return result

    duration = settings.DEFAULT_SLOT_MINUTES
    rest_after = 0
    if consultation_type_id is not None:
        ct = directory.find_enabled_consultation_type(db, consultation_type_id, doctor_id)
        duration, rest_after = ct.duration, ct.rest_after
    # a zero-length consultation would never advance
    span = timedelta(minutes=max(duration + rest_after, 1))

    now = now or now_local()
    busy_windows = _busy_windows(db, doctor_id, day)
    on_leave = leave.is_date_blocked_by_pto(db, doctor_id, day)

    slots: list[dict] = []
    for ts in time_slots:
        cur = datetime.combine(day, parse_hhmm(ts.start_time))
        close = datetime.combine(day, parse_hhmm(ts.end_time))
        while cur + span <= close:
            slot_end = cur + span
            busy = any(conflicts.overlaps(cur, slot_end, b0, b1) for (b0, b1) in busy_windows)
            slots.append({
                "time": format_hhmm(cur),
                "available": not busy and not on_leave and cur > now,
            })
            cur += span

    seen = set()
    unique = []
    for s in slots:
        if s["time"] in seen:
            continue
        seen.add(s["time"])
        unique.append(s)
    result["slots"] = sorted(unique, key=lambda s: s["time"])
    return result
