# app/routers/deps.py
from datetime import datetime, date
from typing import Optional

from dateutil import parser as dtparser
from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from ..database import get_db
from ..services import directory


def current_doctor_id(
    x_doctor_id: Optional[int] = Header(default=None),
    db: Session = Depends(get_db),
) -> int:
    """
    Doctor identity forwarded by the authentication layer in front of this
    service (X-Doctor-Id header).
    """
    if x_doctor_id is None:
        raise HTTPException(status_code=401, detail="Missing doctor identity")
    if directory.get_doctor(db, x_doctor_id) is None:
        raise HTTPException(status_code=401, detail="Only doctors can access appointments")
    return x_doctor_id


def parse_day(s: str) -> date:
    try:
        return datetime.strptime(s, "%Y-%m-%d").date()
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail="Invalid date format. Use YYYY-MM-DD.")


def parse_instant(s: Optional[str], name: str) -> Optional[datetime]:
    if s is None:
        return None
    try:
        return dtparser.isoparse(s)
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail=f"Invalid '{name}': use an ISO 8601 date or datetime.")
