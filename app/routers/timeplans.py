from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from .. import models, schemas
from ..services import timeplans as timeplan_service
from .deps import current_doctor_id

router = APIRouter(prefix="/timeplans", tags=["timeplans"])


@router.get("", response_model=list[schemas.TimeplanOut])
def list_timeplans(doctor_id: int = Depends(current_doctor_id), db: Session = Depends(get_db)):
    return timeplan_service.get_timeplans(db, doctor_id)


@router.put("/{day_of_week}", response_model=schemas.TimeplanOut)
def save_timeplan(day_of_week: models.DayOfWeek, req: schemas.TimeplanIn,
                  doctor_id: int = Depends(current_doctor_id), db: Session = Depends(get_db)):
    return timeplan_service.upsert_timeplan(
        db, doctor_id, day_of_week,
        [ts.model_dump() for ts in req.time_slots],
        is_active=req.is_active,
    )


@router.delete("/{day_of_week}", status_code=204)
def delete_timeplan(day_of_week: models.DayOfWeek, doctor_id: int = Depends(current_doctor_id),
                    db: Session = Depends(get_db)):
    timeplan_service.delete_timeplan(db, doctor_id, day_of_week)
