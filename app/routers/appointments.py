from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db
from .. import models, schemas
from ..services import appointments as appointment_service
from ..services import history as history_service
from ..services.availability import get_available_slots
from .deps import current_doctor_id, parse_day, parse_instant

router = APIRouter(prefix="/appointments", tags=["appointments"])


@router.post("", response_model=schemas.AppointmentOut, status_code=201)
def create_appointment(req: schemas.AppointmentCreate, doctor_id: int = Depends(current_doctor_id),
                       db: Session = Depends(get_db)):
    return appointment_service.create(db, doctor_id, req)


@router.get("", response_model=schemas.AppointmentList)
def list_appointments(
    date: Optional[str] = Query(None, description="YYYY-MM-DD"),
    start_date: Optional[str] = Query(None),
    end_date: Optional[str] = Query(None),
    status: Optional[models.AppointmentStatus] = None,
    patient_id: Optional[int] = None,
    consultation_type_id: Optional[int] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    doctor_id: int = Depends(current_doctor_id),
    db: Session = Depends(get_db),
):
    return appointment_service.find_all(
        db, doctor_id,
        day=parse_day(date) if date else None,
        start_date=parse_instant(start_date, "start_date"),
        end_date=parse_instant(end_date, "end_date"),
        status=status,
        patient_id=patient_id,
        consultation_type_id=consultation_type_id,
        page=page,
        limit=limit,
    )


@router.get("/upcoming", response_model=list[schemas.AppointmentOut])
def upcoming_appointments(limit: Optional[int] = Query(None, ge=1, le=100),
                          doctor_id: int = Depends(current_doctor_id), db: Session = Depends(get_db)):
    return appointment_service.get_upcoming(db, doctor_id, limit)


@router.get("/available-slots", response_model=schemas.SlotsResponse)
def available_slots(date: str = Query(..., description="YYYY-MM-DD"),
                    consultation_type_id: Optional[int] = None,
                    doctor_id: int = Depends(current_doctor_id), db: Session = Depends(get_db)):
    return get_available_slots(db, doctor_id, parse_day(date), consultation_type_id)


@router.get("/by-date/{date}", response_model=list[schemas.AppointmentOut])
def appointments_by_date(date: str, doctor_id: int = Depends(current_doctor_id), db: Session = Depends(get_db)):
    return appointment_service.get_by_date(db, doctor_id, parse_day(date))


@router.get("/{appointment_id}", response_model=schemas.AppointmentOut)
def get_appointment(appointment_id: int, doctor_id: int = Depends(current_doctor_id),
                    db: Session = Depends(get_db)):
    return appointment_service.find_one(db, appointment_id, doctor_id)


@router.patch("/{appointment_id}", response_model=schemas.AppointmentOut)
def update_appointment(appointment_id: int, req: schemas.AppointmentUpdate,
                       doctor_id: int = Depends(current_doctor_id), db: Session = Depends(get_db)):
    return appointment_service.update(db, appointment_id, doctor_id, req)


@router.patch("/{appointment_id}/status", response_model=schemas.AppointmentOut)
def update_appointment_status(appointment_id: int, req: schemas.AppointmentStatusUpdate,
                              doctor_id: int = Depends(current_doctor_id), db: Session = Depends(get_db)):
    return appointment_service.update_status(db, appointment_id, doctor_id, req.status)


@router.get("/{appointment_id}/history", response_model=list[schemas.HistoryOut])
def appointment_history(appointment_id: int, doctor_id: int = Depends(current_doctor_id),
                        db: Session = Depends(get_db)):
    appointment_service.find_one(db, appointment_id, doctor_id)  # ownership
    return history_service.get_appointment_history(db, appointment_id)


@router.post("/{appointment_id}/notify-absence", response_model=schemas.NotifyResult)
def notify_absence(appointment_id: int, doctor_id: int = Depends(current_doctor_id),
                   db: Session = Depends(get_db)):
    return appointment_service.send_absence_notification(db, appointment_id, doctor_id)


@router.delete("/{appointment_id}", status_code=204)
def delete_appointment(appointment_id: int, doctor_id: int = Depends(current_doctor_id),
                       db: Session = Depends(get_db)):
    appointment_service.remove(db, appointment_id, doctor_id)
