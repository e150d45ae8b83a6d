from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db
from .. import schemas
from ..services import imprevus as imprevu_service
from .deps import current_doctor_id, parse_instant

router = APIRouter(prefix="/imprevus", tags=["imprevus"])


@router.post("", response_model=schemas.ImprevuOut, status_code=201)
def create_imprevu(req: schemas.ImprevuCreate, doctor_id: int = Depends(current_doctor_id),
                   db: Session = Depends(get_db)):
    return imprevu_service.create(db, doctor_id, req)


@router.get("", response_model=schemas.ImprevuList)
def list_imprevus(
    start_date: Optional[str] = Query(None),
    end_date: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    doctor_id: int = Depends(current_doctor_id),
    db: Session = Depends(get_db),
):
    return imprevu_service.find_all(
        db, doctor_id,
        start_date=parse_instant(start_date, "start_date"),
        end_date=parse_instant(end_date, "end_date"),
        page=page,
        limit=limit,
    )


@router.get("/affected-appointments", response_model=list[schemas.AppointmentOut])
def affected_appointments(start_date: str = Query(...), end_date: str = Query(...),
                          doctor_id: int = Depends(current_doctor_id), db: Session = Depends(get_db)):
    return imprevu_service.get_affected_appointments(
        db, doctor_id,
        parse_instant(start_date, "start_date"),
        parse_instant(end_date, "end_date"),
    )


@router.post("/{imprevu_id}/cancel-appointments", response_model=schemas.CancelAppointmentsResult)
def cancel_appointments(imprevu_id: int, doctor_id: int = Depends(current_doctor_id),
                        db: Session = Depends(get_db)):
    return imprevu_service.cancel_affected_appointments(db, imprevu_id, doctor_id)


@router.get("/{imprevu_id}", response_model=schemas.ImprevuOut)
def get_imprevu(imprevu_id: int, doctor_id: int = Depends(current_doctor_id), db: Session = Depends(get_db)):
    return imprevu_service.find_one(db, imprevu_id, doctor_id)


@router.patch("/{imprevu_id}", response_model=schemas.ImprevuOut)
def update_imprevu(imprevu_id: int, req: schemas.ImprevuUpdate, doctor_id: int = Depends(current_doctor_id),
                   db: Session = Depends(get_db)):
    return imprevu_service.update(db, imprevu_id, doctor_id, req)


@router.delete("/{imprevu_id}", status_code=204)
def delete_imprevu(imprevu_id: int, doctor_id: int = Depends(current_doctor_id), db: Session = Depends(get_db)):
    imprevu_service.remove(db, imprevu_id, doctor_id)
