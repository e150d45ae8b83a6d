from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from .. import schemas
from ..services import leave as leave_service
from .deps import current_doctor_id

router = APIRouter(prefix="/pto", tags=["pto"])


@router.get("", response_model=list[schemas.PTOOut])
def list_pto(doctor_id: int = Depends(current_doctor_id), db: Session = Depends(get_db)):
    return leave_service.find_all(db, doctor_id)


@router.post("", response_model=schemas.PTOOut, status_code=201)
def create_pto(req: schemas.PTOCreate, doctor_id: int = Depends(current_doctor_id), db: Session = Depends(get_db)):
    return leave_service.create(db, doctor_id, req.label, req.start_date, req.end_date, req.announcements)


@router.get("/{pto_id}", response_model=schemas.PTOOut)
def get_pto(pto_id: int, doctor_id: int = Depends(current_doctor_id), db: Session = Depends(get_db)):
    return leave_service.find_one(db, pto_id, doctor_id)


@router.patch("/{pto_id}", response_model=schemas.PTOOut)
def update_pto(pto_id: int, req: schemas.PTOUpdate, doctor_id: int = Depends(current_doctor_id),
               db: Session = Depends(get_db)):
    return leave_service.update(db, pto_id, doctor_id, **req.model_dump(exclude_unset=True))


@router.delete("/{pto_id}", status_code=204)
def delete_pto(pto_id: int, doctor_id: int = Depends(current_doctor_id), db: Session = Depends(get_db)):
    leave_service.remove(db, pto_id, doctor_id)
