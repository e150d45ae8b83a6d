# app/services/directory.py
"""
Read-only lookups on records owned by other parts of the clinic app
(doctors, patients, consultation types).
"""
from __future__ import annotations
from typing import Optional

from sqlalchemy.orm import Session

from .. import models
from ..errors import NotFoundError


def get_doctor(db: Session, doctor_id: int) -> Optional[models.Doctor]:
    return db.get(models.Doctor, doctor_id)


def verify_patient_belongs_to_doctor(db: Session, patient_id: int, doctor_id: int) -> models.Patient:
    patient = (
        db.query(models.Patient)
        .filter(models.Patient.id == patient_id)
        .filter(models.Patient.doctor_id == doctor_id)
        .filter(models.Patient.is_deleted.is_(False))
        .first()
    )
    if not patient:
        raise NotFoundError("Patient not found or does not belong to this doctor")
    return patient


def find_enabled_consultation_type(db: Session, consultation_type_id: int, doctor_id: int) -> models.ConsultationType:
    ct = (
        db.query(models.ConsultationType)
        .filter(models.ConsultationType.id == consultation_type_id)
        .filter(models.ConsultationType.doctor_id == doctor_id)
        .filter(models.ConsultationType.enabled.is_(True))
        .first()
    )
    if not ct:
        raise NotFoundError("Consultation type not found or not available")
    return ct


def is_consultation_type_enabled_for_patient(db: Session, patient_id: int, consultation_type_id: int) -> bool:
    access = (
        db.query(models.PatientConsultationTypeAccess)
        .filter(models.PatientConsultationTypeAccess.patient_id == patient_id)
        .filter(models.PatientConsultationTypeAccess.consultation_type_id == consultation_type_id)
        .first()
    )
    # No override row: allowed
    return access.is_enabled if access else True
