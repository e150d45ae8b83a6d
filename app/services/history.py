# app/services/history.py
"""
Append-only audit trail of appointment changes.

Writers only add the row to the session: the caller commits it together
with the change being recorded. No update or delete: a correction is a
new entry.
"""
from __future__ import annotations
import enum
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.orm import Session, selectinload

from .. import models
from .clock import now_local

STATUS_LABELS = {
    models.AppointmentStatus.SCHEDULED: "In waiting room",
    models.AppointmentStatus.CONFIRMED: "Confirmed",
    models.AppointmentStatus.IN_PROGRESS: "In progress",
    models.AppointmentStatus.COMPLETED: "Patient seen",
    models.AppointmentStatus.CANCELLED: "Cancelled",
    models.AppointmentStatus.ABSENT: "Patient absent",
}

FIELD_LABELS = {
    "title": "Title",
    "description": "Description",
    "notes": "Notes",
    "start_time": "Start time",
    "end_time": "End time",
}


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, enum.Enum):
        return value.value
    return value


def _add(db: Session, appointment_id: int, doctor_id: Optional[int], action: models.HistoryAction,
         description: str, changed_fields: Optional[dict] = None,
         metadata: Optional[dict] = None) -> models.AppointmentHistory:
    entry = models.AppointmentHistory(
        appointment_id=appointment_id,
        doctor_id=doctor_id,
        action=action,
        description=description,
        changed_fields=changed_fields,
        metadata_=metadata,
        created_at=now_local(),
    )
    db.add(entry)
    db.flush()
    return entry


def log_creation(db: Session, appointment: models.Appointment, doctor_id: int,
                 patient_ids: list[int]) -> models.AppointmentHistory:
    metadata = {
        "patient_ids": list(patient_ids),
        "consultation_type_id": appointment.consultation_type_id,
        "start_time": _jsonable(appointment.start_time),
        "end_time": _jsonable(appointment.end_time),
        "status": _jsonable(appointment.status),
        "title": appointment.title,
    }
    return _add(db, appointment.id, doctor_id, models.HistoryAction.CREATED,
                "Appointment created", metadata=metadata)


def log_update(db: Session, appointment_id: int, doctor_id: int,
               changes: dict[str, tuple[Any, Any]]) -> models.AppointmentHistory:
    """changes: {field: (before, after)}"""
    changed_fields = {
        field: {"before": _jsonable(before), "after": _jsonable(after)}
        for field, (before, after) in changes.items()
    }
    labels = ", ".join(FIELD_LABELS.get(f, f) for f in changes)
    return _add(db, appointment_id, doctor_id, models.HistoryAction.UPDATED,
                f"Appointment updated: {labels}", changed_fields=changed_fields)


def log_status_change(db: Session, appointment_id: int, doctor_id: int,
                      old_status: models.AppointmentStatus,
                      new_status: models.AppointmentStatus) -> models.AppointmentHistory:
    before = STATUS_LABELS.get(old_status, _jsonable(old_status))
    after = STATUS_LABELS.get(new_status, _jsonable(new_status))
    return _add(
        db, appointment_id, doctor_id, models.HistoryAction.STATUS_CHANGED,
        f"Status changed: {before} → {after}",
        changed_fields={"status": {"before": _jsonable(old_status), "after": _jsonable(new_status)}},
    )


def log_reschedule(db: Session, appointment_id: int, doctor_id: int,
                   old_start: datetime, old_end: datetime,
                   new_start: datetime, new_end: datetime) -> models.AppointmentHistory:
    return _add(
        db, appointment_id, doctor_id, models.HistoryAction.RESCHEDULED,
        "Schedule changed",
        changed_fields={
            "start_time": {"before": _jsonable(old_start), "after": _jsonable(new_start)},
            "end_time": {"before": _jsonable(old_end), "after": _jsonable(new_end)},
        },
    )


def log_consultation_type_change(db: Session, appointment_id: int, doctor_id: int,
                                 old_name: Optional[str], new_name: Optional[str]) -> models.AppointmentHistory:
    return _add(
        db, appointment_id, doctor_id, models.HistoryAction.CONSULTATION_TYPE_CHANGED,
        f"Consultation type changed: {old_name or 'None'} → {new_name or 'None'}",
        changed_fields={"consultation_type": {"before": old_name, "after": new_name}},
    )


def log_document_upload(db: Session, appointment_id: int, doctor_id: int,
                        document_name: str, category: Optional[str] = None) -> models.AppointmentHistory:
    return _add(db, appointment_id, doctor_id, models.HistoryAction.DOCUMENT_UPLOADED,
                f"Document added: {document_name}",
                metadata={"document_name": document_name, "category": category})


def log_document_deletion(db: Session, appointment_id: int, doctor_id: int,
                          document_name: str) -> models.AppointmentHistory:
    return _add(db, appointment_id, doctor_id, models.HistoryAction.DOCUMENT_DELETED,
                f"Document deleted: {document_name}",
                metadata={"document_name": document_name})


def get_appointment_history(db: Session, appointment_id: int) -> list[models.AppointmentHistory]:
    """Newest first."""
    return (
        db.query(models.AppointmentHistory)
        .options(selectinload(models.AppointmentHistory.doctor))
        .filter(models.AppointmentHistory.appointment_id == appointment_id)
        .order_by(models.AppointmentHistory.created_at.desc(), models.AppointmentHistory.id.desc())
        .all()
    )
