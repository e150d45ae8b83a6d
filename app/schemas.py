from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime, date
from typing import Optional

from .models import AppointmentStatus, HistoryAction, DayOfWeek

_HHMM = r"^([01]\d|2[0-3]):[0-5]\d$"


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# ───────────── Shared ─────────────
class PatientBrief(ORMModel):
    id: int
    name: str
    email: Optional[str] = None
    phone_number: Optional[str] = None


class ConsultationTypeOut(ORMModel):
    id: int
    name: str
    duration: int
    rest_after: int


# ───────────── Appointments ─────────────
class AppointmentCreate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    start_time: datetime
    end_time: datetime
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    # Legacy single patient; patient_ids wins when both are sent
    patient_id: Optional[int] = None
    patient_ids: Optional[list[int]] = None
    consultation_type_id: Optional[int] = None
    notify_reminder: bool = False
    reminder_message: Optional[str] = None
    skip_conflict_check: bool = False


class AppointmentUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    status: Optional[AppointmentStatus] = None
    patient_id: Optional[int] = None
    patient_ids: Optional[list[int]] = None
    consultation_type_id: Optional[int] = None
    notify_reminder: Optional[bool] = None
    reminder_message: Optional[str] = None
    skip_conflict_check: bool = False


class AppointmentStatusUpdate(BaseModel):
    status: AppointmentStatus


class AppointmentPatientOut(ORMModel):
    patient_id: int
    is_primary: bool
    patient: PatientBrief


class AppointmentOut(ORMModel):
    id: int
    doctor_id: int
    patient_id: Optional[int] = None
    consultation_type_id: Optional[int] = None
    start_time: datetime
    end_time: datetime
    status: AppointmentStatus
    title: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    notify_reminder: bool
    reminder_message: Optional[str] = None
    reminder_sent_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    patient: Optional[PatientBrief] = None
    appointment_patients: list[AppointmentPatientOut] = []
    consultation_type: Optional[ConsultationTypeOut] = None


class AppointmentList(BaseModel):
    appointments: list[AppointmentOut]
    total: int
    page: int
    limit: int


class SlotOut(BaseModel):
    time: str
    available: bool


class SlotsResponse(BaseModel):
    date: str
    consultation_type_id: Optional[int] = None
    slots: list[SlotOut]


class HistoryOut(ORMModel):
    id: int
    appointment_id: int
    doctor_id: Optional[int] = None
    author_name: Optional[str] = None
    action: HistoryAction
    description: str
    changed_fields: Optional[dict] = None
    metadata: Optional[dict] = Field(default=None, validation_alias="metadata_")
    created_at: datetime


class NotifyResult(BaseModel):
    sent: int
    failed: int


# ───────────── Imprevus ─────────────
class ImprevuCreate(BaseModel):
    start_date: datetime
    end_date: datetime
    notify_patients: bool = True
    block_time_slots: bool = True
    reason: Optional[str] = None
    message: Optional[str] = None
    # None = no narrowing; [] = cancel nothing
    consultation_type_ids: Optional[list[int]] = None
    appointment_ids: Optional[list[int]] = None


class ImprevuUpdate(BaseModel):
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    notify_patients: Optional[bool] = None
    block_time_slots: Optional[bool] = None
    reason: Optional[str] = None
    message: Optional[str] = None


class ImprevuOut(ORMModel):
    id: int
    doctor_id: int
    start_date: datetime
    end_date: datetime
    notify_patients: bool
    block_time_slots: bool
    reason: Optional[str] = None
    message: Optional[str] = None
    cancelled_appointments_count: int
    created_at: Optional[datetime] = None


class ImprevuList(BaseModel):
    imprevus: list[ImprevuOut]
    total: int
    page: int
    limit: int


class CancelAppointmentsResult(BaseModel):
    cancelled_count: int
    appointment_ids: list[int]


# ───────────── Leave (PTO) ─────────────
class PTOCreate(BaseModel):
    label: str
    start_date: date
    end_date: date
    announcements: int = Field(default=2, ge=0)


class PTOUpdate(BaseModel):
    label: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    announcements: Optional[int] = Field(default=None, ge=0)


class PTOOut(ORMModel):
    id: int
    doctor_id: int
    label: str
    start_date: date
    end_date: date
    announcements: int
    appointments_count: int


# ───────────── Timeplans ─────────────
class TimeSlotIn(BaseModel):
    start_time: str = Field(pattern=_HHMM)
    end_time: str = Field(pattern=_HHMM)
    consultation_type_ids: list[int] = []
    is_active: bool = True


class TimeplanIn(BaseModel):
    is_active: bool = True
    time_slots: list[TimeSlotIn]


class TimeSlotOut(ORMModel):
    id: int
    start_time: str
    end_time: str
    is_active: bool
    consultation_types: list[ConsultationTypeOut] = []


class TimeplanOut(ORMModel):
    id: int
    day_of_week: DayOfWeek
    is_active: bool
    time_slots: list[TimeSlotOut] = []
