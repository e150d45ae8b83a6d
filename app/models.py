# app/models.py
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import (
    Integer, String, DateTime, Date, Enum, ForeignKey, Boolean, Text, JSON,
    UniqueConstraint, Table, Column,
)
from datetime import datetime, date
import enum
from .database import Base


class AppointmentStatus(str, enum.Enum):
    SCHEDULED = "SCHEDULED"
    CONFIRMED = "CONFIRMED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    ABSENT = "ABSENT"


# Only these count as "upcoming" (reminders, dashboard)
UPCOMING_STATUSES = (AppointmentStatus.SCHEDULED, AppointmentStatus.CONFIRMED)


class HistoryAction(str, enum.Enum):
    CREATED = "CREATED"
    UPDATED = "UPDATED"
    STATUS_CHANGED = "STATUS_CHANGED"
    RESCHEDULED = "RESCHEDULED"
    CONSULTATION_TYPE_CHANGED = "CONSULTATION_TYPE_CHANGED"
    DOCUMENT_UPLOADED = "DOCUMENT_UPLOADED"
    DOCUMENT_DELETED = "DOCUMENT_DELETED"


class DayOfWeek(str, enum.Enum):
    MONDAY = "MONDAY"
    TUESDAY = "TUESDAY"
    WEDNESDAY = "WEDNESDAY"
    THURSDAY = "THURSDAY"
    FRIDAY = "FRIDAY"
    SATURDAY = "SATURDAY"
    SUNDAY = "SUNDAY"

    @classmethod
    def for_date(cls, d: date) -> "DayOfWeek":
        # date.weekday(): Monday == 0
        return list(cls)[d.weekday()]


class Doctor(Base):
    __tablename__ = "doctors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    first_name: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    title: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    @property
    def display_name(self) -> str:
        full = f"{self.first_name or ''} {self.last_name or ''}".strip()
        if full:
            return f"{self.title} {full}" if self.title else full
        return self.title or "Your doctor"


class Patient(Base):
    __tablename__ = "patients"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    doctor_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("doctors.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    email: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    phone_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class ConsultationType(Base):
    __tablename__ = "consultation_types"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    doctor_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("doctors.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    duration: Mapped[int] = mapped_column(Integer, nullable=False, default=15)  # minutes
    rest_after: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # minutes
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class PatientConsultationTypeAccess(Base):
    """Per-patient override; no row means the type is allowed."""
    __tablename__ = "patient_consultation_type_access"
    __table_args__ = (
        UniqueConstraint("patient_id", "consultation_type_id", name="uq_patient_consultation_type"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    patient_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False
    )
    consultation_type_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("consultation_types.id", ondelete="CASCADE"), nullable=False
    )
    is_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


time_slot_consultation_types = Table(
    "time_slot_consultation_types",
    Base.metadata,
    Column("time_slot_id", Integer, ForeignKey("doctor_time_slots.id", ondelete="CASCADE"), primary_key=True),
    Column("consultation_type_id", Integer, ForeignKey("consultation_types.id", ondelete="CASCADE"), primary_key=True),
)


class DoctorTimeplan(Base):
    __tablename__ = "doctor_timeplans"
    __table_args__ = (
        UniqueConstraint("doctor_id", "day_of_week", name="uq_timeplan_doctor_day"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    doctor_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("doctors.id", ondelete="CASCADE"), nullable=False, index=True
    )
    day_of_week: Mapped[DayOfWeek] = mapped_column(Enum(DayOfWeek, name="day_of_week"), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    time_slots = relationship(
        "DoctorTimeSlot",
        back_populates="timeplan",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="DoctorTimeSlot.start_time",
    )


class DoctorTimeSlot(Base):
    __tablename__ = "doctor_time_slots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    timeplan_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("doctor_timeplans.id", ondelete="CASCADE"), nullable=False
    )
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)  # "HH:MM"
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)    # "HH:MM"
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    timeplan = relationship("DoctorTimeplan", back_populates="time_slots")
    consultation_types = relationship("ConsultationType", secondary=time_slot_consultation_types)


class Appointment(Base):
    __tablename__ = "appointments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    doctor_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("doctors.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Derived from the primary AppointmentPatient row, never written on its own
    patient_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("patients.id", ondelete="SET NULL"), nullable=True
    )
    consultation_type_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("consultation_types.id", ondelete="SET NULL"), nullable=True
    )
    # Naive clinic-local time
    start_time: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    end_time: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    status: Mapped[AppointmentStatus] = mapped_column(
        Enum(AppointmentStatus, name="appointment_status"),
        default=AppointmentStatus.SCHEDULED,
        nullable=False,
        index=True,
    )
    title: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    notify_reminder: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reminder_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reminder_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, onupdate=datetime.now)

    doctor = relationship("Doctor")
    patient = relationship("Patient")
    consultation_type = relationship("ConsultationType")
    appointment_patients = relationship(
        "AppointmentPatient",
        back_populates="appointment",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="AppointmentPatient.id",
    )

    @property
    def participants(self) -> list[Patient]:
        """Primary first, then the other joined patients."""
        out = [ap.patient for ap in self.appointment_patients if ap.patient is not None]
        if not out and self.patient is not None:
            out = [self.patient]
        return out


class AppointmentPatient(Base):
    __tablename__ = "appointment_patients"
    __table_args__ = (
        UniqueConstraint("appointment_id", "patient_id", name="uq_appointment_patient"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    appointment_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("appointments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    patient_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False
    )
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    appointment = relationship("Appointment", back_populates="appointment_patients")
    patient = relationship("Patient")


class Imprevu(Base):
    """Ad-hoc unavailability declared by a doctor."""
    __tablename__ = "imprevus"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    doctor_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("doctors.id", ondelete="CASCADE"), nullable=False, index=True
    )
    start_date: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    end_date: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    notify_patients: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    block_time_slots: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    reason: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cancelled_appointments_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)


class DoctorPTO(Base):
    """Approved leave, whole days, both ends inclusive."""
    __tablename__ = "doctor_pto"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    doctor_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("doctors.id", ondelete="CASCADE"), nullable=False, index=True
    )
    label: Mapped[str] = mapped_column(String(200), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    announcements: Mapped[int] = mapped_column(Integer, nullable=False, default=2)
    appointments_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class AppointmentHistory(Base):
    __tablename__ = "appointment_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    # No FK: history must survive a hard delete of the appointment
    appointment_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    doctor_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("doctors.id", ondelete="SET NULL"), nullable=True
    )
    action: Mapped[HistoryAction] = mapped_column(Enum(HistoryAction, name="history_action"), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    changed_fields: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    # "metadata" is reserved on declarative classes
    metadata_: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, index=True)

    doctor = relationship("Doctor")

    @property
    def author_name(self) -> Optional[str]:
        return self.doctor.display_name if self.doctor else None
