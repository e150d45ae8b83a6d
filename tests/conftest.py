"""Shared fixtures: in-memory database, API client and record factories."""

from datetime import date, datetime, time, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app import models, schemas
from app.config import settings
from app.database import Base, get_db
from app.main import app
from app.services import appointments as appointment_service
from app.services import timeplans as timeplan_service

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def next_weekday(weekday: int, weeks_ahead: int = 3) -> date:
    """A date on the given weekday (Monday == 0) a few weeks from today."""
    d = date.today() + timedelta(weeks=weeks_ahead)
    return d + timedelta(days=(weekday - d.weekday()) % 7)


def at(day: date, hhmm: str) -> datetime:
    hour, minute = hhmm.split(":")
    return datetime.combine(day, time(int(hour), int(minute)))


@pytest.fixture(autouse=True)
def quiet_settings(monkeypatch):
    """Nothing leaves the process during tests."""
    monkeypatch.setattr(settings, "DRY_RUN", True)
    monkeypatch.setattr(settings, "WHATSAPP_REMINDERS", False)


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db):
    def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def tuesday() -> date:
    return next_weekday(1)


@pytest.fixture
def doctor(db):
    d = models.Doctor(first_name="Claire", last_name="Martin", title="Dr.")
    db.add(d)
    db.commit()
    return d


@pytest.fixture
def other_doctor(db):
    d = models.Doctor(first_name="Paul", last_name="Durand", title="Dr.")
    db.add(d)
    db.commit()
    return d


@pytest.fixture
def make_patient(db):
    def _make(doctor, name="Alice", email="alice@example.com", phone_number=None):
        p = models.Patient(doctor_id=doctor.id, name=name, email=email, phone_number=phone_number)
        db.add(p)
        db.commit()
        return p
    return _make


@pytest.fixture
def patient(doctor, make_patient):
    return make_patient(doctor)


@pytest.fixture
def make_consultation_type(db):
    def _make(doctor, name="Consultation", duration=30, rest_after=0, enabled=True):
        ct = models.ConsultationType(
            doctor_id=doctor.id, name=name, duration=duration, rest_after=rest_after, enabled=enabled,
        )
        db.add(ct)
        db.commit()
        return ct
    return _make


@pytest.fixture
def make_timeplan(db):
    def _make(doctor, day_of_week, start="09:00", end="12:00", consultation_types=()):
        return timeplan_service.upsert_timeplan(db, doctor.id, day_of_week, [{
            "start_time": start,
            "end_time": end,
            "consultation_type_ids": [ct.id for ct in consultation_types],
        }])
    return _make


@pytest.fixture
def book(db):
    """Books [start, end) through the lifecycle manager."""
    def _book(doctor, patients, start, end, consultation_type=None, **extra):
        data = schemas.AppointmentCreate(
            start_time=start,
            end_time=end,
            patient_ids=[p.id for p in patients],
            consultation_type_id=consultation_type.id if consultation_type else None,
            **extra,
        )
        return appointment_service.create(db, doctor.id, data)
    return _book
