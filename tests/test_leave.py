"""Tests for leave (PTO) periods."""

from datetime import timedelta

import pytest

from app import models
from app.errors import BadRequestError, NotFoundError
from app.services import appointments as appointment_service
from app.services import leave
from conftest import at


class TestLeaveCrud:

    def test_create_counts_affected_appointments(self, db, doctor, patient, tuesday, book):
        book(doctor, [patient], at(tuesday, "10:00"), at(tuesday, "10:30"))
        book(doctor, [patient], at(tuesday + timedelta(days=1), "10:00"), at(tuesday + timedelta(days=1), "10:30"))
        cancelled = book(doctor, [patient], at(tuesday, "11:00"), at(tuesday, "11:30"))
        appointment_service.update_status(db, cancelled.id, doctor.id, models.AppointmentStatus.CANCELLED)

        pto = leave.create(db, doctor.id, "Holidays", tuesday, tuesday + timedelta(days=1))

        assert pto.appointments_count == 2
        assert pto.announcements == 2

    def test_single_day_leave(self, db, doctor, tuesday):
        pto = leave.create(db, doctor.id, "Day off", tuesday, tuesday)
        assert pto.start_date == pto.end_date == tuesday

    def test_end_before_start(self, db, doctor, tuesday):
        with pytest.raises(BadRequestError):
            leave.create(db, doctor.id, "Backwards", tuesday, tuesday - timedelta(days=1))

    def test_update_recounts(self, db, doctor, patient, tuesday, book):
        book(doctor, [patient], at(tuesday + timedelta(days=2), "10:00"), at(tuesday + timedelta(days=2), "10:30"))
        pto = leave.create(db, doctor.id, "Holidays", tuesday, tuesday)
        assert pto.appointments_count == 0

        pto = leave.update(db, pto.id, doctor.id, end_date=tuesday + timedelta(days=3), label="Long holidays")

        assert pto.appointments_count == 1
        assert pto.label == "Long holidays"

    def test_update_validates_effective_dates(self, db, doctor, tuesday):
        pto = leave.create(db, doctor.id, "Holidays", tuesday, tuesday + timedelta(days=1))
        with pytest.raises(BadRequestError):
            leave.update(db, pto.id, doctor.id, start_date=tuesday + timedelta(days=5))

    def test_find_all_sorted(self, db, doctor, tuesday):
        leave.create(db, doctor.id, "Later", tuesday + timedelta(days=14), tuesday + timedelta(days=15))
        leave.create(db, doctor.id, "Sooner", tuesday, tuesday)

        assert [p.label for p in leave.find_all(db, doctor.id)] == ["Sooner", "Later"]

    def test_other_doctor_sees_nothing_and_removal(self, db, doctor, other_doctor, tuesday):
        pto = leave.create(db, doctor.id, "Holidays", tuesday, tuesday)
        pto_id = pto.id

        with pytest.raises(NotFoundError):
            leave.find_one(db, pto_id, other_doctor.id)

        leave.remove(db, pto_id, doctor.id)
        with pytest.raises(NotFoundError):
            leave.find_one(db, pto_id, doctor.id)


class TestLeaveBlocking:

    def test_date_inside_leave(self, db, doctor, tuesday):
        leave.create(db, doctor.id, "Holidays", tuesday, tuesday + timedelta(days=4))

        assert leave.is_date_blocked_by_pto(db, doctor.id, tuesday + timedelta(days=4))
        assert not leave.is_date_blocked_by_pto(db, doctor.id, tuesday + timedelta(days=5))

    def test_range_touching_last_day(self, db, doctor, tuesday):
        leave.create(db, doctor.id, "Holidays", tuesday, tuesday)

        assert leave.is_range_blocked_by_pto(db, doctor.id, at(tuesday, "23:45"), at(tuesday + timedelta(days=1), "00:15"))

    def test_range_ending_at_midnight(self, db, doctor, tuesday):
        wednesday = tuesday + timedelta(days=1)
        leave.create(db, doctor.id, "Holidays", wednesday, wednesday)

        assert not leave.is_range_blocked_by_pto(db, doctor.id, at(tuesday, "23:30"), at(wednesday, "00:00"))

    def test_other_doctor_leave_does_not_block(self, db, doctor, other_doctor, tuesday):
        leave.create(db, other_doctor.id, "Holidays", tuesday, tuesday)
        assert not leave.is_date_blocked_by_pto(db, doctor.id, tuesday)
