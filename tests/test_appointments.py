"""Tests for the booking lifecycle and the audit trail it writes."""

from datetime import datetime, timedelta

import pytest

from app import models, schemas
from app.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from app.services import appointments as appointment_service
from app.services import history
from conftest import at


def _actions(db, appointment_id):
    return [h.action for h in history.get_appointment_history(db, appointment_id)]


class TestCreate:
    """Validation and persistence of new bookings."""

    def test_create_writes_patients_and_history(self, db, doctor, patient, make_patient, tuesday, book):
        second = make_patient(doctor, name="Bob", email="bob@example.com")

        appt = book(doctor, [patient, second], at(tuesday, "10:00"), at(tuesday, "10:30"), title="Check-up")

        assert appt.patient_id == patient.id
        assert [ap.patient_id for ap in appt.appointment_patients] == [patient.id, second.id]
        assert [ap.is_primary for ap in appt.appointment_patients] == [True, False]
        assert appt.status == models.AppointmentStatus.SCHEDULED

        entries = history.get_appointment_history(db, appt.id)
        assert [e.action for e in entries] == [models.HistoryAction.CREATED]
        assert entries[0].metadata_["patient_ids"] == [patient.id, second.id]
        assert entries[0].metadata_["title"] == "Check-up"

    def test_legacy_single_patient_id(self, db, doctor, patient, tuesday):
        appt = appointment_service.create(db, doctor.id, schemas.AppointmentCreate(
            start_time=at(tuesday, "10:00"), end_time=at(tuesday, "10:30"), patient_id=patient.id))
        assert [p.id for p in appt.participants] == [patient.id]

    def test_duplicate_patient_ids_are_collapsed(self, db, doctor, patient, tuesday):
        appt = appointment_service.create(db, doctor.id, schemas.AppointmentCreate(
            start_time=at(tuesday, "10:00"), end_time=at(tuesday, "10:30"),
            patient_ids=[patient.id, patient.id]))
        assert len(appt.appointment_patients) == 1

    def test_patient_is_required(self, db, doctor, tuesday):
        with pytest.raises(BadRequestError, match="At least one patient"):
            appointment_service.create(db, doctor.id, schemas.AppointmentCreate(
                start_time=at(tuesday, "10:00"), end_time=at(tuesday, "10:30")))

    def test_start_must_precede_end(self, doctor, patient, tuesday, book):
        with pytest.raises(BadRequestError):
            book(doctor, [patient], at(tuesday, "10:30"), at(tuesday, "10:30"))

    def test_past_start_is_rejected(self, doctor, patient, book):
        start = datetime.now() - timedelta(days=2)
        with pytest.raises(BadRequestError, match="past"):
            book(doctor, [patient], start, start + timedelta(minutes=30))

    def test_duration_is_capped(self, doctor, patient, tuesday, book):
        with pytest.raises(BadRequestError, match="cannot exceed"):
            book(doctor, [patient], at(tuesday, "08:00"), at(tuesday, "12:01"))

    def test_patient_of_another_doctor(self, doctor, other_doctor, make_patient, tuesday, book):
        stranger = make_patient(other_doctor, name="Zoe")
        with pytest.raises(NotFoundError):
            book(doctor, [stranger], at(tuesday, "10:00"), at(tuesday, "10:30"))

    def test_consultation_type_disabled_for_patient(self, db, doctor, patient, tuesday,
                                                    make_consultation_type, book):
        ct = make_consultation_type(doctor)
        db.add(models.PatientConsultationTypeAccess(
            patient_id=patient.id, consultation_type_id=ct.id, is_enabled=False))
        db.commit()

        with pytest.raises(BadRequestError, match="not enabled for patient"):
            book(doctor, [patient], at(tuesday, "10:00"), at(tuesday, "10:30"), ct)

    def test_conflict_is_rejected(self, doctor, patient, tuesday, book):
        book(doctor, [patient], at(tuesday, "10:00"), at(tuesday, "10:30"))
        with pytest.raises(ConflictError):
            book(doctor, [patient], at(tuesday, "10:15"), at(tuesday, "10:45"))

    def test_skip_conflict_check(self, doctor, patient, tuesday, book):
        book(doctor, [patient], at(tuesday, "10:00"), at(tuesday, "10:30"))
        appt = book(doctor, [patient], at(tuesday, "10:15"), at(tuesday, "10:45"), skip_conflict_check=True)
        assert appt.id is not None


class TestUpdate:
    """Partial updates and the history entries they produce."""

    @pytest.fixture
    def appt(self, doctor, patient, tuesday, book):
        return book(doctor, [patient], at(tuesday, "10:00"), at(tuesday, "10:30"))

    def test_notes_only_writes_one_update_entry(self, db, doctor, appt):
        appointment_service.update(db, appt.id, doctor.id, schemas.AppointmentUpdate(notes="Bring X-rays"))

        entries = history.get_appointment_history(db, appt.id)
        assert [e.action for e in entries] == [models.HistoryAction.UPDATED, models.HistoryAction.CREATED]
        assert entries[0].changed_fields == {"notes": {"before": None, "after": "Bring X-rays"}}
        assert entries[0].description == "Appointment updated: Notes"

    def test_time_change_writes_one_reschedule_entry(self, db, doctor, appt, tuesday):
        appointment_service.update(db, appt.id, doctor.id, schemas.AppointmentUpdate(
            start_time=at(tuesday, "11:00"), end_time=at(tuesday, "11:30")))

        actions = _actions(db, appt.id)
        assert actions.count(models.HistoryAction.RESCHEDULED) == 1
        assert models.HistoryAction.UPDATED not in actions
        assert db.get(models.Appointment, appt.id).start_time == at(tuesday, "11:00")

    def test_same_times_write_nothing(self, db, doctor, appt, tuesday):
        appointment_service.update(db, appt.id, doctor.id, schemas.AppointmentUpdate(
            start_time=at(tuesday, "10:00"), end_time=at(tuesday, "10:30")))

        assert _actions(db, appt.id) == [models.HistoryAction.CREATED]

    def test_unchanged_notes_write_nothing(self, db, doctor, appt):
        appointment_service.update(db, appt.id, doctor.id, schemas.AppointmentUpdate(notes="x"))
        appointment_service.update(db, appt.id, doctor.id, schemas.AppointmentUpdate(notes="x"))

        assert _actions(db, appt.id).count(models.HistoryAction.UPDATED) == 1

    def test_reschedule_into_conflict_is_rejected(self, db, doctor, patient, appt, tuesday, book):
        book(doctor, [patient], at(tuesday, "11:00"), at(tuesday, "11:30"))

        with pytest.raises(ConflictError):
            appointment_service.update(db, appt.id, doctor.id, schemas.AppointmentUpdate(
                start_time=at(tuesday, "11:15"), end_time=at(tuesday, "11:45")))
        assert _actions(db, appt.id) == [models.HistoryAction.CREATED]

    def test_reschedule_resets_reminder(self, db, doctor, appt, tuesday):
        row = db.get(models.Appointment, appt.id)
        row.reminder_sent_at = datetime.now()
        db.commit()

        updated = appointment_service.update(db, appt.id, doctor.id, schemas.AppointmentUpdate(
            start_time=at(tuesday, "14:00"), end_time=at(tuesday, "14:30")))

        assert updated.reminder_sent_at is None

    def test_status_through_update(self, db, doctor, appt):
        appointment_service.update(db, appt.id, doctor.id, schemas.AppointmentUpdate(
            status=models.AppointmentStatus.CONFIRMED))

        entry = history.get_appointment_history(db, appt.id)[0]
        assert entry.action == models.HistoryAction.STATUS_CHANGED
        assert entry.changed_fields["status"] == {"before": "SCHEDULED", "after": "CONFIRMED"}

    def test_consultation_type_change(self, db, doctor, appt, make_consultation_type):
        ct = make_consultation_type(doctor, name="Follow-up")

        updated = appointment_service.update(db, appt.id, doctor.id,
                                             schemas.AppointmentUpdate(consultation_type_id=ct.id))

        assert updated.consultation_type_id == ct.id
        entry = history.get_appointment_history(db, appt.id)[0]
        assert entry.action == models.HistoryAction.CONSULTATION_TYPE_CHANGED
        assert entry.description == "Consultation type changed: None → Follow-up"

    def test_patients_are_replaced(self, db, doctor, appt, make_patient):
        bob = make_patient(doctor, name="Bob", email="bob@example.com")
        carol = make_patient(doctor, name="Carol", email=None)

        updated = appointment_service.update(db, appt.id, doctor.id,
                                             schemas.AppointmentUpdate(patient_ids=[bob.id, carol.id]))

        assert updated.patient_id == bob.id
        assert [ap.patient_id for ap in updated.appointment_patients] == [bob.id, carol.id]
        assert [ap.is_primary for ap in updated.appointment_patients] == [True, False]

    def test_empty_patient_list_is_rejected(self, db, doctor, patient, appt):
        with pytest.raises(BadRequestError, match="At least one patient"):
            appointment_service.update(db, appt.id, doctor.id, schemas.AppointmentUpdate(patient_ids=[]))

        assert [ap.patient_id for ap in db.get(models.Appointment, appt.id).appointment_patients] == [patient.id]

    def test_new_type_disabled_for_patient(self, db, doctor, patient, appt, make_consultation_type):
        ct = make_consultation_type(doctor, name="Surgery")
        db.add(models.PatientConsultationTypeAccess(
            patient_id=patient.id, consultation_type_id=ct.id, is_enabled=False))
        db.commit()

        with pytest.raises(BadRequestError, match="not enabled for patient"):
            appointment_service.update(db, appt.id, doctor.id,
                                       schemas.AppointmentUpdate(consultation_type_id=ct.id))
        assert db.get(models.Appointment, appt.id).consultation_type_id is None

    def test_new_type_of_another_doctor(self, db, doctor, other_doctor, appt, make_consultation_type):
        foreign = make_consultation_type(other_doctor, name="Foreign")

        with pytest.raises(NotFoundError):
            appointment_service.update(db, appt.id, doctor.id,
                                       schemas.AppointmentUpdate(consultation_type_id=foreign.id))

    def test_uncancelling_into_a_taken_slot(self, db, doctor, patient, appt, tuesday, book):
        appointment_service.update_status(db, appt.id, doctor.id, models.AppointmentStatus.CANCELLED)
        book(doctor, [patient], at(tuesday, "10:00"), at(tuesday, "10:30"))

        with pytest.raises(ConflictError):
            appointment_service.update(db, appt.id, doctor.id, schemas.AppointmentUpdate(
                status=models.AppointmentStatus.CONFIRMED))
        assert db.get(models.Appointment, appt.id).status == models.AppointmentStatus.CANCELLED

    def test_other_doctor_cannot_update(self, db, other_doctor, appt):
        with pytest.raises(ForbiddenError):
            appointment_service.update(db, appt.id, other_doctor.id, schemas.AppointmentUpdate(notes="x"))


class TestStatusAndRemoval:
    """Status transitions, deletion and lookups."""

    def test_status_change_is_audited(self, db, doctor, patient, tuesday, book):
        appt = book(doctor, [patient], at(tuesday, "10:00"), at(tuesday, "10:30"))

        appointment_service.update_status(db, appt.id, doctor.id, models.AppointmentStatus.ABSENT)

        entry = history.get_appointment_history(db, appt.id)[0]
        assert entry.description == "Status changed: In waiting room → Patient absent"

    def test_same_status_is_not_audited(self, db, doctor, patient, tuesday, book):
        appt = book(doctor, [patient], at(tuesday, "10:00"), at(tuesday, "10:30"))

        appointment_service.update_status(db, appt.id, doctor.id, models.AppointmentStatus.SCHEDULED)

        assert _actions(db, appt.id) == [models.HistoryAction.CREATED]

    def test_any_status_can_follow_any_other(self, db, doctor, patient, tuesday, book):
        appt = book(doctor, [patient], at(tuesday, "10:00"), at(tuesday, "10:30"))

        appointment_service.update_status(db, appt.id, doctor.id, models.AppointmentStatus.COMPLETED)
        again = appointment_service.update_status(db, appt.id, doctor.id, models.AppointmentStatus.SCHEDULED)

        assert again.status == models.AppointmentStatus.SCHEDULED

    def test_uncancelling_rechecks_the_slot(self, db, doctor, patient, tuesday, book):
        first = book(doctor, [patient], at(tuesday, "10:00"), at(tuesday, "10:30"))
        appointment_service.update_status(db, first.id, doctor.id, models.AppointmentStatus.CANCELLED)
        book(doctor, [patient], at(tuesday, "10:00"), at(tuesday, "10:30"))

        with pytest.raises(ConflictError) as exc:
            appointment_service.update_status(db, first.id, doctor.id, models.AppointmentStatus.SCHEDULED)

        assert exc.value.code == ConflictError.APPOINTMENT_OVERLAP
        assert db.get(models.Appointment, first.id).status == models.AppointmentStatus.CANCELLED
        assert _actions(db, first.id).count(models.HistoryAction.STATUS_CHANGED) == 1

    def test_uncancelling_a_free_slot(self, db, doctor, patient, tuesday, book):
        appt = book(doctor, [patient], at(tuesday, "10:00"), at(tuesday, "10:30"))
        appointment_service.update_status(db, appt.id, doctor.id, models.AppointmentStatus.CANCELLED)

        again = appointment_service.update_status(db, appt.id, doctor.id, models.AppointmentStatus.CONFIRMED)

        assert again.status == models.AppointmentStatus.CONFIRMED

    def test_remove_keeps_history(self, db, doctor, patient, tuesday, book):
        appt = book(doctor, [patient], at(tuesday, "10:00"), at(tuesday, "10:30"))
        appt_id = appt.id

        appointment_service.remove(db, appt_id, doctor.id)

        with pytest.raises(NotFoundError):
            appointment_service.find_one(db, appt_id, doctor.id)
        assert _actions(db, appt_id) == [models.HistoryAction.CREATED]

    def test_find_one_checks_ownership(self, db, doctor, other_doctor, patient, tuesday, book):
        appt = book(doctor, [patient], at(tuesday, "10:00"), at(tuesday, "10:30"))
        with pytest.raises(ForbiddenError):
            appointment_service.find_one(db, appt.id, other_doctor.id)

    def test_find_all_filters(self, db, doctor, patient, make_patient, tuesday, book):
        bob = make_patient(doctor, name="Bob")
        book(doctor, [patient], at(tuesday, "10:00"), at(tuesday, "10:30"))
        book(doctor, [bob], at(tuesday, "11:00"), at(tuesday, "11:30"))
        book(doctor, [patient], at(tuesday + timedelta(days=1), "10:00"), at(tuesday + timedelta(days=1), "10:30"))

        assert appointment_service.find_all(db, doctor.id)["total"] == 3
        assert appointment_service.find_all(db, doctor.id, day=tuesday)["total"] == 2
        assert appointment_service.find_all(db, doctor.id, patient_id=bob.id)["total"] == 1

        page = appointment_service.find_all(db, doctor.id, page=2, limit=2)
        assert page["total"] == 3
        assert len(page["appointments"]) == 1

    def test_upcoming_skips_cancelled(self, db, doctor, patient, tuesday, book):
        first = book(doctor, [patient], at(tuesday, "10:00"), at(tuesday, "10:30"))
        second = book(doctor, [patient], at(tuesday, "11:00"), at(tuesday, "11:30"))
        appointment_service.update_status(db, first.id, doctor.id, models.AppointmentStatus.CANCELLED)

        upcoming = appointment_service.get_upcoming(db, doctor.id)

        assert [a.id for a in upcoming] == [second.id]


class TestAbsenceNotification:
    """Absence e-mails go to every participant with an address."""

    def test_sends_to_each_participant(self, db, doctor, patient, make_patient, tuesday, book, monkeypatch):
        bob = make_patient(doctor, name="Bob", email="bob@example.com")
        appt = book(doctor, [patient, bob], at(tuesday, "10:00"), at(tuesday, "10:30"))
        sent_to = []
        monkeypatch.setattr("app.services.notifications.send_absence_notification",
                            lambda email, *args: sent_to.append(email))

        result = appointment_service.send_absence_notification(db, appt.id, doctor.id)

        assert result == {"sent": 2, "failed": 0}
        assert sent_to == ["alice@example.com", "bob@example.com"]

    def test_failed_recipient_is_counted(self, db, doctor, patient, tuesday, book, monkeypatch):
        appt = book(doctor, [patient], at(tuesday, "10:00"), at(tuesday, "10:30"))

        def _boom(*args):
            raise RuntimeError("SMTP down")

        monkeypatch.setattr("app.services.notifications.send_absence_notification", _boom)

        assert appointment_service.send_absence_notification(db, appt.id, doctor.id) == {"sent": 0, "failed": 1}

    def test_no_email_at_all(self, db, doctor, make_patient, tuesday, book):
        nobody = make_patient(doctor, name="Nobody", email=None)
        appt = book(doctor, [nobody], at(tuesday, "10:00"), at(tuesday, "10:30"))

        with pytest.raises(BadRequestError, match="No patients with email"):
            appointment_service.send_absence_notification(db, appt.id, doctor.id)
