import threading
from datetime import date, datetime, time

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from clinic_backend.models.appointment import Appointment, AppointmentStatus
from clinic_backend.models.availability import DayOfWeek
from clinic_backend.scheduling import booking
from clinic_backend.scheduling.availability_store import create_availability
from clinic_backend.scheduling.booking import book_appointment
from clinic_backend.scheduling.errors import (
    ActionNotPermitted,
    InvalidRange,
    SlotUnavailable,
    StorageUnavailable,
)
from clinic_backend.scheduling.lifecycle import cancel_appointment
from clinic_backend.scheduling.queries import get_schedule_version, list_appointments
from clinic_backend.scheduling.schemas import Actor, Role
from clinic_backend.scheduling.slot_generator import generate_slots

DOCTOR_ID = 3
PATIENT_ID = 40
MONDAY = date(2026, 1, 5)
NOW = datetime(2026, 1, 1, 8, 0)


@pytest.fixture
def monday_morning(db):
    return create_availability(db, DOCTOR_ID, DayOfWeek.MONDAY, time(9, 0), time(10, 0), 30)


def _free(db) -> list[tuple[time, time]]:
    return [(slot.start_time, slot.end_time) for slot in generate_slots(db, DOCTOR_ID, MONDAY, MONDAY)]


def test_booking_consumes_slot_and_cancellation_restores_it(db, monday_morning) -> None:
    assert _free(db) == [(time(9, 0), time(9, 30)), (time(9, 30), time(10, 0))]

    appointment = book_appointment(db, PATIENT_ID, DOCTOR_ID, MONDAY, time(9, 0), time(9, 30), now=NOW)

    assert appointment.id is not None
    assert appointment.status == AppointmentStatus.PENDING.value
    assert appointment.patient_id == PATIENT_ID
    assert _free(db) == [(time(9, 30), time(10, 0))]

    cancel_appointment(db, appointment.id, AppointmentStatus.PENDING)

    assert _free(db) == [(time(9, 0), time(9, 30)), (time(9, 30), time(10, 0))]


def test_cancelled_slot_can_be_booked_again(db, monday_morning) -> None:
    first = book_appointment(db, PATIENT_ID, DOCTOR_ID, MONDAY, time(9, 0), time(9, 30), now=NOW)
    cancel_appointment(db, first.id, AppointmentStatus.PENDING)

    second = book_appointment(db, PATIENT_ID + 1, DOCTOR_ID, MONDAY, time(9, 0), time(9, 30), now=NOW)

    assert second.id != first.id
    assert second.status == AppointmentStatus.PENDING.value


def test_inverted_range_is_rejected_without_state_change(db, monday_morning) -> None:
    version_before = get_schedule_version(db, DOCTOR_ID)

    with pytest.raises(InvalidRange) as exception_info:
        book_appointment(db, PATIENT_ID, DOCTOR_ID, MONDAY, time(9, 30), time(9, 0), now=NOW)

    assert exception_info.value.context['doctor_id'] == DOCTOR_ID
    assert list_appointments(db) == []
    assert get_schedule_version(db, DOCTOR_ID) == version_before
    assert len(_free(db)) == 2


def test_empty_range_is_rejected(db, monday_morning) -> None:
    with pytest.raises(InvalidRange):
        book_appointment(db, PATIENT_ID, DOCTOR_ID, MONDAY, time(9, 0), time(9, 0), now=NOW)


@pytest.mark.parametrize(
    ('start_time', 'end_time'),
    [
        (time(8, 30), time(9, 0)),
        (time(10, 0), time(10, 30)),
        (time(9, 15), time(9, 45)),
        (time(9, 0), time(10, 0)),
    ],
)
def test_range_outside_a_single_free_slot_is_rejected(db, monday_morning, start_time: time, end_time: time) -> None:
    with pytest.raises(SlotUnavailable):
        book_appointment(db, PATIENT_ID, DOCTOR_ID, MONDAY, start_time, end_time, now=NOW)

    assert list_appointments(db) == []


def test_day_without_availability_is_rejected(db, monday_morning) -> None:
    with pytest.raises(SlotUnavailable):
        book_appointment(db, PATIENT_ID, DOCTOR_ID, date(2026, 1, 6), time(9, 0), time(9, 30), now=NOW)


def test_doctor_without_schedule_is_rejected(db) -> None:
    with pytest.raises(SlotUnavailable):
        book_appointment(db, PATIENT_ID, DOCTOR_ID, MONDAY, time(9, 0), time(9, 30), now=NOW)


def test_range_inside_a_slot_occupies_the_whole_slot(db, monday_morning) -> None:
    book_appointment(db, PATIENT_ID, DOCTOR_ID, MONDAY, time(9, 0), time(9, 15), now=NOW)

    with pytest.raises(SlotUnavailable):
        book_appointment(db, PATIENT_ID + 1, DOCTOR_ID, MONDAY, time(9, 15), time(9, 30), now=NOW)

    assert _free(db) == [(time(9, 30), time(10, 0))]


def test_double_booking_same_slot_is_rejected(db, monday_morning) -> None:
    book_appointment(db, PATIENT_ID, DOCTOR_ID, MONDAY, time(9, 0), time(9, 30), now=NOW)

    with pytest.raises(SlotUnavailable):
        book_appointment(db, PATIENT_ID + 1, DOCTOR_ID, MONDAY, time(9, 0), time(9, 30), now=NOW)

    assert len(list_appointments(db)) == 1


def test_past_and_far_future_bookings_are_rejected(db, monday_morning, monkeypatch: pytest.MonkeyPatch) -> None:
    with pytest.raises(SlotUnavailable):
        book_appointment(db, PATIENT_ID, DOCTOR_ID, MONDAY, time(9, 0), time(9, 30), now=datetime(2026, 1, 5, 9, 0))

    monkeypatch.setattr('clinic_backend.core.config.BOOKING_HORIZON_DAYS', 2)
    with pytest.raises(SlotUnavailable):
        book_appointment(db, PATIENT_ID, DOCTOR_ID, MONDAY, time(9, 0), time(9, 30), now=NOW)


def test_successful_booking_bumps_schedule_version(db, monday_morning) -> None:
    version_before = get_schedule_version(db, DOCTOR_ID)

    book_appointment(db, PATIENT_ID, DOCTOR_ID, MONDAY, time(9, 0), time(9, 30), now=NOW)

    assert get_schedule_version(db, DOCTOR_ID) == version_before + 1


def test_notes_are_stored(db, monday_morning) -> None:
    appointment = book_appointment(
        db, PATIENT_ID, DOCTOR_ID, MONDAY, time(9, 0), time(9, 30), notes='Follow-up visit', now=NOW
    )

    assert appointment.notes == 'Follow-up visit'


@pytest.mark.parametrize(
    ('role', 'auto_confirm', 'expected_status'),
    [
        (Role.STAFF, True, AppointmentStatus.CONFIRMED),
        (Role.STAFF, False, AppointmentStatus.PENDING),
        (Role.DOCTOR, True, AppointmentStatus.CONFIRMED),
        (Role.PATIENT, True, AppointmentStatus.PENDING),
    ],
)
def test_initial_status_follows_auto_confirm_flag(
    db,
    monday_morning,
    monkeypatch: pytest.MonkeyPatch,
    role: Role,
    auto_confirm: bool,
    expected_status: AppointmentStatus,
) -> None:
    monkeypatch.setattr('clinic_backend.core.config.AUTO_CONFIRM_STAFF_BOOKINGS', auto_confirm)
    user_ids = {Role.PATIENT: PATIENT_ID, Role.DOCTOR: DOCTOR_ID, Role.STAFF: 1}
    actor = Actor(user_id=user_ids[role], role=role)

    appointment = book_appointment(db, PATIENT_ID, DOCTOR_ID, MONDAY, time(9, 0), time(9, 30), actor=actor, now=NOW)

    assert appointment.status == expected_status.value


def test_patient_cannot_book_for_someone_else(db, monday_morning) -> None:
    actor = Actor(user_id=PATIENT_ID + 1, role=Role.PATIENT)

    with pytest.raises(ActionNotPermitted):
        book_appointment(db, PATIENT_ID, DOCTOR_ID, MONDAY, time(9, 0), time(9, 30), actor=actor, now=NOW)


def test_doctor_cannot_book_into_another_doctors_schedule(db, monday_morning) -> None:
    actor = Actor(user_id=DOCTOR_ID + 1, role=Role.DOCTOR)

    with pytest.raises(ActionNotPermitted):
        book_appointment(db, PATIENT_ID, DOCTOR_ID, MONDAY, time(9, 0), time(9, 30), actor=actor, now=NOW)


def test_storage_failure_surfaces_as_retryable_error(db, monday_morning, monkeypatch: pytest.MonkeyPatch) -> None:
    def failing_find_free_slot(*args, **kwargs):
        raise OperationalError('SELECT 1', {}, Exception('connection reset'))

    monkeypatch.setattr(booking, 'find_free_slot', failing_find_free_slot)

    with pytest.raises(StorageUnavailable) as exception_info:
        book_appointment(db, PATIENT_ID, DOCTOR_ID, MONDAY, time(9, 0), time(9, 30), now=NOW)

    assert exception_info.value.retryable is True
    assert exception_info.value.context['operation'] == 'book_appointment'


def test_unique_index_rejects_second_active_occupant_of_same_range(db) -> None:
    def make(status: AppointmentStatus) -> Appointment:
        return Appointment(
            patient_id=PATIENT_ID,
            doctor_id=DOCTOR_ID,
            appointment_date=MONDAY,
            start_time=time(9, 0),
            end_time=time(9, 30),
            status=status.value,
        )

    db.add(make(AppointmentStatus.CANCELLED))
    db.add(make(AppointmentStatus.CANCELLED))
    db.add(make(AppointmentStatus.PENDING))
    db.commit()

    db.add(make(AppointmentStatus.CONFIRMED))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


def _book_concurrently(session_factory, ranges: list[tuple[time, time]]) -> tuple[list[int], list[Exception]]:
    barrier = threading.Barrier(len(ranges))
    results_lock = threading.Lock()
    booked: list[int] = []
    failures: list[Exception] = []

    def attempt(patient_id: int, start_time: time, end_time: time) -> None:
        session = session_factory()
        try:
            barrier.wait()
            appointment = book_appointment(session, patient_id, DOCTOR_ID, MONDAY, start_time, end_time, now=NOW)
            with results_lock:
                booked.append(appointment.id)
        except Exception as exc:
            with results_lock:
                failures.append(exc)
        finally:
            session.close()

    threads = [
        threading.Thread(target=attempt, args=(PATIENT_ID + index, start_time, end_time))
        for index, (start_time, end_time) in enumerate(ranges)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    return booked, failures


def test_concurrent_bookings_for_same_slot_admit_exactly_one(session_factory, db, monday_morning) -> None:
    booked, failures = _book_concurrently(session_factory, [(time(9, 0), time(9, 30))] * 8)

    assert len(booked) == 1
    assert len(failures) == 7
    assert all(isinstance(failure, SlotUnavailable) for failure in failures)
    assert [appointment.id for appointment in list_appointments(db)] == booked


def test_concurrent_bookings_for_overlapping_ranges_admit_exactly_one(session_factory, db, monday_morning) -> None:
    ranges = [(time(9, 0), time(9, 30)), (time(9, 15), time(9, 30)), (time(9, 0), time(9, 15))] * 2

    booked, failures = _book_concurrently(session_factory, ranges)

    assert len(booked) == 1
    assert all(isinstance(failure, SlotUnavailable) for failure in failures)
    assert _free(db) == [(time(9, 30), time(10, 0))]
