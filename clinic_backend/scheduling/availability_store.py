"""Recurring weekly availability windows per doctor.

Writes run under the doctor's schedule lock so two concurrent edits cannot
produce overlapping windows, and each write bumps the doctor's schedule version.
"""

import logging
from datetime import time

from sqlalchemy.orm import Session

from clinic_backend.models.availability import DayOfWeek, DoctorAvailability
from clinic_backend.scheduling.errors import (
    AvailabilityConflict,
    AvailabilityNotFound,
    InvalidRange,
    storage_guard,
)
from clinic_backend.scheduling.locks import bump_schedule_version, doctor_schedule_lock, lock_schedule_row
from clinic_backend.scheduling.permissions import ensure_can_manage_availability
from clinic_backend.scheduling.schemas import Actor

logger = logging.getLogger(__name__)


def _coerce_day(value: int) -> DayOfWeek:
    try:
        return DayOfWeek(value)
    except ValueError as exc:
        raise InvalidRange('Day of week must be between 0 (Monday) and 6 (Sunday).', day_of_week=value) from exc


def _validate_window(start_time: time, end_time: time, slot_duration_minutes: int) -> None:
    if end_time <= start_time:
        raise InvalidRange(
            'Availability end time must be after start time.',
            start_time=start_time,
            end_time=end_time,
        )
    if slot_duration_minutes <= 0:
        raise InvalidRange(
            'Slot duration must be a positive number of minutes.',
            slot_duration_minutes=slot_duration_minutes,
        )


def _find_overlapping_window(
    db: Session,
    doctor_id: int,
    day_of_week: int,
    start_time: time,
    end_time: time,
    exclude_id: int | None = None,
) -> DoctorAvailability | None:
    query = db.query(DoctorAvailability).filter(
        DoctorAvailability.doctor_id == doctor_id,
        DoctorAvailability.day_of_week == day_of_week,
        DoctorAvailability.start_time < end_time,
        DoctorAvailability.end_time > start_time,
    )
    if exclude_id is not None:
        query = query.filter(DoctorAvailability.id != exclude_id)
    return query.first()


def _raise_conflict(window: DoctorAvailability, doctor_id: int, day_of_week: int) -> None:
    raise AvailabilityConflict(
        'Availability overlaps an existing window for this doctor and day.',
        doctor_id=doctor_id,
        day_of_week=DayOfWeek(day_of_week).name,
        conflicting_availability_id=window.id,
        conflicting_start_time=window.start_time,
        conflicting_end_time=window.end_time,
    )


def list_availability(db: Session, doctor_id: int, include_inactive: bool = False) -> list[DoctorAvailability]:
    with storage_guard(db, 'list_availability', doctor_id=doctor_id):
        query = db.query(DoctorAvailability).filter(DoctorAvailability.doctor_id == doctor_id)
        if not include_inactive:
            query = query.filter(DoctorAvailability.is_active.is_(True))
        return query.order_by(
            DoctorAvailability.day_of_week.asc(),
            DoctorAvailability.start_time.asc(),
        ).all()


def get_availability(db: Session, availability_id: int) -> DoctorAvailability:
    with storage_guard(db, 'get_availability', availability_id=availability_id):
        window = db.get(DoctorAvailability, availability_id)
    if window is None:
        raise AvailabilityNotFound('Availability not found.', availability_id=availability_id)
    return window


def create_availability(
    db: Session,
    doctor_id: int,
    day_of_week: int,
    start_time: time,
    end_time: time,
    slot_duration_minutes: int,
    is_active: bool = True,
    actor: Actor | None = None,
) -> DoctorAvailability:
    day_of_week = _coerce_day(day_of_week)
    ensure_can_manage_availability(actor, doctor_id)
    _validate_window(start_time, end_time, slot_duration_minutes)

    with storage_guard(db, 'create_availability', doctor_id=doctor_id):
        with doctor_schedule_lock(doctor_id):
            schedule = lock_schedule_row(db, doctor_id, create=True)

            overlapping = _find_overlapping_window(db, doctor_id, day_of_week, start_time, end_time)
            if overlapping:
                _raise_conflict(overlapping, doctor_id, day_of_week)

            window = DoctorAvailability(
                doctor_id=doctor_id,
                day_of_week=int(day_of_week),
                start_time=start_time,
                end_time=end_time,
                slot_duration_minutes=slot_duration_minutes,
                is_active=is_active,
            )
            db.add(window)
            schedule.version += 1
            db.commit()
        db.refresh(window)

    logger.info(
        'Created availability %s for doctor %s on %s %s-%s',
        window.id,
        doctor_id,
        day_of_week.name,
        start_time,
        end_time,
    )
    return window


def _reload_window_for_update(db: Session, availability_id: int) -> DoctorAvailability:
    # Discards whatever the session loaded before the doctor lock was taken.
    window = db.query(DoctorAvailability).filter(
        DoctorAvailability.id == availability_id,
    ).with_for_update().populate_existing().one_or_none()
    if window is None:
        raise AvailabilityNotFound('Availability not found.', availability_id=availability_id)
    return window


def update_availability(
    db: Session,
    availability_id: int,
    *,
    day_of_week: int | None = None,
    start_time: time | None = None,
    end_time: time | None = None,
    slot_duration_minutes: int | None = None,
    is_active: bool | None = None,
    actor: Actor | None = None,
) -> DoctorAvailability:
    doctor_id = get_availability(db, availability_id).doctor_id
    ensure_can_manage_availability(actor, doctor_id)
    if day_of_week is not None:
        _coerce_day(day_of_week)

    with storage_guard(db, 'update_availability', availability_id=availability_id, doctor_id=doctor_id):
        with doctor_schedule_lock(doctor_id):
            lock_schedule_row(db, doctor_id, create=True)
            window = _reload_window_for_update(db, availability_id)

            new_day = _coerce_day(day_of_week if day_of_week is not None else window.day_of_week)
            new_start = start_time if start_time is not None else window.start_time
            new_end = end_time if end_time is not None else window.end_time
            new_duration = slot_duration_minutes if slot_duration_minutes is not None else window.slot_duration_minutes
            _validate_window(new_start, new_end, new_duration)

            overlapping = _find_overlapping_window(
                db, doctor_id, new_day, new_start, new_end, exclude_id=availability_id
            )
            if overlapping:
                _raise_conflict(overlapping, doctor_id, new_day)

            window.day_of_week = int(new_day)
            window.start_time = new_start
            window.end_time = new_end
            window.slot_duration_minutes = new_duration
            if is_active is not None:
                window.is_active = is_active
            bump_schedule_version(db, doctor_id)
            db.commit()
        db.refresh(window)

    logger.info('Updated availability %s for doctor %s', availability_id, doctor_id)
    return window


def delete_availability(db: Session, availability_id: int, actor: Actor | None = None) -> None:
    """Remove a window. Appointments already booked inside it are kept."""
    doctor_id = get_availability(db, availability_id).doctor_id
    ensure_can_manage_availability(actor, doctor_id)

    with storage_guard(db, 'delete_availability', availability_id=availability_id, doctor_id=doctor_id):
        with doctor_schedule_lock(doctor_id):
            lock_schedule_row(db, doctor_id, create=True)
            window = _reload_window_for_update(db, availability_id)
            db.delete(window)
            bump_schedule_version(db, doctor_id)
            db.commit()

    logger.info('Deleted availability %s for doctor %s', availability_id, doctor_id)
