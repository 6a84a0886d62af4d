"""Expands recurring availability into dated, bookable slots.

Generation is a pure read of availability and appointments: calling it again
after a booking or a cancellation reflects the new state.
"""

from collections import defaultdict
from collections.abc import Iterator
from datetime import date, datetime, time, timedelta

from sqlalchemy.orm import Session

from clinic_backend.core import config
from clinic_backend.models.appointment import Appointment, AppointmentStatus
from clinic_backend.models.availability import DoctorAvailability
from clinic_backend.scheduling.errors import InvalidRange, storage_guard
from clinic_backend.scheduling.schemas import TimeSlot


def ranges_overlap(a_start: time, a_end: time, b_start: time, b_end: time) -> bool:
    """Half-open ranges [a_start, a_end) and [b_start, b_end) overlap."""
    return a_start < b_end and b_start < a_end


def iterate_dates(range_start: date, range_end: date) -> Iterator[date]:
    current = range_start
    while current <= range_end:
        yield current
        current += timedelta(days=1)


def iterate_window_slots(window: DoctorAvailability) -> Iterator[tuple[time, time]]:
    # Whole slots only; a trailing remainder shorter than the duration is dropped.
    step = timedelta(minutes=window.slot_duration_minutes)
    anchor = date.min
    current = datetime.combine(anchor, window.start_time)
    window_end = datetime.combine(anchor, window.end_time)

    while current + step <= window_end:
        yield current.time(), (current + step).time()
        current += step


def validate_date_range(range_start: date, range_end: date) -> None:
    if range_end < range_start:
        raise InvalidRange(
            'Range end must not be before range start.',
            range_start=range_start,
            range_end=range_end,
        )

    days = (range_end - range_start).days + 1
    if days > config.MAX_SLOT_RANGE_DAYS:
        raise InvalidRange(
            f'Slot ranges are limited to {config.MAX_SLOT_RANGE_DAYS} days.',
            range_start=range_start,
            range_end=range_end,
        )


def get_active_windows_by_day(db: Session, doctor_id: int) -> dict[int, list[DoctorAvailability]]:
    windows = db.query(DoctorAvailability).filter(
        DoctorAvailability.doctor_id == doctor_id,
        DoctorAvailability.is_active.is_(True),
    ).order_by(DoctorAvailability.start_time.asc()).all()

    by_day: dict[int, list[DoctorAvailability]] = defaultdict(list)
    for window in windows:
        by_day[window.day_of_week].append(window)
    return by_day


def get_occupied_ranges(db: Session, doctor_id: int, slot_date: date) -> list[tuple[time, time]]:
    rows = db.query(Appointment.start_time, Appointment.end_time).filter(
        Appointment.doctor_id == doctor_id,
        Appointment.appointment_date == slot_date,
        Appointment.status != AppointmentStatus.CANCELLED.value,
    ).all()
    return [(start_time, end_time) for start_time, end_time in rows]


def iter_slots(
    db: Session,
    doctor_id: int,
    range_start: date,
    range_end: date,
    not_before: datetime | None = None,
) -> Iterator[TimeSlot]:
    """Yield free slots date by date, in chronological order."""
    validate_date_range(range_start, range_end)
    windows_by_day = get_active_windows_by_day(db, doctor_id)

    for slot_date in iterate_dates(range_start, range_end):
        windows = windows_by_day.get(slot_date.weekday())
        if not windows:
            continue

        occupied = get_occupied_ranges(db, doctor_id, slot_date)

        for window in windows:
            for start_time, end_time in iterate_window_slots(window):
                if not_before is not None and datetime.combine(slot_date, start_time) <= not_before:
                    continue
                if any(ranges_overlap(start_time, end_time, busy_start, busy_end) for busy_start, busy_end in occupied):
                    continue

                yield TimeSlot(
                    doctor_id=doctor_id,
                    date=slot_date,
                    start_time=start_time,
                    end_time=end_time,
                )


def generate_slots(
    db: Session,
    doctor_id: int,
    range_start: date,
    range_end: date,
    not_before: datetime | None = None,
) -> list[TimeSlot]:
    with storage_guard(db, 'generate_slots', doctor_id=doctor_id, range_start=range_start, range_end=range_end):
        return list(iter_slots(db, doctor_id, range_start, range_end, not_before=not_before))


def find_free_slot(
    db: Session,
    doctor_id: int,
    slot_date: date,
    start_time: time,
    end_time: time,
) -> TimeSlot | None:
    """Return the free slot that fully contains ``[start_time, end_time)``, if any."""
    for slot in iter_slots(db, doctor_id, slot_date, slot_date):
        if slot.contains(start_time, end_time):
            return slot
    return None
