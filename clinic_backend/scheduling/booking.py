"""Check-and-reserve of appointment slots.

A booking is accepted only when the requested range sits inside a free slot
generated from the doctor's availability. The final free-slot check and the
insert happen inside one unit of work serialized per doctor, so concurrent
requests for the same or overlapping ranges resolve to exactly one winner.
"""

import logging
from datetime import date, datetime, time, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from clinic_backend.core import config
from clinic_backend.models.appointment import Appointment, AppointmentStatus
from clinic_backend.scheduling.clock import local_now
from clinic_backend.scheduling.errors import InvalidRange, SlotUnavailable, storage_guard
from clinic_backend.scheduling.locks import doctor_schedule_lock, lock_schedule_row
from clinic_backend.scheduling.permissions import ensure_can_book
from clinic_backend.scheduling.schemas import Actor, Role
from clinic_backend.scheduling.slot_generator import find_free_slot

logger = logging.getLogger(__name__)

AUTO_CONFIRM_ROLES = frozenset({Role.STAFF, Role.DOCTOR})


def find_overlapping_appointment(
    db: Session,
    doctor_id: int,
    appointment_date: date,
    start_time: time,
    end_time: time,
) -> Appointment | None:
    return db.query(Appointment).filter(
        Appointment.doctor_id == doctor_id,
        Appointment.appointment_date == appointment_date,
        Appointment.status != AppointmentStatus.CANCELLED.value,
        Appointment.start_time < end_time,
        Appointment.end_time > start_time,
    ).first()


def initial_status_for(actor: Actor | None) -> AppointmentStatus:
    if actor is not None and actor.role in AUTO_CONFIRM_ROLES and config.AUTO_CONFIRM_STAFF_BOOKINGS:
        return AppointmentStatus.CONFIRMED
    return AppointmentStatus.PENDING


def book_appointment(
    db: Session,
    patient_id: int,
    doctor_id: int,
    appointment_date: date,
    start_time: time,
    end_time: time,
    *,
    actor: Actor | None = None,
    notes: str | None = None,
    now: datetime | None = None,
) -> Appointment:
    context = {
        'doctor_id': doctor_id,
        'patient_id': patient_id,
        'date': appointment_date,
        'start_time': start_time,
        'end_time': end_time,
    }

    if end_time <= start_time:
        raise InvalidRange('End time must be after start time.', **context)

    ensure_can_book(actor, patient_id, doctor_id)

    now = now or local_now()
    if datetime.combine(appointment_date, start_time) <= now:
        raise SlotUnavailable('Appointments must be scheduled in the future.', **context)
    if appointment_date > now.date() + timedelta(days=config.BOOKING_HORIZON_DAYS):
        raise SlotUnavailable(
            f'Appointments can only be booked within the next {config.BOOKING_HORIZON_DAYS} days.',
            **context,
        )

    with storage_guard(db, 'book_appointment', **context):
        if find_free_slot(db, doctor_id, appointment_date, start_time, end_time) is None:
            raise SlotUnavailable('Requested time is not a free slot for this doctor.', **context)

        with doctor_schedule_lock(doctor_id):
            schedule = lock_schedule_row(db, doctor_id)
            if schedule is None:
                raise SlotUnavailable('Doctor has no published availability.', **context)

            # Re-derive the slot: a request may be a sub-range of a slot, so an
            # overlap check on the requested range alone is not enough.
            if find_free_slot(db, doctor_id, appointment_date, start_time, end_time) is None:
                conflict = find_overlapping_appointment(db, doctor_id, appointment_date, start_time, end_time)
                logger.warning(
                    'Booking for doctor %s on %s %s-%s lost the race (conflict: %s)',
                    doctor_id,
                    appointment_date,
                    start_time,
                    end_time,
                    conflict.id if conflict else None,
                )
                raise SlotUnavailable(
                    'This time is already booked.',
                    conflicting_appointment_id=conflict.id if conflict else None,
                    **context,
                )

            appointment = Appointment(
                patient_id=patient_id,
                doctor_id=doctor_id,
                appointment_date=appointment_date,
                start_time=start_time,
                end_time=end_time,
                status=initial_status_for(actor).value,
                notes=notes,
            )
            db.add(appointment)
            schedule.version += 1

            try:
                db.commit()
            except IntegrityError as exc:
                raise SlotUnavailable('This time is already booked.', **context) from exc

        db.refresh(appointment)

    logger.info(
        'Booked appointment %s (%s) for patient %s with doctor %s on %s %s-%s',
        appointment.id,
        appointment.status,
        patient_id,
        doctor_id,
        appointment_date,
        start_time,
        end_time,
    )
    return appointment
