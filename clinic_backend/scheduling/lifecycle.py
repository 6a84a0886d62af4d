"""Appointment status state machine.

    PENDING ──► CONFIRMED ──► COMPLETED
       │            │
       └────────────┴──► CANCELLED

COMPLETED and CANCELLED are terminal. Each transition is one conditional
UPDATE keyed by appointment id and the caller's expected current status; a
mismatch means someone else moved the appointment first.
"""

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from clinic_backend.models.appointment import Appointment, AppointmentStatus
from clinic_backend.scheduling.clock import local_now, utc_now
from clinic_backend.scheduling.errors import (
    AppointmentNotFound,
    ConcurrentModification,
    InvalidTransition,
    storage_guard,
)
from clinic_backend.scheduling.locks import bump_schedule_version
from clinic_backend.scheduling.notifications import Notifier, notify_transition
from clinic_backend.scheduling.permissions import ensure_can_transition
from clinic_backend.scheduling.schemas import Actor

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset({AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED}),
    AppointmentStatus.CONFIRMED: frozenset({AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED}),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
}


def parse_status(value: AppointmentStatus | str) -> AppointmentStatus:
    if isinstance(value, AppointmentStatus):
        return value
    try:
        return AppointmentStatus(str(value).strip().upper())
    except ValueError as exc:
        raise InvalidTransition(f'Unknown appointment status: {value!r}.', status=value) from exc


def is_transition_allowed(current: AppointmentStatus, target: AppointmentStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def transition_appointment(
    db: Session,
    appointment_id: int,
    target_status: AppointmentStatus | str,
    expected_current_status: AppointmentStatus | str,
    *,
    actor: Actor | None = None,
    reason: str | None = None,
    now: datetime | None = None,
    notifier: Notifier | None = None,
) -> Appointment:
    target = parse_status(target_status)
    expected = parse_status(expected_current_status)
    context = {
        'appointment_id': appointment_id,
        'expected_status': expected.value,
        'target_status': target.value,
    }

    if not is_transition_allowed(expected, target):
        raise InvalidTransition(
            f'Cannot move an appointment from {expected.value} to {target.value}.',
            **context,
        )

    with storage_guard(db, 'transition_appointment', **context):
        appointment = db.get(Appointment, appointment_id)
        if appointment is None:
            raise AppointmentNotFound('Appointment not found.', appointment_id=appointment_id)

        doctor_id = appointment.doctor_id
        ensure_can_transition(actor, appointment, target)

        if target == AppointmentStatus.COMPLETED:
            now = now or local_now()
            ends_at = datetime.combine(appointment.appointment_date, appointment.end_time)
            if now < ends_at:
                raise InvalidTransition(
                    'Appointments can only be completed after they end.',
                    ends_at=ends_at,
                    **context,
                )

        values = {
            Appointment.status: target.value,
            Appointment.updated_at: utc_now(),
        }
        if target == AppointmentStatus.CANCELLED and reason:
            values[Appointment.cancellation_reason] = reason.strip()

        updated = db.query(Appointment).filter(
            Appointment.id == appointment_id,
            Appointment.status == expected.value,
        ).update(values, synchronize_session=False)

        if updated == 0:
            db.rollback()
            current_status = db.query(Appointment.status).filter(Appointment.id == appointment_id).scalar()
            logger.warning(
                'Appointment %s is %s, expected %s; refusing %s',
                appointment_id,
                current_status,
                expected.value,
                target.value,
            )
            raise ConcurrentModification(
                'Appointment status changed; re-read it and retry.',
                current_status=current_status,
                doctor_id=doctor_id,
                **context,
            )

        if target == AppointmentStatus.CANCELLED:
            # Frees the slot for the next generate_slots call.
            bump_schedule_version(db, doctor_id)

        db.commit()
        db.refresh(appointment)

    logger.info('Appointment %s moved %s -> %s', appointment_id, expected.value, target.value)
    notify_transition(notifier, appointment, expected)
    return appointment


def confirm_appointment(db: Session, appointment_id: int, **kwargs) -> Appointment:
    return transition_appointment(
        db, appointment_id, AppointmentStatus.CONFIRMED, AppointmentStatus.PENDING, **kwargs
    )


def complete_appointment(db: Session, appointment_id: int, **kwargs) -> Appointment:
    return transition_appointment(
        db, appointment_id, AppointmentStatus.COMPLETED, AppointmentStatus.CONFIRMED, **kwargs
    )


def cancel_appointment(
    db: Session,
    appointment_id: int,
    expected_current_status: AppointmentStatus | str,
    **kwargs,
) -> Appointment:
    return transition_appointment(
        db, appointment_id, AppointmentStatus.CANCELLED, expected_current_status, **kwargs
    )
