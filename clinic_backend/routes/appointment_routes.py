from datetime import date, datetime, time

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from clinic_backend.auth.dependencies import get_current_actor
from clinic_backend.core import config
from clinic_backend.database import get_db
from clinic_backend.models.appointment import AppointmentStatus
from clinic_backend.routes.common import ensure_database_ready, get_notifier, to_http_exception
from clinic_backend.scheduling import booking, lifecycle, queries
from clinic_backend.scheduling.errors import SchedulingError
from clinic_backend.scheduling.notifications import Notifier
from clinic_backend.scheduling.permissions import ensure_can_view_appointment, scope_appointment_listing
from clinic_backend.scheduling.schemas import Actor, AppointmentFilters, Role

router = APIRouter(tags=['appointments'])


def _normalize_status(value):
    if isinstance(value, str):
        return value.strip().upper()
    return value


class CreateAppointmentRequest(BaseModel):
    doctor_id: int
    date: date
    start_time: time
    end_time: time
    patient_id: int | None = None
    notes: str | None = None

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > config.MAX_APPOINTMENT_NOTES_LENGTH:
            raise ValueError(f'Notes must be {config.MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')

        return normalized


class TransitionRequest(BaseModel):
    target_status: AppointmentStatus
    expected_current_status: AppointmentStatus
    reason: str | None = None

    @field_validator('target_status', 'expected_current_status', mode='before')
    @classmethod
    def validate_status(cls, value):
        return _normalize_status(value)


class AppointmentResponse(BaseModel):
    id: int
    patient_id: int
    doctor_id: int
    appointment_date: date
    start_time: time
    end_time: time
    status: AppointmentStatus
    notes: str | None = None
    cancellation_reason: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    patient_id = data.patient_id
    if patient_id is None and actor.role == Role.PATIENT:
        patient_id = actor.user_id
    if patient_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='patient_id is required when booking on behalf of a patient.',
        )

    try:
        return booking.book_appointment(
            db,
            patient_id=patient_id,
            doctor_id=data.doctor_id,
            appointment_date=data.date,
            start_time=data.start_time,
            end_time=data.end_time,
            actor=actor,
            notes=data.notes,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.post('/{appointment_id}/transitions', response_model=AppointmentResponse)
def transition_appointment(
    appointment_id: int,
    data: TransitionRequest,
    actor: Actor = Depends(get_current_actor),
    notifier: Notifier = Depends(get_notifier),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return lifecycle.transition_appointment(
            db,
            appointment_id,
            data.target_status,
            data.expected_current_status,
            actor=actor,
            reason=data.reason,
            notifier=notifier,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.get('', response_model=list[AppointmentResponse])
def list_appointments(
    doctor_id: int | None = Query(default=None),
    patient_id: int | None = Query(default=None),
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    appointment_status: AppointmentStatus | None = Query(default=None, alias='status'),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        doctor_id, patient_id = scope_appointment_listing(actor, doctor_id, patient_id)

        filters = AppointmentFilters(
            doctor_id=doctor_id,
            patient_id=patient_id,
            date_from=date_from,
            date_to=date_to,
            status=appointment_status,
        )
        return queries.list_appointments(db, filters)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.get('/{appointment_id}', response_model=AppointmentResponse)
def get_appointment(
    appointment_id: int,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment = queries.get_appointment(db, appointment_id)
        ensure_can_view_appointment(actor, appointment)
        return appointment
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
