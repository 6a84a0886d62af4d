from datetime import date, time, timedelta

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from clinic_backend.auth.dependencies import get_current_actor
from clinic_backend.database import get_db
from clinic_backend.models.availability import DayOfWeek
from clinic_backend.routes.common import ensure_database_ready, to_http_exception
from clinic_backend.scheduling import availability_store, queries, slot_generator
from clinic_backend.scheduling.clock import local_now
from clinic_backend.scheduling.errors import SchedulingError
from clinic_backend.scheduling.schemas import Actor, TimeSlot

router = APIRouter(tags=['availability'])

DEFAULT_SLOT_RANGE_DAYS = 7


def _parse_day_of_week(value) -> DayOfWeek:
    if isinstance(value, DayOfWeek):
        return value
    if isinstance(value, int):
        return DayOfWeek(value)

    normalized = str(value).strip().upper()
    if normalized.isdigit():
        return DayOfWeek(int(normalized))
    if normalized not in DayOfWeek.__members__:
        raise ValueError('Day of week must be MONDAY through SUNDAY.')
    return DayOfWeek[normalized]


class CreateAvailabilityRequest(BaseModel):
    day_of_week: DayOfWeek
    start_time: time
    end_time: time
    slot_duration_minutes: int
    is_active: bool = True

    @field_validator('day_of_week', mode='before')
    @classmethod
    def validate_day_of_week(cls, value):
        return _parse_day_of_week(value)

    @field_validator('slot_duration_minutes')
    @classmethod
    def validate_slot_duration(cls, value: int) -> int:
        if value <= 0:
            raise ValueError('Slot duration must be a positive number of minutes.')
        return value


class UpdateAvailabilityRequest(BaseModel):
    day_of_week: DayOfWeek | None = None
    start_time: time | None = None
    end_time: time | None = None
    slot_duration_minutes: int | None = None
    is_active: bool | None = None

    @field_validator('day_of_week', mode='before')
    @classmethod
    def validate_day_of_week(cls, value):
        if value is None:
            return None
        return _parse_day_of_week(value)


class AvailabilityResponse(BaseModel):
    id: int
    doctor_id: int
    day_of_week: str
    start_time: time
    end_time: time
    slot_duration_minutes: int
    is_active: bool

    class Config:
        from_attributes = True

    @field_validator('day_of_week', mode='before')
    @classmethod
    def serialize_day_of_week(cls, value) -> str:
        return _parse_day_of_week(value).name


class ScheduleVersionResponse(BaseModel):
    doctor_id: int
    version: int


@router.get('/doctors/{doctor_id}', response_model=list[AvailabilityResponse])
def list_doctor_availability(
    doctor_id: int,
    include_inactive: bool = Query(default=False),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return availability_store.list_availability(db, doctor_id, include_inactive=include_inactive)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.post(
    '/doctors/{doctor_id}',
    response_model=AvailabilityResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_doctor_availability(
    doctor_id: int,
    data: CreateAvailabilityRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return availability_store.create_availability(
            db,
            doctor_id=doctor_id,
            day_of_week=data.day_of_week,
            start_time=data.start_time,
            end_time=data.end_time,
            slot_duration_minutes=data.slot_duration_minutes,
            is_active=data.is_active,
            actor=actor,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.patch('/{availability_id}', response_model=AvailabilityResponse)
def update_doctor_availability(
    availability_id: int,
    data: UpdateAvailabilityRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return availability_store.update_availability(
            db,
            availability_id,
            actor=actor,
            **data.model_dump(exclude_none=True),
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.delete('/{availability_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_doctor_availability(
    availability_id: int,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        availability_store.delete_availability(db, availability_id, actor=actor)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.get('/doctors/{doctor_id}/slots', response_model=list[TimeSlot])
def list_free_slots(
    doctor_id: int,
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    now = local_now()
    range_start = date_from or now.date()
    range_end = date_to or range_start + timedelta(days=DEFAULT_SLOT_RANGE_DAYS - 1)

    try:
        return slot_generator.generate_slots(db, doctor_id, range_start, range_end, not_before=now)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.get('/doctors/{doctor_id}/version', response_model=ScheduleVersionResponse)
def get_doctor_schedule_version(doctor_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return ScheduleVersionResponse(doctor_id=doctor_id, version=queries.get_schedule_version(db, doctor_id))
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
