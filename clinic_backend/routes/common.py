from fastapi import HTTPException, status
from fastapi.encoders import jsonable_encoder
from sqlalchemy.exc import SQLAlchemyError

from clinic_backend.database import ensure_appointment_schema, ensure_availability_schema
from clinic_backend.scheduling.errors import (
    ActionNotPermitted,
    AppointmentNotFound,
    AvailabilityConflict,
    AvailabilityNotFound,
    ConcurrentModification,
    InvalidRange,
    InvalidTransition,
    SchedulingError,
    SlotUnavailable,
    StorageUnavailable,
)
from clinic_backend.scheduling.notifications import LoggingNotifier, Notifier

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and database credentials.'

STATUS_CODES: dict[type[SchedulingError], int] = {
    InvalidRange: status.HTTP_400_BAD_REQUEST,
    ActionNotPermitted: status.HTTP_403_FORBIDDEN,
    AppointmentNotFound: status.HTTP_404_NOT_FOUND,
    AvailabilityNotFound: status.HTTP_404_NOT_FOUND,
    SlotUnavailable: status.HTTP_409_CONFLICT,
    InvalidTransition: status.HTTP_409_CONFLICT,
    ConcurrentModification: status.HTTP_409_CONFLICT,
    AvailabilityConflict: status.HTTP_409_CONFLICT,
    StorageUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def to_http_exception(exc: SchedulingError) -> HTTPException:
    status_code = STATUS_CODES.get(type(exc), status.HTTP_400_BAD_REQUEST)
    return HTTPException(status_code=status_code, detail=jsonable_encoder(exc.to_detail()))


def ensure_database_ready() -> None:
    try:
        ensure_availability_schema()
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


def get_notifier() -> Notifier:
    return LoggingNotifier()
