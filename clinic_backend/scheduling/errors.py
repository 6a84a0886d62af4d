"""Error taxonomy for the scheduling engine.

Every error carries a ``context`` mapping (doctor id, requested range, current
status and so on) so callers can decide whether to re-read state and retry.
The engine itself never retries.
"""

import logging
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


class SchedulingError(Exception):
    """Base class for all scheduling failures."""

    retryable = False

    def __init__(self, message: str, **context) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_detail(self) -> dict:
        return {
            'error': type(self).__name__,
            'message': self.message,
            'retryable': self.retryable,
            'context': self.context,
        }


class InvalidRange(SchedulingError):
    """Malformed or inverted date/time range."""


class SlotUnavailable(SchedulingError):
    """The requested range is not a free slot for the doctor."""


class InvalidTransition(SchedulingError):
    """The requested status change is not an edge of the state machine."""


class ConcurrentModification(SchedulingError):
    """The stored status no longer matches the caller's expected status."""

    retryable = True


class StorageUnavailable(SchedulingError):
    """The persistence layer failed; the outcome of the write is unknown."""

    retryable = True


class AvailabilityConflict(SchedulingError):
    """An availability window overlaps another window of the same doctor and day."""


class AvailabilityNotFound(SchedulingError):
    pass


class AppointmentNotFound(SchedulingError):
    pass


class ActionNotPermitted(SchedulingError):
    """The caller's role does not allow the operation."""


@contextmanager
def storage_guard(db: Session, operation: str, **context):
    """Roll back on any failure and surface database errors as ``StorageUnavailable``."""
    try:
        yield
    except SchedulingError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Storage failure during %s (%s)', operation, context)
        raise StorageUnavailable(
            'Database unavailable. Re-query before retrying.',
            operation=operation,
            **context,
        ) from exc
