"""Per-doctor mutual exclusion for check-then-write sequences.

Two layers guard a doctor's schedule: an in-process lock keyed by doctor id
serializes request threads of this process, and ``SELECT ... FOR UPDATE`` on the
doctor's ``doctor_schedules`` row serializes across processes on databases that
support row locks. SQLite ignores ``FOR UPDATE``; there the in-process lock and
the partial unique index on appointments apply.
"""

from contextlib import contextmanager
from threading import Lock

from sqlalchemy.orm import Session

from clinic_backend.models.schedule import DoctorSchedule

_registry_lock = Lock()
_doctor_locks: dict[int, Lock] = {}


def _lock_for(doctor_id: int) -> Lock:
    with _registry_lock:
        lock = _doctor_locks.get(doctor_id)
        if lock is None:
            lock = Lock()
            _doctor_locks[doctor_id] = lock
        return lock


@contextmanager
def doctor_schedule_lock(doctor_id: int):
    lock = _lock_for(doctor_id)
    with lock:
        yield


def lock_schedule_row(db: Session, doctor_id: int, create: bool = False) -> DoctorSchedule | None:
    schedule = (
        db.query(DoctorSchedule)
        .filter(DoctorSchedule.doctor_id == doctor_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if schedule is None and create:
        schedule = DoctorSchedule(doctor_id=doctor_id, version=0)
        db.add(schedule)
        db.flush()
    return schedule


def bump_schedule_version(db: Session, doctor_id: int) -> None:
    updated = (
        db.query(DoctorSchedule)
        .filter(DoctorSchedule.doctor_id == doctor_id)
        .update({DoctorSchedule.version: DoctorSchedule.version + 1}, synchronize_session=False)
    )
    if updated == 0:
        db.add(DoctorSchedule(doctor_id=doctor_id, version=1))
