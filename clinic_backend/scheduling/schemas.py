"""Value types exchanged with the scheduling engine."""

import enum
from datetime import date, time

from pydantic import BaseModel

from clinic_backend.models.appointment import AppointmentStatus


class Role(str, enum.Enum):
    PATIENT = 'patient'
    STAFF = 'staff'
    DOCTOR = 'doctor'


class Actor(BaseModel):
    """Caller identity as supplied by the identity collaborator. Trusted as-is."""

    user_id: int
    role: Role

    class Config:
        frozen = True

    @property
    def is_staff(self) -> bool:
        return self.role == Role.STAFF


class TimeSlot(BaseModel):
    doctor_id: int
    date: date
    start_time: time
    end_time: time

    class Config:
        frozen = True

    def contains(self, start_time: time, end_time: time) -> bool:
        return self.start_time <= start_time and end_time <= self.end_time


class AppointmentFilters(BaseModel):
    doctor_id: int | None = None
    patient_id: int | None = None
    date_from: date | None = None
    date_to: date | None = None
    status: AppointmentStatus | None = None
