"""Appointment model definitions."""

import enum

from sqlalchemy import CheckConstraint, Column, Date, DateTime, Index, Integer, String, Time, text
from clinic_backend.database import Base
from clinic_backend.scheduling.clock import utc_now


class AppointmentStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


TERMINAL_STATUSES = frozenset({AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED})

_ACTIVE_ROW = text("status <> 'CANCELLED'")


class Appointment(Base):
    """Represents a booked appointment."""
    __tablename__ = "appointments"
    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'CONFIRMED', 'COMPLETED', 'CANCELLED')",
            name="ck_appointments_status",
        ),
        CheckConstraint("start_time < end_time", name="ck_appointments_time_order"),
        # At most one non-cancelled occupant per exact range.
        Index(
            "uq_appointments_active_range",
            "doctor_id",
            "appointment_date",
            "start_time",
            "end_time",
            unique=True,
            sqlite_where=_ACTIVE_ROW,
            postgresql_where=_ACTIVE_ROW,
        ),
        Index("idx_appointments_doctor_date", "doctor_id", "appointment_date", "start_time"),
        Index("idx_appointments_patient_date", "patient_id", "appointment_date", "start_time"),
    )

    id = Column(Integer, primary_key=True)
    patient_id = Column(Integer, nullable=False)
    doctor_id = Column(Integer, nullable=False)
    appointment_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    status = Column(String(16), nullable=False, default=AppointmentStatus.PENDING.value)
    notes = Column(String)
    cancellation_reason = Column(String)
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)
