"""Doctor availability model definitions."""

import enum

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Integer, Time
from clinic_backend.database import Base
from clinic_backend.scheduling.clock import utc_now


class DayOfWeek(enum.IntEnum):
    """Weekday numbering shared with ``date.weekday()``."""
    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6


class DoctorAvailability(Base):
    """Represents one recurring weekly availability window for a doctor."""
    __tablename__ = "doctor_availability"
    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_availability_time_order"),
        CheckConstraint("slot_duration_minutes > 0", name="ck_availability_slot_duration"),
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_availability_day_of_week"),
    )

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    slot_duration_minutes = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)
