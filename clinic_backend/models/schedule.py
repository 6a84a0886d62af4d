"""Per-doctor schedule aggregate."""

from sqlalchemy import Column, Integer
from clinic_backend.database import Base


class DoctorSchedule(Base):
    """Version counter bumped by every write that changes a doctor's free slots."""
    __tablename__ = "doctor_schedules"

    doctor_id = Column(Integer, primary_key=True, autoincrement=False)
    version = Column(Integer, nullable=False, default=0)
