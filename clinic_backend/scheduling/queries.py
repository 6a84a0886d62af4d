"""Read-only projections over appointments and doctor schedules."""

from sqlalchemy.orm import Session

from clinic_backend.models.appointment import Appointment
from clinic_backend.models.schedule import DoctorSchedule
from clinic_backend.scheduling.errors import AppointmentNotFound, InvalidRange, storage_guard
from clinic_backend.scheduling.schemas import AppointmentFilters


def list_appointments(db: Session, filters: AppointmentFilters | None = None) -> list[Appointment]:
    filters = filters or AppointmentFilters()

    if filters.date_from and filters.date_to and filters.date_from > filters.date_to:
        raise InvalidRange(
            'date_from must not be after date_to.',
            date_from=filters.date_from,
            date_to=filters.date_to,
        )

    with storage_guard(db, 'list_appointments', **filters.model_dump(exclude_none=True)):
        query = db.query(Appointment)
        if filters.doctor_id is not None:
            query = query.filter(Appointment.doctor_id == filters.doctor_id)
        if filters.patient_id is not None:
            query = query.filter(Appointment.patient_id == filters.patient_id)
        if filters.date_from is not None:
            query = query.filter(Appointment.appointment_date >= filters.date_from)
        if filters.date_to is not None:
            query = query.filter(Appointment.appointment_date <= filters.date_to)
        if filters.status is not None:
            query = query.filter(Appointment.status == filters.status.value)

        return query.order_by(
            Appointment.appointment_date.asc(),
            Appointment.start_time.asc(),
            Appointment.id.asc(),
        ).all()


def get_appointment(db: Session, appointment_id: int) -> Appointment:
    with storage_guard(db, 'get_appointment', appointment_id=appointment_id):
        appointment = db.get(Appointment, appointment_id)
    if appointment is None:
        raise AppointmentNotFound('Appointment not found.', appointment_id=appointment_id)
    return appointment


def get_schedule_version(db: Session, doctor_id: int) -> int:
    with storage_guard(db, 'get_schedule_version', doctor_id=doctor_id):
        version = db.query(DoctorSchedule.version).filter(DoctorSchedule.doctor_id == doctor_id).scalar()
    return version or 0
