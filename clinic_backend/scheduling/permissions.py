from clinic_backend.models.appointment import Appointment, AppointmentStatus
from clinic_backend.scheduling.errors import ActionNotPermitted
from clinic_backend.scheduling.schemas import Actor, Role


def can_manage_doctor(actor: Actor, doctor_id: int) -> bool:
    if actor.role == Role.STAFF:
        return True
    return actor.role == Role.DOCTOR and actor.user_id == doctor_id


def ensure_can_manage_availability(actor: Actor | None, doctor_id: int) -> None:
    if actor is None or can_manage_doctor(actor, doctor_id):
        return
    raise ActionNotPermitted(
        'Only staff or the doctor can change this availability.',
        doctor_id=doctor_id,
        role=actor.role.value,
    )


def ensure_can_book(actor: Actor | None, patient_id: int, doctor_id: int) -> None:
    if actor is None:
        return
    if actor.role == Role.PATIENT and actor.user_id != patient_id:
        raise ActionNotPermitted(
            'Patients can only book appointments for themselves.',
            patient_id=patient_id,
            role=actor.role.value,
        )
    if actor.role == Role.DOCTOR and actor.user_id != doctor_id:
        raise ActionNotPermitted(
            'Doctors can only book into their own schedule.',
            doctor_id=doctor_id,
            role=actor.role.value,
        )


def ensure_can_transition(actor: Actor | None, appointment: Appointment, target: AppointmentStatus) -> None:
    if actor is None or can_manage_doctor(actor, appointment.doctor_id):
        return

    is_owner = actor.role == Role.PATIENT and actor.user_id == appointment.patient_id
    if target == AppointmentStatus.CANCELLED and is_owner:
        return

    if target == AppointmentStatus.CANCELLED:
        message = 'Only the patient who booked this appointment can cancel it.'
    else:
        message = 'Only staff can confirm or complete appointments.'
    raise ActionNotPermitted(
        message,
        appointment_id=appointment.id,
        target_status=target.value,
        role=actor.role.value,
    )


def ensure_can_view_appointment(actor: Actor | None, appointment: Appointment) -> None:
    if actor is None or actor.is_staff:
        return
    if actor.role == Role.DOCTOR and actor.user_id == appointment.doctor_id:
        return
    if actor.role == Role.PATIENT and actor.user_id == appointment.patient_id:
        return
    raise ActionNotPermitted(
        'You can only view appointments you are part of.',
        appointment_id=appointment.id,
        role=actor.role.value,
    )


def scope_appointment_listing(
    actor: Actor | None,
    doctor_id: int | None,
    patient_id: int | None,
) -> tuple[int | None, int | None]:
    """Narrow listing filters to what the actor may see.

    Patients see their own appointments and doctors see their own schedule;
    asking for someone else's fails rather than returning an empty list.
    Returns the ``(doctor_id, patient_id)`` filters to apply.
    """
    if actor is None or actor.is_staff:
        return doctor_id, patient_id

    if actor.role == Role.DOCTOR:
        if doctor_id is not None and doctor_id != actor.user_id:
            raise ActionNotPermitted(
                'Doctors can only view appointments in their own schedule.',
                doctor_id=doctor_id,
                role=actor.role.value,
            )
        return actor.user_id, patient_id

    if patient_id is not None and patient_id != actor.user_id:
        raise ActionNotPermitted(
            'Patients can only view their own appointments.',
            patient_id=patient_id,
            role=actor.role.value,
        )
    return doctor_id, actor.user_id
