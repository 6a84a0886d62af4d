"""Hook for telling the outside world about status changes.

Delivery (email, SMS) lives outside this package. A notifier is any callable
taking the updated appointment and its previous status.
"""

import logging
from typing import Callable

from clinic_backend.models.appointment import Appointment, AppointmentStatus

logger = logging.getLogger(__name__)

Notifier = Callable[[Appointment, AppointmentStatus], None]


class LoggingNotifier:
    def __call__(self, appointment: Appointment, previous_status: AppointmentStatus) -> None:
        logger.info(
            'Appointment %s for patient %s moved %s -> %s',
            appointment.id,
            appointment.patient_id,
            previous_status.value,
            appointment.status,
        )


def notify_transition(
    notifier: Notifier | None,
    appointment: Appointment,
    previous_status: AppointmentStatus,
) -> bool:
    """Invoke ``notifier``. A failing notifier is logged; the transition stands."""
    if notifier is None:
        return False
    try:
        notifier(appointment, previous_status)
    except Exception:
        logger.exception('Notification failed for appointment %s', appointment.id)
        return False
    return True
