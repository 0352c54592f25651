"""Appointment status transitions and who may trigger them."""

from app.core.errors import InvalidTransition, PermissionDenied
from app.models.appointment import Appointment, AppointmentStatus
from app.models.user import Caller, Role

# scheduled is the only state with a way out; completed and cancelled are terminal
ALLOWED_TRANSITIONS = {
    AppointmentStatus.SCHEDULED: {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED},
    AppointmentStatus.COMPLETED: set(),
    AppointmentStatus.CANCELLED: set(),
}


def ensure_can_act(appointment: Appointment, caller: Caller, target: AppointmentStatus) -> None:
    """Raise PermissionDenied unless `caller` may move `appointment` to `target`."""
    if caller.role == Role.SUPER_ADMIN:
        return
    if caller.role == Role.PRACTITIONER:
        if appointment.practitioner_id != caller.id:
            raise PermissionDenied("Practitioners can only update their own appointments")
        return
    # client
    if target != AppointmentStatus.CANCELLED:
        raise PermissionDenied("Clients can only cancel appointments")
    if appointment.is_external_client or appointment.client_id != caller.id:
        raise PermissionDenied("Clients can only cancel their own appointments")


def ensure_legal(current: AppointmentStatus, target: AppointmentStatus) -> None:
    if target not in ALLOWED_TRANSITIONS.get(current, set()):
        raise InvalidTransition(current.value, target.value)


def authorize_transition(appointment: Appointment, caller: Caller, target: AppointmentStatus) -> None:
    """Permission first, then legality; nothing is mutated here."""
    ensure_can_act(appointment, caller, target)
    ensure_legal(AppointmentStatus(appointment.status), target)


def authorize_reschedule(appointment: Appointment, caller: Caller) -> None:
    """Rescheduling follows the practitioner/admin rules and needs a scheduled appointment.

    Clients may not move appointments themselves.
    """
    if caller.role == Role.CLIENT:
        raise PermissionDenied("Clients cannot reschedule appointments")
    ensure_can_act(appointment, caller, AppointmentStatus.SCHEDULED)
    if AppointmentStatus(appointment.status) != AppointmentStatus.SCHEDULED:
        raise InvalidTransition(AppointmentStatus(appointment.status).value, "rescheduled")
