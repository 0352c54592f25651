"""Role-based scoping of appointment reads."""

from sqlalchemy import Select

from app.models.appointment import Appointment
from app.models.user import Caller, Role


def scope_appointments(statement: Select, caller: Caller) -> Select:
    """Restrict an Appointment select to what `caller` may see.

    Clients see only appointments booked for them as the registered client;
    practitioners and super admins see every appointment. Soft-deleted rows are
    never visible. Apply this before any date or narrowing filter.
    """
    statement = statement.where(Appointment.is_deleted == False)  # noqa: E712
    if caller.role == Role.CLIENT:
        statement = statement.where(Appointment.client_id == caller.id)
    return statement


def can_view(appointment: Appointment, caller: Caller) -> bool:
    """Same rule as `scope_appointments` for an already-loaded row."""
    if appointment.is_deleted:
        return False
    if caller.role == Role.CLIENT:
        return appointment.client_id == caller.id
    return True
