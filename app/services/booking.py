"""Booking use cases: create, reschedule, transition, soft-delete and list appointments.

The booking itself is the durable part. Notifications and stock consumption
run after it is committed and can only add warnings to the result; they never
undo it.

Conflict checking is two-tier. `availability` offers slots from a snapshot and
may be stale. Here, under a per-practitioner lock, the interval is re-checked
against storage and one `SlotClaim` row per occupied minute is inserted in the
same transaction as the appointment. The unique (practitioner, minute) index
makes the database reject any overlap the lock cannot see (another worker
process), and that IntegrityError is reported as SlotUnavailable.
"""

import asyncio
import logging
import uuid
import weakref
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Optional, Union
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import (
    AppointmentNotFound,
    ClientNotFound,
    IncompleteExternalClient,
    InvalidTransition,
    NoClientSelected,
    NoPractitionerSelected,
    NoServicesSelected,
    PermissionDenied,
    PracticeError,
    ServiceNotFound,
    SlotUnavailable,
)
from app.models.appointment import Appointment, AppointmentStatus, SlotClaim
from app.models.notification import NotificationEvent
from app.models.service import Service
from app.models.user import Caller, Role, User
from app.schemas.appointment import AppointmentCreate
from app.services import notification_orchestrator
from app.services.availability import load_busy_intervals, load_practitioner, resolve_working_window
from app.services.inventory_ledger import LowStockAlert, consume_for_service
from app.services.lifecycle import authorize_reschedule, authorize_transition
from app.services.notification_orchestrator import NotificationReport
from app.services.time_grid import Interval, minute_marks, practice_now
from app.services.visibility import can_view, scope_appointments

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegisteredClient:
    client_id: UUID


@dataclass(frozen=True)
class ExternalClient:
    first_name: str
    last_name: str
    phone: str
    email: Optional[str] = None


BookingSubject = Union[RegisteredClient, ExternalClient]


@dataclass
class BookingResult:
    appointment_id: UUID
    warnings: list[str] = field(default_factory=list)
    notifications: Optional[NotificationReport] = None


@dataclass
class TransitionResult:
    appointment: Appointment
    warnings: list[str] = field(default_factory=list)
    low_stock_alerts: list[LowStockAlert] = field(default_factory=list)


_practitioner_locks: "weakref.WeakValueDictionary[UUID, asyncio.Lock]" = weakref.WeakValueDictionary()


def _practitioner_lock(practitioner_id: UUID) -> asyncio.Lock:
    lock = _practitioner_locks.get(practitioner_id)
    if lock is None:
        lock = asyncio.Lock()
        _practitioner_locks[practitioner_id] = lock
    return lock


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def resolve_subject(request: AppointmentCreate, caller: Optional[Caller] = None) -> BookingSubject:
    """Turn the request's client fields into exactly one booking subject.

    `is_external_client` wins over `client_id`. A client-role caller always
    books for themself.
    """
    if caller is not None and caller.role == Role.CLIENT:
        if request.is_external_client:
            raise PermissionDenied("Clients can only book appointments for themselves")
        return RegisteredClient(client_id=caller.id)

    if request.is_external_client:
        info = request.external_client
        values = {
            "first_name": (info.first_name or "").strip() if info else "",
            "last_name": (info.last_name or "").strip() if info else "",
            "phone": (info.phone or "").strip() if info else "",
        }
        missing = [name for name, value in values.items() if not value]
        if missing:
            raise IncompleteExternalClient(missing)
        email = (info.email or "").strip() or None
        return ExternalClient(email=email, **values)

    if request.client_id:
        return RegisteredClient(client_id=request.client_id)

    raise NoClientSelected()


async def _load_services(db: AsyncSession, service_ids: list[UUID]) -> dict[UUID, Service]:
    result = await db.execute(
        select(Service).where(
            Service.id.in_(set(service_ids)),
            Service.is_active == True,  # noqa: E712
            Service.is_deleted == False,  # noqa: E712
        )
    )
    services = {s.id: s for s in result.scalars().all()}
    missing = [sid for sid in dict.fromkeys(service_ids) if sid not in services]
    if missing:
        raise ServiceNotFound(missing)
    return services


async def _ensure_client_exists(db: AsyncSession, client_id: UUID) -> None:
    client = await db.get(User, client_id)
    if client is None or client.is_deleted:
        raise ClientNotFound(client_id)


async def _ensure_slot_free(
    db: AsyncSession,
    practitioner_id: UUID,
    interval: Interval,
    exclude_appointment_id: Optional[UUID] = None,
) -> None:
    target_date = interval.start.date()
    window = await resolve_working_window(db, practitioner_id, target_date)
    day_window = window.on(target_date) if window else None
    if day_window is None or interval.start < day_window.start or interval.end > day_window.end:
        raise SlotUnavailable(
            "The requested time is outside the practitioner's working hours",
            {"start_time": interval.start.isoformat(), "end_time": interval.end.isoformat()},
        )

    busy = await load_busy_intervals(db, practitioner_id, target_date, exclude_appointment_id)
    if any(interval.overlaps(b) for b in busy):
        raise SlotUnavailable(
            details={"start_time": interval.start.isoformat(), "end_time": interval.end.isoformat()}
        )


def _claims_for(appointment_id: UUID, practitioner_id: UUID, interval: Interval) -> list[SlotClaim]:
    return [
        SlotClaim(practitioner_id=practitioner_id, claimed_minute=minute, appointment_id=appointment_id)
        for minute in minute_marks(interval)
    ]


async def _notify_safely(
    db: AsyncSession,
    appointment_id: UUID,
    event: NotificationEvent,
    send_client_sms: bool = True,
) -> tuple[list[str], Optional[NotificationReport]]:
    try:
        report = await notification_orchestrator.notify(db, appointment_id, event, send_client_sms)
    except Exception as e:
        logger.exception("%s notifications for appointment %s could not be dispatched", event.value, appointment_id)
        return [f"{event.value} notifications could not be dispatched: {e}"], None

    for warning in report.warnings:
        logger.warning("Appointment %s: %s", appointment_id, warning)
    return report.warnings, report


async def _schedule_reminder_safely(db: AsyncSession, appointment: Appointment) -> list[str]:
    appointment_id = appointment.id
    try:
        notification_orchestrator.schedule_reminder(db, appointment)
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.exception("Could not schedule reminder for appointment %s", appointment_id)
        return [f"Reminder could not be scheduled: {e}"]
    return []


# ---------------------------------------------------------------------------
# Use cases
# ---------------------------------------------------------------------------

async def create_booking(
    db: AsyncSession,
    request: AppointmentCreate,
    caller: Optional[Caller] = None,
) -> BookingResult:
    """Validate, persist and announce a new appointment.

    Validation order: services, practitioner, external-client completeness,
    client presence, then the referenced rows, then the slot itself.
    """
    if not request.service_ids:
        raise NoServicesSelected()
    if not request.practitioner_id:
        raise NoPractitionerSelected()
    subject = resolve_subject(request, caller)

    services = await _load_services(db, request.service_ids)
    practitioner = await load_practitioner(db, request.practitioner_id)
    if isinstance(subject, RegisteredClient):
        await _ensure_client_exists(db, subject.client_id)

    ordered = [services[sid] for sid in request.service_ids]
    total_minutes = sum(s.duration_minutes for s in ordered)
    total_price = sum((Decimal(s.price) for s in ordered), Decimal("0"))

    start = datetime.combine(request.appointment_date, request.start_time).replace(second=0, microsecond=0)
    interval = Interval(start, start + timedelta(minutes=total_minutes))

    appointment = Appointment(
        id=uuid.uuid4(),
        practitioner_id=practitioner.id,
        service_ids=[str(s.id) for s in ordered],
        total_duration_minutes=total_minutes,
        total_price=total_price,
        appointment_date=request.appointment_date,
        start_time=interval.start,
        end_time=interval.end,
        status=AppointmentStatus.SCHEDULED,
        notes=request.notes,
        created_by=caller.id if caller else None,
    )
    if isinstance(subject, ExternalClient):
        appointment.is_external_client = True
        appointment.client_first_name = subject.first_name
        appointment.client_last_name = subject.last_name
        appointment.client_phone = subject.phone
        appointment.client_email = subject.email
    else:
        appointment.is_external_client = False
        appointment.client_id = subject.client_id

    practitioner_id = practitioner.id
    appointment_id = appointment.id
    async with _practitioner_lock(practitioner_id):
        try:
            await _ensure_slot_free(db, practitioner_id, interval)
            db.add(appointment)
            await db.flush()
            db.add_all(_claims_for(appointment_id, practitioner_id, interval))
            await db.flush()
            await db.commit()
        except IntegrityError:
            await db.rollback()
            logger.info("Slot claim conflict for practitioner %s at %s", practitioner_id, interval.start)
            raise SlotUnavailable(
                details={"start_time": interval.start.isoformat(), "end_time": interval.end.isoformat()}
            )
        except Exception:
            await db.rollback()
            raise

    logger.info(
        "Booked appointment %s with practitioner %s at %s (%d min)",
        appointment_id, practitioner_id, interval.start, total_minutes,
    )

    warnings = await _schedule_reminder_safely(db, appointment)
    notify_warnings, report = await _notify_safely(
        db, appointment_id, NotificationEvent.CONFIRMATION, request.send_client_sms
    )
    warnings.extend(notify_warnings)
    return BookingResult(appointment_id=appointment_id, warnings=warnings, notifications=report)


async def _get_appointment(db: AsyncSession, appointment_id: UUID) -> Appointment:
    result = await db.execute(
        select(Appointment).where(
            Appointment.id == appointment_id,
            Appointment.is_deleted == False,  # noqa: E712
        )
    )
    appointment = result.scalar_one_or_none()
    if appointment is None:
        raise AppointmentNotFound(appointment_id)
    return appointment


async def get_appointment(db: AsyncSession, appointment_id: UUID, caller: Caller) -> Appointment:
    """A single appointment, if the caller is allowed to see it."""
    appointment = await _get_appointment(db, appointment_id)
    if not can_view(appointment, caller):
        raise AppointmentNotFound(appointment_id)
    return appointment


async def reschedule_booking(
    db: AsyncSession,
    appointment_id: UUID,
    new_date: date,
    new_start: time,
    caller: Caller,
) -> BookingResult:
    """Move a scheduled appointment, keeping its stored duration."""
    appointment = await _get_appointment(db, appointment_id)
    authorize_reschedule(appointment, caller)

    start = datetime.combine(new_date, new_start).replace(second=0, microsecond=0)
    interval = Interval(start, start + timedelta(minutes=appointment.total_duration_minutes))
    practitioner_id = appointment.practitioner_id

    async with _practitioner_lock(practitioner_id):
        try:
            await _ensure_slot_free(db, practitioner_id, interval, exclude_appointment_id=appointment.id)
            await db.execute(delete(SlotClaim).where(SlotClaim.appointment_id == appointment.id))
            appointment.appointment_date = new_date
            appointment.start_time = interval.start
            appointment.end_time = interval.end
            await notification_orchestrator.suppress_pending_reminders(db, appointment.id)
            await db.flush()
            db.add_all(_claims_for(appointment.id, practitioner_id, interval))
            await db.flush()
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise SlotUnavailable(
                details={"start_time": interval.start.isoformat(), "end_time": interval.end.isoformat()}
            )
        except Exception:
            await db.rollback()
            raise

    logger.info("Rescheduled appointment %s to %s", appointment.id, interval.start)

    warnings = await _schedule_reminder_safely(db, appointment)
    notify_warnings, report = await _notify_safely(db, appointment_id, NotificationEvent.RESCHEDULE)
    warnings.extend(notify_warnings)
    return BookingResult(appointment_id=appointment_id, warnings=warnings, notifications=report)


async def _claim_transition(
    db: AsyncSession, appointment: Appointment, target: AppointmentStatus, **values
) -> None:
    """Move scheduled -> target only if nobody else moved it first."""
    outcome = await db.execute(
        update(Appointment)
        .where(Appointment.id == appointment.id, Appointment.status == AppointmentStatus.SCHEDULED)
        .values(status=target, updated_at=datetime.utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    if outcome.rowcount != 1:
        await db.rollback()
        await db.refresh(appointment)
        raise InvalidTransition(AppointmentStatus(appointment.status).value, target.value)


async def transition_status(
    db: AsyncSession,
    appointment_id: UUID,
    target_status: AppointmentStatus,
    caller: Caller,
) -> TransitionResult:
    """Complete or cancel an appointment. Permission is checked before anything changes."""
    appointment = await _get_appointment(db, appointment_id)
    authorize_transition(appointment, caller, target_status)

    if target_status == AppointmentStatus.COMPLETED:
        return await _complete(db, appointment, caller)
    return await _cancel(db, appointment)


async def _complete(db: AsyncSession, appointment: Appointment, caller: Caller) -> TransitionResult:
    appointment_id = appointment.id
    service_ids = [UUID(str(s)) for s in appointment.service_ids]
    await _claim_transition(
        db, appointment, AppointmentStatus.COMPLETED, completed_at=practice_now(), invoice_eligible=True
    )
    await db.commit()
    logger.info("Appointment %s completed by %s", appointment_id, caller.id)

    result = TransitionResult(appointment=appointment)
    # One consumption per service occurrence; a shortfall is a warning, not a blocker
    for service_id in service_ids:
        try:
            consumption = await consume_for_service(db, service_id, appointment_id, caller.id)
            result.low_stock_alerts.extend(consumption.low_stock_alerts)
        except PracticeError as e:
            logger.warning("Appointment %s completed without stock consumption: %s", appointment_id, e.message)
            result.warnings.append(e.message)
        except Exception as e:
            logger.exception("Stock consumption for appointment %s failed", appointment_id)
            result.warnings.append(f"Stock could not be updated for service {service_id}: {e}")

    for alert in result.low_stock_alerts:
        result.warnings.append(
            f"Low stock: {alert.item_name} has {alert.current_stock} left (minimum {alert.minimum_stock})"
        )

    await db.refresh(appointment)
    notify_warnings, _ = await _notify_safely(db, appointment_id, NotificationEvent.COMPLETION)
    result.warnings.extend(notify_warnings)
    await db.refresh(appointment)
    return result


async def _cancel(db: AsyncSession, appointment: Appointment) -> TransitionResult:
    appointment_id = appointment.id
    await _claim_transition(db, appointment, AppointmentStatus.CANCELLED, cancelled_at=practice_now())
    await db.execute(delete(SlotClaim).where(SlotClaim.appointment_id == appointment_id))
    await notification_orchestrator.suppress_pending_reminders(db, appointment_id)
    await db.commit()
    logger.info("Appointment %s cancelled", appointment_id)

    await db.refresh(appointment)
    warnings, _ = await _notify_safely(db, appointment_id, NotificationEvent.CANCELLATION)
    await db.refresh(appointment)
    return TransitionResult(appointment=appointment, warnings=warnings)


async def soft_delete_appointment(db: AsyncSession, appointment_id: UUID, caller: Caller) -> None:
    """Hide an appointment for good and free its time. Super admins only."""
    if caller.role != Role.SUPER_ADMIN:
        raise PermissionDenied("Only super admins can delete appointments")

    appointment = await _get_appointment(db, appointment_id)
    appointment.is_deleted = True
    appointment.deleted_at = datetime.utcnow()
    try:
        await db.execute(delete(SlotClaim).where(SlotClaim.appointment_id == appointment.id))
        await notification_orchestrator.suppress_pending_reminders(db, appointment.id)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    logger.info("Appointment %s deleted by %s", appointment_id, caller.id)


async def list_appointments(
    db: AsyncSession,
    caller: Caller,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    practitioner_id: Optional[UUID] = None,
    status: Optional[AppointmentStatus] = None,
) -> list[Appointment]:
    """Appointments the caller may see, narrowed by the optional filters."""
    query = scope_appointments(select(Appointment), caller)
    if date_from:
        query = query.where(Appointment.appointment_date >= date_from)
    if date_to:
        query = query.where(Appointment.appointment_date <= date_to)
    if practitioner_id:
        query = query.where(Appointment.practitioner_id == practitioner_id)
    if status:
        query = query.where(Appointment.status == status)

    result = await db.execute(query.order_by(Appointment.start_time))
    return list(result.scalars().all())


async def list_appointments_needing_completion(
    db: AsyncSession, caller: Caller, now: Optional[datetime] = None
) -> list[Appointment]:
    """Scheduled appointments that have already ended and still await completion.

    Practitioners get their own; super admins get every practitioner's.
    """
    if caller.role == Role.CLIENT:
        raise PermissionDenied("Only staff can complete appointments")

    now = now or practice_now()
    query = scope_appointments(select(Appointment), caller).where(
        Appointment.status == AppointmentStatus.SCHEDULED,
        Appointment.end_time <= now,
    )
    if caller.role == Role.PRACTITIONER:
        query = query.where(Appointment.practitioner_id == caller.id)

    result = await db.execute(query.order_by(Appointment.end_time))
    return list(result.scalars().all())
