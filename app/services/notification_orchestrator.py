"""Best-effort notification fan-out for appointment lifecycle events.

`notify` maps an event to its channels, runs every enabled channel concurrently
under its own timeout and records exactly one NotificationAttempt per channel.
A channel failure is data (a FAILED attempt plus a warning), never an exception
for the caller. Disabled channels are recorded as SKIPPED and count as success.

Channel dispatchers receive an immutable `NotificationContext` snapshot and do
no database work, so they can run side by side while the session stays idle.
"""

import asyncio
import functools
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Awaitable, Callable, Mapping, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import AppointmentNotFound
from app.models.appointment import Appointment, AppointmentStatus
from app.models.notification import AttemptStatus, NotificationAttempt, NotificationChannel, NotificationEvent
from app.models.service import Service
from app.models.user import User
from app.services import calendar_sync, sms
from app.services.calendar_sync import CalendarSyncError
from app.services.email_service import email_service
from app.services.time_grid import format_hhmm, practice_now

logger = logging.getLogger(__name__)

EVENT_CHANNELS = {
    NotificationEvent.CONFIRMATION: [NotificationChannel.SMS_CONFIRMATION, NotificationChannel.CALENDAR_SYNC],
    NotificationEvent.RESCHEDULE: [NotificationChannel.SMS_RESCHEDULE, NotificationChannel.CALENDAR_SYNC],
    NotificationEvent.CANCELLATION: [NotificationChannel.SMS_CANCELLATION, NotificationChannel.CALENDAR_SYNC],
    NotificationEvent.COMPLETION: [NotificationChannel.INVOICE_EMAIL],
    NotificationEvent.REMINDER: [NotificationChannel.SMS_REMINDER],
}

# Statuses that describe a delivery outcome (the rest are reminder bookkeeping)
OUTCOME_STATUSES = (AttemptStatus.SENT, AttemptStatus.FAILED, AttemptStatus.SKIPPED)


@dataclass(frozen=True)
class NotificationContext:
    appointment_id: UUID
    event: NotificationEvent
    client_name: str
    client_phone: Optional[str]
    client_email: Optional[str]
    practitioner_name: str
    practitioner_phone: Optional[str]
    service_names: str
    appointment_date: date
    start_time: datetime
    end_time: datetime
    total_price: Decimal
    notes: Optional[str] = None
    calendar_event_id: Optional[str] = None
    send_client_sms: bool = True


@dataclass
class ChannelResult:
    status: AttemptStatus
    error: Optional[str] = None
    external_ref: Optional[str] = None


@dataclass
class ChannelOutcome:
    channel: NotificationChannel
    status: AttemptStatus
    error: Optional[str] = None
    external_ref: Optional[str] = None


@dataclass
class NotificationReport:
    appointment_id: UUID
    event: NotificationEvent
    outcomes: list[ChannelOutcome] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return all(o.status != AttemptStatus.FAILED for o in self.outcomes)

    @property
    def warnings(self) -> list[str]:
        return [
            f"{o.channel.value} notification failed: {o.error}"
            for o in self.outcomes
            if o.status == AttemptStatus.FAILED
        ]


Dispatcher = Callable[[NotificationContext], Awaitable[ChannelResult]]


def channel_enabled(channel: NotificationChannel) -> bool:
    """Per-channel switches are read at call time so operators can flip them live."""
    return {
        NotificationChannel.SMS_CONFIRMATION: settings.SEND_SMS_ON_BOOKING,
        NotificationChannel.SMS_RESCHEDULE: settings.SEND_SMS_ON_UPDATE,
        NotificationChannel.SMS_CANCELLATION: settings.SEND_SMS_ON_CANCELLATION,
        NotificationChannel.SMS_REMINDER: settings.SEND_SMS_REMINDERS,
        NotificationChannel.CALENDAR_SYNC: settings.CALENDAR_SYNC_ENABLED,
        NotificationChannel.INVOICE_EMAIL: settings.INVOICE_EMAIL_ENABLED,
    }[channel]


# ---------------------------------------------------------------------------
# Channel dispatchers
# ---------------------------------------------------------------------------

async def dispatch_sms(ctx: NotificationContext, sms_type: str) -> ChannelResult:
    result = await sms.send_appointment_sms(
        sms_type=sms_type,
        client_phone=ctx.client_phone,
        practitioner_phone=ctx.practitioner_phone,
        client_name=ctx.client_name,
        service_name=ctx.service_names,
        appointment_date=ctx.appointment_date.isoformat(),
        appointment_time=format_hhmm(ctx.start_time),
        send_client_sms=ctx.send_client_sms,
    )
    if result.recipients == 0:
        return ChannelResult(AttemptStatus.SKIPPED, "No recipient phone number")
    external_ref = ",".join(result.sids) or None
    if result.errors:
        return ChannelResult(AttemptStatus.FAILED, "; ".join(result.errors), external_ref)
    return ChannelResult(AttemptStatus.SENT, external_ref=external_ref)


async def dispatch_calendar_sync(ctx: NotificationContext) -> ChannelResult:
    try:
        if ctx.event == NotificationEvent.CANCELLATION:
            if not ctx.calendar_event_id:
                return ChannelResult(AttemptStatus.SKIPPED, "No calendar event to remove")
            await calendar_sync.delete_event(ctx.calendar_event_id)
            return ChannelResult(AttemptStatus.SENT, external_ref=ctx.calendar_event_id)

        event_data = calendar_sync.build_event(
            summary=f"{ctx.service_names} - {ctx.client_name}",
            start=ctx.start_time,
            end=ctx.end_time,
            description=ctx.notes,
        )
        if ctx.event == NotificationEvent.RESCHEDULE and ctx.calendar_event_id:
            event_id = await calendar_sync.update_event(ctx.calendar_event_id, event_data)
        else:
            event_id = await calendar_sync.create_event(event_data)
        return ChannelResult(AttemptStatus.SENT, external_ref=event_id)
    except CalendarSyncError as e:
        return ChannelResult(AttemptStatus.FAILED, str(e))


async def dispatch_invoice_email(ctx: NotificationContext) -> ChannelResult:
    if not ctx.client_email:
        return ChannelResult(AttemptStatus.SKIPPED, "Client has no email address")
    sent = await email_service.send_invoice_ready_email(
        client_email=ctx.client_email,
        client_name=ctx.client_name,
        service_names=ctx.service_names,
        appointment_date=ctx.appointment_date.isoformat(),
        total_price=f"{ctx.total_price:.2f}",
    )
    if not sent:
        return ChannelResult(AttemptStatus.FAILED, "Invoice email was not delivered")
    return ChannelResult(AttemptStatus.SENT)


CHANNEL_DISPATCHERS: dict[NotificationChannel, Dispatcher] = {
    NotificationChannel.SMS_CONFIRMATION: functools.partial(dispatch_sms, sms_type="confirmation"),
    NotificationChannel.SMS_RESCHEDULE: functools.partial(dispatch_sms, sms_type="reschedule"),
    NotificationChannel.SMS_CANCELLATION: functools.partial(dispatch_sms, sms_type="cancellation"),
    NotificationChannel.SMS_REMINDER: functools.partial(dispatch_sms, sms_type="reminder"),
    NotificationChannel.CALENDAR_SYNC: dispatch_calendar_sync,
    NotificationChannel.INVOICE_EMAIL: dispatch_invoice_email,
}


async def _run_channel(
    channel: NotificationChannel, dispatcher: Dispatcher, ctx: NotificationContext
) -> ChannelOutcome:
    timeout = settings.NOTIFICATION_CHANNEL_TIMEOUT_SECONDS
    try:
        result = await asyncio.wait_for(dispatcher(ctx), timeout=timeout)
    except asyncio.TimeoutError:
        logger.error("%s for appointment %s timed out after %ss", channel.value, ctx.appointment_id, timeout)
        return ChannelOutcome(channel, AttemptStatus.FAILED, f"Timed out after {timeout}s")
    except Exception as e:
        logger.exception("%s for appointment %s raised", channel.value, ctx.appointment_id)
        return ChannelOutcome(channel, AttemptStatus.FAILED, str(e) or e.__class__.__name__)
    return ChannelOutcome(channel, result.status, result.error, result.external_ref)


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------

async def _load_appointment(db: AsyncSession, appointment_id: UUID) -> Appointment:
    appointment = await db.get(Appointment, appointment_id)
    if appointment is None:
        raise AppointmentNotFound(appointment_id)
    return appointment


async def build_context(
    db: AsyncSession,
    appointment: Appointment,
    event: NotificationEvent,
    send_client_sms: bool = True,
) -> NotificationContext:
    """Snapshot everything the channels need so they never touch the session."""
    practitioner = await db.get(User, appointment.practitioner_id)

    if appointment.is_external_client:
        client_name = f"{appointment.client_first_name} {appointment.client_last_name}".strip()
        client_phone = appointment.client_phone
        client_email = appointment.client_email
    else:
        client = await db.get(User, appointment.client_id) if appointment.client_id else None
        client_name = client.full_name if client else "Client"
        client_phone = client.phone if client else None
        client_email = client.email if client else None

    service_ids = [UUID(str(s)) for s in appointment.service_ids]
    result = await db.execute(select(Service.id, Service.name).where(Service.id.in_(service_ids)))
    names = {sid: name for sid, name in result.all()}
    service_names = ", ".join(names[s] for s in service_ids if s in names) or "your appointment"

    return NotificationContext(
        appointment_id=appointment.id,
        event=event,
        client_name=client_name,
        client_phone=client_phone,
        client_email=client_email,
        practitioner_name=practitioner.full_name if practitioner else "",
        practitioner_phone=practitioner.phone if practitioner else None,
        service_names=service_names,
        appointment_date=appointment.appointment_date,
        start_time=appointment.start_time,
        end_time=appointment.end_time,
        total_price=appointment.total_price,
        notes=appointment.notes,
        calendar_event_id=appointment.calendar_event_id,
        send_client_sms=send_client_sms,
    )


async def notify(
    db: AsyncSession,
    appointment_id: UUID,
    event: NotificationEvent,
    send_client_sms: bool = True,
    dispatchers: Optional[Mapping[NotificationChannel, Dispatcher]] = None,
) -> NotificationReport:
    """Fan out `event` to its channels and record one attempt per channel.

    Safe to call repeatedly for the same (appointment, event): each call
    appends a fresh set of attempts.
    """
    dispatchers = dispatchers or CHANNEL_DISPATCHERS
    appointment = await _load_appointment(db, appointment_id)
    ctx = await build_context(db, appointment, event, send_client_sms)

    channels = EVENT_CHANNELS[event]
    outcomes: dict[NotificationChannel, ChannelOutcome] = {}
    active = []
    for channel in channels:
        if channel_enabled(channel):
            active.append(channel)
        else:
            outcomes[channel] = ChannelOutcome(channel, AttemptStatus.SKIPPED, "Channel disabled by configuration")

    results = await asyncio.gather(*[_run_channel(ch, dispatchers[ch], ctx) for ch in active])
    for outcome in results:
        outcomes[outcome.channel] = outcome

    report = NotificationReport(appointment_id=appointment_id, event=event)
    try:
        for channel in channels:
            outcome = outcomes[channel]
            report.outcomes.append(outcome)
            db.add(NotificationAttempt(
                appointment_id=appointment_id,
                channel=channel,
                event=event,
                status=outcome.status,
                error_detail=outcome.error,
                external_ref=outcome.external_ref,
            ))
            if channel == NotificationChannel.CALENDAR_SYNC and outcome.status == AttemptStatus.SENT:
                appointment.calendar_event_id = (
                    None if event == NotificationEvent.CANCELLATION else outcome.external_ref
                )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    for outcome in report.outcomes:
        if outcome.status == AttemptStatus.FAILED:
            logger.error(
                "%s notification for appointment %s failed: %s",
                outcome.channel.value, appointment_id, outcome.error,
            )
        elif outcome.status == AttemptStatus.SKIPPED:
            logger.warning(
                "%s notification for appointment %s skipped: %s",
                outcome.channel.value, appointment_id, outcome.error,
            )
        else:
            logger.info("%s notification for appointment %s sent", outcome.channel.value, appointment_id)

    return report


async def has_been_notified(db: AsyncSession, appointment_id: UUID, channel: NotificationChannel) -> bool:
    """True when the latest delivery outcome for (appointment, channel) is SENT."""
    result = await db.execute(
        select(NotificationAttempt.status)
        .where(
            NotificationAttempt.appointment_id == appointment_id,
            NotificationAttempt.channel == channel,
            NotificationAttempt.status.in_(OUTCOME_STATUSES),
        )
        .order_by(NotificationAttempt.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none() == AttemptStatus.SENT


async def get_notification_attempts(db: AsyncSession, appointment_id: UUID) -> list[NotificationAttempt]:
    result = await db.execute(
        select(NotificationAttempt)
        .where(NotificationAttempt.appointment_id == appointment_id)
        .order_by(NotificationAttempt.created_at)
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Reminders
# ---------------------------------------------------------------------------

def schedule_reminder(db: AsyncSession, appointment: Appointment) -> Optional[NotificationAttempt]:
    """Queue a PENDING reminder REMINDER_LEAD_HOURS before the start. Caller commits."""
    now = practice_now()
    if appointment.start_time <= now:
        return None
    send_at = max(appointment.start_time - timedelta(hours=settings.REMINDER_LEAD_HOURS), now)
    reminder = NotificationAttempt(
        appointment_id=appointment.id,
        channel=NotificationChannel.SMS_REMINDER,
        event=NotificationEvent.REMINDER,
        status=AttemptStatus.PENDING,
        scheduled_for=send_at,
    )
    db.add(reminder)
    return reminder


async def suppress_pending_reminders(db: AsyncSession, appointment_id: UUID) -> int:
    """Mark every still-pending reminder for an appointment SUPPRESSED. Caller commits."""
    result = await db.execute(
        update(NotificationAttempt)
        .where(
            NotificationAttempt.appointment_id == appointment_id,
            NotificationAttempt.channel == NotificationChannel.SMS_REMINDER,
            NotificationAttempt.status == AttemptStatus.PENDING,
        )
        .values(status=AttemptStatus.SUPPRESSED)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


@dataclass
class ReminderRunSummary:
    processed: int = 0
    sent: int = 0
    failed: int = 0
    suppressed: int = 0


async def process_due_reminders(
    db: AsyncSession,
    now: Optional[datetime] = None,
    dispatchers: Optional[Mapping[NotificationChannel, Dispatcher]] = None,
) -> ReminderRunSummary:
    """Send every pending reminder whose time has come.

    Each pending row is claimed with a conditional update before sending, so two
    overlapping job runs never send the same reminder twice.
    """
    now = now or practice_now()
    summary = ReminderRunSummary()

    result = await db.execute(
        select(NotificationAttempt.id, NotificationAttempt.appointment_id, Appointment.status, Appointment.is_deleted)
        .join(Appointment, Appointment.id == NotificationAttempt.appointment_id)
        .where(
            NotificationAttempt.channel == NotificationChannel.SMS_REMINDER,
            NotificationAttempt.status == AttemptStatus.PENDING,
            NotificationAttempt.scheduled_for <= now,
        )
        .order_by(NotificationAttempt.scheduled_for)
    )
    due = result.all()

    for reminder_id, appointment_id, appointment_status, is_deleted in due:
        live = AppointmentStatus(appointment_status) == AppointmentStatus.SCHEDULED and not is_deleted
        claimed = await db.execute(
            update(NotificationAttempt)
            .where(NotificationAttempt.id == reminder_id, NotificationAttempt.status == AttemptStatus.PENDING)
            .values(status=AttemptStatus.DISPATCHED if live else AttemptStatus.SUPPRESSED)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        if claimed.rowcount != 1:
            continue
        if not live:
            summary.suppressed += 1
            continue

        summary.processed += 1
        try:
            report = await notify(db, appointment_id, NotificationEvent.REMINDER, dispatchers=dispatchers)
        except Exception as e:
            logger.exception("Reminder %s for appointment %s could not be dispatched", reminder_id, appointment_id)
            await db.rollback()
            await db.execute(
                update(NotificationAttempt)
                .where(NotificationAttempt.id == reminder_id)
                .values(status=AttemptStatus.FAILED, error_detail=str(e))
                .execution_options(synchronize_session=False)
            )
            await db.commit()
            summary.failed += 1
            continue
        if report.success:
            summary.sent += 1
        else:
            summary.failed += 1

    logger.info(
        "Reminder run: %d processed, %d sent, %d failed, %d suppressed",
        summary.processed, summary.sent, summary.failed, summary.suppressed,
    )
    return summary
