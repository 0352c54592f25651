"""Tests for the notification orchestrator and reminder job."""

import asyncio
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select

from app.core.config import settings
from app.models.appointment import Appointment, AppointmentStatus
from app.models.notification import AttemptStatus, NotificationAttempt, NotificationChannel, NotificationEvent
from app.services import notification_orchestrator
from app.services.booking import create_booking, transition_status
from app.services.notification_orchestrator import (
    ChannelResult,
    NotificationContext,
    dispatch_calendar_sync,
    dispatch_invoice_email,
    dispatch_sms,
    get_notification_attempts,
    has_been_notified,
    notify,
    process_due_reminders,
)
from app.services.sms import AppointmentSmsResult
from tests.helpers import BOOKING_DAY, at, booking_request, caller_for

START = datetime.combine(BOOKING_DAY, at(9))


async def _book(db, practitioner, client_user, service, **extra):
    result = await create_booking(db, booking_request(practitioner, [service], at(9), client=client_user, **extra))
    return result.appointment_id


def _context(**overrides):
    values = dict(
        appointment_id=None,
        event=NotificationEvent.CONFIRMATION,
        client_name="Jane Doe",
        client_phone="0821234567",
        client_email=None,
        practitioner_name="Priya Test",
        practitioner_phone="0821110000",
        service_names="Facial",
        appointment_date=BOOKING_DAY,
        start_time=START,
        end_time=START + timedelta(minutes=30),
        total_price=350,
    )
    values.update(overrides)
    return NotificationContext(**values)


# ---------------------------------------------------------------------------
# notify
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_repeated_notify_appends_attempts(db, practitioner, client_user, service, channels):
    appointment_id = await _book(db, practitioner, client_user, service)

    await notify(db, appointment_id, NotificationEvent.CONFIRMATION)

    attempts = await get_notification_attempts(db, appointment_id)
    confirmations = [a for a in attempts if a.channel == NotificationChannel.SMS_CONFIRMATION]
    assert len(confirmations) == 2
    assert all(a.status == AttemptStatus.SENT for a in confirmations)
    assert await has_been_notified(db, appointment_id, NotificationChannel.SMS_CONFIRMATION)


@pytest.mark.asyncio
async def test_disabled_channel_is_skipped_not_failed(db, practitioner, client_user, service, channels):
    appointment_id = await _book(db, practitioner, client_user, service)

    with patch.object(settings, "SEND_SMS_ON_BOOKING", False):
        report = await notify(db, appointment_id, NotificationEvent.CONFIRMATION)

    assert report.success
    assert report.warnings == []
    assert {o.channel: o.status for o in report.outcomes} == {
        NotificationChannel.SMS_CONFIRMATION: AttemptStatus.SKIPPED,
        NotificationChannel.CALENDAR_SYNC: AttemptStatus.SKIPPED,
    }
    # latest outcome wins
    assert not await has_been_notified(db, appointment_id, NotificationChannel.SMS_CONFIRMATION)


@pytest.mark.asyncio
async def test_one_failing_channel_does_not_block_another(db, practitioner, client_user, service, channels):
    appointment_id = await _book(db, practitioner, client_user, service)
    channels[NotificationChannel.CALENDAR_SYNC].side_effect = RuntimeError("calendar unreachable")

    with patch.object(settings, "CALENDAR_SYNC_ENABLED", True):
        report = await notify(db, appointment_id, NotificationEvent.RESCHEDULE)

    outcomes = {o.channel: o for o in report.outcomes}
    assert outcomes[NotificationChannel.SMS_RESCHEDULE].status == AttemptStatus.SENT
    assert outcomes[NotificationChannel.CALENDAR_SYNC].status == AttemptStatus.FAILED
    assert "calendar unreachable" in outcomes[NotificationChannel.CALENDAR_SYNC].error
    assert not report.success
    assert len(report.warnings) == 1

    assert await has_been_notified(db, appointment_id, NotificationChannel.SMS_RESCHEDULE)
    assert not await has_been_notified(db, appointment_id, NotificationChannel.CALENDAR_SYNC)


@pytest.mark.asyncio
async def test_slow_channel_times_out(db, practitioner, client_user, service, channels):
    appointment_id = await _book(db, practitioner, client_user, service)

    async def hang(ctx):
        await asyncio.sleep(5)

    channels[NotificationChannel.SMS_CONFIRMATION].side_effect = hang
    with patch.object(settings, "NOTIFICATION_CHANNEL_TIMEOUT_SECONDS", 0.05):
        report = await notify(db, appointment_id, NotificationEvent.CONFIRMATION)

    [sms_outcome] = [o for o in report.outcomes if o.channel == NotificationChannel.SMS_CONFIRMATION]
    assert sms_outcome.status == AttemptStatus.FAILED
    assert sms_outcome.error.startswith("Timed out")


@pytest.mark.asyncio
async def test_calendar_event_id_is_kept_and_cleared(db, practitioner, client_user, service, channels):
    with patch.object(settings, "CALENDAR_SYNC_ENABLED", True):
        appointment_id = await _book(db, practitioner, client_user, service)
        appointment = await db.get(Appointment, appointment_id)
        assert appointment.calendar_event_id == "calendar_sync-ref"

        await transition_status(db, appointment_id, AppointmentStatus.CANCELLED, caller_for(practitioner))

    await db.refresh(appointment)
    assert appointment.calendar_event_id is None


@pytest.mark.asyncio
async def test_context_snapshot_for_external_client(db, practitioner, service, channels):
    result = await create_booking(db, booking_request(
        practitioner, [service], at(9),
        external={"first_name": "Jane", "last_name": "Doe", "phone": "0821234567"},
    ))

    ctx = channels[NotificationChannel.SMS_CONFIRMATION].await_args.args[0]
    assert ctx.appointment_id == result.appointment_id
    assert ctx.client_name == "Jane Doe"
    assert ctx.client_phone == "0821234567"
    assert ctx.client_email is None
    assert ctx.practitioner_phone == "0821110000"
    assert ctx.service_names == "Facial"


# ---------------------------------------------------------------------------
# Channel dispatchers
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_sms_dispatch_without_recipients_is_skipped():
    fake = AsyncMock(return_value=AppointmentSmsResult())
    with patch.object(notification_orchestrator.sms, "send_appointment_sms", fake):
        result = await dispatch_sms(_context(client_phone=None, practitioner_phone=None), sms_type="confirmation")
    assert result.status == AttemptStatus.SKIPPED


@pytest.mark.asyncio
async def test_sms_dispatch_reports_partial_failure():
    fake = AsyncMock(return_value=AppointmentSmsResult(
        client_sent=True, sids=["SM1"], errors=["practitioner: invalid number"], recipients=2,
    ))
    with patch.object(notification_orchestrator.sms, "send_appointment_sms", fake):
        result = await dispatch_sms(_context(), sms_type="confirmation")
    assert result.status == AttemptStatus.FAILED
    assert result.external_ref == "SM1"


@pytest.mark.asyncio
async def test_sms_without_twilio_credentials_fails():
    result = await dispatch_sms(_context(), sms_type="confirmation")
    assert result.status == AttemptStatus.FAILED
    assert "Twilio credentials not configured" in result.error


@pytest.mark.asyncio
async def test_calendar_without_token_fails():
    result = await dispatch_calendar_sync(_context())
    assert result.status == AttemptStatus.FAILED


@pytest.mark.asyncio
async def test_invoice_email_needs_an_address():
    result = await dispatch_invoice_email(_context(event=NotificationEvent.COMPLETION))
    assert result.status == AttemptStatus.SKIPPED

    fake = AsyncMock(return_value=True)
    with patch.object(notification_orchestrator.email_service, "send_invoice_ready_email", fake):
        result = await dispatch_invoice_email(
            _context(event=NotificationEvent.COMPLETION, client_email="jane@example.com")
        )
    assert result.status == AttemptStatus.SENT
    assert fake.await_args.kwargs["total_price"] == "350.00"


# ---------------------------------------------------------------------------
# Reminders
# ---------------------------------------------------------------------------

async def _reminder_statuses(db, appointment_id):
    result = await db.execute(
        select(NotificationAttempt.status).where(
            NotificationAttempt.appointment_id == appointment_id,
            NotificationAttempt.channel == NotificationChannel.SMS_REMINDER,
        ).order_by(NotificationAttempt.created_at)
    )
    return [s.value for s in result.scalars().all()]


@pytest.mark.asyncio
async def test_reminder_not_sent_before_its_time(db, practitioner, client_user, service, channels):
    appointment_id = await _book(db, practitioner, client_user, service)

    summary = await process_due_reminders(db, now=START - timedelta(hours=25))

    assert summary.processed == 0
    assert await _reminder_statuses(db, appointment_id) == ["pending"]
    channels[NotificationChannel.SMS_REMINDER].assert_not_awaited()


@pytest.mark.asyncio
async def test_due_reminder_sent_once(db, practitioner, client_user, service, channels):
    appointment_id = await _book(db, practitioner, client_user, service)

    first = await process_due_reminders(db, now=START - timedelta(hours=1))
    second = await process_due_reminders(db, now=START - timedelta(minutes=30))

    assert (first.processed, first.sent) == (1, 1)
    assert second.processed == 0
    assert await _reminder_statuses(db, appointment_id) == ["dispatched", "sent"]
    channels[NotificationChannel.SMS_REMINDER].assert_awaited_once()


@pytest.mark.asyncio
async def test_failed_reminder_counted(db, practitioner, client_user, service, channels):
    await _book(db, practitioner, client_user, service)
    channels[NotificationChannel.SMS_REMINDER].return_value = ChannelResult(AttemptStatus.FAILED, "no credit")

    summary = await process_due_reminders(db, now=START)

    assert (summary.processed, summary.sent, summary.failed) == (1, 0, 1)


@pytest.mark.asyncio
async def test_reminder_error_does_not_stop_the_run(db, practitioner, other_practitioner, client_user, service, channels):
    broken = await _book(db, practitioner, client_user, service)
    healthy = await _book(db, other_practitioner, client_user, service)
    real_notify = notification_orchestrator.notify

    async def flaky_notify(session, appointment_id, event, **kwargs):
        if appointment_id == broken:
            raise RuntimeError("connection reset")
        return await real_notify(session, appointment_id, event, **kwargs)

    with patch.object(notification_orchestrator, "notify", side_effect=flaky_notify):
        summary = await process_due_reminders(db, now=START)

    assert (summary.processed, summary.sent, summary.failed) == (2, 1, 1)
    assert await _reminder_statuses(db, broken) == ["failed"]
    assert await _reminder_statuses(db, healthy) == ["dispatched", "sent"]


@pytest.mark.asyncio
async def test_cancelled_appointment_gets_no_reminder(db, practitioner, client_user, service, channels):
    appointment_id = await _book(db, practitioner, client_user, service)
    await transition_status(db, appointment_id, AppointmentStatus.CANCELLED, caller_for(practitioner))

    summary = await process_due_reminders(db, now=START)

    assert summary.processed == 0
    assert await _reminder_statuses(db, appointment_id) == ["suppressed"]
    channels[NotificationChannel.SMS_REMINDER].assert_not_awaited()


@pytest.mark.asyncio
async def test_completed_appointment_reminder_suppressed_by_job(db, practitioner, client_user, service, channels):
    appointment_id = await _book(db, practitioner, client_user, service)
    await transition_status(db, appointment_id, AppointmentStatus.COMPLETED, caller_for(practitioner))

    summary = await process_due_reminders(db, now=START)

    assert summary.suppressed == 1
    assert await _reminder_statuses(db, appointment_id) == ["suppressed"]
