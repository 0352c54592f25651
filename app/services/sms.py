"""Twilio SMS service for PracticeFlow.

Each appointment event sends up to two messages:
1. The client ("Your appointment ... has been confirmed"), unless suppressed
2. The practitioner ("New appointment confirmed! ...")
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional
from twilio.rest import Client
from twilio.base.exceptions import TwilioRestException
from app.core.config import settings

logger = logging.getLogger(__name__)

SMS_TYPES = ("confirmation", "reschedule", "cancellation", "reminder")


@dataclass
class SmsResult:
    sent: bool
    sid: Optional[str] = None
    error: Optional[str] = None


@dataclass
class AppointmentSmsResult:
    client_sent: bool = False
    practitioner_sent: bool = False
    sids: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    recipients: int = 0


def _get_twilio_client() -> Client:
    return Client(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN)


def format_phone_number(phone: str) -> str:
    """Normalize a local number to E.164 ("082 123 4567" -> "+27821234567")."""
    formatted = "".join(phone.split())
    if formatted.startswith("+"):
        return formatted
    if formatted.startswith("0"):
        return f"+{settings.SMS_DEFAULT_COUNTRY_CODE}{formatted[1:]}"
    return f"+{formatted}"


def build_messages(
    sms_type: str,
    client_name: str,
    service_name: str,
    appointment_date: str,
    appointment_time: str,
) -> tuple[str, str]:
    """Return (client message, practitioner message) for an SMS type."""
    if sms_type == "reschedule":
        return (
            f"Hi {client_name}! Your appointment for {service_name} has been rescheduled to "
            f"{appointment_date} at {appointment_time}. We look forward to seeing you!",
            f"Appointment rescheduled! {client_name}'s appointment for {service_name} is now on "
            f"{appointment_date} at {appointment_time}.",
        )
    if sms_type == "cancellation":
        return (
            f"Hi {client_name}! Your appointment for {service_name} on {appointment_date} at "
            f"{appointment_time} has been cancelled. Please contact us to reschedule.",
            f"Appointment cancelled! {client_name}'s appointment for {service_name} on "
            f"{appointment_date} at {appointment_time} has been cancelled.",
        )
    if sms_type == "reminder":
        return (
            f"Reminder: Hi {client_name}! You have an appointment for {service_name} on "
            f"{appointment_date} at {appointment_time}. We look forward to seeing you!",
            f"Reminder: You have an appointment with {client_name} for {service_name} on "
            f"{appointment_date} at {appointment_time}.",
        )
    return (
        f"Hi {client_name}! Your appointment for {service_name} has been confirmed for "
        f"{appointment_date} at {appointment_time}. We look forward to seeing you!",
        f"New appointment confirmed! {client_name} has booked {service_name} for "
        f"{appointment_date} at {appointment_time}.",
    )


async def send_appointment_sms(
    sms_type: str,
    client_phone: Optional[str],
    practitioner_phone: Optional[str],
    client_name: str,
    service_name: str,
    appointment_date: str,
    appointment_time: str,
    send_client_sms: bool = True,
) -> AppointmentSmsResult:
    """Send the client and practitioner messages for one appointment event."""
    if sms_type not in SMS_TYPES:
        raise ValueError(f"Invalid SMS type: {sms_type}")

    client_body, practitioner_body = build_messages(
        sms_type, client_name, service_name, appointment_date, appointment_time
    )
    result = AppointmentSmsResult()

    if client_phone and send_client_sms:
        result.recipients += 1
        outcome = await _send_sms(client_phone, client_body)
        result.client_sent = outcome.sent
        _collect(result, outcome, "client")

    if practitioner_phone:
        result.recipients += 1
        outcome = await _send_sms(practitioner_phone, practitioner_body)
        result.practitioner_sent = outcome.sent
        _collect(result, outcome, "practitioner")

    return result


def _collect(result: AppointmentSmsResult, outcome: SmsResult, who: str) -> None:
    if outcome.sid:
        result.sids.append(outcome.sid)
    if outcome.error:
        result.errors.append(f"{who}: {outcome.error}")


async def _send_sms(to: str, body: str) -> SmsResult:
    """Send an SMS via Twilio. Never raises; failures come back in the result."""
    if not all([settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN, settings.TWILIO_PHONE_NUMBER]):
        logger.warning("Twilio credentials not configured, skipping SMS to %s", to)
        return SmsResult(sent=False, error="Twilio credentials not configured")

    to = format_phone_number(to)
    try:
        client = _get_twilio_client()
        # twilio-python is synchronous; keep it off the event loop
        message = await asyncio.to_thread(
            client.messages.create,
            body=body,
            from_=settings.TWILIO_PHONE_NUMBER,
            to=to,
        )
        logger.info("SMS sent to %s, SID: %s", to, message.sid)
        return SmsResult(sent=True, sid=message.sid)
    except TwilioRestException as e:
        logger.error("Twilio error sending SMS to %s: %s", to, e)
        return SmsResult(sent=False, error=str(e))
    except Exception as e:
        logger.error("Unexpected error sending SMS to %s: %s", to, e)
        return SmsResult(sent=False, error=str(e))
