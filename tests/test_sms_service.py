"""Tests for the Twilio SMS adapter."""

from unittest.mock import AsyncMock, patch

import pytest
from app.services import sms
from app.services.sms import SmsResult, build_messages, format_phone_number, send_appointment_sms


def test_local_numbers_get_country_code():
    assert format_phone_number("0821234567") == "+27821234567"
    assert format_phone_number("082 123 4567") == "+27821234567"
    assert format_phone_number("+447700900123") == "+447700900123"
    assert format_phone_number("27821234567") == "+27821234567"


def test_messages_name_the_event():
    client_msg, practitioner_msg = build_messages("cancellation", "Jane Doe", "Facial", "2030-06-03", "09:00")
    assert "cancelled" in client_msg
    assert "Jane Doe" in practitioner_msg
    assert "09:00" in client_msg


@pytest.mark.asyncio
async def test_sms_skipped_when_no_credentials():
    """SMS should gracefully report failure when Twilio creds are empty."""
    result = await sms._send_sms("+15551234567", "hello")
    assert result.sent is False
    assert result.error == "Twilio credentials not configured"


@pytest.mark.asyncio
async def test_unknown_sms_type_rejected():
    with pytest.raises(ValueError):
        await send_appointment_sms("birthday", "0821234567", None, "Jane", "Facial", "2030-06-03", "09:00")


@pytest.mark.asyncio
async def test_client_message_can_be_suppressed():
    fake = AsyncMock(return_value=SmsResult(sent=True, sid="SM1"))
    with patch.object(sms, "_send_sms", fake):
        result = await send_appointment_sms(
            "confirmation", "0821234567", "0829990000", "Jane", "Facial", "2030-06-03", "09:00",
            send_client_sms=False,
        )

    fake.assert_awaited_once()
    assert fake.await_args.args[0] == "0829990000"
    assert result.recipients == 1
    assert result.practitioner_sent is True
    assert result.client_sent is False
    assert result.sids == ["SM1"]


@pytest.mark.asyncio
async def test_errors_are_collected_per_recipient():
    outcomes = [SmsResult(sent=True, sid="SM1"), SmsResult(sent=False, error="invalid number")]
    with patch.object(sms, "_send_sms", AsyncMock(side_effect=outcomes)):
        result = await send_appointment_sms(
            "reminder", "0821234567", "0829990000", "Jane", "Facial", "2030-06-03", "09:00",
        )

    assert result.recipients == 2
    assert result.client_sent is True
    assert result.errors == ["practitioner: invalid number"]
