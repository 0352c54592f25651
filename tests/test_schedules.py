"""Tests for schedule endpoints and the reminder job endpoint."""

from datetime import timedelta

import pytest

from app.core.config import settings
from tests.helpers import BOOKING_DAY, auth_headers


@pytest.mark.asyncio
async def test_replace_schedule_changes_slots(client, practitioner):
    response = await client.put(
        f"/api/v1/schedules/{practitioner.id}",
        json={"days": [{"day_of_week": 0, "start_time": "09:00", "end_time": "10:00", "slot_interval_minutes": 15}]},
        headers=auth_headers(practitioner),
    )
    assert response.status_code == 200
    assert len(response.json()["days"]) == 1

    slots = await client.get(
        "/api/v1/appointments/available-slots",
        params={"practitioner_id": str(practitioner.id), "date": BOOKING_DAY.isoformat(), "duration_minutes": 30},
        headers=auth_headers(practitioner),
    )
    assert slots.json()["slots"] == ["09:00", "09:15", "09:30"]


@pytest.mark.asyncio
async def test_schedule_validation(client, practitioner):
    response = await client.put(
        f"/api/v1/schedules/{practitioner.id}",
        json={"days": [{"day_of_week": 0, "start_time": "10:00", "end_time": "09:00"}]},
        headers=auth_headers(practitioner),
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_practitioner_cannot_edit_someone_else(client, practitioner, other_practitioner, admin):
    body = {"days": []}
    denied = await client.put(
        f"/api/v1/schedules/{other_practitioner.id}", json=body, headers=auth_headers(practitioner)
    )
    assert denied.status_code == 403

    allowed = await client.put(f"/api/v1/schedules/{other_practitioner.id}", json=body, headers=auth_headers(admin))
    assert allowed.status_code == 200


@pytest.mark.asyncio
async def test_blocked_date(client, practitioner):
    url = f"/api/v1/schedules/{practitioner.id}/blocked-dates"
    body = {"blocked_date": BOOKING_DAY.isoformat(), "reason": "Conference"}

    created = await client.post(url, json=body, headers=auth_headers(practitioner))
    assert created.status_code == 201
    duplicate = await client.post(url, json=body, headers=auth_headers(practitioner))
    assert duplicate.status_code == 409

    listed = await client.get(url, headers=auth_headers(practitioner))
    assert [d["reason"] for d in listed.json()] == ["Conference"]

    slots = await client.get(
        "/api/v1/appointments/available-slots",
        params={"practitioner_id": str(practitioner.id), "date": BOOKING_DAY.isoformat(), "duration_minutes": 30},
        headers=auth_headers(practitioner),
    )
    assert slots.json()["slots"] == []


@pytest.mark.asyncio
async def test_reminder_job_requires_cron_secret(client):
    response = await client.post("/api/v1/reminders/process")
    assert response.status_code == 401

    response = await client.post(
        "/api/v1/reminders/process", headers={"Authorization": f"Bearer {settings.CRON_SECRET}"}
    )
    assert response.status_code == 200
    assert response.json() == {"processed": 0, "sent": 0, "failed": 0, "suppressed": 0}


@pytest.mark.asyncio
async def test_saved_week_without_days_offers_nothing(client, practitioner):
    headers = auth_headers(practitioner)
    before = await client.get(f"/api/v1/schedules/{practitioner.id}", headers=headers)
    assert before.json()["uses_default_hours"] is True

    saved = await client.put(f"/api/v1/schedules/{practitioner.id}", json={"days": []}, headers=headers)
    assert saved.status_code == 200
    assert saved.json() == {"practitioner_id": str(practitioner.id), "uses_default_hours": False, "days": []}

    for offset in range(7):
        slots = await client.get(
            "/api/v1/appointments/available-slots",
            params={
                "practitioner_id": str(practitioner.id),
                "date": (BOOKING_DAY + timedelta(days=offset)).isoformat(),
                "duration_minutes": 30,
            },
            headers=headers,
        )
        assert slots.json()["slots"] == []
