"""
Google Calendar sync for appointments.
Creates, moves and removes the practice calendar event behind each booking.
"""
import logging
import httpx
from datetime import datetime
from typing import Optional

from app.core.config import settings

logger = logging.getLogger(__name__)

GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"


class CalendarSyncError(Exception):
    """Calendar API refused or could not be reached."""


def build_event(
    summary: str,
    start: datetime,
    end: datetime,
    description: Optional[str] = None,
) -> dict:
    return {
        "summary": summary,
        "description": description or "",
        "start": {"dateTime": start.isoformat(), "timeZone": settings.TIMEZONE},
        "end": {"dateTime": end.isoformat(), "timeZone": settings.TIMEZONE},
    }


def _events_url(event_id: Optional[str] = None) -> str:
    url = f"{GOOGLE_CALENDAR_API}/calendars/{settings.GOOGLE_CALENDAR_ID}/events"
    return f"{url}/{event_id}" if event_id else url


def _headers() -> dict:
    if not settings.GOOGLE_CALENDAR_ACCESS_TOKEN:
        raise CalendarSyncError("Google Calendar access token not configured")
    return {"Authorization": f"Bearer {settings.GOOGLE_CALENDAR_ACCESS_TOKEN}"}


async def create_event(event_data: dict) -> str:
    """Create a calendar event and return its Google id."""
    headers = _headers()
    async with httpx.AsyncClient() as client:
        response = await client.post(_events_url(), headers=headers, json=event_data)

    if response.status_code not in (200, 201):
        logger.error("Failed to create calendar event: %s", response.text)
        raise CalendarSyncError(f"create failed with {response.status_code}")

    event_id = response.json().get("id")
    logger.info("Google Calendar event created: %s", event_id)
    return event_id


async def update_event(event_id: str, event_data: dict) -> str:
    headers = _headers()
    async with httpx.AsyncClient() as client:
        response = await client.patch(_events_url(event_id), headers=headers, json=event_data)

    if response.status_code != 200:
        logger.error("Failed to update calendar event %s: %s", event_id, response.text)
        raise CalendarSyncError(f"update failed with {response.status_code}")

    logger.info("Google Calendar event updated: %s", event_id)
    return event_id


async def delete_event(event_id: str) -> None:
    headers = _headers()
    async with httpx.AsyncClient() as client:
        response = await client.delete(_events_url(event_id), headers=headers)

    # 410 Gone: already deleted on the calendar side
    if response.status_code not in (200, 204, 410):
        logger.error("Failed to delete calendar event %s: %s", event_id, response.text)
        raise CalendarSyncError(f"delete failed with {response.status_code}")

    logger.info("Google Calendar event deleted: %s", event_id)
