"""Pydantic schemas for notification attempts."""

from pydantic import BaseModel
from uuid import UUID
from datetime import datetime
from app.models.notification import AttemptStatus, NotificationChannel, NotificationEvent


class NotificationAttemptOut(BaseModel):
    """One recorded delivery attempt (or queued reminder) for an appointment."""
    id: UUID
    appointment_id: UUID
    channel: NotificationChannel
    event: NotificationEvent
    status: AttemptStatus
    error_detail: str | None = None
    external_ref: str | None = None
    scheduled_for: datetime | None = None
    created_at: datetime

    class Config:
        from_attributes = True


class ChannelStatus(BaseModel):
    channel: NotificationChannel
    notified: bool


class NotificationLog(BaseModel):
    attempts: list[NotificationAttemptOut]
    channels: list[ChannelStatus]


class ReminderRunResponse(BaseModel):
    processed: int
    sent: int
    failed: int
    suppressed: int
