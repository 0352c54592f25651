from sqlalchemy import Column, Text, DateTime, ForeignKey, Enum, String
from sqlalchemy.dialects.postgresql import UUID
import uuid
import enum
from datetime import datetime

from app.core.database import Base


class NotificationChannel(str, enum.Enum):
    SMS_CONFIRMATION = "sms_confirmation"
    SMS_RESCHEDULE = "sms_reschedule"
    SMS_CANCELLATION = "sms_cancellation"
    SMS_REMINDER = "sms_reminder"
    CALENDAR_SYNC = "calendar_sync"
    INVOICE_EMAIL = "invoice_email"


class NotificationEvent(str, enum.Enum):
    CONFIRMATION = "confirmation"
    RESCHEDULE = "reschedule"
    CANCELLATION = "cancellation"
    COMPLETION = "completion"
    REMINDER = "reminder"


class AttemptStatus(str, enum.Enum):
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"
    PENDING = "pending"        # reminder waiting for its send time
    SUPPRESSED = "suppressed"  # pending reminder cancelled before it went out
    DISPATCHED = "dispatched"  # pending reminder handed to the channel


def _values(enum_cls):
    return [m.value for m in enum_cls]


class NotificationAttempt(Base):
    __tablename__ = "notification_attempts"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    appointment_id = Column(
        UUID(as_uuid=True), ForeignKey("appointments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    channel = Column(Enum(NotificationChannel, name="notification_channel", values_callable=_values), nullable=False)
    event = Column(Enum(NotificationEvent, name="notification_event", values_callable=_values), nullable=False)
    status = Column(Enum(AttemptStatus, name="attempt_status", values_callable=_values), nullable=False, index=True)
    error_detail = Column(Text, nullable=True)
    external_ref = Column(String, nullable=True)  # Twilio SID / calendar event id
    scheduled_for = Column(DateTime, nullable=True, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
