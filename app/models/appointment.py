"""Appointment model for booking system."""

from sqlalchemy import (
    Column, String, DateTime, Integer, Date, ForeignKey, Enum as SQLEnum, Text,
    Boolean, Numeric, CheckConstraint, UniqueConstraint, Index,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.types import JSON
import uuid
from datetime import datetime
import enum
from app.core.database import Base


class AppointmentStatus(str, enum.Enum):
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_appointments_start_before_end"),
        Index("ix_appointments_practitioner_day", "practitioner_id", "appointment_date"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    practitioner_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)

    # Subject: a registered client OR an inline external-client snapshot
    client_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True, index=True)
    is_external_client = Column(Boolean, default=False, nullable=False)
    client_first_name = Column(String, nullable=True)
    client_last_name = Column(String, nullable=True)
    client_phone = Column(String, nullable=True)
    client_email = Column(String, nullable=True)

    # Snapshot taken at booking time; later service edits don't touch these
    service_ids = Column(JSON, nullable=False)  # ordered ["<uuid>", ...]
    total_duration_minutes = Column(Integer, nullable=False)
    total_price = Column(Numeric(10, 2), nullable=False)

    appointment_date = Column(Date, nullable=False, index=True)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    status = Column(
        SQLEnum(AppointmentStatus, name="appointment_status", values_callable=lambda e: [m.value for m in e]),
        default=AppointmentStatus.SCHEDULED,
        nullable=False,
        index=True,
    )
    notes = Column(Text, nullable=True)

    invoice_eligible = Column(Boolean, default=False, nullable=False)
    calendar_event_id = Column(String, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    is_deleted = Column(Boolean, default=False, nullable=False)
    deleted_at = Column(DateTime, nullable=True)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class SlotClaim(Base):
    """One row per practitioner-minute held by a live appointment.

    The unique constraint is the storage-level exclusion guarantee: two
    overlapping appointments for one practitioner always try to claim at
    least one common minute, and the second insert fails.
    """
    __tablename__ = "appointment_slot_claims"
    __table_args__ = (
        UniqueConstraint("practitioner_id", "claimed_minute", name="uq_slot_claims_practitioner_minute"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    practitioner_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    claimed_minute = Column(DateTime, nullable=False)
    appointment_id = Column(
        UUID(as_uuid=True), ForeignKey("appointments.id", ondelete="CASCADE"), nullable=False, index=True
    )
