"""Practitioner working schedule and blocked (day-off) dates."""

from sqlalchemy import Column, String, DateTime, Integer, Date, Time, Boolean, ForeignKey, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
import uuid
from datetime import datetime
from app.core.database import Base


class WorkingSchedule(Base):
    __tablename__ = "working_schedules"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    practitioner_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)  # 0 = Monday ... 6 = Sunday (date.weekday())
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    slot_interval_minutes = Column(Integer, nullable=False, default=30)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class BlockedDate(Base):
    __tablename__ = "blocked_dates"
    __table_args__ = (
        UniqueConstraint("practitioner_id", "blocked_date", name="uq_blocked_dates_practitioner_day"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    practitioner_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    blocked_date = Column(Date, nullable=False)
    reason = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
