"""Pydantic schemas for Appointments."""

from datetime import datetime, date, time
from decimal import Decimal
from uuid import UUID
from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional
from app.models.appointment import AppointmentStatus


class ExternalClientInfo(BaseModel):
    """Walk-in / unregistered client captured on the appointment itself.

    Fields are optional here so that missing ones are reported together as one
    IncompleteExternalClient error instead of a generic 422.
    """
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[EmailStr] = None

    @field_validator("email", mode="before")
    @classmethod
    def blank_email_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


def _reject_utc_offset(v: time) -> time:
    # Appointment times are practice-local wall-clock times
    if v.tzinfo is not None:
        raise ValueError("start_time must be a local time without a UTC offset")
    return v


class AppointmentCreate(BaseModel):
    """Schema for creating an appointment."""
    practitioner_id: Optional[UUID] = None
    service_ids: list[UUID] = Field(default_factory=list)  # ordered; repeat an id to book it twice
    client_id: Optional[UUID] = None
    is_external_client: bool = False
    external_client: Optional[ExternalClientInfo] = None
    appointment_date: date
    start_time: time
    notes: Optional[str] = None
    send_client_sms: bool = True

    @field_validator("start_time")
    @classmethod
    def start_time_is_local(cls, v):
        return _reject_utc_offset(v)


class AppointmentStatusUpdate(BaseModel):
    status: AppointmentStatus


class AppointmentReschedule(BaseModel):
    appointment_date: date
    start_time: time

    @field_validator("start_time")
    @classmethod
    def start_time_is_local(cls, v):
        return _reject_utc_offset(v)


class AppointmentOut(BaseModel):
    """Schema for returning appointment details."""
    id: UUID
    practitioner_id: UUID
    client_id: Optional[UUID] = None
    is_external_client: bool
    client_first_name: Optional[str] = None
    client_last_name: Optional[str] = None
    client_phone: Optional[str] = None
    client_email: Optional[str] = None
    service_ids: list[UUID]
    total_duration_minutes: int
    total_price: Decimal
    appointment_date: date
    start_time: datetime
    end_time: datetime
    status: AppointmentStatus
    notes: Optional[str] = None
    invoice_eligible: bool
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BookingResponse(BaseModel):
    """Booking succeeded; `warnings` lists side effects that did not."""
    appointment_id: UUID
    warnings: list[str] = []


class LowStockAlertOut(BaseModel):
    item_id: UUID
    item_name: str
    current_stock: int
    minimum_stock: int

    class Config:
        from_attributes = True


class TransitionResponse(BaseModel):
    appointment: AppointmentOut
    warnings: list[str] = []
    low_stock_alerts: list[LowStockAlertOut] = []


class AvailableSlotsResponse(BaseModel):
    """Schema for available slots response."""
    practitioner_id: UUID
    date: date
    duration_minutes: int
    slots: list[str]  # ["08:00", "08:30", "09:00"]
