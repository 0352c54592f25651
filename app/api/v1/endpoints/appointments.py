"""Appointment booking, availability and lifecycle endpoints."""

from datetime import date
from typing import Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.database import get_db
from app.core.deps import get_current_caller
from app.models.appointment import AppointmentStatus
from app.models.notification import NotificationChannel
from app.models.user import Caller
from app.schemas.appointment import (
    AppointmentCreate,
    AppointmentOut,
    AppointmentReschedule,
    AppointmentStatusUpdate,
    AvailableSlotsResponse,
    BookingResponse,
    LowStockAlertOut,
    TransitionResponse,
)
from app.schemas.notification import ChannelStatus, NotificationAttemptOut, NotificationLog
from app.services import booking
from app.services.availability import get_available_slots
from app.services.notification_orchestrator import get_notification_attempts, has_been_notified
from app.services.time_grid import format_hhmm
import logging

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/available-slots", response_model=AvailableSlotsResponse)
async def available_slots(
    practitioner_id: UUID,
    date: date,
    duration_minutes: int = Query(..., description="Total length of the requested services"),
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    """Start times still open for a practitioner on a day. Advisory only."""
    slots = await get_available_slots(db, practitioner_id, date, duration_minutes)
    return AvailableSlotsResponse(
        practitioner_id=practitioner_id,
        date=date,
        duration_minutes=duration_minutes,
        slots=[format_hhmm(s) for s in slots],
    )


@router.post("/", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_appointment(
    payload: AppointmentCreate,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    """Book an appointment. Notification problems come back as warnings."""
    result = await booking.create_booking(db, payload, caller)
    return BookingResponse(appointment_id=result.appointment_id, warnings=result.warnings)


@router.get("/", response_model=list[AppointmentOut])
async def list_appointments(
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    practitioner_id: Optional[UUID] = None,
    status: Optional[AppointmentStatus] = None,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    return await booking.list_appointments(
        db, caller, date_from=date_from, date_to=date_to, practitioner_id=practitioner_id, status=status
    )


@router.get("/needing-completion", response_model=list[AppointmentOut])
async def appointments_needing_completion(
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    """Appointments that have ended but are still scheduled, oldest first."""
    return await booking.list_appointments_needing_completion(db, caller)


@router.get("/{appointment_id}", response_model=AppointmentOut)
async def get_appointment(
    appointment_id: UUID,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    return await booking.get_appointment(db, appointment_id, caller)


@router.post("/{appointment_id}/status", response_model=TransitionResponse)
async def update_appointment_status(
    appointment_id: UUID,
    payload: AppointmentStatusUpdate,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    """Complete or cancel an appointment."""
    result = await booking.transition_status(db, appointment_id, payload.status, caller)
    return TransitionResponse(
        appointment=AppointmentOut.model_validate(result.appointment),
        warnings=result.warnings,
        low_stock_alerts=[LowStockAlertOut.model_validate(a) for a in result.low_stock_alerts],
    )


@router.post("/{appointment_id}/reschedule", response_model=BookingResponse)
async def reschedule_appointment(
    appointment_id: UUID,
    payload: AppointmentReschedule,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    result = await booking.reschedule_booking(
        db, appointment_id, payload.appointment_date, payload.start_time, caller
    )
    return BookingResponse(appointment_id=result.appointment_id, warnings=result.warnings)


@router.get("/{appointment_id}/notifications", response_model=NotificationLog)
async def appointment_notifications(
    appointment_id: UUID,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    """Every recorded attempt plus whether each channel currently counts as notified."""
    await booking.get_appointment(db, appointment_id, caller)
    attempts = await get_notification_attempts(db, appointment_id)
    channels = [
        ChannelStatus(channel=channel, notified=await has_been_notified(db, appointment_id, channel))
        for channel in NotificationChannel
    ]
    return NotificationLog(
        attempts=[NotificationAttemptOut.model_validate(a) for a in attempts],
        channels=channels,
    )


@router.delete("/{appointment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_appointment(
    appointment_id: UUID,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    await booking.soft_delete_appointment(db, appointment_id, caller)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
