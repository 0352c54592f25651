"""Practitioner working schedule and blocked-date endpoints."""

from uuid import UUID
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from app.core.database import get_db
from app.core.deps import get_current_caller, require_staff
from app.core.errors import PermissionDenied
from app.models.schedule import BlockedDate, WorkingSchedule
from app.models.user import Caller, Role
from app.schemas.schedule import (
    BlockedDateCreate,
    BlockedDateOut,
    WorkingDay,
    WorkingScheduleOut,
    WorkingScheduleUpdate,
)
from app.services.availability import default_working_window, load_practitioner

router = APIRouter()
logger = logging.getLogger(__name__)


def _ensure_own_or_admin(caller: Caller, practitioner_id: UUID) -> None:
    if caller.role != Role.SUPER_ADMIN and caller.id != practitioner_id:
        raise PermissionDenied("Practitioners can only manage their own schedule")


async def _schedule_out(db: AsyncSession, practitioner_id: UUID) -> WorkingScheduleOut:
    result = await db.execute(
        select(WorkingSchedule)
        .where(WorkingSchedule.practitioner_id == practitioner_id)
        .order_by(WorkingSchedule.day_of_week)
    )
    rows = result.scalars().all()
    return WorkingScheduleOut(
        practitioner_id=practitioner_id,
        uses_default_hours=not rows,
        days=[
            WorkingDay(
                day_of_week=s.day_of_week,
                start_time=s.start_time,
                end_time=s.end_time,
                slot_interval_minutes=s.slot_interval_minutes,
            )
            for s in rows
            if s.is_active
        ],
    )


@router.get("/{practitioner_id}", response_model=WorkingScheduleOut)
async def get_schedule(
    practitioner_id: UUID,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    """Weekly working hours. `uses_default_hours` is set until a week is saved."""
    await load_practitioner(db, practitioner_id)
    return await _schedule_out(db, practitioner_id)


@router.put("/{practitioner_id}", response_model=WorkingScheduleOut)
async def replace_schedule(
    practitioner_id: UUID,
    payload: WorkingScheduleUpdate,
    caller: Caller = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    _ensure_own_or_admin(caller, practitioner_id)
    await load_practitioner(db, practitioner_id)

    working = {day.day_of_week: day for day in payload.days}
    default = default_working_window()

    await db.execute(delete(WorkingSchedule).where(WorkingSchedule.practitioner_id == practitioner_id))
    for weekday in range(7):
        day = working.get(weekday)
        if day is None:
            db.add(WorkingSchedule(
                practitioner_id=practitioner_id,
                day_of_week=weekday,
                start_time=default.start,
                end_time=default.end,
                is_active=False,
            ))
            continue
        db.add(WorkingSchedule(
            practitioner_id=practitioner_id,
            day_of_week=weekday,
            start_time=day.start_time,
            end_time=day.end_time,
            slot_interval_minutes=day.slot_interval_minutes,
        ))
    await db.commit()
    logger.info("Working schedule for %s replaced (%d days)", practitioner_id, len(payload.days))
    return await _schedule_out(db, practitioner_id)


@router.post(
    "/{practitioner_id}/blocked-dates",
    response_model=BlockedDateOut,
    status_code=status.HTTP_201_CREATED,
)
async def add_blocked_date(
    practitioner_id: UUID,
    payload: BlockedDateCreate,
    caller: Caller = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    """Mark a day off; no slots are offered on it."""
    _ensure_own_or_admin(caller, practitioner_id)
    await load_practitioner(db, practitioner_id)

    blocked = BlockedDate(
        practitioner_id=practitioner_id,
        blocked_date=payload.blocked_date,
        reason=payload.reason,
    )
    db.add(blocked)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=409, detail="Date is already blocked")
    await db.refresh(blocked)
    return blocked


@router.get("/{practitioner_id}/blocked-dates", response_model=list[BlockedDateOut])
async def list_blocked_dates(
    practitioner_id: UUID,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(BlockedDate)
        .where(BlockedDate.practitioner_id == practitioner_id)
        .order_by(BlockedDate.blocked_date)
    )
    return result.scalars().all()
