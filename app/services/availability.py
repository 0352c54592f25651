"""Slot availability: which start times a practitioner can still offer on a day.

`iter_available_slots` is pure and advisory. The booking coordinator re-checks
against storage before anything is persisted.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Iterable, Iterator, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import InvalidDuration, PractitionerNotFound
from app.models.appointment import Appointment, AppointmentStatus
from app.models.schedule import BlockedDate, WorkingSchedule
from app.models.user import Role, User
from app.services.time_grid import Interval, WorkingWindow, candidate_starts, parse_hhmm

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60


def default_working_window() -> WorkingWindow:
    return WorkingWindow(
        start=parse_hhmm(settings.WORKING_HOURS_START),
        end=parse_hhmm(settings.WORKING_HOURS_END),
        granularity_minutes=settings.SLOT_GRANULARITY_MINUTES,
    )


def iter_available_slots(
    target_date: date,
    duration_minutes: int,
    busy_intervals: Iterable[Interval],
    window: WorkingWindow,
    granularity_minutes: Optional[int] = None,
) -> Iterator[datetime]:
    """Yield bookable start times in chronological order.

    A candidate is yielded when ``[start, start + duration)`` ends no later than
    the window end and overlaps none of `busy_intervals`.
    """
    if duration_minutes <= 0:
        raise InvalidDuration(duration_minutes)
    # Nothing longer than a day fits in a day's window
    if duration_minutes > MINUTES_PER_DAY:
        return

    day_window = window.on(target_date)
    if day_window is None:
        return

    busy = sorted(busy_intervals)
    length = timedelta(minutes=duration_minutes)
    step = granularity_minutes or window.granularity_minutes

    for start in candidate_starts(day_window, step):
        end = start + length
        if end > day_window.end:
            break
        candidate = Interval(start, end)
        if any(candidate.overlaps(b) for b in busy):
            continue
        yield start


async def load_practitioner(db: AsyncSession, practitioner_id: UUID) -> User:
    """Fetch an active user who can be booked, or raise PractitionerNotFound."""
    result = await db.execute(
        select(User).where(
            User.id == practitioner_id,
            User.role.in_([Role.PRACTITIONER.value, Role.SUPER_ADMIN.value]),
            User.is_active == True,  # noqa: E712
            User.is_deleted == False,  # noqa: E712
        )
    )
    practitioner = result.scalar_one_or_none()
    if not practitioner:
        raise PractitionerNotFound(practitioner_id)
    return practitioner


async def resolve_working_window(
    db: AsyncSession, practitioner_id: UUID, target_date: date
) -> Optional[WorkingWindow]:
    """The practitioner's window for `target_date`, or None if they are off that day.

    A practitioner who never saved a weekly schedule works the configured default hours.
    """
    blocked = await db.execute(
        select(BlockedDate.id).where(
            BlockedDate.practitioner_id == practitioner_id,
            BlockedDate.blocked_date == target_date,
        )
    )
    if blocked.first() is not None:
        return None

    result = await db.execute(
        select(WorkingSchedule).where(WorkingSchedule.practitioner_id == practitioner_id)
    )
    schedules = result.scalars().all()
    if not schedules:
        return default_working_window()

    # Inactive rows mark days off in a saved week
    for schedule in schedules:
        if schedule.is_active and schedule.day_of_week == target_date.weekday():
            return WorkingWindow(
                start=schedule.start_time,
                end=schedule.end_time,
                granularity_minutes=schedule.slot_interval_minutes,
            )
    return None


async def load_busy_intervals(
    db: AsyncSession,
    practitioner_id: UUID,
    target_date: date,
    exclude_appointment_id: Optional[UUID] = None,
) -> list[Interval]:
    """Intervals held by the practitioner's live (non-cancelled, non-deleted) appointments."""
    query = select(Appointment.start_time, Appointment.end_time).where(
        Appointment.practitioner_id == practitioner_id,
        Appointment.appointment_date == target_date,
        Appointment.status != AppointmentStatus.CANCELLED,
        Appointment.is_deleted == False,  # noqa: E712
    )
    if exclude_appointment_id is not None:
        query = query.where(Appointment.id != exclude_appointment_id)

    result = await db.execute(query)
    return [Interval(start, end) for start, end in result.all()]


async def get_available_slots(
    db: AsyncSession,
    practitioner_id: UUID,
    target_date: date,
    duration_minutes: int,
) -> list[datetime]:
    """Bookable start times for a practitioner on a day."""
    if duration_minutes <= 0:
        raise InvalidDuration(duration_minutes)

    await load_practitioner(db, practitioner_id)

    window = await resolve_working_window(db, practitioner_id, target_date)
    if window is None:
        logger.info("Practitioner %s is not working on %s", practitioner_id, target_date)
        return []

    busy = await load_busy_intervals(db, practitioner_id, target_date)
    return list(iter_available_slots(target_date, duration_minutes, busy, window))
