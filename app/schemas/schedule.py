"""Pydantic schemas for practitioner working schedules."""

from datetime import date, time
from typing import Optional
from uuid import UUID
from pydantic import BaseModel, Field, model_validator


class WorkingDay(BaseModel):
    day_of_week: int = Field(..., ge=0, le=6)  # 0 = Monday
    start_time: time  # "08:00"
    end_time: time  # "17:00"
    slot_interval_minutes: int = Field(30, gt=0, le=240)

    @model_validator(mode="after")
    def start_before_end(self):
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        return self


class WorkingScheduleUpdate(BaseModel):
    """Replaces the practitioner's whole week; days not listed are days off."""
    days: list[WorkingDay]

    @model_validator(mode="after")
    def one_entry_per_day(self):
        weekdays = [d.day_of_week for d in self.days]
        if len(weekdays) != len(set(weekdays)):
            raise ValueError("Each day_of_week may appear only once")
        return self


class WorkingScheduleOut(BaseModel):
    practitioner_id: UUID
    uses_default_hours: bool = False
    days: list[WorkingDay]


class BlockedDateCreate(BaseModel):
    blocked_date: date
    reason: Optional[str] = None


class BlockedDateOut(BaseModel):
    id: UUID
    practitioner_id: UUID
    blocked_date: date
    reason: Optional[str] = None

    class Config:
        from_attributes = True
