"""Pydantic schemas for star availability."""

from datetime import datetime
from uuid import UUID
from pydantic import BaseModel, Field
from typing import Optional, Union
from baroni.models.availability import SlotStatus


class TimeSlotIn(BaseModel):
    slot: str  # "09:00 - 09:20" or "9:00 AM - 9:20 AM"
    status: Optional[SlotStatus] = None


class AvailabilityUpsert(BaseModel):
    """Schema for creating or merging availability for a date."""
    date: str  # YYYY-MM-DD, star-local
    time_slots: list[Union[str, TimeSlotIn]] = Field(..., min_length=1)
    is_weekly: Optional[bool] = None
    is_daily: Optional[bool] = None

    def slot_inputs(self) -> list:
        return [s if isinstance(s, str) else s.model_dump() for s in self.time_slots]


class SlotDeleteByDate(BaseModel):
    date: str
    slot: str


class TimeSlotOut(BaseModel):
    id: UUID
    slot: str
    status: SlotStatus
    locked_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AvailabilityOut(BaseModel):
    id: UUID
    user_id: UUID
    date: str
    is_weekly: bool
    is_daily: bool
    time_slots: list[TimeSlotOut]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SlotDeleteResult(BaseModel):
    processed: int
    removed: int
    deleted_availabilities: int
    skipped: int
