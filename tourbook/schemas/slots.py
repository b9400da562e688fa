# tourbook/schemas/slots.py
from __future__ import annotations
from datetime import date, datetime
from typing import List

from pydantic import BaseModel, Field, field_validator


class TimeSlot(BaseModel):
    """Offerable time slot"""
    start: datetime = Field(..., description="Slot start time")
    end: datetime = Field(..., description="Slot end time")
    available: bool = Field(True, description="Whether slot is available")

    @field_validator("end")
    @classmethod
    def end_after_start(cls, v: datetime, info) -> datetime:
        start = info.data.get("start")
        if start and v <= start:
            raise ValueError("End time must be after start time")
        return v


class DaySlots(BaseModel):
    date: date
    slots: List[TimeSlot] = Field(default_factory=list)


class SlotsResponse(BaseModel):
    """Provider availability for one date"""
    provider_id: str
    date: date
    timezone: str
    duration_minutes: int
    interval_minutes: int
    slots: List[TimeSlot] = Field(default_factory=list)


class SlotRangeResponse(BaseModel):
    provider_id: str
    timezone: str
    duration_minutes: int
    interval_minutes: int
    days: List[DaySlots] = Field(default_factory=list)
