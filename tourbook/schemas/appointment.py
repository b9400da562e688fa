# tourbook/schemas/appointment.py
from __future__ import annotations
from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from tourbook.models.appointment import AppointmentStatus, AppointmentType


class ActorRole(str, Enum):
    BUYER = "buyer"
    PROVIDER = "provider"
    ADMIN = "admin"


class Actor(BaseModel):
    """The user performing an operation, as resolved by the auth layer"""
    id: UUID
    role: ActorRole


class BookingRequest(BaseModel):
    """Tour booking request"""
    property_id: UUID = Field(..., description="Property to tour")
    buyer_id: UUID = Field(..., description="Buyer requesting the tour")
    provider_id: UUID = Field(..., description="Agent hosting the tour")
    requested_start: datetime = Field(..., description="Requested start, timezone-aware")
    duration_minutes: int = Field(60, description="Tour length")
    appointment_type: AppointmentType = Field(AppointmentType.IN_PERSON)
    notes: str = Field("", max_length=2000)


class RescheduleRequest(BaseModel):
    new_start: datetime = Field(..., description="New start, timezone-aware")
    reason: Optional[str] = Field(None, max_length=1000)


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class AppointmentOut(BaseModel):
    """Appointment as exposed to the presentation layer"""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    property_id: UUID
    buyer_id: UUID
    provider_id: UUID
    scheduled_start: datetime
    scheduled_end: datetime
    appointment_type: AppointmentType
    status: AppointmentStatus
    notes: Optional[str] = None
    created_at: datetime
    original_start: Optional[datetime] = None
    reschedule_count: int = 0
    reschedule_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None


class AppointmentListResponse(BaseModel):
    provider_id: str
    total_appointments: int
    filters: dict
    appointments: List[AppointmentOut] = Field(default_factory=list)
