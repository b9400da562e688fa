# tourbook/schemas/notifications.py
"""Events the engine hands to external delivery/relay layers"""
from __future__ import annotations
from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field

from tourbook.models.appointment import AppointmentStatus, AppointmentType


class BookingNotification(BaseModel):
    """Sent to the provider when a tour is booked"""
    provider_contact: str
    buyer_name: str
    property_address: str
    scheduled_start: datetime
    scheduled_end: datetime
    type: AppointmentType


class ChangeEventType(str, Enum):
    CREATED = "appointment.created"
    CONFIRMED = "appointment.confirmed"
    RESCHEDULED = "appointment.rescheduled"
    RESCHEDULE_ACCEPTED = "appointment.reschedule_accepted"
    CANCELLED = "appointment.cancelled"
    COMPLETED = "appointment.completed"
    REMINDER_DUE = "appointment.reminder_due"


class AppointmentChangeEvent(BaseModel):
    """Transport-agnostic change notification a pub/sub layer may relay"""
    event: ChangeEventType
    appointment_id: UUID
    provider_id: UUID
    buyer_id: UUID
    scheduled_start: datetime
    scheduled_end: datetime
    status: AppointmentStatus
    occurred_at: datetime
    detail: dict = Field(default_factory=dict)
