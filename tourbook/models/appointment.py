# tourbook/models/appointment.py
from enum import Enum

from sqlalchemy import Column, String, Integer, Text, DateTime, ForeignKey, Uuid, Index, CheckConstraint
from sqlalchemy.sql import func
import uuid

from tourbook.models.base import Base
from tourbook.models.types import UTCDateTime


class AppointmentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    RESCHEDULED = "rescheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class AppointmentType(str, Enum):
    IN_PERSON = "in_person"
    VIRTUAL = "virtual"


# Statuses that hold a slot on the provider's calendar
BLOCKING_STATUSES = frozenset({
    AppointmentStatus.PENDING,
    AppointmentStatus.CONFIRMED,
    AppointmentStatus.RESCHEDULED,
})

TERMINAL_STATUSES = frozenset({AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED})

ALLOWED_TRANSITIONS = {
    AppointmentStatus.PENDING: {
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.RESCHEDULED,
        AppointmentStatus.CANCELLED,
    },
    AppointmentStatus.CONFIRMED: {
        AppointmentStatus.COMPLETED,
        AppointmentStatus.RESCHEDULED,
        AppointmentStatus.CANCELLED,
    },
    AppointmentStatus.RESCHEDULED: {
        AppointmentStatus.PENDING,
        AppointmentStatus.CANCELLED,
    },
    AppointmentStatus.COMPLETED: set(),
    AppointmentStatus.CANCELLED: set(),
}


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    # References
    property_id = Column(Uuid, ForeignKey("properties.id"), nullable=False)
    buyer_id = Column(Uuid, ForeignKey("profiles.id"), nullable=False)
    provider_id = Column(Uuid, ForeignKey("providers.id"), nullable=False)

    # Appointment details
    scheduled_start = Column(UTCDateTime, nullable=False)
    scheduled_end = Column(UTCDateTime, nullable=False)
    appointment_type = Column(String(20), nullable=False, default=AppointmentType.IN_PERSON.value)
    notes = Column(Text, nullable=True)

    # Status tracking
    status = Column(String(20), nullable=False, default=AppointmentStatus.PENDING.value)

    # Reschedule history (row is updated in place)
    original_start = Column(UTCDateTime, nullable=True)
    reschedule_count = Column(Integer, nullable=False, default=0)
    reschedule_reason = Column(Text, nullable=True)

    # Reminders
    reminder_24h_sent_at = Column(UTCDateTime, nullable=True)
    reminder_1h_sent_at = Column(UTCDateTime, nullable=True)

    created_at = Column(UTCDateTime, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    cancelled_at = Column(UTCDateTime, nullable=True)
    cancelled_by = Column(Uuid, nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint("scheduled_start < scheduled_end", name="ck_appointment_time_order"),
        Index("idx_appointments_provider_start", "provider_id", "scheduled_start"),
        Index("idx_appointments_provider_status", "provider_id", "status"),
        Index("idx_appointments_reminders", "status", "scheduled_start"),
    )

    @property
    def status_enum(self) -> AppointmentStatus:
        return AppointmentStatus(self.status)

    @property
    def duration_minutes(self) -> int:
        return int((self.scheduled_end - self.scheduled_start).total_seconds() // 60)

    @property
    def is_blocking(self) -> bool:
        return self.status_enum in BLOCKING_STATUSES

    def __repr__(self):
        return f"<Appointment(id={self.id}, status={self.status}, start={self.scheduled_start})>"
