# tourbook/models/__init__.py
from .base import Base
from .directory import Profile, Property
from .provider import Provider
from .availability import AvailabilityRule
from .appointment import (
    Appointment,
    AppointmentStatus,
    AppointmentType,
    ALLOWED_TRANSITIONS,
    BLOCKING_STATUSES,
    TERMINAL_STATUSES,
)

__all__ = [
    "Base",
    "Profile",
    "Property",
    "Provider",
    "AvailabilityRule",
    "Appointment",
    "AppointmentStatus",
    "AppointmentType",
    "ALLOWED_TRANSITIONS",
    "BLOCKING_STATUSES",
    "TERMINAL_STATUSES",
]
