# tourbook/schemas/__init__.py
from .availability import (
    RecurringWindow,
    OneTimeWindow,
    Blackout,
    AvailabilityRuleSpec,
    RuleSet,
    BufferPolicy,
    ReplaceRulesRequest,
    RulesResponse,
)

from .slots import (
    TimeSlot,
    DaySlots,
    SlotsResponse,
    SlotRangeResponse,
)

from .appointment import (
    Actor,
    ActorRole,
    BookingRequest,
    RescheduleRequest,
    CancelRequest,
    AppointmentOut,
    AppointmentListResponse,
)

from .notifications import (
    BookingNotification,
    ChangeEventType,
    AppointmentChangeEvent,
)
