# tourbook/core/exceptions.py
"""
Scheduling error taxonomy.

Every error raised by the services derives from SchedulingError so the API
layer can map it to a response in one place. Store failures coming out of
SQLAlchemy are translated by translate_store_error() into ConcurrencyError
(retry the whole operation) or TransientStoreError (retry with backoff).
"""
import logging
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import (
    DBAPIError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)

logger = logging.getLogger(__name__)

# SQLSTATE codes PostgreSQL uses for retryable contention
SERIALIZATION_FAILURE = "40001"
DEADLOCK_DETECTED = "40P01"
LOCK_NOT_AVAILABLE = "55P03"
RETRYABLE_SQLSTATES = {SERIALIZATION_FAILURE, DEADLOCK_DETECTED, LOCK_NOT_AVAILABLE}


class ConflictReason(str, Enum):
    OUTSIDE_WINDOW = "outside_window"
    BLACKOUT = "blackout"
    OVERLAPS_EXISTING_APPOINTMENT = "overlaps_existing_appointment"


CONFLICT_MESSAGES = {
    ConflictReason.OUTSIDE_WINDOW: "The provider is not available at that time. Please choose another time.",
    ConflictReason.BLACKOUT: "That date is blacked out for this provider.",
    ConflictReason.OVERLAPS_EXISTING_APPOINTMENT: "That time was just booked. Please choose another time.",
}


@dataclass(frozen=True)
class FieldIssue:
    """One problem with one field, optionally of one rule in a ruleset"""
    field: str
    message: str
    rule_index: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class SchedulingError(Exception):
    """Base class for all scheduling engine errors"""

    def to_dict(self) -> Dict[str, Any]:
        return {"error": type(self).__name__, "message": str(self)}


class ValidationError(SchedulingError):
    """Malformed rule or booking request. Carries every offending field."""

    def __init__(self, issues: List[FieldIssue]):
        self.issues = list(issues)
        summary = "; ".join(
            f"rule {i.rule_index}: {i.field}: {i.message}" if i.rule_index is not None
            else f"{i.field}: {i.message}"
            for i in self.issues
        )
        super().__init__(summary or "invalid request")

    @classmethod
    def single(cls, field: str, message: str) -> "ValidationError":
        return cls([FieldIssue(field=field, message=message)])

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["issues"] = [issue.to_dict() for issue in self.issues]
        return data


class InvalidTransitionError(ValidationError):
    """Requested appointment status change is not allowed from the current status"""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__([FieldIssue(
            field="status",
            message=f"cannot move appointment from {current} to {target}",
        )])


class ConflictError(SchedulingError):
    """The requested slot is not bookable"""

    def __init__(self, reason: ConflictReason, detail: Optional[str] = None):
        self.reason = reason
        super().__init__(detail or CONFLICT_MESSAGES[reason])

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["reason"] = self.reason.value
        return data


class NotFoundError(SchedulingError):
    """Unknown provider, profile, property or appointment"""

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class PermissionDeniedError(SchedulingError):
    """The acting user may not perform this operation"""


class ConcurrencyError(SchedulingError):
    """The store reported a serialization conflict; retry the whole operation"""


class TransientStoreError(SchedulingError):
    """Network or storage failure; retry with bounded backoff"""


RETRYABLE_ERRORS = (ConcurrencyError, TransientStoreError)


def _sqlstate(exc: DBAPIError) -> Optional[str]:
    orig = getattr(exc, "orig", None)
    # psycopg2 exposes pgcode, psycopg 3 exposes sqlstate
    return getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)


def translate_store_error(exc: SQLAlchemyError) -> Exception:
    """
    Map a SQLAlchemy error onto the scheduling taxonomy.

    Returns the exception to raise; errors that are neither contention nor
    connectivity problems are returned unchanged.
    """
    if isinstance(exc, DBAPIError):
        if _sqlstate(exc) in RETRYABLE_SQLSTATES:
            return ConcurrencyError(f"serialization conflict: {exc.orig}")
        if "database is locked" in str(exc.orig):
            return ConcurrencyError("provider calendar is locked by another writer")
        if exc.connection_invalidated or isinstance(exc, (OperationalError, InterfaceError)):
            return TransientStoreError(f"store unavailable: {exc.orig}")
    return exc
