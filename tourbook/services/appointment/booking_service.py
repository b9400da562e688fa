# ============================================================================
# tourbook/services/appointment/booking_service.py
# Commit-time validation and the appointment state machine
# ============================================================================
"""
Every write here follows the same shape:

    validate request  ->  lock provider  ->  re-read and re-check  ->  write  ->  commit
                                                                              ->  notify

The availability check runs after the provider lock is taken, against rules
and appointments read inside the same transaction, so a slot list computed
earlier is never trusted. Notifications go out after commit and can't undo
the write.
"""
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Union
import logging

from sqlalchemy.orm import Session

from tourbook.config.settings import get_settings
from tourbook.core.exceptions import (
    ConflictError,
    FieldIssue,
    InvalidTransitionError,
    PermissionDeniedError,
    ValidationError,
)
from tourbook.models.appointment import (
    ALLOWED_TRANSITIONS,
    Appointment,
    AppointmentStatus,
    AppointmentType,
)
from tourbook.schemas.appointment import Actor, ActorRole
from tourbook.schemas.notifications import ChangeEventType
from tourbook.services.appointment.appointment_query_service import AppointmentQueryService
from tourbook.services.availability.provider_lock import lock_provider, write_transaction
from tourbook.services.availability.slot_generator import SlotGenerator
from tourbook.services.directory.directory_service import DirectoryService, IdLike
from tourbook.services.notification.notification_service import NotificationService

logger = logging.getLogger(__name__)

settings = get_settings()


class BookingService:
    """Creates appointments and moves them through their lifecycle"""

    @staticmethod
    def submit_booking(
            db: Session,
            property_id: IdLike,
            buyer_id: IdLike,
            provider_id: IdLike,
            requested_start: datetime,
            duration_minutes: int = 60,
            appointment_type: Union[AppointmentType, str] = AppointmentType.IN_PERSON,
            notes: str = "",
            now: Optional[datetime] = None
    ) -> Appointment:
        """Book a tour; the new appointment starts out pending"""
        now = now or datetime.now(timezone.utc)

        issues = BookingService._validate_timing(requested_start, duration_minutes, now)
        try:
            appointment_type = AppointmentType(appointment_type)
        except ValueError:
            issues.append(FieldIssue("appointment_type", f"must be one of {[t.value for t in AppointmentType]}"))
        if issues:
            raise ValidationError(issues)

        provider = DirectoryService.get_provider(db, provider_id)
        buyer = DirectoryService.get_profile(db, buyer_id)
        prop = DirectoryService.get_property(db, property_id)
        if buyer.id == provider.id:
            raise ValidationError.single("buyer_id", "a provider cannot book a tour with themselves")
        if prop.listing_agent_id is not None and prop.listing_agent_id == buyer.id:
            raise ValidationError.single("buyer_id", "the listing agent cannot book a tour of their own listing")

        start = requested_start.astimezone(timezone.utc)
        end = start + timedelta(minutes=duration_minutes)

        with write_transaction(db):
            provider = lock_provider(db, provider.id)

            conflict = SlotGenerator.check_interval(db, provider, start, end)
            if conflict is not None:
                logger.info(
                    f"Booking rejected for provider {provider.id} at {start.isoformat()}: {conflict.value}"
                )
                raise ConflictError(conflict)

            appointment = Appointment(
                property_id=prop.id,
                buyer_id=buyer.id,
                provider_id=provider.id,
                scheduled_start=start,
                scheduled_end=end,
                appointment_type=appointment_type.value,
                notes=notes or None,
                status=AppointmentStatus.PENDING.value,
                reschedule_count=0,
                created_at=now,
            )
            db.add(appointment)
            db.flush()
        db.refresh(appointment)

        logger.info(
            f"Booked appointment {appointment.id} for provider {provider.id} "
            f"{start.isoformat()}-{end.isoformat()}"
        )

        NotificationService.notify_booking_created(appointment, provider.profile, buyer, prop)
        return appointment

    @staticmethod
    def reschedule_appointment(
            db: Session,
            appointment_id: IdLike,
            new_start: datetime,
            actor: Actor,
            reason: Optional[str] = None,
            now: Optional[datetime] = None
    ) -> Appointment:
        """
        Move an appointment to a new start, keeping its duration.

        The row is updated in place: the first original start is remembered,
        the reschedule count goes up and sent-reminder markers are cleared.
        The appointment's own current slot doesn't count as a conflict.
        """
        now = now or datetime.now(timezone.utc)
        appointment = AppointmentQueryService.get_appointment(db, appointment_id)
        BookingService._authorize(appointment, actor)

        duration_minutes = appointment.duration_minutes
        issues = BookingService._validate_timing(new_start, duration_minutes, now, field="new_start")
        if issues:
            raise ValidationError(issues)

        with write_transaction(db):
            provider = lock_provider(db, appointment.provider_id)
            appointment = db.get(Appointment, appointment.id, populate_existing=True)
            BookingService._ensure_transition(appointment, AppointmentStatus.RESCHEDULED)

            start = new_start.astimezone(timezone.utc)
            end = start + (appointment.scheduled_end - appointment.scheduled_start)
            conflict = SlotGenerator.check_interval(
                db, provider, start, end, exclude_appointment_id=appointment.id
            )
            if conflict is not None:
                logger.info(f"Reschedule of appointment {appointment.id} rejected: {conflict.value}")
                raise ConflictError(conflict)

            previous_start = appointment.scheduled_start
            if appointment.original_start is None:
                appointment.original_start = previous_start
            appointment.scheduled_start = start
            appointment.scheduled_end = end
            appointment.status = AppointmentStatus.RESCHEDULED.value
            appointment.reschedule_count = (appointment.reschedule_count or 0) + 1
            appointment.reschedule_reason = reason
            appointment.reminder_24h_sent_at = None
            appointment.reminder_1h_sent_at = None
            db.flush()
        db.refresh(appointment)

        logger.info(
            f"Rescheduled appointment {appointment.id} from {previous_start.isoformat()} "
            f"to {start.isoformat()} by {actor.role.value} {actor.id}"
        )
        NotificationService.publish_change(
            appointment,
            ChangeEventType.RESCHEDULED,
            {"previous_start": previous_start.isoformat(), "reason": reason},
        )
        return appointment

    @staticmethod
    def cancel_appointment(
            db: Session,
            appointment_id: IdLike,
            actor: Actor,
            reason: Optional[str] = None,
            now: Optional[datetime] = None
    ) -> Appointment:
        """Cancel immediately; the slot is free for the next availability query"""
        appointment = BookingService._transition(
            db, appointment_id, actor, AppointmentStatus.CANCELLED,
            allowed_roles=None, now=now, reason=reason,
        )
        NotificationService.publish_change(appointment, ChangeEventType.CANCELLED, {"reason": reason})
        return appointment

    @staticmethod
    def confirm_appointment(db: Session, appointment_id: IdLike, actor: Actor) -> Appointment:
        appointment = BookingService._transition(
            db, appointment_id, actor, AppointmentStatus.CONFIRMED,
            allowed_roles={ActorRole.PROVIDER, ActorRole.ADMIN},
        )
        NotificationService.publish_change(appointment, ChangeEventType.CONFIRMED)
        return appointment

    @staticmethod
    def accept_reschedule(db: Session, appointment_id: IdLike, actor: Actor) -> Appointment:
        """A rescheduled appointment goes back to pending, awaiting confirmation"""
        appointment = BookingService._transition(
            db, appointment_id, actor, AppointmentStatus.PENDING,
            allowed_roles=None,
        )
        NotificationService.publish_change(appointment, ChangeEventType.RESCHEDULE_ACCEPTED)
        return appointment

    @staticmethod
    def complete_appointment(db: Session, appointment_id: IdLike, actor: Actor) -> Appointment:
        appointment = BookingService._transition(
            db, appointment_id, actor, AppointmentStatus.COMPLETED,
            allowed_roles={ActorRole.PROVIDER, ActorRole.ADMIN},
        )
        NotificationService.publish_change(appointment, ChangeEventType.COMPLETED)
        return appointment

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_timing(
            start: datetime,
            duration_minutes: int,
            now: datetime,
            field: str = "requested_start"
    ) -> List[FieldIssue]:
        issues = []
        if not isinstance(duration_minutes, int) or not 0 < duration_minutes <= settings.MAX_APPOINTMENT_MINUTES:
            issues.append(FieldIssue(
                "duration_minutes", f"must be between 1 and {settings.MAX_APPOINTMENT_MINUTES} minutes"
            ))
        if start.tzinfo is None:
            issues.append(FieldIssue(field, "must include a timezone offset"))
            return issues

        earliest = now + timedelta(minutes=settings.MIN_BOOKING_LEAD_MINUTES)
        latest = now + timedelta(days=settings.MAX_BOOKING_HORIZON_DAYS)
        if start < earliest:
            issues.append(FieldIssue(field, "must not be in the past or inside the booking lead time"))
        elif start > latest:
            issues.append(FieldIssue(
                field, f"must be within {settings.MAX_BOOKING_HORIZON_DAYS} days from now"
            ))
        return issues

    @staticmethod
    def _authorize(appointment: Appointment, actor: Actor, allowed_roles=None):
        """Admins may act on anything; buyers and providers only on their own appointments"""
        if actor.role == ActorRole.ADMIN:
            return
        if allowed_roles is not None and actor.role not in allowed_roles:
            raise PermissionDeniedError(
                f"{actor.role.value} may not perform this action on appointment {appointment.id}"
            )

        related = {
            ActorRole.BUYER: appointment.buyer_id,
            ActorRole.PROVIDER: appointment.provider_id,
        }
        if related.get(actor.role) != actor.id:
            raise PermissionDeniedError(f"You do not have permission to modify appointment {appointment.id}")

    @staticmethod
    def _ensure_transition(appointment: Appointment, target: AppointmentStatus):
        current = appointment.status_enum
        if target not in ALLOWED_TRANSITIONS[current]:
            raise InvalidTransitionError(current.value, target.value)

    @staticmethod
    def _transition(
            db: Session,
            appointment_id: IdLike,
            actor: Actor,
            target: AppointmentStatus,
            allowed_roles=None,
            now: Optional[datetime] = None,
            reason: Optional[str] = None
    ) -> Appointment:
        """Status-only change, serialized with the provider's other calendar writes"""
        appointment = AppointmentQueryService.get_appointment(db, appointment_id)
        BookingService._authorize(appointment, actor, allowed_roles)

        with write_transaction(db):
            lock_provider(db, appointment.provider_id)
            appointment = db.get(Appointment, appointment.id, populate_existing=True)
            previous = appointment.status
            BookingService._ensure_transition(appointment, target)

            appointment.status = target.value
            if target == AppointmentStatus.CANCELLED:
                appointment.cancelled_at = now or datetime.now(timezone.utc)
                appointment.cancelled_by = actor.id
                appointment.cancellation_reason = reason
            db.flush()
        db.refresh(appointment)

        logger.info(
            f"Appointment {appointment.id} {previous} -> {target.value} by {actor.role.value} {actor.id}"
        )
        return appointment
