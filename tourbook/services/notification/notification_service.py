# ============================================================================
# tourbook/services/notification/notification_service.py
# Builds booking notifications and change events, hands them to the worker
# ============================================================================
from datetime import datetime, timezone
from typing import Optional
import logging

from tourbook.models.appointment import Appointment, AppointmentType
from tourbook.models.directory import Profile, Property
from tourbook.schemas.notifications import (
    AppointmentChangeEvent,
    BookingNotification,
    ChangeEventType,
)

logger = logging.getLogger(__name__)


class NotificationService:
    """
    Fire-and-forget dispatch of booking side effects.

    Everything here runs after the calendar write has committed. A broker
    outage or a serialization bug is logged and swallowed: the booking stands.
    """

    @staticmethod
    def build_booking_notification(
            appointment: Appointment,
            provider_profile: Profile,
            buyer: Profile,
            prop: Property
    ) -> BookingNotification:
        return BookingNotification(
            provider_contact=provider_profile.email,
            buyer_name=buyer.full_name,
            property_address=prop.display_address,
            scheduled_start=appointment.scheduled_start,
            scheduled_end=appointment.scheduled_end,
            type=AppointmentType(appointment.appointment_type),
        )

    @staticmethod
    def build_change_event(
            appointment: Appointment,
            event: ChangeEventType,
            detail: Optional[dict] = None,
            occurred_at: Optional[datetime] = None
    ) -> AppointmentChangeEvent:
        return AppointmentChangeEvent(
            event=event,
            appointment_id=appointment.id,
            provider_id=appointment.provider_id,
            buyer_id=appointment.buyer_id,
            scheduled_start=appointment.scheduled_start,
            scheduled_end=appointment.scheduled_end,
            status=appointment.status_enum,
            occurred_at=occurred_at or datetime.now(timezone.utc),
            detail=detail or {},
        )

    @staticmethod
    def notify_booking_created(
            appointment: Appointment,
            provider_profile: Profile,
            buyer: Profile,
            prop: Property
    ) -> bool:
        """Send the provider's booking notification and publish the created event"""
        from tourbook.tasks.notification_tasks import deliver_booking_notification

        try:
            notification = NotificationService.build_booking_notification(
                appointment, provider_profile, buyer, prop
            )
            deliver_booking_notification.delay(notification.model_dump(mode="json"))
            sent = True
        except Exception as e:
            logger.warning(f"Booking notification for appointment {appointment.id} not dispatched: {e}")
            sent = False

        published = NotificationService.publish_change(appointment, ChangeEventType.CREATED)
        return sent and published

    @staticmethod
    def publish_change(
            appointment: Appointment,
            event: ChangeEventType,
            detail: Optional[dict] = None
    ) -> bool:
        """Hand a change event to the relay; False when it could not be queued"""
        from tourbook.tasks.notification_tasks import publish_change_event

        try:
            payload = NotificationService.build_change_event(appointment, event, detail)
            publish_change_event.delay(payload.model_dump(mode="json"))
            return True
        except Exception as e:
            logger.warning(f"Change event {event.value} for appointment {appointment.id} not dispatched: {e}")
            return False
