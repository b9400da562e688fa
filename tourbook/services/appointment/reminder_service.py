# ============================================================================
# tourbook/services/appointment/reminder_service.py
# Finds appointments due for a reminder and records that it went out
# ============================================================================
from datetime import datetime, timedelta, timezone
from typing import List, Optional
import logging

from sqlalchemy.orm import Session

from tourbook.core.exceptions import ValidationError
from tourbook.models.appointment import Appointment, AppointmentStatus
from tourbook.services.appointment.appointment_query_service import AppointmentQueryService
from tourbook.services.directory.directory_service import IdLike

logger = logging.getLogger(__name__)

# kind -> (earliest, latest) start offset from now, both inclusive
REMINDER_WINDOWS = {
    "24h": (timedelta(hours=23), timedelta(hours=25)),
    "1h": (timedelta(minutes=50), timedelta(minutes=70)),
}

REMINDER_STATUSES = (AppointmentStatus.CONFIRMED.value, AppointmentStatus.RESCHEDULED.value)


def _check_kind(kind: str):
    if kind not in REMINDER_WINDOWS:
        raise ValidationError.single("kind", f"unknown reminder kind {kind!r}, expected one of {sorted(REMINDER_WINDOWS)}")


class ReminderService:

    @staticmethod
    def find_due(db: Session, kind: str, now: Optional[datetime] = None) -> List[Appointment]:
        """
        Appointments whose start falls in the reminder window for kind.

        Each kind is tracked on its own, so a tour booked an hour ahead still
        gets the 1h reminder.
        """
        _check_kind(kind)
        now = now or datetime.now(timezone.utc)
        earliest, latest = REMINDER_WINDOWS[kind]

        query = db.query(Appointment).filter(
            Appointment.status.in_(REMINDER_STATUSES),
            Appointment.scheduled_start >= now + earliest,
            Appointment.scheduled_start <= now + latest,
        )
        if kind == "24h":
            query = query.filter(Appointment.reminder_24h_sent_at.is_(None))
        else:
            query = query.filter(Appointment.reminder_1h_sent_at.is_(None))
        return query.order_by(Appointment.scheduled_start.asc()).all()

    @staticmethod
    def mark_sent(db: Session, appointment_id: IdLike, kind: str, now: Optional[datetime] = None) -> Appointment:
        _check_kind(kind)
        appointment = AppointmentQueryService.get_appointment(db, appointment_id)
        sent_at = now or datetime.now(timezone.utc)
        if kind == "24h":
            appointment.reminder_24h_sent_at = sent_at
        else:
            appointment.reminder_1h_sent_at = sent_at
        db.commit()
        db.refresh(appointment)

        logger.info(f"Marked {kind} reminder sent for appointment {appointment.id}")
        return appointment
