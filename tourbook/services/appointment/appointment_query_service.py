# ============================================================================
# tourbook/services/appointment/appointment_query_service.py
# Read-only projection of a provider's calendar - no business rules
# ============================================================================
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from tourbook.core.exceptions import FieldIssue, NotFoundError, ValidationError
from tourbook.models.appointment import Appointment, AppointmentStatus
from tourbook.services.directory.directory_service import DirectoryService, IdLike, as_uuid


class AppointmentQueryService:
    """Service layer for appointment reads."""

    @staticmethod
    def list_appointments(
            db: Session,
            provider_id: IdLike,
            start: datetime,
            end: datetime,
            statuses: Optional[Iterable] = None
    ) -> List[Appointment]:
        """Appointments starting in [start, end), ascending by start."""
        issues = []
        for field, value in (("start", start), ("end", end)):
            if value.tzinfo is None:
                issues.append(FieldIssue(field, "must include a timezone"))
        if not issues and end <= start:
            issues.append(FieldIssue("end", "must be after start"))

        status_values = None
        if statuses:
            status_values = []
            for status in statuses:
                try:
                    status_values.append(AppointmentStatus(status).value)
                except ValueError:
                    issues.append(FieldIssue("status", f"unknown status {status!r}"))
        if issues:
            raise ValidationError(issues)

        provider = DirectoryService.get_provider(db, provider_id)
        query = db.query(Appointment).filter(
            Appointment.provider_id == provider.id,
            Appointment.scheduled_start >= start,
            Appointment.scheduled_start < end,
        )
        if status_values:
            query = query.filter(Appointment.status.in_(status_values))

        return query.order_by(Appointment.scheduled_start.asc(), Appointment.created_at.asc()).all()

    @staticmethod
    def get_appointment(db: Session, appointment_id: IdLike) -> Appointment:
        appointment = db.get(Appointment, as_uuid(appointment_id, "appointment"))
        if not appointment:
            raise NotFoundError("appointment", appointment_id)
        return appointment

    @staticmethod
    def summarize(
            provider_id: IdLike,
            appointments: List[Appointment],
            start: datetime,
            end: datetime,
            statuses: Optional[Iterable] = None
    ) -> Dict[str, Any]:
        """Shape a listing the way the calendar endpoint returns it"""
        return {
            "provider_id": str(provider_id),
            "total_appointments": len(appointments),
            "filters": {
                "start": start.isoformat(),
                "end": end.isoformat(),
                "status": [AppointmentStatus(s).value for s in statuses] if statuses else None,
            },
            "appointments": appointments,
        }
