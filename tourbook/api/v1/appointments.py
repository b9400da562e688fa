# ============================================================================
# FILE: tourbook/api/v1/appointments.py
# Booking and appointment lifecycle endpoints - thin HTTP layer
# ============================================================================
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Path, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from tourbook.api.dependencies import get_actor
from tourbook.config.database import get_db
from tourbook.core.exceptions import PermissionDeniedError
from tourbook.schemas.appointment import (
    Actor,
    ActorRole,
    AppointmentListResponse,
    AppointmentOut,
    BookingRequest,
    CancelRequest,
    RescheduleRequest,
)
from tourbook.services.appointment.appointment_query_service import AppointmentQueryService
from tourbook.services.appointment.booking_service import BookingService
from tourbook.services.calendar.ics_export import IcsExporter
from tourbook.services.directory.directory_service import DirectoryService
from tourbook.services.retry import run_with_retry

router = APIRouter(prefix="/appointments", tags=["appointments"])

calendar_router = APIRouter(prefix="/providers", tags=["calendar"])


def _ensure_can_view(appointment, actor: Actor):
    if actor.role == ActorRole.ADMIN:
        return
    if actor.id not in (appointment.buyer_id, appointment.provider_id):
        raise PermissionDeniedError(f"You do not have permission to view appointment {appointment.id}")


@calendar_router.get("/{provider_id}/appointments", response_model=AppointmentListResponse)
def list_provider_appointments(
        provider_id: UUID = Path(..., description="The provider ID"),
        start: datetime = Query(..., description="Appointments starting at or after this instant"),
        end: datetime = Query(..., description="Appointments starting before this instant"),
        status: Optional[List[str]] = Query(None, description="Filter by status (repeatable)"),
        actor: Actor = Depends(get_actor),
        db: Session = Depends(get_db)
):
    """The provider's calendar for a time range."""
    if actor.role != ActorRole.ADMIN and actor.id != provider_id:
        raise PermissionDeniedError("You may only view your own calendar")

    appointments = AppointmentQueryService.list_appointments(db, provider_id, start, end, statuses=status)
    return AppointmentQueryService.summarize(provider_id, appointments, start, end, statuses=status)


@router.post("", response_model=AppointmentOut, status_code=201)
def create_appointment(
        payload: BookingRequest,
        actor: Actor = Depends(get_actor),
        db: Session = Depends(get_db)
):
    """
    Book a tour.
    The slot is re-checked at commit time; 409 means someone else got it first.
    """
    if actor.role != ActorRole.ADMIN and actor.id != payload.buyer_id:
        raise PermissionDeniedError("Buyers may only book tours for themselves")

    return run_with_retry(
        BookingService.submit_booking,
        db,
        property_id=payload.property_id,
        buyer_id=payload.buyer_id,
        provider_id=payload.provider_id,
        requested_start=payload.requested_start,
        duration_minutes=payload.duration_minutes,
        appointment_type=payload.appointment_type,
        notes=payload.notes,
    )


@router.get("/{appointment_id}", response_model=AppointmentOut)
def get_appointment(
        appointment_id: UUID = Path(..., description="The appointment ID"),
        actor: Actor = Depends(get_actor),
        db: Session = Depends(get_db)
):
    appointment = AppointmentQueryService.get_appointment(db, appointment_id)
    _ensure_can_view(appointment, actor)
    return appointment


@router.get("/{appointment_id}/invite.ics")
def download_invite(
        appointment_id: UUID = Path(..., description="The appointment ID"),
        actor: Actor = Depends(get_actor),
        db: Session = Depends(get_db)
):
    """Calendar invitation for the tour, as a downloadable .ics file."""
    appointment = AppointmentQueryService.get_appointment(db, appointment_id)
    _ensure_can_view(appointment, actor)

    provider = DirectoryService.get_provider(db, appointment.provider_id)
    buyer = DirectoryService.get_profile(db, appointment.buyer_id)
    prop = DirectoryService.get_property(db, appointment.property_id)

    return Response(
        content=IcsExporter.build_invite(appointment, provider.profile, buyer, prop),
        media_type="text/calendar; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{IcsExporter.filename(appointment)}"'},
    )


@router.post("/{appointment_id}/reschedule", response_model=AppointmentOut)
def reschedule_appointment(
        payload: RescheduleRequest,
        appointment_id: UUID = Path(..., description="The appointment ID"),
        actor: Actor = Depends(get_actor),
        db: Session = Depends(get_db)
):
    return run_with_retry(
        BookingService.reschedule_appointment,
        db, appointment_id, payload.new_start, actor, reason=payload.reason,
    )


@router.post("/{appointment_id}/cancel", response_model=AppointmentOut)
def cancel_appointment(
        payload: Optional[CancelRequest] = Body(None),
        appointment_id: UUID = Path(..., description="The appointment ID"),
        actor: Actor = Depends(get_actor),
        db: Session = Depends(get_db)
):
    reason = payload.reason if payload else None
    return run_with_retry(BookingService.cancel_appointment, db, appointment_id, actor, reason=reason)


@router.post("/{appointment_id}/confirm", response_model=AppointmentOut)
def confirm_appointment(
        appointment_id: UUID = Path(..., description="The appointment ID"),
        actor: Actor = Depends(get_actor),
        db: Session = Depends(get_db)
):
    return run_with_retry(BookingService.confirm_appointment, db, appointment_id, actor)


@router.post("/{appointment_id}/accept-reschedule", response_model=AppointmentOut)
def accept_reschedule(
        appointment_id: UUID = Path(..., description="The appointment ID"),
        actor: Actor = Depends(get_actor),
        db: Session = Depends(get_db)
):
    return run_with_retry(BookingService.accept_reschedule, db, appointment_id, actor)


@router.post("/{appointment_id}/complete", response_model=AppointmentOut)
def complete_appointment(
        appointment_id: UUID = Path(..., description="The appointment ID"),
        actor: Actor = Depends(get_actor),
        db: Session = Depends(get_db)
):
    return run_with_retry(BookingService.complete_appointment, db, appointment_id, actor)
