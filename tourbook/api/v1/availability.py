# ============================================================================
# FILE: tourbook/api/v1/availability.py
# Provider availability: slots and rules - thin HTTP layer
# IMPORTANT: Specific routes MUST come before parameterized routes
# ============================================================================
from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.orm import Session

from tourbook.api.dependencies import get_actor
from tourbook.config.database import get_db
from tourbook.config.settings import get_settings
from tourbook.core.exceptions import PermissionDeniedError
from tourbook.schemas.appointment import Actor, ActorRole
from tourbook.schemas.availability import ReplaceRulesRequest, RulesResponse
from tourbook.schemas.slots import SlotRangeResponse, SlotsResponse
from tourbook.services.availability.rule_store import RuleStore
from tourbook.services.availability.slot_generator import SlotGenerator
from tourbook.services.directory.directory_service import DirectoryService
from tourbook.services.retry import run_with_retry

router = APIRouter(prefix="/providers", tags=["availability"])

settings = get_settings()


def _or_default(value: Optional[int], default: int) -> int:
    return default if value is None else value


@router.get("/{provider_id}/slots/range", response_model=SlotRangeResponse)
def list_slot_range(
        provider_id: UUID = Path(..., description="The provider ID"),
        start_date: date = Query(..., description="First date, in the provider's timezone"),
        end_date: date = Query(..., description="Last date (inclusive)"),
        duration: Optional[int] = Query(None, description="Slot length in minutes"),
        interval: Optional[int] = Query(None, description="Minutes between slot starts"),
        db: Session = Depends(get_db)
):
    """Bookable slots for every date in a range."""
    provider = DirectoryService.get_provider(db, provider_id)
    days = SlotGenerator.list_slots_range(
        db, provider.id, start_date, end_date,
        duration_minutes=duration,
        interval_minutes=interval,
    )
    return SlotRangeResponse(
        provider_id=str(provider.id),
        timezone=provider.timezone,
        duration_minutes=_or_default(duration, settings.DEFAULT_SLOT_DURATION_MINUTES),
        interval_minutes=_or_default(interval, settings.DEFAULT_SLOT_INTERVAL_MINUTES),
        days=days,
    )


@router.get("/{provider_id}/slots", response_model=SlotsResponse)
def list_slots(
        provider_id: UUID = Path(..., description="The provider ID"),
        day: date = Query(..., alias="date", description="Date in the provider's timezone"),
        duration: Optional[int] = Query(None, description="Slot length in minutes"),
        interval: Optional[int] = Query(None, description="Minutes between slot starts"),
        db: Session = Depends(get_db)
):
    """
    Bookable slots for one date.
    Slots already taken (or inside another tour's buffer) come back with available=false.
    """
    provider = DirectoryService.get_provider(db, provider_id)
    slots = SlotGenerator.list_slots(
        db, provider.id, day,
        duration_minutes=duration,
        interval_minutes=interval,
    )
    return SlotsResponse(
        provider_id=str(provider.id),
        date=day,
        timezone=provider.timezone,
        duration_minutes=_or_default(duration, settings.DEFAULT_SLOT_DURATION_MINUTES),
        interval_minutes=_or_default(interval, settings.DEFAULT_SLOT_INTERVAL_MINUTES),
        slots=slots,
    )


@router.get("/{provider_id}/rules", response_model=RulesResponse)
def get_rules(
        provider_id: UUID = Path(..., description="The provider ID"),
        include_inactive: bool = Query(False, description="Also return rules switched off by the provider"),
        db: Session = Depends(get_db)
):
    """The provider's ruleset and buffers."""
    provider = DirectoryService.get_provider(db, provider_id)
    return RulesResponse(
        provider_id=str(provider.id),
        timezone=provider.timezone,
        buffers=RuleStore.get_buffer_policy(provider),
        rules=RuleStore.load_rules(db, provider.id, include_inactive=include_inactive),
    )


@router.put("/{provider_id}/rules", response_model=RulesResponse)
def replace_rules(
        payload: ReplaceRulesRequest,
        provider_id: UUID = Path(..., description="The provider ID"),
        actor: Actor = Depends(get_actor),
        db: Session = Depends(get_db)
):
    """
    Replace the provider's whole ruleset and buffer configuration.
    Every invalid rule is reported at once; on any error the old rules stay.
    """
    if actor.role != ActorRole.ADMIN and not (actor.role == ActorRole.PROVIDER and actor.id == provider_id):
        raise PermissionDeniedError("Only the provider or an admin may change these rules")

    ruleset = run_with_retry(
        RuleStore.replace_rules,
        db, provider_id, payload.rules,
        payload.buffer_before_minutes, payload.buffer_after_minutes,
    )
    provider = DirectoryService.get_provider(db, provider_id)
    return RulesResponse(
        provider_id=str(provider.id),
        timezone=provider.timezone,
        buffers=RuleStore.get_buffer_policy(provider),
        rules=ruleset,
    )
