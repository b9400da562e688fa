"""
API v1 router setup
Organized into: availability (slots and rules), calendar reads, and appointments
"""
from fastapi import APIRouter

from tourbook.api.v1 import appointments, availability

api_v1_router = APIRouter()

# ============================================================================
# AVAILABILITY ROUTES (slots are public, rule changes need an actor)
# ============================================================================
api_v1_router.include_router(availability.router)

# ============================================================================
# CALENDAR + APPOINTMENT ROUTES (actor headers required)
# ============================================================================
api_v1_router.include_router(appointments.calendar_router)
api_v1_router.include_router(appointments.router)


# ============================================================================
# ROOT ENDPOINT - API Info
# ============================================================================
@api_v1_router.get("/", tags=["Info"])
def api_info():
    """API information and the headers the routes expect."""
    return {
        "version": "1.0",
        "actor_headers": {
            "X-Actor-Id": "UUID of the acting user",
            "X-Actor-Role": "buyer, provider or admin",
        },
    }
