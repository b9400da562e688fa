# ============================================================================
# FILE: tourbook/api/dependencies.py
# Request-scoped dependencies shared by the v1 routes
# ============================================================================
from uuid import UUID

from fastapi import Header, HTTPException, status

from tourbook.schemas.appointment import Actor, ActorRole


def get_actor(
        x_actor_id: str = Header(None, description="Id of the acting user, set by the auth gateway"),
        x_actor_role: str = Header(None, description="buyer, provider or admin")
) -> Actor:
    """
    Resolve the acting user from the headers the auth gateway forwards.

    Authentication itself happens upstream; these routes only need to know
    who is acting and in which role.
    """
    if not x_actor_id or not x_actor_role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-Actor-Id and X-Actor-Role headers are required",
        )

    try:
        return Actor(id=UUID(x_actor_id), role=ActorRole(x_actor_role.lower()))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid actor headers",
        ) from None
