"""
FastAPI dependencies for the booking routes.
"""

from typing import Optional

from fastapi import Header, Request

from ..services.booking_service import BookingService


async def get_actor_id(x_user_id: Optional[int] = Header(None, alias="X-User-ID")) -> Optional[int]:
    """
    Acting user as asserted by the upstream auth layer.

    Authentication happens before requests reach this service; a missing
    header means a system or anonymous caller.
    """
    return x_user_id


def get_booking_service(request: Request) -> BookingService:
    """Build a booking service from the resources owned by the application lifespan."""
    state = request.app.state
    return BookingService(
        state.db_manager.session_factory,
        state.settings,
        effects=state.effects,
        cache_invalidator=state.cache_invalidator,
        clock=getattr(state, "clock", None)
    )
