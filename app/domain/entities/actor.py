from __future__ import annotations

from enum import Enum

from app.domain.entities.booking import Booking

SYSTEM_ACTOR = "system"


class ActorRole(str, Enum):
    client = "client"
    provider = "provider"
    system = "system"


def resolve_role(booking: Booking, actor_id: str) -> ActorRole | None:
    """Map an opaque actor id onto its role for this booking, or None for outsiders."""
    if actor_id == SYSTEM_ACTOR:
        return ActorRole.system
    if actor_id == booking.provider_id:
        return ActorRole.provider
    if actor_id == booking.user_id:
        return ActorRole.client
    return None
