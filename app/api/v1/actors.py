from fastapi import Header, HTTPException

from app.domain.entities.actor import SYSTEM_ACTOR


def get_actor_id(x_actor_id: str | None = Header(None)) -> str:
    """Resolve the caller once at the boundary; business logic only sees this opaque id."""
    actor_id = (x_actor_id or "").strip()
    if not actor_id:
        raise HTTPException(status_code=401, detail="X-Actor-Id header is required")
    if actor_id == SYSTEM_ACTOR:
        raise HTTPException(status_code=403, detail="Reserved actor id")
    return actor_id
