from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

from app.domain.entities.booking import BookingStatus


@dataclass(frozen=True)
class BookingEvent:
    name: str  # "booking.created", "booking.confirmed", "booking.started", "booking.completed", "booking.cancelled"
    booking_id: str
    status: BookingStatus
    actor_id: str | None = None
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
