from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from app.domain.entities.segment import SegmentRef


class BookingStatus(str, Enum):
    pending = "pending"
    confirmed = "confirmed"
    in_progress = "in-progress"
    completed = "completed"
    cancelled = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (BookingStatus.completed, BookingStatus.cancelled)


@dataclass(frozen=True)
class Address:
    street: str
    city: str
    state: str
    zip_code: str
    country: str = "US"


@dataclass(frozen=True)
class BookingDraft:
    service_id: str
    user_id: str
    duration: int
    address: Address
    special_instructions: str | None = None


@dataclass(frozen=True)
class Booking:
    id: str
    service_id: str
    provider_id: str
    user_id: str
    date_time: datetime
    duration: int
    address: Address
    total_price: float
    segment_ref: SegmentRef
    status: BookingStatus = BookingStatus.pending
    special_instructions: str | None = None
    hold_token: str | None = None
    cancellation_reason: str | None = None
    cancelled_by: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class BookingPage:
    bookings: list[Booking]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        if self.limit <= 0:
            return 0
        return (self.total + self.limit - 1) // self.limit
