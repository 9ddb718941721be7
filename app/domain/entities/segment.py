from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from app.domain.entities.time_slot import TimeSlot


class SegmentState(str, Enum):
    free = "free"
    held = "held"
    booked = "booked"


@dataclass(frozen=True)
class SegmentRef:
    time_slot_id: str
    segment_index: int

    def __str__(self) -> str:
        return f"{self.time_slot_id}#{self.segment_index}"


@dataclass(frozen=True)
class SegmentWindow:
    """A derived subdivision of a window, before any state is attached."""

    index: int
    start: datetime
    end: datetime


@dataclass(frozen=True)
class Segment:
    time_slot_id: str
    segment_index: int
    start: datetime
    end: datetime
    state: SegmentState = SegmentState.free
    holder_id: str | None = None
    booking_id: str | None = None

    @property
    def ref(self) -> SegmentRef:
        return SegmentRef(self.time_slot_id, self.segment_index)

    @property
    def is_free(self) -> bool:
        return self.state == SegmentState.free


@dataclass(frozen=True)
class SlotAvailability:
    time_slot: TimeSlot
    segment_minutes: int
    segments: list[Segment] = field(default_factory=list)

    @property
    def free_segments(self) -> list[Segment]:
        return [s for s in self.segments if s.is_free]
