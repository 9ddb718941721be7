from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date, timedelta

from app.domain.entities.hold import HoldToken
from app.domain.entities.segment import Segment, SegmentRef, SlotAvailability
from app.domain.entities.time_slot import TimeSlot


class AvailabilityStorePort(ABC):
    """
    Owns TimeSlot records and every segment state transition.
    claim_segment, commit_hold, release_hold and release_segment must be
    linearizable per (time_slot_id, segment_index).
    """

    @abstractmethod
    def add_time_slot(self, slot: TimeSlot) -> TimeSlot:
        raise NotImplementedError

    @abstractmethod
    def get_time_slot(self, time_slot_id: str) -> TimeSlot | None:
        raise NotImplementedError

    @abstractmethod
    def update_time_slot(self, slot: TimeSlot) -> TimeSlot:
        """Replace a slot's window. Raises TimeSlotLocked if any segment is held or booked."""
        raise NotImplementedError

    @abstractmethod
    def remove_time_slot(self, time_slot_id: str) -> None:
        """Raises TimeSlotLocked if any segment is held or booked."""
        raise NotImplementedError

    @abstractmethod
    def list_time_slots(
        self,
        provider_or_service_id: str,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[TimeSlot]:
        raise NotImplementedError

    @abstractmethod
    def archive_before(self, cutoff: date) -> int:
        """Drop slots dated before cutoff that have no held segments. Returns count removed."""
        raise NotImplementedError

    @abstractmethod
    def list_availability(
        self,
        provider_or_service_id: str,
        start_date: date,
        end_date: date,
    ) -> dict[date, list[SlotAvailability]]:
        raise NotImplementedError

    @abstractmethod
    def get_segment(self, ref: SegmentRef) -> Segment | None:
        raise NotImplementedError

    @abstractmethod
    def claim_segment(
        self,
        time_slot_id: str,
        segment_index: int,
        holder_id: str,
        hold_duration: timedelta,
    ) -> HoldToken:
        """Atomically move a segment from free to held. Raises SegmentUnavailable."""
        raise NotImplementedError

    @abstractmethod
    def release_hold(self, hold: HoldToken) -> None:
        """Move held back to free. Idempotent; no-op once expired or committed."""
        raise NotImplementedError

    @abstractmethod
    def commit_hold(self, hold: HoldToken, booking_id: str) -> None:
        """Move held to booked. Raises HoldExpired if the token is no longer valid."""
        raise NotImplementedError

    @abstractmethod
    def release_segment(self, ref: SegmentRef, booking_id: str) -> bool:
        """Move booked back to free if booking_id owns it. Returns True if freed."""
        raise NotImplementedError

    @abstractmethod
    def get_hold(self, token: str) -> HoldToken | None:
        raise NotImplementedError

    @abstractmethod
    def sweep_expired_holds(self) -> int:
        raise NotImplementedError

    @abstractmethod
    def booked_segments(self) -> list[Segment]:
        raise NotImplementedError
