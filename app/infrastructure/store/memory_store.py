from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable, Iterator
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta, timezone, tzinfo

from app.application.exceptions import (
    HoldExpired,
    SegmentUnavailable,
    ServiceNotFound,
    TimeSlotLocked,
    TimeSlotNotFound,
)
from app.application.ports.availability_store import AvailabilityStorePort
from app.application.ports.booking_repository import BookingRepositoryPort
from app.application.ports.service_catalog import ServiceCatalogPort
from app.application.utils.segments import segment_minutes_for, slot_segments
from app.domain.entities.booking import Booking, BookingPage, BookingStatus
from app.domain.entities.hold import HoldToken
from app.domain.entities.segment import (
    Segment,
    SegmentRef,
    SegmentState,
    SegmentWindow,
    SlotAvailability,
)
from app.domain.entities.time_slot import TimeSlot


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _SegmentRecord:
    state: SegmentState
    hold: HoldToken | None = None
    booking_id: str | None = None


class MemoryAvailabilityStore(AvailabilityStorePort):
    """
    In-process store. Only non-free segments are recorded; a missing record
    means free. Each segment has its own lock, so claims on different
    segments never contend.
    """

    def __init__(
        self,
        catalog: ServiceCatalogPort,
        timezone: tzinfo,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._catalog = catalog
        self._timezone = timezone
        self._clock = clock or _utc_now
        self._slots: dict[str, TimeSlot] = {}
        self._segments: dict[SegmentRef, _SegmentRecord] = {}
        self._holds: dict[str, HoldToken] = {}
        self._locks: dict[SegmentRef, threading.Lock] = {}
        self._lock_lock = threading.Lock()  # Lock for managing locks dict
        self._slots_lock = threading.Lock()
        self._logger = logging.getLogger(__name__)

    def _get_lock(self, ref: SegmentRef) -> threading.Lock:
        with self._lock_lock:
            if ref not in self._locks:
                self._locks[ref] = threading.Lock()
            return self._locks[ref]

    def _drop_locks(self, refs: list[SegmentRef]) -> None:
        """Forget the locks of a removed slot. Waiters keep the old lock and re-check the slot under it."""
        with self._lock_lock:
            for ref in refs:
                self._locks.pop(ref, None)

    @contextmanager
    def _locked_slot(self, slot: TimeSlot) -> Iterator[list[SegmentRef]]:
        """Hold every segment lock of a slot, in index order."""
        refs = [SegmentRef(slot.id, w.index) for w in self._windows(slot)]
        with ExitStack() as stack:
            for ref in refs:
                stack.enter_context(self._get_lock(ref))
            yield refs

    def _windows(self, slot: TimeSlot) -> tuple[SegmentWindow, ...]:
        service = self._catalog.get_service(slot.service_id)
        if not service:
            raise ServiceNotFound(f"Unknown service {slot.service_id}")
        return slot_segments(slot, service, self._timezone)

    def _current(self, ref: SegmentRef, now: datetime) -> _SegmentRecord | None:
        """Return the live record for ref, dropping it if its hold expired. Caller holds the lock."""
        record = self._segments.get(ref)
        if record is None:
            return None
        if record.state == SegmentState.held and record.hold and record.hold.is_expired(now):
            del self._segments[ref]
            self._holds.pop(record.hold.token, None)
            self._logger.info("Hold expired", extra={"segment": str(ref), "holder_id": record.hold.holder_id})
            return None
        return record

    def _peek_state(self, ref: SegmentRef, now: datetime) -> _SegmentRecord | None:
        record = self._segments.get(ref)
        if record and record.state == SegmentState.held and record.hold and record.hold.is_expired(now):
            return None
        return record

    def _to_segment(self, slot: TimeSlot, window: SegmentWindow, record: _SegmentRecord | None) -> Segment:
        if record is None:
            return Segment(slot.id, window.index, window.start, window.end)
        return Segment(
            slot.id,
            window.index,
            window.start,
            window.end,
            state=record.state,
            holder_id=record.hold.holder_id if record.hold else None,
            booking_id=record.booking_id,
        )

    # Time slots

    def add_time_slot(self, slot: TimeSlot) -> TimeSlot:
        self._windows(slot)
        with self._slots_lock:
            self._slots[slot.id] = slot
        self._logger.info(
            "Time slot added",
            extra={"time_slot_id": slot.id, "service": slot.service_id, "date": slot.date.isoformat()},
        )
        return slot

    def get_time_slot(self, time_slot_id: str) -> TimeSlot | None:
        return self._slots.get(time_slot_id)

    def update_time_slot(self, slot: TimeSlot) -> TimeSlot:
        with self._slots_lock:
            existing = self._slots.get(slot.id)
            if existing is None:
                raise TimeSlotNotFound(f"Time slot {slot.id} not found")
            self._windows(slot)
            with self._locked_slot(existing) as refs:
                self._ensure_unlocked(existing, refs)
                self._slots[slot.id] = slot
        return slot

    def remove_time_slot(self, time_slot_id: str) -> None:
        with self._slots_lock:
            existing = self._slots.get(time_slot_id)
            if existing is None:
                raise TimeSlotNotFound(f"Time slot {time_slot_id} not found")
            with self._locked_slot(existing) as refs:
                self._ensure_unlocked(existing, refs)
                del self._slots[time_slot_id]
            self._drop_locks(refs)
        self._logger.info("Time slot removed", extra={"time_slot_id": time_slot_id})

    def _ensure_unlocked(self, slot: TimeSlot, refs: list[SegmentRef]) -> None:
        now = self._clock()
        for ref in refs:
            if self._current(ref, now) is not None:
                raise TimeSlotLocked(f"Time slot {slot.id} has held or booked segments")

    def list_time_slots(
        self,
        provider_or_service_id: str,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[TimeSlot]:
        with self._slots_lock:
            slots = list(self._slots.values())
        matched = [
            s
            for s in slots
            if provider_or_service_id in (s.provider_id, s.service_id)
            and (start_date is None or s.date >= start_date)
            and (end_date is None or s.date <= end_date)
        ]
        return sorted(matched, key=lambda s: (s.date, s.start_time))

    def archive_before(self, cutoff: date) -> int:
        removed = 0
        with self._slots_lock:
            stale = [s for s in self._slots.values() if s.date < cutoff]
            now = self._clock()
            for slot in stale:
                with self._locked_slot(slot) as refs:
                    records = [self._current(ref, now) for ref in refs]
                    if any(r is not None and r.state == SegmentState.held for r in records):
                        continue
                    for ref in refs:
                        self._segments.pop(ref, None)
                    del self._slots[slot.id]
                self._drop_locks(refs)
                removed += 1
        if removed:
            self._logger.info("Archived past time slots", extra={"count": removed, "cutoff": cutoff.isoformat()})
        return removed

    # Segments

    def list_availability(
        self,
        provider_or_service_id: str,
        start_date: date,
        end_date: date,
    ) -> dict[date, list[SlotAvailability]]:
        now = self._clock()
        grouped: dict[date, list[SlotAvailability]] = {}
        for slot in self.list_time_slots(provider_or_service_id, start_date, end_date):
            service = self._catalog.get_service(slot.service_id)
            if not service:
                self._logger.warning("Skipping slot for unknown service", extra={"time_slot_id": slot.id})
                continue
            windows = slot_segments(slot, service, self._timezone)
            segments = [
                self._to_segment(slot, w, self._peek_state(SegmentRef(slot.id, w.index), now))
                for w in windows
            ]
            grouped.setdefault(slot.date, []).append(
                SlotAvailability(
                    time_slot=slot,
                    segment_minutes=segment_minutes_for(slot, service),
                    segments=segments,
                )
            )
        return grouped

    def get_segment(self, ref: SegmentRef) -> Segment | None:
        slot = self._slots.get(ref.time_slot_id)
        if slot is None:
            return None
        windows = self._windows(slot)
        if not 0 <= ref.segment_index < len(windows):
            return None
        return self._to_segment(slot, windows[ref.segment_index], self._peek_state(ref, self._clock()))

    def claim_segment(
        self,
        time_slot_id: str,
        segment_index: int,
        holder_id: str,
        hold_duration: timedelta,
    ) -> HoldToken:
        slot = self._slots.get(time_slot_id)
        if slot is None:
            raise TimeSlotNotFound(f"Time slot {time_slot_id} not found")
        ref = SegmentRef(time_slot_id, segment_index)
        if not 0 <= segment_index < len(self._windows(slot)):
            raise SegmentUnavailable(f"Segment {ref} does not exist")

        with self._get_lock(ref):
            # The slot may have been edited or removed while waiting for the lock.
            slot = self._slots.get(time_slot_id)
            if slot is None:
                raise TimeSlotNotFound(f"Time slot {time_slot_id} not found")
            if segment_index >= len(self._windows(slot)):
                raise SegmentUnavailable(f"Segment {ref} does not exist")
            now = self._clock()
            if self._current(ref, now) is not None:
                raise SegmentUnavailable(f"Segment {ref} is not free")
            hold = HoldToken(
                token=uuid.uuid4().hex,
                segment_ref=ref,
                holder_id=holder_id,
                expires_at=now + hold_duration,
            )
            self._segments[ref] = _SegmentRecord(state=SegmentState.held, hold=hold)
            self._holds[hold.token] = hold

        self._logger.info("Segment held", extra={"segment": str(ref), "holder_id": holder_id})
        return hold

    def release_hold(self, hold: HoldToken) -> None:
        ref = hold.segment_ref
        with self._get_lock(ref):
            record = self._segments.get(ref)
            if record is None or record.state != SegmentState.held or not record.hold:
                return
            if record.hold.token != hold.token:
                return
            del self._segments[ref]
            self._holds.pop(hold.token, None)
        self._logger.info("Hold released", extra={"segment": str(ref), "holder_id": hold.holder_id})

    def commit_hold(self, hold: HoldToken, booking_id: str) -> None:
        ref = hold.segment_ref
        with self._get_lock(ref):
            record = self._current(ref, self._clock())
            if (
                record is None
                or record.state != SegmentState.held
                or not record.hold
                or record.hold.token != hold.token
            ):
                raise HoldExpired(f"Hold on segment {ref} is no longer valid")
            self._segments[ref] = _SegmentRecord(state=SegmentState.booked, booking_id=booking_id)
            self._holds.pop(hold.token, None)
            self._mark_whole_slot(ref, booked=True)
        self._logger.info("Segment booked", extra={"segment": str(ref), "booking_id": booking_id})

    def release_segment(self, ref: SegmentRef, booking_id: str) -> bool:
        with self._get_lock(ref):
            record = self._segments.get(ref)
            if record is None or record.state != SegmentState.booked or record.booking_id != booking_id:
                return False
            del self._segments[ref]
            self._mark_whole_slot(ref, booked=False)
        self._logger.info("Segment freed", extra={"segment": str(ref), "booking_id": booking_id})
        return True

    def _mark_whole_slot(self, ref: SegmentRef, booked: bool) -> None:
        slot = self._slots.get(ref.time_slot_id)
        if slot is None:
            return
        service = self._catalog.get_service(slot.service_id)
        if service and not service.segmented and slot.is_booked != booked:
            self._slots[slot.id] = replace(slot, is_booked=booked, updated_at=self._clock())

    def get_hold(self, token: str) -> HoldToken | None:
        hold = self._holds.get(token)
        if hold is None or hold.is_expired(self._clock()):
            return None
        return hold

    def sweep_expired_holds(self) -> int:
        now = self._clock()
        expired = 0
        for ref, record in list(self._segments.items()):
            if record.state != SegmentState.held:
                continue
            with self._get_lock(ref):
                if ref in self._segments and self._current(ref, now) is None:
                    expired += 1
        return expired

    def booked_segments(self) -> list[Segment]:
        booked: list[Segment] = []
        for ref, record in list(self._segments.items()):
            if record.state != SegmentState.booked:
                continue
            segment = self.get_segment(ref)
            if segment is not None:
                booked.append(segment)
        return booked


class MemoryBookingRepository(BookingRepositoryPort):
    def __init__(self) -> None:
        self._bookings: dict[str, Booking] = {}
        self._lock = threading.Lock()

    def add(self, booking: Booking) -> Booking:
        with self._lock:
            self._bookings[booking.id] = booking
        return booking

    def get(self, booking_id: str) -> Booking | None:
        with self._lock:
            return self._bookings.get(booking_id)

    def delete(self, booking_id: str) -> None:
        with self._lock:
            self._bookings.pop(booking_id, None)

    def compare_and_set(self, booking: Booking, expected_status: BookingStatus) -> bool:
        with self._lock:
            current = self._bookings.get(booking.id)
            if current is None or current.status != expected_status:
                return False
            self._bookings[booking.id] = booking
            return True

    def list_bookings(
        self,
        user_id: str | None = None,
        provider_id: str | None = None,
        status: BookingStatus | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> BookingPage:
        with self._lock:
            bookings = list(self._bookings.values())
        return paginate(filter_bookings(bookings, user_id, provider_id, status, start_date, end_date), page, limit)

    def list_by_status(self, status: BookingStatus) -> list[Booking]:
        with self._lock:
            return [b for b in self._bookings.values() if b.status == status]


def filter_bookings(
    bookings: list[Booking],
    user_id: str | None,
    provider_id: str | None,
    status: BookingStatus | None,
    start_date: date | None,
    end_date: date | None,
) -> list[Booking]:
    matched = [
        b
        for b in bookings
        if (user_id is None or b.user_id == user_id)
        and (provider_id is None or b.provider_id == provider_id)
        and (status is None or b.status == status)
        and (start_date is None or b.date_time.date() >= start_date)
        and (end_date is None or b.date_time.date() <= end_date)
    ]
    return sorted(matched, key=lambda b: b.date_time, reverse=True)


def paginate(bookings: list[Booking], page: int, limit: int) -> BookingPage:
    page = max(page, 1)
    limit = max(limit, 1)
    start = (page - 1) * limit
    return BookingPage(bookings=bookings[start : start + limit], total=len(bookings), page=page, limit=limit)
