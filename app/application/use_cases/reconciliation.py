from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo

from app.application.ports.availability_store import AvailabilityStorePort
from app.application.ports.booking_repository import BookingRepositoryPort
from app.application.use_cases.booking_lifecycle import BookingLifecycle
from app.domain.entities.booking import BookingStatus
from app.domain.entities.segment import SegmentState


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SweepReport:
    expired_holds: int = 0
    freed_segments: int = 0
    orphaned_bookings: int = 0
    archived_slots: int = 0


class ReconciliationSweep:
    """Background safety net for holds, segments and bookings left behind by failed requests."""

    def __init__(
        self,
        store: AvailabilityStorePort,
        bookings: BookingRepositoryPort,
        lifecycle: BookingLifecycle,
        timezone: tzinfo,
        interval_seconds: float = 30.0,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._bookings = bookings
        self._lifecycle = lifecycle
        self._timezone = timezone
        self._interval_seconds = interval_seconds
        self._clock = clock or _utc_now
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._logger = logging.getLogger(__name__)

    def run_once(self) -> SweepReport:
        expired = self._store.sweep_expired_holds()
        freed = self._free_abandoned_segments()
        orphaned = self._discard_orphaned_bookings()
        today = self._clock().astimezone(self._timezone).date()
        archived = self._store.archive_before(today)

        report = SweepReport(
            expired_holds=expired,
            freed_segments=freed,
            orphaned_bookings=orphaned,
            archived_slots=archived,
        )
        if expired or freed or orphaned or archived:
            self._logger.info("Reconciliation sweep", extra={"reason": repr(report)})
        return report

    def _free_abandoned_segments(self) -> int:
        freed = 0
        for segment in self._store.booked_segments():
            if segment.booking_id is None:
                continue
            booking = self._bookings.get(segment.booking_id)
            if booking is not None and booking.status != BookingStatus.cancelled:
                continue
            if self._store.release_segment(segment.ref, segment.booking_id):
                freed += 1
                self._logger.warning(
                    "Freed segment with no live booking",
                    extra={"segment": str(segment.ref), "booking_id": segment.booking_id},
                )
        return freed

    def _discard_orphaned_bookings(self) -> int:
        orphaned = 0
        for booking in self._bookings.list_by_status(BookingStatus.pending):
            # Hold first, segment second: a commit landing in between shows up as booked.
            if booking.hold_token and self._store.get_hold(booking.hold_token) is not None:
                continue
            segment = self._store.get_segment(booking.segment_ref)
            if segment is None:
                continue
            if segment.state == SegmentState.booked and segment.booking_id == booking.id:
                continue
            self._lifecycle.discard(booking.id)
            orphaned += 1
            self._logger.warning(
                "Discarded pending booking whose hold never committed",
                extra={"booking_id": booking.id, "segment": str(booking.segment_ref)},
            )
        return orphaned

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="reconciliation-sweep", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self._interval_seconds):
            try:
                self.run_once()
            except Exception:
                self._logger.exception("Reconciliation sweep failed")
