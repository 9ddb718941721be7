from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from app.application.exceptions import (
    HoldExpired,
    ReservationExpired,
    SegmentUnavailable,
    ServiceNotFound,
    TimeSlotNotFound,
)
from app.application.ports.availability_store import AvailabilityStorePort
from app.application.ports.service_catalog import ServiceCatalogPort
from app.application.use_cases.booking_lifecycle import BookingLifecycle
from app.application.utils.validation import validate_draft
from app.domain.entities.booking import Booking, BookingDraft, BookingStatus
from app.domain.entities.hold import HoldToken
from app.domain.entities.segment import SegmentRef


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ReservationCoordinator:
    """
    Runs claim -> create -> commit for one segment. A hold that cannot be
    committed takes the pending booking down with it; anything the inline
    rollback misses is picked up by ReconciliationSweep once the hold expires.
    """

    def __init__(
        self,
        store: AvailabilityStorePort,
        catalog: ServiceCatalogPort,
        lifecycle: BookingLifecycle,
        hold_duration: timedelta = timedelta(minutes=5),
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._catalog = catalog
        self._lifecycle = lifecycle
        self._hold_duration = hold_duration
        self._clock = clock or _utc_now
        self._logger = logging.getLogger(__name__)

    def reserve_and_create_booking(self, segment_ref: SegmentRef, draft: BookingDraft) -> Booking:
        slot = self._store.get_time_slot(segment_ref.time_slot_id)
        if slot is None:
            raise TimeSlotNotFound(f"Time slot {segment_ref.time_slot_id} not found")
        service = self._catalog.get_service(slot.service_id)
        if service is None:
            raise ServiceNotFound(f"Unknown service {slot.service_id}")
        segment = self._store.get_segment(segment_ref)
        if segment is None:
            raise SegmentUnavailable(f"Segment {segment_ref} does not exist")

        validate_draft(draft, slot, segment, service, self._clock())

        hold = self._store.claim_segment(
            segment_ref.time_slot_id,
            segment_ref.segment_index,
            draft.user_id,
            self._hold_duration,
        )

        booking = Booking(
            id=uuid.uuid4().hex,
            service_id=slot.service_id,
            provider_id=slot.provider_id,
            user_id=draft.user_id,
            date_time=segment.start,
            duration=draft.duration,
            address=draft.address,
            total_price=service.price_for(draft.duration),
            segment_ref=segment_ref,
            status=BookingStatus.pending,
            special_instructions=draft.special_instructions,
            hold_token=hold.token,
            created_at=self._clock(),
            updated_at=self._clock(),
        )

        try:
            self._lifecycle.create_pending(booking)
            self._store.commit_hold(hold, booking.id)
        except HoldExpired as e:
            self._roll_back(hold, booking)
            raise ReservationExpired(f"Reservation for segment {segment_ref} expired before commit") from e
        except Exception:
            self._roll_back(hold, booking)
            raise

        self._logger.info(
            "Booking reserved",
            extra={"booking_id": booking.id, "segment": str(segment_ref), "actor_id": draft.user_id},
        )
        self._lifecycle.announce_created(booking)
        return booking

    def _roll_back(self, hold: HoldToken, booking: Booking) -> None:
        try:
            self._lifecycle.discard(booking.id)
        except Exception as e:
            self._logger.error(
                "Rollback could not delete booking, leaving it to reconciliation",
                extra={"booking_id": booking.id, "reason": str(e)},
            )
        try:
            self._store.release_hold(hold)
        except Exception as e:
            self._logger.error(
                "Rollback could not release hold, it will expire",
                extra={"segment": str(hold.segment_ref), "reason": str(e)},
            )
