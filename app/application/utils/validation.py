from __future__ import annotations

import re
from datetime import datetime

from app.application.exceptions import InvalidBookingDraft
from app.domain.entities.booking import Address, BookingDraft
from app.domain.entities.segment import Segment
from app.domain.entities.service_catalog import ServiceCatalogEntry
from app.domain.entities.time_slot import TimeSlot

_ZIP_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9 \-]{2,9}$")


def validate_address(address: Address) -> None:
    missing = [
        name
        for name in ("street", "city", "state", "zip_code")
        if not (getattr(address, name) or "").strip()
    ]
    if missing:
        raise InvalidBookingDraft(f"Address is missing: {', '.join(missing)}")
    if not _ZIP_PATTERN.match(address.zip_code.strip()):
        raise InvalidBookingDraft(f"Invalid postal code {address.zip_code!r}")


def validate_draft(
    draft: BookingDraft,
    slot: TimeSlot,
    segment: Segment,
    service: ServiceCatalogEntry,
    now: datetime,
) -> None:
    """
    Reject a draft before anything is claimed: the address must be complete,
    the duration must match what the segment offers, and the segment must
    start in the future.
    """
    if draft.service_id != slot.service_id:
        raise InvalidBookingDraft(f"Time slot {slot.id} is not offered for service {draft.service_id}")
    if not draft.user_id:
        raise InvalidBookingDraft("Booking draft has no user")
    if draft.user_id == slot.provider_id:
        raise InvalidBookingDraft("Providers cannot book their own time slots")

    validate_address(draft.address)

    segment_minutes = int((segment.end - segment.start).total_seconds() // 60)
    if draft.duration != segment_minutes:
        raise InvalidBookingDraft(
            f"Duration {draft.duration} does not match {service.title} duration of {segment_minutes} minutes"
        )

    if segment.start <= now:
        raise InvalidBookingDraft(f"Segment starting {segment.start.isoformat()} is not in the future")
