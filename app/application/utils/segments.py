from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timedelta, tzinfo

from app.application.exceptions import InvalidWindow
from app.domain.entities.segment import SegmentWindow
from app.domain.entities.service_catalog import ServiceCatalogEntry
from app.domain.entities.time_slot import TimeSlot


def segment_count(window_start: datetime, window_end: datetime, duration_minutes: int) -> int:
    _check_window(window_start, window_end, duration_minutes)
    return int((window_end - window_start) // timedelta(minutes=duration_minutes))


def derive_segments(
    window_start: datetime,
    window_end: datetime,
    duration_minutes: int,
) -> tuple[SegmentWindow, ...]:
    """
    Split [window_start, window_end) into contiguous segments of exactly
    duration_minutes. A trailing remainder shorter than one segment is dropped.
    """
    count = segment_count(window_start, window_end, duration_minutes)
    step = timedelta(minutes=duration_minutes)
    return tuple(
        SegmentWindow(index=i, start=window_start + i * step, end=window_start + (i + 1) * step)
        for i in range(count)
    )


def verify_segments(
    segments: Sequence[SegmentWindow],
    window_start: datetime,
    window_end: datetime,
    duration_minutes: int,
) -> bool:
    """Check that a stored sequence is exactly what derive_segments would produce."""
    try:
        expected = derive_segments(window_start, window_end, duration_minutes)
    except InvalidWindow:
        return False
    return tuple(segments) == expected


def _check_window(window_start: datetime, window_end: datetime, duration_minutes: int) -> None:
    if duration_minutes <= 0:
        raise InvalidWindow(f"Service duration must be positive, got {duration_minutes}")
    if window_end <= window_start:
        raise InvalidWindow(
            f"Window end {window_end.isoformat()} is not after start {window_start.isoformat()}"
        )


def segment_minutes_for(slot: TimeSlot, service: ServiceCatalogEntry) -> int:
    """Segment length for a slot: the service duration, or the whole window for non-segmented services."""
    if service.segmented:
        return service.duration_minutes
    return slot.window_minutes


def slot_segments(slot: TimeSlot, service: ServiceCatalogEntry, tz: tzinfo) -> tuple[SegmentWindow, ...]:
    return derive_segments(slot.window_start(tz), slot.window_end(tz), segment_minutes_for(slot, service))
