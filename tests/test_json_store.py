"""
Tests for durable slot and booking persistence in the JSON store.
"""

from __future__ import annotations

import json
from dataclasses import replace
from datetime import timedelta

from app.domain.entities.booking import BookingStatus
from app.domain.entities.segment import SegmentRef, SegmentState
from app.infrastructure.store.json_store import JsonAvailabilityStore, JsonBookingRepository

from conftest import CLIENT, TZ, ManualClock, START, build_engine, make_catalog, make_draft, make_slot

REF = SegmentRef("slot_1", 0)


def test_bookings_survive_restart(tmp_path):
    """A new engine on the same data directory sees the same slots, segments and bookings."""
    clock = ManualClock(START)
    catalog = make_catalog()
    first = build_engine(
        store=JsonAvailabilityStore(catalog=catalog, timezone=TZ, data_dir=str(tmp_path / "slots"), clock=clock),
        bookings=JsonBookingRepository(data_dir=str(tmp_path / "bookings")),
        clock=clock,
        catalog=catalog,
    )
    first.store.add_time_slot(make_slot())
    booking = first.service.reserve_and_book(REF, make_draft())

    second = build_engine(
        store=JsonAvailabilityStore(catalog=catalog, timezone=TZ, data_dir=str(tmp_path / "slots"), clock=clock),
        bookings=JsonBookingRepository(data_dir=str(tmp_path / "bookings")),
        clock=clock,
        catalog=catalog,
    )

    restored = second.bookings.get(booking.id)
    assert restored == booking
    assert restored.address.zip_code == "62701"
    assert second.store.get_segment(REF).booking_id == booking.id
    assert second.store.get_time_slot("slot_1") == first.store.get_time_slot("slot_1")


def test_slot_file_layout(tmp_path):
    clock = ManualClock(START)
    store = JsonAvailabilityStore(catalog=make_catalog(), timezone=TZ, data_dir=str(tmp_path), clock=clock)
    store.add_time_slot(make_slot())
    hold = store.claim_segment("slot_1", 1, CLIENT, timedelta(minutes=5))

    data = json.loads((tmp_path / "slot_1.json").read_text(encoding="utf-8"))

    assert data["slot"]["start_time"] == "09:00"
    assert data["segments"] == {
        "1": {
            "state": "held",
            "hold": {"token": hold.token, "holder_id": CLIENT, "expires_at": "2030-01-01T08:05:00+00:00"},
        }
    }
    assert not list(tmp_path.glob("*.tmp"))


def test_expired_hold_is_dropped_on_next_write(tmp_path):
    clock = ManualClock(START)
    store = JsonAvailabilityStore(catalog=make_catalog(), timezone=TZ, data_dir=str(tmp_path), clock=clock)
    store.add_time_slot(make_slot())
    store.claim_segment("slot_1", 1, CLIENT, timedelta(minutes=5))
    clock.advance(minutes=10)

    store.claim_segment("slot_1", 0, CLIENT, timedelta(minutes=5))

    data = json.loads((tmp_path / "slot_1.json").read_text(encoding="utf-8"))
    assert list(data["segments"]) == ["0"]


def test_status_changes_are_persisted(json_engine):
    booking = json_engine.service.reserve_and_book(REF, make_draft())
    json_engine.service.authorize_payment(booking.id, CLIENT)

    json_engine.service.cancel(booking.id, CLIENT, reason="sick")

    stored = json_engine.bookings.get(booking.id)
    assert stored.status == BookingStatus.cancelled
    assert stored.cancellation_reason == "sick"
    assert json_engine.store.get_segment(REF).state == SegmentState.free
    assert json_engine.bookings.list_bookings(user_id=CLIENT, status=BookingStatus.cancelled).total == 1


def test_compare_and_set_rejects_stale_status(tmp_path):
    repo = JsonBookingRepository(data_dir=str(tmp_path))
    engine = build_engine(bookings=repo)
    engine.store.add_time_slot(make_slot())
    booking = engine.service.reserve_and_book(REF, make_draft())

    confirmed = replace(booking, status=BookingStatus.confirmed)
    assert repo.compare_and_set(confirmed, BookingStatus.confirmed) is False
    assert repo.compare_and_set(confirmed, BookingStatus.pending) is True
    assert repo.get(booking.id).status == BookingStatus.confirmed


def test_booking_locks_do_not_accumulate(tmp_path):
    repo = JsonBookingRepository(data_dir=str(tmp_path))
    engine = build_engine(bookings=repo)
    engine.store.add_time_slot(make_slot())
    booking = engine.service.reserve_and_book(REF, make_draft())

    assert repo.get("missing") is None
    repo.delete(booking.id)

    assert repo.get(booking.id) is None
    assert "missing" not in repo._locks
    assert booking.id not in repo._locks
