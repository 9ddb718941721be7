"""
Segment state transitions, run against both the memory and the JSON store.
"""

from __future__ import annotations

import threading
from datetime import date, time, timedelta

import pytest

from app.application.exceptions import (
    HoldExpired,
    SegmentUnavailable,
    TimeSlotLocked,
    TimeSlotNotFound,
)
from app.domain.entities.segment import SegmentRef, SegmentState
from app.infrastructure.store.memory_store import MemoryAvailabilityStore

from conftest import CLIENT, OTHER_CLIENT, SLOT_DATE, TZ, make_catalog, make_slot

HOLD = timedelta(minutes=5)


def test_new_slot_is_all_free(store):
    store.add_time_slot(make_slot())

    grouped = store.list_availability("companion", SLOT_DATE, SLOT_DATE)

    [availability] = grouped[SLOT_DATE]
    assert availability.segment_minutes == 60
    assert [s.state for s in availability.segments] == [SegmentState.free, SegmentState.free]
    assert len(availability.free_segments) == 2


def test_claim_marks_segment_held(store):
    store.add_time_slot(make_slot())

    hold = store.claim_segment("slot_1", 1, CLIENT, HOLD)

    segment = store.get_segment(SegmentRef("slot_1", 1))
    assert segment.state == SegmentState.held
    assert segment.holder_id == CLIENT
    assert hold.segment_ref == SegmentRef("slot_1", 1)
    assert store.get_segment(SegmentRef("slot_1", 0)).state == SegmentState.free


def test_second_claim_is_rejected(store):
    store.add_time_slot(make_slot())
    store.claim_segment("slot_1", 0, CLIENT, HOLD)

    with pytest.raises(SegmentUnavailable):
        store.claim_segment("slot_1", 0, OTHER_CLIENT, HOLD)


def test_claim_unknown_slot_or_index(store):
    store.add_time_slot(make_slot())

    with pytest.raises(TimeSlotNotFound):
        store.claim_segment("missing", 0, CLIENT, HOLD)
    with pytest.raises(SegmentUnavailable):
        store.claim_segment("slot_1", 2, CLIENT, HOLD)
    with pytest.raises(SegmentUnavailable):
        store.claim_segment("slot_1", -1, CLIENT, HOLD)


def test_concurrent_claims_have_one_winner(store):
    """Twenty callers racing for the same segment: exactly one gets the hold."""
    store.add_time_slot(make_slot())
    barrier = threading.Barrier(20)
    winners = []
    losers = []
    lock = threading.Lock()

    def claim(holder_id):
        barrier.wait()
        try:
            hold = store.claim_segment("slot_1", 0, holder_id, HOLD)
        except SegmentUnavailable:
            with lock:
                losers.append(holder_id)
        else:
            with lock:
                winners.append(hold)

    threads = [threading.Thread(target=claim, args=(f"user_{i}",)) for i in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(winners) == 1
    assert len(losers) == 19
    assert store.get_segment(SegmentRef("slot_1", 0)).holder_id == winners[0].holder_id


def test_expired_hold_frees_segment(store, clock):
    store.add_time_slot(make_slot())
    hold = store.claim_segment("slot_1", 0, CLIENT, HOLD)

    clock.advance(minutes=5)

    assert store.get_segment(hold.segment_ref).state == SegmentState.free
    assert store.get_hold(hold.token) is None
    other = store.claim_segment("slot_1", 0, OTHER_CLIENT, HOLD)
    assert other.holder_id == OTHER_CLIENT


def test_commit_after_expiry_raises(store, clock):
    store.add_time_slot(make_slot())
    hold = store.claim_segment("slot_1", 0, CLIENT, HOLD)
    clock.advance(minutes=6)

    with pytest.raises(HoldExpired):
        store.commit_hold(hold, "booking_1")
    assert store.get_segment(hold.segment_ref).state == SegmentState.free


def test_commit_with_stale_token_raises(store, clock):
    """A hold that expired and was re-claimed by someone else cannot be committed."""
    store.add_time_slot(make_slot())
    stale = store.claim_segment("slot_1", 0, CLIENT, HOLD)
    clock.advance(minutes=5, seconds=1)
    store.claim_segment("slot_1", 0, OTHER_CLIENT, HOLD)

    with pytest.raises(HoldExpired):
        store.commit_hold(stale, "booking_1")
    assert store.get_segment(stale.segment_ref).holder_id == OTHER_CLIENT


def test_commit_books_segment(store):
    store.add_time_slot(make_slot())
    hold = store.claim_segment("slot_1", 0, CLIENT, HOLD)

    store.commit_hold(hold, "booking_1")

    segment = store.get_segment(hold.segment_ref)
    assert segment.state == SegmentState.booked
    assert segment.booking_id == "booking_1"
    assert [s.booking_id for s in store.booked_segments()] == ["booking_1"]
    with pytest.raises(SegmentUnavailable):
        store.claim_segment("slot_1", 0, OTHER_CLIENT, HOLD)


def test_booked_segment_survives_clock(store, clock):
    store.add_time_slot(make_slot())
    hold = store.claim_segment("slot_1", 0, CLIENT, HOLD)
    store.commit_hold(hold, "booking_1")

    clock.advance(hours=1)

    assert store.get_segment(hold.segment_ref).state == SegmentState.booked


def test_release_hold_is_idempotent(store):
    store.add_time_slot(make_slot())
    hold = store.claim_segment("slot_1", 0, CLIENT, HOLD)

    store.release_hold(hold)
    store.release_hold(hold)

    assert store.get_segment(hold.segment_ref).state == SegmentState.free


def test_release_hold_after_commit_is_noop(store):
    store.add_time_slot(make_slot())
    hold = store.claim_segment("slot_1", 0, CLIENT, HOLD)
    store.commit_hold(hold, "booking_1")

    store.release_hold(hold)

    assert store.get_segment(hold.segment_ref).state == SegmentState.booked


def test_release_segment_requires_owner(store):
    store.add_time_slot(make_slot())
    hold = store.claim_segment("slot_1", 0, CLIENT, HOLD)
    store.commit_hold(hold, "booking_1")

    assert store.release_segment(hold.segment_ref, "booking_2") is False
    assert store.release_segment(hold.segment_ref, "booking_1") is True
    assert store.release_segment(hold.segment_ref, "booking_1") is False
    assert store.get_segment(hold.segment_ref).state == SegmentState.free


def test_sweep_counts_expired_holds(store, clock):
    store.add_time_slot(make_slot())
    store.claim_segment("slot_1", 0, CLIENT, HOLD)
    store.claim_segment("slot_1", 1, OTHER_CLIENT, timedelta(minutes=30))

    clock.advance(minutes=10)

    assert store.sweep_expired_holds() == 1
    assert store.sweep_expired_holds() == 0
    assert store.get_segment(SegmentRef("slot_1", 1)).state == SegmentState.held


def test_slot_with_live_segments_is_locked(store):
    store.add_time_slot(make_slot())
    hold = store.claim_segment("slot_1", 1, CLIENT, HOLD)

    with pytest.raises(TimeSlotLocked):
        store.remove_time_slot("slot_1")
    with pytest.raises(TimeSlotLocked):
        store.update_time_slot(make_slot(end=time(12, 0)))

    store.release_hold(hold)
    store.update_time_slot(make_slot(end=time(12, 0)))
    assert store.get_segment(SegmentRef("slot_1", 2)) is not None
    store.remove_time_slot("slot_1")
    assert store.get_time_slot("slot_1") is None


def test_remove_unknown_slot(store):
    with pytest.raises(TimeSlotNotFound):
        store.remove_time_slot("missing")


def test_non_segmented_service_flags_slot(store):
    store.add_time_slot(make_slot(slot_id="night", service_id="overnight", start=time(20, 0), end=time(23, 0)))

    hold = store.claim_segment("night", 0, CLIENT, HOLD)
    store.commit_hold(hold, "booking_1")
    assert store.get_time_slot("night").is_booked is True

    store.release_segment(hold.segment_ref, "booking_1")
    assert store.get_time_slot("night").is_booked is False


def test_availability_filters_by_provider_and_dates(store):
    store.add_time_slot(make_slot())
    store.add_time_slot(make_slot(slot_id="slot_2", day=date(2030, 1, 5)))
    store.add_time_slot(make_slot(slot_id="slot_3", service_id="visit90", start=time(13, 0), end=time(16, 0)))

    by_service = store.list_availability("companion", SLOT_DATE, date(2030, 1, 3))
    by_provider = store.list_availability("prov_1", SLOT_DATE, date(2030, 1, 31))

    assert [a.time_slot.id for a in by_service[SLOT_DATE]] == ["slot_1"]
    assert sorted(by_provider) == [SLOT_DATE, date(2030, 1, 5)]
    assert [a.time_slot.id for a in by_provider[SLOT_DATE]] == ["slot_1", "slot_3"]
    assert [a.segment_minutes for a in by_provider[SLOT_DATE]] == [60, 90]


def test_archive_skips_slots_with_holds(store):
    store.add_time_slot(make_slot(slot_id="old_1", day=date(2029, 12, 30)))
    store.add_time_slot(make_slot(slot_id="old_2", day=date(2029, 12, 30), start=time(12, 0), end=time(14, 0)))
    store.add_time_slot(make_slot())
    store.claim_segment("old_2", 0, CLIENT, HOLD)

    assert store.archive_before(date(2030, 1, 1)) == 1

    assert store.get_time_slot("old_1") is None
    assert store.get_time_slot("old_2") is not None
    assert store.get_time_slot("slot_1") is not None


def test_booking_one_segment_leaves_the_other_claimable(store):
    """09:00-11:00 at 60 minutes: book segment 0, it stays taken while segment 1 is still free."""
    store.add_time_slot(make_slot())
    hold = store.claim_segment("slot_1", 0, CLIENT, HOLD)
    store.commit_hold(hold, "booking_1")

    with pytest.raises(SegmentUnavailable):
        store.claim_segment("slot_1", 0, OTHER_CLIENT, HOLD)
    other = store.claim_segment("slot_1", 1, OTHER_CLIENT, HOLD)

    assert other.segment_ref == SegmentRef("slot_1", 1)


def test_claim_rechecks_window_after_slot_shrinks(clock, monkeypatch):
    """The provider shortens the slot while a claim on its last segment waits for the lock."""
    store = MemoryAvailabilityStore(catalog=make_catalog(), timezone=TZ, clock=clock)
    store.add_time_slot(make_slot())
    windows = store._windows
    shrunk = []

    def shrink_first(slot):
        result = windows(slot)
        if not shrunk:
            shrunk.append(True)
            store.update_time_slot(make_slot(end=time(10, 0)))
        return result

    monkeypatch.setattr(store, "_windows", shrink_first)

    with pytest.raises(SegmentUnavailable):
        store.claim_segment("slot_1", 1, CLIENT, HOLD)

    assert store.get_time_slot("slot_1").end_time == time(10, 0)
    assert store.get_segment(SegmentRef("slot_1", 1)) is None


def test_removed_slots_release_their_locks(store):
    store.add_time_slot(make_slot())
    store.add_time_slot(make_slot(slot_id="old", day=date(2029, 12, 30)))
    hold = store.claim_segment("slot_1", 0, CLIENT, HOLD)
    store.release_hold(hold)

    store.remove_time_slot("slot_1")
    store.archive_before(date(2030, 1, 1))
    store.get_segment(SegmentRef("missing", 0))

    lock_keys = [getattr(key, "time_slot_id", key) for key in store._locks]
    assert "slot_1" not in lock_keys
    assert "old" not in lock_keys
    assert "missing" not in lock_keys
