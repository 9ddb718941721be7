"""
Tests for the reconciliation sweep.
"""

from __future__ import annotations

import time as time_module
from dataclasses import replace
from datetime import date, timedelta

from app.application.use_cases.reconciliation import ReconciliationSweep
from app.domain.entities.booking import Booking, BookingStatus
from app.domain.entities.segment import SegmentRef, SegmentState

from conftest import CLIENT, PROVIDER, TZ, make_draft, make_slot

REF = SegmentRef("slot_1", 0)


def test_clean_state_reports_nothing(engine):
    engine.service.reserve_and_book(REF, make_draft())

    report = engine.sweep.run_once()

    assert report.expired_holds == 0
    assert report.freed_segments == 0
    assert report.orphaned_bookings == 0
    assert report.archived_slots == 0


def test_expired_holds_are_swept(engine):
    engine.store.claim_segment("slot_1", 1, CLIENT, timedelta(minutes=5))
    engine.clock.advance(minutes=5)

    assert engine.sweep.run_once().expired_holds == 1
    assert engine.store.get_segment(SegmentRef("slot_1", 1)).state == SegmentState.free


def test_segment_of_deleted_booking_is_freed(engine):
    booking = engine.service.reserve_and_book(REF, make_draft())
    engine.bookings.delete(booking.id)

    assert engine.sweep.run_once().freed_segments == 1
    assert engine.store.get_segment(REF).state == SegmentState.free


def test_pending_booking_without_segment_is_discarded(engine):
    """A pending booking whose hold was never committed is removed once the hold is gone."""
    booking = engine.service.reserve_and_book(REF, make_draft())
    engine.store.release_segment(REF, booking.id)

    assert engine.sweep.run_once().orphaned_bookings == 1
    assert engine.bookings.get(booking.id) is None


def test_in_flight_reservation_is_left_alone(engine):
    hold = engine.store.claim_segment("slot_1", 0, CLIENT, timedelta(minutes=5))
    booking = engine.service.reserve_and_book(SegmentRef("slot_1", 1), make_draft())
    # A second pending booking still waiting on its hold.
    waiting = replace(booking, id="waiting", segment_ref=REF, hold_token=hold.token)
    engine.bookings.add(waiting)

    assert engine.sweep.run_once().orphaned_bookings == 0
    assert engine.bookings.get("waiting") is not None

    engine.clock.advance(minutes=6)
    report = engine.sweep.run_once()
    assert report.expired_holds == 1
    assert report.orphaned_bookings == 1


def test_past_slots_are_archived(engine):
    engine.store.add_time_slot(make_slot(slot_id="old", day=date(2029, 12, 31)))

    assert engine.sweep.run_once().archived_slots == 1
    assert engine.store.get_time_slot("old") is None
    assert engine.store.get_time_slot("slot_1") is not None


def test_background_thread_runs_sweep(engine):
    engine.store.add_time_slot(make_slot(slot_id="old", day=date(2029, 12, 31)))
    sweep = ReconciliationSweep(
        store=engine.store,
        bookings=engine.bookings,
        lifecycle=engine.lifecycle,
        timezone=TZ,
        interval_seconds=0.01,
        clock=engine.clock,
    )

    sweep.start()
    try:
        deadline = time_module.monotonic() + 2
        while engine.store.get_time_slot("old") is not None and time_module.monotonic() < deadline:
            time_module.sleep(0.01)
    finally:
        sweep.stop()

    assert engine.store.get_time_slot("old") is None
    assert engine.bookings.list_by_status(BookingStatus.pending) == []


def _inflight_booking(engine):
    """A pending booking whose hold on segment 0 has not been committed yet."""
    hold = engine.store.claim_segment("slot_1", 0, CLIENT, timedelta(minutes=5))
    segment = engine.store.get_segment(REF)
    booking = Booking(
        id="inflight",
        service_id="companion",
        provider_id=PROVIDER,
        user_id=CLIENT,
        date_time=segment.start,
        duration=60,
        address=make_draft().address,
        total_price=30.0,
        segment_ref=REF,
        hold_token=hold.token,
    )
    engine.bookings.add(booking)
    return hold, booking


def test_commit_after_segment_read_keeps_booking(engine, monkeypatch):
    """The reservation commits right after the sweep looked at the segment."""
    hold, booking = _inflight_booking(engine)
    read_segment = engine.store.get_segment

    def read_then_commit(ref):
        segment = read_segment(ref)
        if engine.store.get_hold(hold.token) is not None:
            engine.store.commit_hold(hold, booking.id)
        return segment

    monkeypatch.setattr(engine.store, "get_segment", read_then_commit)

    assert engine.sweep.run_once().orphaned_bookings == 0
    monkeypatch.undo()
    assert engine.bookings.get(booking.id) is not None
    assert engine.store.get_segment(REF).state != SegmentState.free
    assert engine.sweep.run_once().freed_segments == 0


def test_commit_during_hold_lookup_keeps_booking(engine, monkeypatch):
    """The reservation commits while the sweep is checking its hold."""
    hold, booking = _inflight_booking(engine)
    lookup_hold = engine.store.get_hold

    def commit_then_lookup(token):
        if token == hold.token and lookup_hold(token) is not None:
            engine.store.commit_hold(hold, booking.id)
        return lookup_hold(token)

    monkeypatch.setattr(engine.store, "get_hold", commit_then_lookup)

    assert engine.sweep.run_once().orphaned_bookings == 0
    monkeypatch.undo()
    assert engine.bookings.get(booking.id) is not None
    assert engine.store.get_segment(REF).state == SegmentState.booked
