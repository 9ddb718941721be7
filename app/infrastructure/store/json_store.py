from __future__ import annotations

import json
import logging
import threading
import uuid
from collections.abc import Callable
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from pathlib import Path
from typing import Any

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
from app.domain.entities.booking import Address, Booking, BookingPage, BookingStatus
from app.domain.entities.hold import HoldToken
from app.domain.entities.segment import Segment, SegmentRef, SegmentState, SegmentWindow, SlotAvailability
from app.domain.entities.time_slot import TimeSlot
from app.infrastructure.store.memory_store import filter_bookings, paginate


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class _JsonFileMixin:
    """Per-record JSON files written atomically, one lock per record id."""

    _data_dir: Path
    _locks: dict[str, threading.Lock]
    _lock_lock: threading.Lock

    def _init_files(self, data_dir: str) -> None:
        self._data_dir = Path(data_dir)
        self._data_dir.mkdir(parents=True, exist_ok=True)
        self._locks = {}
        self._lock_lock = threading.Lock()  # Lock for managing locks dict

    def _get_lock(self, record_id: str) -> threading.Lock:
        """Get or create a lock for a record id."""
        with self._lock_lock:
            if record_id not in self._locks:
                self._locks[record_id] = threading.Lock()
            return self._locks[record_id]

    def _drop_lock(self, record_id: str) -> None:
        with self._lock_lock:
            self._locks.pop(record_id, None)

    def _get_file_path(self, record_id: str) -> Path:
        return self._data_dir / f"{record_id}.json"

    def _load(self, record_id: str) -> dict[str, Any] | None:
        file_path = self._get_file_path(record_id)
        if not file_path.exists():
            return None
        with open(file_path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _save(self, record_id: str, data: dict[str, Any]) -> None:
        """Save record to JSON file atomically."""
        file_path = self._get_file_path(record_id)
        temp_path = file_path.with_suffix(".json.tmp")

        try:
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            # Atomic rename
            temp_path.replace(file_path)
        except Exception:
            if temp_path.exists():
                temp_path.unlink()
            raise

    def _remove(self, record_id: str) -> None:
        self._get_file_path(record_id).unlink(missing_ok=True)

    def _exists(self, record_id: str) -> bool:
        return self._get_file_path(record_id).exists()

    def _record_ids(self) -> list[str]:
        return sorted(p.stem for p in self._data_dir.glob("*.json"))


class JsonAvailabilityStore(_JsonFileMixin, AvailabilityStorePort):
    """
    File-backed store for dev. One file per time slot holding the slot and
    its non-free segment records; the slot's lock serializes every segment
    transition in it. Not safe across processes.
    """

    def __init__(
        self,
        catalog: ServiceCatalogPort,
        timezone: tzinfo,
        data_dir: str = "./data/slots",
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._init_files(data_dir)
        self._catalog = catalog
        self._timezone = timezone
        self._clock = clock or _utc_now
        self._logger = logging.getLogger(__name__)

    def _serialize_slot(self, slot: TimeSlot) -> dict[str, Any]:
        return {
            "id": slot.id,
            "provider_id": slot.provider_id,
            "service_id": slot.service_id,
            "date": slot.date.isoformat(),
            "start_time": slot.start_time.strftime("%H:%M"),
            "end_time": slot.end_time.strftime("%H:%M"),
            "is_booked": slot.is_booked,
            "created_at": slot.created_at.isoformat(),
            "updated_at": slot.updated_at.isoformat(),
        }

    def _deserialize_slot(self, data: dict[str, Any]) -> TimeSlot:
        return TimeSlot(
            id=data["id"],
            provider_id=data["provider_id"],
            service_id=data["service_id"],
            date=date.fromisoformat(data["date"]),
            start_time=time.fromisoformat(data["start_time"]),
            end_time=time.fromisoformat(data["end_time"]),
            is_booked=data.get("is_booked", False),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
        )

    def _serialize_hold(self, hold: HoldToken) -> dict[str, Any]:
        return {
            "token": hold.token,
            "holder_id": hold.holder_id,
            "expires_at": hold.expires_at.isoformat(),
        }

    def _deserialize_hold(self, ref: SegmentRef, data: dict[str, Any]) -> HoldToken:
        return HoldToken(
            token=data["token"],
            segment_ref=ref,
            holder_id=data["holder_id"],
            expires_at=datetime.fromisoformat(data["expires_at"]),
        )

    def _windows(self, slot: TimeSlot) -> tuple[SegmentWindow, ...]:
        service = self._catalog.get_service(slot.service_id)
        if not service:
            raise ServiceNotFound(f"Unknown service {slot.service_id}")
        return slot_segments(slot, service, self._timezone)

    def _live_records(self, data: dict[str, Any], now: datetime) -> dict[str, dict[str, Any]]:
        """Segment records with expired holds dropped."""
        live: dict[str, dict[str, Any]] = {}
        for index, record in data.get("segments", {}).items():
            if record["state"] == SegmentState.held.value:
                if datetime.fromisoformat(record["hold"]["expires_at"]) <= now:
                    continue
            live[index] = record
        return live

    def _to_segment(self, slot: TimeSlot, window: SegmentWindow, record: dict[str, Any] | None) -> Segment:
        if record is None:
            return Segment(slot.id, window.index, window.start, window.end)
        hold = record.get("hold")
        return Segment(
            slot.id,
            window.index,
            window.start,
            window.end,
            state=SegmentState(record["state"]),
            holder_id=hold["holder_id"] if hold else None,
            booking_id=record.get("booking_id"),
        )

    # Time slots

    def add_time_slot(self, slot: TimeSlot) -> TimeSlot:
        self._windows(slot)
        with self._get_lock(slot.id):
            self._save(slot.id, {"slot": self._serialize_slot(slot), "segments": {}, "version": 1})
        return slot

    def get_time_slot(self, time_slot_id: str) -> TimeSlot | None:
        if not self._exists(time_slot_id):
            return None
        with self._get_lock(time_slot_id):
            data = self._load(time_slot_id)
        return self._deserialize_slot(data["slot"]) if data else None

    def update_time_slot(self, slot: TimeSlot) -> TimeSlot:
        self._windows(slot)
        with self._get_lock(slot.id):
            data = self._load(slot.id)
            if data is None:
                raise TimeSlotNotFound(f"Time slot {slot.id} not found")
            if self._live_records(data, self._clock()):
                raise TimeSlotLocked(f"Time slot {slot.id} has held or booked segments")
            self._save(slot.id, {"slot": self._serialize_slot(slot), "segments": {}, "version": 1})
        return slot

    def remove_time_slot(self, time_slot_id: str) -> None:
        with self._get_lock(time_slot_id):
            data = self._load(time_slot_id)
            if data is None:
                raise TimeSlotNotFound(f"Time slot {time_slot_id} not found")
            if self._live_records(data, self._clock()):
                raise TimeSlotLocked(f"Time slot {time_slot_id} has held or booked segments")
            self._remove(time_slot_id)
        self._drop_lock(time_slot_id)

    def list_time_slots(
        self,
        provider_or_service_id: str,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[TimeSlot]:
        slots = [s for s in (self.get_time_slot(i) for i in self._record_ids()) if s is not None]
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
        now = self._clock()
        for slot_id in self._record_ids():
            with self._get_lock(slot_id):
                data = self._load(slot_id)
                if data is None or date.fromisoformat(data["slot"]["date"]) >= cutoff:
                    continue
                live = self._live_records(data, now)
                if any(r["state"] == SegmentState.held.value for r in live.values()):
                    continue
                self._remove(slot_id)
                removed += 1
            self._drop_lock(slot_id)
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
            with self._get_lock(slot.id):
                data = self._load(slot.id)
            if data is None:
                continue
            live = self._live_records(data, now)
            segments = [
                self._to_segment(slot, w, live.get(str(w.index)))
                for w in slot_segments(slot, service, self._timezone)
            ]
            grouped.setdefault(slot.date, []).append(
                SlotAvailability(time_slot=slot, segment_minutes=segment_minutes_for(slot, service), segments=segments)
            )
        return grouped

    def get_segment(self, ref: SegmentRef) -> Segment | None:
        if not self._exists(ref.time_slot_id):
            return None
        with self._get_lock(ref.time_slot_id):
            data = self._load(ref.time_slot_id)
        if data is None:
            return None
        slot = self._deserialize_slot(data["slot"])
        windows = self._windows(slot)
        if not 0 <= ref.segment_index < len(windows):
            return None
        live = self._live_records(data, self._clock())
        return self._to_segment(slot, windows[ref.segment_index], live.get(str(ref.segment_index)))

    def claim_segment(
        self,
        time_slot_id: str,
        segment_index: int,
        holder_id: str,
        hold_duration: timedelta,
    ) -> HoldToken:
        ref = SegmentRef(time_slot_id, segment_index)
        with self._get_lock(time_slot_id):
            data = self._load(time_slot_id)
            if data is None:
                raise TimeSlotNotFound(f"Time slot {time_slot_id} not found")
            slot = self._deserialize_slot(data["slot"])
            if not 0 <= segment_index < len(self._windows(slot)):
                raise SegmentUnavailable(f"Segment {ref} does not exist")
            now = self._clock()
            live = self._live_records(data, now)
            if str(segment_index) in live:
                raise SegmentUnavailable(f"Segment {ref} is not free")
            hold = HoldToken(
                token=uuid.uuid4().hex,
                segment_ref=ref,
                holder_id=holder_id,
                expires_at=now + hold_duration,
            )
            live[str(segment_index)] = {"state": SegmentState.held.value, "hold": self._serialize_hold(hold)}
            data["segments"] = live
            self._save(time_slot_id, data)

        self._logger.info("Segment held", extra={"segment": str(ref), "holder_id": holder_id})
        return hold

    def release_hold(self, hold: HoldToken) -> None:
        ref = hold.segment_ref
        with self._get_lock(ref.time_slot_id):
            data = self._load(ref.time_slot_id)
            if data is None:
                return
            record = data.get("segments", {}).get(str(ref.segment_index))
            if not record or record["state"] != SegmentState.held.value:
                return
            if record["hold"]["token"] != hold.token:
                return
            del data["segments"][str(ref.segment_index)]
            self._save(ref.time_slot_id, data)
        self._logger.info("Hold released", extra={"segment": str(ref), "holder_id": hold.holder_id})

    def commit_hold(self, hold: HoldToken, booking_id: str) -> None:
        ref = hold.segment_ref
        with self._get_lock(ref.time_slot_id):
            data = self._load(ref.time_slot_id)
            if data is None:
                raise HoldExpired(f"Hold on segment {ref} is no longer valid")
            live = self._live_records(data, self._clock())
            record = live.get(str(ref.segment_index))
            if not record or record["state"] != SegmentState.held.value or record["hold"]["token"] != hold.token:
                raise HoldExpired(f"Hold on segment {ref} is no longer valid")
            live[str(ref.segment_index)] = {"state": SegmentState.booked.value, "booking_id": booking_id}
            data["segments"] = live
            self._mark_whole_slot(data, booked=True)
            self._save(ref.time_slot_id, data)
        self._logger.info("Segment booked", extra={"segment": str(ref), "booking_id": booking_id})

    def release_segment(self, ref: SegmentRef, booking_id: str) -> bool:
        with self._get_lock(ref.time_slot_id):
            data = self._load(ref.time_slot_id)
            if data is None:
                return False
            record = data.get("segments", {}).get(str(ref.segment_index))
            if not record or record["state"] != SegmentState.booked.value or record.get("booking_id") != booking_id:
                return False
            del data["segments"][str(ref.segment_index)]
            self._mark_whole_slot(data, booked=False)
            self._save(ref.time_slot_id, data)
        self._logger.info("Segment freed", extra={"segment": str(ref), "booking_id": booking_id})
        return True

    def _mark_whole_slot(self, data: dict[str, Any], booked: bool) -> None:
        service = self._catalog.get_service(data["slot"]["service_id"])
        if service and not service.segmented:
            data["slot"]["is_booked"] = booked
            data["slot"]["updated_at"] = self._clock().isoformat()

    def get_hold(self, token: str) -> HoldToken | None:
        # Scans every slot file; fine for the dev store.
        now = self._clock()
        for slot_id in self._record_ids():
            with self._get_lock(slot_id):
                data = self._load(slot_id)
            if data is None:
                continue
            for index, record in self._live_records(data, now).items():
                if record["state"] == SegmentState.held.value and record["hold"]["token"] == token:
                    return self._deserialize_hold(SegmentRef(slot_id, int(index)), record["hold"])
        return None

    def sweep_expired_holds(self) -> int:
        expired = 0
        now = self._clock()
        for slot_id in self._record_ids():
            with self._get_lock(slot_id):
                data = self._load(slot_id)
                if data is None:
                    continue
                live = self._live_records(data, now)
                dropped = len(data.get("segments", {})) - len(live)
                if dropped:
                    data["segments"] = live
                    self._save(slot_id, data)
                    expired += dropped
        return expired

    def booked_segments(self) -> list[Segment]:
        booked: list[Segment] = []
        for slot_id in self._record_ids():
            with self._get_lock(slot_id):
                data = self._load(slot_id)
            if data is None:
                continue
            slot = self._deserialize_slot(data["slot"])
            windows = self._windows(slot)
            for index, record in data.get("segments", {}).items():
                if record["state"] == SegmentState.booked.value and int(index) < len(windows):
                    booked.append(self._to_segment(slot, windows[int(index)], record))
        return booked


class JsonBookingRepository(_JsonFileMixin, BookingRepositoryPort):
    def __init__(self, data_dir: str = "./data/bookings") -> None:
        self._init_files(data_dir)

    def _serialize(self, booking: Booking) -> dict[str, Any]:
        return {
            "id": booking.id,
            "service_id": booking.service_id,
            "provider_id": booking.provider_id,
            "user_id": booking.user_id,
            "date_time": booking.date_time.isoformat(),
            "duration": booking.duration,
            "address": {
                "street": booking.address.street,
                "city": booking.address.city,
                "state": booking.address.state,
                "zip_code": booking.address.zip_code,
                "country": booking.address.country,
            },
            "total_price": booking.total_price,
            "segment_ref": {
                "time_slot_id": booking.segment_ref.time_slot_id,
                "segment_index": booking.segment_ref.segment_index,
            },
            "status": booking.status.value,
            "special_instructions": booking.special_instructions,
            "hold_token": booking.hold_token,
            "cancellation_reason": booking.cancellation_reason,
            "cancelled_by": booking.cancelled_by,
            "created_at": booking.created_at.isoformat(),
            "updated_at": booking.updated_at.isoformat(),
            "version": 1,
        }

    def _deserialize(self, data: dict[str, Any]) -> Booking:
        return Booking(
            id=data["id"],
            service_id=data["service_id"],
            provider_id=data["provider_id"],
            user_id=data["user_id"],
            date_time=datetime.fromisoformat(data["date_time"]),
            duration=data["duration"],
            address=Address(**data["address"]),
            total_price=data["total_price"],
            segment_ref=SegmentRef(**data["segment_ref"]),
            status=BookingStatus(data["status"]),
            special_instructions=data.get("special_instructions"),
            hold_token=data.get("hold_token"),
            cancellation_reason=data.get("cancellation_reason"),
            cancelled_by=data.get("cancelled_by"),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
        )

    def add(self, booking: Booking) -> Booking:
        with self._get_lock(booking.id):
            self._save(booking.id, self._serialize(booking))
        return booking

    def get(self, booking_id: str) -> Booking | None:
        if not self._exists(booking_id):
            return None
        with self._get_lock(booking_id):
            data = self._load(booking_id)
        return self._deserialize(data) if data else None

    def delete(self, booking_id: str) -> None:
        with self._get_lock(booking_id):
            self._remove(booking_id)
        self._drop_lock(booking_id)

    def compare_and_set(self, booking: Booking, expected_status: BookingStatus) -> bool:
        with self._get_lock(booking.id):
            data = self._load(booking.id)
            if data is None or data["status"] != expected_status.value:
                return False
            self._save(booking.id, self._serialize(booking))
            return True

    def _all(self) -> list[Booking]:
        return [b for b in (self.get(i) for i in self._record_ids()) if b is not None]

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
        return paginate(filter_bookings(self._all(), user_id, provider_id, status, start_date, end_date), page, limit)

    def list_by_status(self, status: BookingStatus) -> list[Booking]:
        return [b for b in self._all() if b.status == status]
