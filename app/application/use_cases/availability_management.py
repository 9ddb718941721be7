from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import date, datetime, time, timezone, tzinfo

from app.application.exceptions import (
    InvalidWindow,
    ServiceNotFound,
    TimeSlotNotFound,
    Unauthorized,
)
from app.application.ports.availability_store import AvailabilityStorePort
from app.application.ports.service_catalog import ServiceCatalogPort
from app.application.utils.segments import segment_minutes_for, slot_segments
from app.domain.entities.time_slot import TimeSlot


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class WindowRequest:
    date: date
    start_time: time
    end_time: time


class AvailabilityManagementUseCase:
    """Provider-side declaration and maintenance of time slots."""

    def __init__(
        self,
        store: AvailabilityStorePort,
        catalog: ServiceCatalogPort,
        timezone: tzinfo,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._catalog = catalog
        self._timezone = timezone
        self._clock = clock or _utc_now
        self._logger = logging.getLogger(__name__)

    def declare_time_slots(
        self,
        provider_id: str,
        service_id: str,
        windows: list[WindowRequest],
    ) -> list[TimeSlot]:
        service = self._catalog.get_service(service_id)
        if service is None:
            raise ServiceNotFound(f"Unknown service {service_id}")
        if service.provider_id != provider_id:
            raise Unauthorized(f"Provider {provider_id} does not offer service {service_id}")
        if not windows:
            raise InvalidWindow("No windows given")

        now = self._clock()
        candidates = [
            TimeSlot(
                id=uuid.uuid4().hex,
                provider_id=provider_id,
                service_id=service_id,
                date=w.date,
                start_time=w.start_time,
                end_time=w.end_time,
                created_at=now,
                updated_at=now,
            )
            for w in windows
        ]

        # Validate the whole batch before storing any of it.
        existing = self._store.list_time_slots(provider_id)
        accepted: list[TimeSlot] = []
        for slot in candidates:
            self._validate_window(slot, existing + accepted)
            accepted.append(slot)

        for slot in accepted:
            self._store.add_time_slot(slot)
        self._logger.info(
            "Time slots declared",
            extra={"actor_id": provider_id, "service": service_id, "count": len(accepted)},
        )
        return accepted

    def update_time_slot(
        self,
        time_slot_id: str,
        provider_id: str,
        start_time: time | None = None,
        end_time: time | None = None,
    ) -> TimeSlot:
        slot = self._owned_slot(time_slot_id, provider_id)
        updated = replace(
            slot,
            start_time=start_time or slot.start_time,
            end_time=end_time or slot.end_time,
            updated_at=self._clock(),
        )
        others = [s for s in self._store.list_time_slots(provider_id) if s.id != slot.id]
        self._validate_window(updated, others)
        return self._store.update_time_slot(updated)

    def remove_time_slot(self, time_slot_id: str, provider_id: str) -> None:
        self._owned_slot(time_slot_id, provider_id)
        self._store.remove_time_slot(time_slot_id)

    def list_provider_time_slots(
        self,
        provider_id: str,
        service_id: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[TimeSlot]:
        slots = self._store.list_time_slots(provider_id, start_date, end_date)
        return [s for s in slots if s.provider_id == provider_id and (service_id is None or s.service_id == service_id)]

    def _owned_slot(self, time_slot_id: str, provider_id: str) -> TimeSlot:
        slot = self._store.get_time_slot(time_slot_id)
        if slot is None:
            raise TimeSlotNotFound(f"Time slot {time_slot_id} not found")
        if slot.provider_id != provider_id:
            raise Unauthorized(f"Time slot {time_slot_id} belongs to another provider")
        return slot

    def _validate_window(self, slot: TimeSlot, others: list[TimeSlot]) -> None:
        service = self._catalog.get_service(slot.service_id)
        if service is None:
            raise ServiceNotFound(f"Unknown service {slot.service_id}")

        # Raises InvalidWindow for end <= start.
        segments = slot_segments(slot, service, self._timezone)
        if not segments:
            raise InvalidWindow(
                f"Window {slot.start_time:%H:%M}-{slot.end_time:%H:%M} is shorter than "
                f"one {segment_minutes_for(slot, service)} minute segment"
            )
        if slot.window_end(self._timezone) <= self._clock():
            raise InvalidWindow(f"Window on {slot.date.isoformat()} is in the past")

        for other in others:
            if other.date != slot.date:
                continue
            if slot.start_time < other.end_time and other.start_time < slot.end_time:
                raise InvalidWindow(
                    f"Window {slot.start_time:%H:%M}-{slot.end_time:%H:%M} overlaps "
                    f"{other.start_time:%H:%M}-{other.end_time:%H:%M} on {slot.date.isoformat()}"
                )
