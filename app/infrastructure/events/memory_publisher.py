from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from app.application.ports.event_publisher import EventPublisherPort
from app.domain.entities.booking_event import BookingEvent


class InMemoryEventPublisher(EventPublisherPort):
    """Fans events out to in-process subscribers (chat enablement, notifications, reviews)."""

    def __init__(self, history_limit: int = 200) -> None:
        self._handlers: list[Callable[[BookingEvent], None]] = []
        self._history: list[BookingEvent] = []
        self._history_limit = history_limit
        self._lock = threading.Lock()
        self._logger = logging.getLogger(__name__)

    def subscribe(self, handler: Callable[[BookingEvent], None]) -> None:
        with self._lock:
            self._handlers.append(handler)

    def publish(self, event: BookingEvent) -> None:
        with self._lock:
            self._history.append(event)
            if len(self._history) > self._history_limit:
                self._history = self._history[-self._history_limit :]
            handlers = list(self._handlers)

        self._logger.info(
            "Booking event",
            extra={"booking_id": event.booking_id, "status": event.status.value, "actor_id": event.actor_id},
        )
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                # A failing subscriber never undoes a transition.
                self._logger.exception("Event handler failed", extra={"booking_id": event.booking_id})

    def history(self) -> list[BookingEvent]:
        with self._lock:
            return list(self._history)
