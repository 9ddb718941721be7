from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable

from app.domain.entities.booking_event import BookingEvent


class EventPublisherPort(ABC):
    @abstractmethod
    def publish(self, event: BookingEvent) -> None:
        raise NotImplementedError

    @abstractmethod
    def subscribe(self, handler: Callable[[BookingEvent], None]) -> None:
        raise NotImplementedError
