from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date

from app.domain.entities.booking import Booking, BookingPage, BookingStatus


class BookingRepositoryPort(ABC):
    @abstractmethod
    def add(self, booking: Booking) -> Booking:
        raise NotImplementedError

    @abstractmethod
    def get(self, booking_id: str) -> Booking | None:
        raise NotImplementedError

    @abstractmethod
    def delete(self, booking_id: str) -> None:
        """Only used to roll back a reservation that never committed."""
        raise NotImplementedError

    @abstractmethod
    def compare_and_set(self, booking: Booking, expected_status: BookingStatus) -> bool:
        """
        Store booking only if the persisted status still equals expected_status.
        Returns False when another writer got there first.
        """
        raise NotImplementedError

    @abstractmethod
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
        raise NotImplementedError

    @abstractmethod
    def list_by_status(self, status: BookingStatus) -> list[Booking]:
        raise NotImplementedError
