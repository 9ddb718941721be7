from __future__ import annotations

import logging
from datetime import date

from app.application.exceptions import (
    IllegalTransition,
    InvalidWindow,
    PaymentGatewayError,
    ServiceNotFound,
    Unauthorized,
)
from app.application.ports.availability_store import AvailabilityStorePort
from app.application.ports.booking_repository import BookingRepositoryPort
from app.application.ports.payment import PaymentPort
from app.application.ports.service_catalog import ServiceCatalogPort
from app.application.use_cases.booking_lifecycle import BookingLifecycle
from app.application.use_cases.reservation import ReservationCoordinator
from app.domain.entities.actor import SYSTEM_ACTOR, ActorRole, resolve_role
from app.domain.entities.booking import Booking, BookingDraft, BookingPage, BookingStatus
from app.domain.entities.segment import SegmentRef, SlotAvailability
from app.domain.entities.transaction import Transaction, TransactionStatus

MAX_AVAILABILITY_DAYS = 62
MAX_PAGE_SIZE = 100


class BookingService:
    """Facade used by the HTTP layer and scripts."""

    def __init__(
        self,
        store: AvailabilityStorePort,
        catalog: ServiceCatalogPort,
        bookings: BookingRepositoryPort,
        coordinator: ReservationCoordinator,
        lifecycle: BookingLifecycle,
        payments: PaymentPort,
    ) -> None:
        self._store = store
        self._catalog = catalog
        self._bookings = bookings
        self._coordinator = coordinator
        self._lifecycle = lifecycle
        self._payments = payments
        self._logger = logging.getLogger(__name__)

    def list_availability(self, service_id: str, start_date: date, end_date: date) -> dict[date, list[SlotAvailability]]:
        if self._catalog.get_service(service_id) is None:
            raise ServiceNotFound(f"Unknown service {service_id}")
        self._check_range(start_date, end_date)
        return self._store.list_availability(service_id, start_date, end_date)

    def list_provider_availability(
        self,
        provider_id: str,
        start_date: date,
        end_date: date,
    ) -> dict[date, list[SlotAvailability]]:
        self._check_range(start_date, end_date)
        return self._store.list_availability(provider_id, start_date, end_date)

    def reserve_and_book(self, segment_ref: SegmentRef, draft: BookingDraft) -> Booking:
        return self._coordinator.reserve_and_create_booking(segment_ref, draft)

    def advance_status(self, booking_id: str, target_status: BookingStatus | str, actor_id: str) -> Booking:
        return self._lifecycle.advance_status(booking_id, target_status, actor_id)

    def cancel(self, booking_id: str, actor_id: str, reason: str | None = None) -> Booking:
        return self._lifecycle.advance_status(booking_id, BookingStatus.cancelled, actor_id, reason=reason)

    def authorize_payment(self, booking_id: str, actor_id: str) -> Transaction:
        """
        Charge the client for a pending booking. A completed transaction
        confirms the booking as the system actor; any other outcome leaves
        it pending.
        """
        booking = self._lifecycle.get(booking_id)
        if resolve_role(booking, actor_id) != ActorRole.client:
            raise Unauthorized(f"Only the booking's client can pay for booking {booking_id}")
        if booking.status != BookingStatus.pending:
            raise IllegalTransition(f"Booking {booking_id} is {booking.status.value}, payment not needed")

        existing = self._payments.get_transaction(booking_id)
        if existing is not None and existing.status == TransactionStatus.completed:
            transaction = existing
        else:
            result = self._payments.authorize(booking_id, booking.total_price)
            transaction = self._payments.get_transaction(booking_id)
            if transaction is None:
                raise PaymentGatewayError(f"Transaction {result.transaction_id} not found after authorize")

        if transaction.status == TransactionStatus.completed:
            self._lifecycle.advance_status(booking_id, BookingStatus.confirmed, SYSTEM_ACTOR)
        else:
            self._logger.warning(
                "Payment not completed",
                extra={"booking_id": booking_id, "status": transaction.status.value},
            )
        return transaction

    def get_booking(self, booking_id: str, actor_id: str) -> Booking:
        return self._lifecycle.get_for_actor(booking_id, actor_id)

    def list_bookings(
        self,
        actor_id: str,
        role: str = "user",
        status: BookingStatus | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> BookingPage:
        limit = min(max(limit, 1), MAX_PAGE_SIZE)
        if role == "provider":
            return self._bookings.list_bookings(
                provider_id=actor_id, status=status, start_date=start_date, end_date=end_date, page=page, limit=limit
            )
        return self._bookings.list_bookings(
            user_id=actor_id, status=status, start_date=start_date, end_date=end_date, page=page, limit=limit
        )

    def is_chat_eligible(self, booking_id: str) -> bool:
        return self._lifecycle.is_chat_eligible(booking_id)

    def is_review_eligible(self, booking_id: str) -> bool:
        return self._lifecycle.is_review_eligible(booking_id)

    def _check_range(self, start_date: date, end_date: date) -> None:
        if end_date < start_date:
            raise InvalidWindow(f"Date range end {end_date.isoformat()} is before start {start_date.isoformat()}")
        if (end_date - start_date).days > MAX_AVAILABILITY_DAYS:
            raise InvalidWindow(f"Date range is limited to {MAX_AVAILABILITY_DAYS} days")
