from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timezone

from app.application.exceptions import (
    BookingNotFound,
    IllegalTransition,
    PaymentGatewayError,
    PaymentNotCompleted,
    Unauthorized,
)
from app.application.ports.availability_store import AvailabilityStorePort
from app.application.ports.booking_repository import BookingRepositoryPort
from app.application.ports.event_publisher import EventPublisherPort
from app.application.ports.payment import PaymentPort
from app.domain.entities.actor import ActorRole, resolve_role
from app.domain.entities.booking import Booking, BookingStatus
from app.domain.entities.booking_event import BookingEvent
from app.domain.entities.transaction import TransactionStatus

PAYMENT_REQUIRED = "payment_required"
PROVIDER_OVERRIDE = "provider_override"

TRANSITIONS: dict[tuple[BookingStatus, BookingStatus], frozenset[ActorRole]] = {
    (BookingStatus.pending, BookingStatus.confirmed): frozenset({ActorRole.provider, ActorRole.system}),
    (BookingStatus.pending, BookingStatus.cancelled): frozenset({ActorRole.client, ActorRole.provider}),
    (BookingStatus.confirmed, BookingStatus.in_progress): frozenset({ActorRole.provider}),
    (BookingStatus.confirmed, BookingStatus.cancelled): frozenset({ActorRole.client, ActorRole.provider}),
    (BookingStatus.in_progress, BookingStatus.completed): frozenset({ActorRole.provider}),
}

# Re-issuing one of these on a booking already there is a successful no-op.
IDEMPOTENT_TARGETS = frozenset({BookingStatus.confirmed, BookingStatus.in_progress, BookingStatus.completed})

EVENT_NAMES = {
    BookingStatus.pending: "booking.created",
    BookingStatus.confirmed: "booking.confirmed",
    BookingStatus.in_progress: "booking.started",
    BookingStatus.completed: "booking.completed",
    BookingStatus.cancelled: "booking.cancelled",
}

_MAX_WRITE_ATTEMPTS = 3


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BookingLifecycle:
    """
    The only writer of Booking.status. Every change is checked against
    TRANSITIONS, the actor's role on the booking, and the confirmation policy,
    then stored with a compare-and-set on the status it was decided from.
    """

    def __init__(
        self,
        bookings: BookingRepositoryPort,
        store: AvailabilityStorePort,
        payments: PaymentPort,
        events: EventPublisherPort,
        clock: Callable[[], datetime] | None = None,
        confirmation_policy: str = PAYMENT_REQUIRED,
        enforce_start_time: bool = False,
    ) -> None:
        if confirmation_policy not in (PAYMENT_REQUIRED, PROVIDER_OVERRIDE):
            raise ValueError(f"Unknown confirmation policy {confirmation_policy!r}")
        self._bookings = bookings
        self._store = store
        self._payments = payments
        self._events = events
        self._clock = clock or _utc_now
        self._confirmation_policy = confirmation_policy
        self._enforce_start_time = enforce_start_time
        self._logger = logging.getLogger(__name__)

    def create_pending(self, booking: Booking) -> Booking:
        if booking.status != BookingStatus.pending:
            raise IllegalTransition(f"New bookings start as pending, got {booking.status.value}")
        return self._bookings.add(booking)

    def discard(self, booking_id: str) -> None:
        """Remove a pending booking whose reservation never committed."""
        self._bookings.delete(booking_id)

    def announce_created(self, booking: Booking) -> None:
        self._publish(booking, booking.user_id)

    def get(self, booking_id: str) -> Booking:
        booking = self._bookings.get(booking_id)
        if booking is None:
            raise BookingNotFound(f"Booking {booking_id} not found")
        return booking

    def get_for_actor(self, booking_id: str, actor_id: str) -> Booking:
        booking = self.get(booking_id)
        if resolve_role(booking, actor_id) is None:
            raise Unauthorized(f"Actor {actor_id} is not a participant of booking {booking_id}")
        return booking

    def advance_status(
        self,
        booking_id: str,
        target_status: BookingStatus | str,
        actor_id: str,
        reason: str | None = None,
    ) -> Booking:
        try:
            target = BookingStatus(target_status)
        except ValueError:
            raise IllegalTransition(f"Unknown booking status {target_status!r}") from None

        for _ in range(_MAX_WRITE_ATTEMPTS):
            booking = self.get(booking_id)
            role = resolve_role(booking, actor_id)
            if role is None:
                raise Unauthorized(f"Actor {actor_id} is not a participant of booking {booking_id}")

            if booking.status == target and target in IDEMPOTENT_TARGETS:
                if role not in self._roles_into(target):
                    raise Unauthorized(f"{role.value} may not set booking status to {target.value}")
                self._logger.info(
                    "Status already reached",
                    extra={"booking_id": booking_id, "status": target.value, "actor_id": actor_id},
                )
                return booking

            if booking.status.is_terminal:
                raise IllegalTransition(f"Booking {booking_id} is {booking.status.value} and can no longer change")
            allowed = TRANSITIONS.get((booking.status, target))
            if allowed is None:
                raise IllegalTransition(f"Cannot move booking from {booking.status.value} to {target.value}")
            if role not in allowed:
                raise Unauthorized(
                    f"{role.value} may not move booking from {booking.status.value} to {target.value}"
                )

            if target == BookingStatus.confirmed:
                self._check_payment(booking, role)
            elif target == BookingStatus.in_progress:
                self._check_start_time(booking)

            now = self._clock()
            updated = replace(booking, status=target, updated_at=now)
            if target == BookingStatus.cancelled:
                updated = replace(updated, cancellation_reason=reason, cancelled_by=actor_id)

            if self._bookings.compare_and_set(updated, booking.status):
                break
            self._logger.info("Concurrent status change, re-evaluating", extra={"booking_id": booking_id})
        else:
            raise IllegalTransition(f"Booking {booking_id} kept changing while moving to {target.value}")

        self._logger.info(
            "Booking status changed",
            extra={"booking_id": booking_id, "status": target.value, "actor_id": actor_id},
        )
        if target == BookingStatus.cancelled:
            self._release_and_refund(updated)
        self._publish(updated, actor_id)
        return updated

    def is_chat_eligible(self, booking_id: str) -> bool:
        return self.get(booking_id).status in (BookingStatus.confirmed, BookingStatus.in_progress)

    def is_review_eligible(self, booking_id: str) -> bool:
        return self.get(booking_id).status == BookingStatus.completed

    def _roles_into(self, target: BookingStatus) -> frozenset[ActorRole]:
        roles: frozenset[ActorRole] = frozenset()
        for (_, to_status), allowed in TRANSITIONS.items():
            if to_status == target:
                roles |= allowed
        return roles

    def _check_payment(self, booking: Booking, role: ActorRole) -> None:
        if self._confirmation_policy == PROVIDER_OVERRIDE and role == ActorRole.provider:
            return
        transaction = self._payments.get_transaction(booking.id)
        if transaction is None or transaction.status != TransactionStatus.completed:
            status = transaction.status.value if transaction else "missing"
            raise PaymentNotCompleted(f"Booking {booking.id} payment is {status}")

    def _check_start_time(self, booking: Booking) -> None:
        now = self._clock()
        if now >= booking.date_time:
            return
        if self._enforce_start_time:
            raise IllegalTransition(f"Booking {booking.id} starts at {booking.date_time.isoformat()}")
        self._logger.warning(
            "Booking started before scheduled time",
            extra={"booking_id": booking.id, "reason": f"scheduled {booking.date_time.isoformat()}"},
        )

    def _release_and_refund(self, booking: Booking) -> None:
        if not self._store.release_segment(booking.segment_ref, booking.id):
            self._logger.warning(
                "Cancelled booking did not own its segment",
                extra={"booking_id": booking.id, "segment": str(booking.segment_ref)},
            )

        transaction = self._payments.get_transaction(booking.id)
        if transaction is None or not transaction.status.is_refundable:
            return
        try:
            status = self._payments.refund(transaction.id)
            self._logger.info(
                "Refund requested",
                extra={"booking_id": booking.id, "status": status.value},
            )
        except PaymentGatewayError as e:
            # The booking stays cancelled.
            self._logger.error(
                "Refund failed",
                extra={"booking_id": booking.id, "reason": str(e)},
            )

    def _publish(self, booking: Booking, actor_id: str | None) -> None:
        self._events.publish(
            BookingEvent(
                name=EVENT_NAMES[booking.status],
                booking_id=booking.id,
                status=booking.status,
                actor_id=actor_id,
                occurred_at=self._clock(),
            )
        )
