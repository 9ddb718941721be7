from __future__ import annotations

import logging
import threading
from dataclasses import replace

from app.application.ports.payment import PaymentPort
from app.domain.entities.transaction import PaymentResult, Transaction, TransactionStatus

PLATFORM_COMMISSION_RATE = 0.15


class MockPaymentGateway(PaymentPort):
    def __init__(self, outcome: TransactionStatus = TransactionStatus.completed) -> None:
        self.outcome = outcome
        self._transactions: dict[str, Transaction] = {}
        self._by_booking: dict[str, str] = {}
        self._lock = threading.Lock()
        self._logger = logging.getLogger(__name__)

    def authorize(self, booking_id: str, amount: float) -> PaymentResult:
        with self._lock:
            transaction = Transaction(
                id=f"mock_txn_{len(self._transactions) + 1}",
                booking_id=booking_id,
                amount=amount,
                status=self.outcome,
                platform_commission=round(amount * PLATFORM_COMMISSION_RATE, 2),
            )
            self._transactions[transaction.id] = transaction
            self._by_booking[booking_id] = transaction.id
        self._logger.info(
            "Mock payment authorized",
            extra={"booking_id": booking_id, "status": transaction.status.value},
        )
        return PaymentResult(transaction_id=transaction.id, status=transaction.status)

    def refund(self, transaction_id: str) -> TransactionStatus:
        with self._lock:
            transaction = self._transactions.get(transaction_id)
            if transaction is None:
                return TransactionStatus.failed
            if transaction.status.is_refundable:
                transaction = replace(transaction, status=TransactionStatus.refunded)
                self._transactions[transaction_id] = transaction
        self._logger.info(
            "Mock refund",
            extra={"booking_id": transaction.booking_id, "status": transaction.status.value},
        )
        return transaction.status

    def get_transaction(self, booking_id: str) -> Transaction | None:
        with self._lock:
            transaction_id = self._by_booking.get(booking_id)
            return self._transactions.get(transaction_id) if transaction_id else None
