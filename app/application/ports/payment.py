from __future__ import annotations

from abc import ABC, abstractmethod

from app.domain.entities.transaction import PaymentResult, Transaction, TransactionStatus


class PaymentPort(ABC):
    @abstractmethod
    def authorize(self, booking_id: str, amount: float) -> PaymentResult:
        """Authorize and capture amount for booking. Raises PaymentGatewayError."""
        raise NotImplementedError

    @abstractmethod
    def refund(self, transaction_id: str) -> TransactionStatus:
        raise NotImplementedError

    @abstractmethod
    def get_transaction(self, booking_id: str) -> Transaction | None:
        """Latest transaction for a booking, if any."""
        raise NotImplementedError
