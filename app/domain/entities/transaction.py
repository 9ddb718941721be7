from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class TransactionStatus(str, Enum):
    pending = "pending"
    completed = "completed"
    failed = "failed"
    refunded = "refunded"
    partially_refunded = "partially_refunded"

    @property
    def is_refundable(self) -> bool:
        return self in (TransactionStatus.pending, TransactionStatus.completed)


@dataclass(frozen=True)
class PaymentResult:
    transaction_id: str
    status: TransactionStatus


@dataclass(frozen=True)
class Transaction:
    id: str
    booking_id: str
    amount: float
    status: TransactionStatus
    platform_commission: float = 0.0
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
