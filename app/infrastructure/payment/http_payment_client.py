from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import httpx

from app.application.exceptions import PaymentGatewayError
from app.application.ports.payment import PaymentPort
from app.core.config import settings
from app.domain.entities.transaction import PaymentResult, Transaction, TransactionStatus


class HttpPaymentGateway(PaymentPort):
    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self._api_key = api_key or settings.PAYMENT_API_KEY
        self._base_url = (base_url or settings.PAYMENT_BASE_URL).rstrip("/")
        self._client = client or httpx.Client(timeout=timeout or settings.PAYMENT_TIMEOUT_SECONDS)
        self._logger = logging.getLogger(__name__)

        if not self._api_key:
            raise ValueError("PAYMENT_API_KEY is required for the payment gateway")

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._api_key}", "Content-Type": "application/json"}

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = self._client.request(method, f"{self._base_url}{path}", headers=self._headers(), **kwargs)
            response.raise_for_status()
            return response
        except httpx.TimeoutException as e:
            self._logger.error("Payment gateway timeout", extra={"reason": f"{method} {path}"})
            raise PaymentGatewayError(f"Payment gateway timed out on {method} {path}") from e
        except httpx.HTTPError as e:
            self._logger.error("Payment gateway error", extra={"reason": str(e)})
            raise PaymentGatewayError(f"Payment gateway failed on {method} {path}: {e}") from e

    def authorize(self, booking_id: str, amount: float) -> PaymentResult:
        response = self._request("POST", "/payments", json={"bookingId": booking_id, "amount": amount})
        data = response.json()
        transaction_id = data.get("transactionId") or data.get("id")
        if not transaction_id:
            raise PaymentGatewayError("No transaction ID returned from payment gateway")
        status = _parse_status(data.get("status"))
        self._logger.info("Payment authorized", extra={"booking_id": booking_id, "status": status.value})
        return PaymentResult(transaction_id=str(transaction_id), status=status)

    def refund(self, transaction_id: str) -> TransactionStatus:
        response = self._request("POST", f"/payments/{transaction_id}/refund")
        return _parse_status(response.json().get("status"))

    def get_transaction(self, booking_id: str) -> Transaction | None:
        try:
            response = self._client.get(
                f"{self._base_url}/payments/booking/{booking_id}",
                headers=self._headers(),
            )
        except httpx.HTTPError as e:
            raise PaymentGatewayError(f"Payment lookup failed for booking {booking_id}: {e}") from e
        if response.status_code == 404:
            return None
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise PaymentGatewayError(f"Payment lookup failed for booking {booking_id}: {e}") from e

        data = response.json()
        created_at = data.get("createdAt")
        return Transaction(
            id=str(data.get("transactionId") or data["id"]),
            booking_id=booking_id,
            amount=float(data.get("amount", 0)),
            status=_parse_status(data.get("status")),
            platform_commission=float(data.get("platformCommission", 0)),
            created_at=(
                datetime.fromisoformat(created_at.replace("Z", "+00:00"))
                if created_at
                else datetime.now(timezone.utc)
            ),
        )


def _parse_status(raw: str | None) -> TransactionStatus:
    try:
        return TransactionStatus(raw or "pending")
    except ValueError as e:
        raise PaymentGatewayError(f"Unknown transaction status {raw!r}") from e
