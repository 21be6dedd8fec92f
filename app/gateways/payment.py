# app/gateways/payment.py
"""
Payment gateway client.

The gateway is an opaque external service: a charge either succeeds
(with a reference), is declined (with a reason), or cannot be decided
because the service timed out or was unreachable. The last case raises
PaymentGatewayUnavailable so the caller can abort its transaction.
"""

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Final, Protocol

import requests

from app.core.config import Settings, get_settings

logger = logging.getLogger(__name__)

CURRENCY: Final[str] = "EUR"


@dataclass(frozen=True, slots=True)
class PaymentResult:
    success: bool
    reference: str | None = None
    reason: str | None = None


class PaymentGatewayUnavailable(Exception):
    """Timeout, transport failure or 5xx; the charge outcome is unknown."""


class PaymentGateway(Protocol):
    def charge(
        self, order_id: uuid.UUID, amount: Decimal, method: str, attempt: int = 1
    ) -> PaymentResult: ...

    def refund(self, reference: str, amount: Decimal) -> bool: ...


class HttpPaymentGateway:
    """
    JSON-over-HTTP gateway client with a bounded timeout.

    Each charge attempt is sent with its own idempotency key (order id plus
    attempt number): resending the same attempt cannot capture twice, while
    a new attempt after a decline is a fresh charge on the gateway side.
    """

    def __init__(self, base_url: str, api_key: str | None, timeout: float):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    def _headers(self, idempotency_key: str) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Idempotency-Key": idempotency_key,
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _post(self, path: str, payload: dict, idempotency_key: str) -> requests.Response:
        try:
            response = requests.post(
                f"{self.base_url}{path}",
                json=payload,
                headers=self._headers(idempotency_key),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.exception("Payment gateway request failed path=%s", path)
            raise PaymentGatewayUnavailable(str(exc)) from exc
        if response.status_code >= 500:
            logger.error(
                "Payment gateway error path=%s status=%s", path, response.status_code
            )
            raise PaymentGatewayUnavailable(
                f"gateway returned HTTP {response.status_code}"
            )
        return response

    def charge(
        self, order_id: uuid.UUID, amount: Decimal, method: str, attempt: int = 1
    ) -> PaymentResult:
        response = self._post(
            "/charges",
            {
                "order_id": str(order_id),
                "amount": str(amount),
                "currency": CURRENCY,
                "method": method,
            },
            idempotency_key=f"charge-{order_id}-{attempt}",
        )
        try:
            payload = response.json()
        except ValueError as exc:
            raise PaymentGatewayUnavailable("gateway returned a non-JSON body") from exc

        if response.ok and payload.get("status") == "succeeded":
            return PaymentResult(success=True, reference=payload.get("id"))

        reason = payload.get("reason") or payload.get("status") or "declined"
        return PaymentResult(success=False, reference=payload.get("id"), reason=reason)

    def refund(self, reference: str, amount: Decimal) -> bool:
        response = self._post(
            "/refunds",
            {"charge_id": reference, "amount": str(amount), "currency": CURRENCY},
            idempotency_key=f"refund-{reference}",
        )
        return response.ok


class StubPaymentGateway:
    """
    Accepts every charge. Used when no PAYMENT_GATEWAY_URL is configured.
    """

    def charge(
        self, order_id: uuid.UUID, amount: Decimal, method: str, attempt: int = 1
    ) -> PaymentResult:
        reference = f"stub_{uuid.uuid4().hex}"
        logger.info("Stub charge order=%s amount=%s ref=%s", order_id, amount, reference)
        return PaymentResult(success=True, reference=reference)

    def refund(self, reference: str, amount: Decimal) -> bool:
        logger.info("Stub refund ref=%s amount=%s", reference, amount)
        return True


def get_payment_gateway(settings: Settings | None = None) -> PaymentGateway:
    settings = settings or get_settings()
    if settings.PAYMENT_GATEWAY_URL:
        return HttpPaymentGateway(
            base_url=settings.PAYMENT_GATEWAY_URL,
            api_key=settings.PAYMENT_GATEWAY_API_KEY,
            timeout=settings.PAYMENT_TIMEOUT_SECONDS,
        )
    return StubPaymentGateway()
