"""
Payment gateway client - Verify a payment reference

The core's only contract with the gateway: given a reference, the gateway
says whether the charge succeeded and for how much.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional, Protocol

import httpx

from payloom.core.escrow.errors import ExternalDependencyError, ValidationError
from payloom.infrastructure.settings import get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GatewayVerification:
    success: bool
    amount: Decimal
    reference: str
    currency: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class PaymentGateway(Protocol):
    def verify(self, reference: str) -> GatewayVerification:
        ...


class PaystackGateway:
    """
    Paystack verify-by-reference over httpx.

    Paystack reports amounts in the currency's minor unit (kobo, cents), so
    amounts are divided by 100.
    """

    def __init__(
        self,
        secret_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.Client] = None,
    ):
        settings = get_settings()
        self.secret_key = secret_key if secret_key is not None else settings.PAYSTACK_SECRET_KEY
        self.base_url = (base_url or settings.PAYSTACK_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.PAYSTACK_TIMEOUT_SECONDS
        self._client = client

    def verify(self, reference: str) -> GatewayVerification:
        """
        Raises:
            ValidationError: empty reference or gateway rejected it (4xx)
            ExternalDependencyError: network failure, timeout or 5xx
        """
        if not reference or not reference.strip():
            raise ValidationError("Payment reference is required")
        if not self.secret_key:
            raise ExternalDependencyError("Payment gateway is not configured")

        url = f"{self.base_url}/transaction/verify/{reference.strip()}"
        headers = {"Authorization": f"Bearer {self.secret_key}"}
        try:
            if self._client is not None:
                response = self._client.get(url, headers=headers, timeout=self.timeout)
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    response = client.get(url, headers=headers)
        except httpx.HTTPError as e:
            logger.warning("Paystack verify failed", extra={"reference": reference, "error": str(e)})
            raise ExternalDependencyError("Payment gateway unreachable") from e

        if response.status_code >= 500:
            raise ExternalDependencyError(f"Payment gateway error (HTTP {response.status_code})")
        if response.status_code >= 400:
            raise ValidationError(f"Payment reference rejected by gateway (HTTP {response.status_code})")

        try:
            body = response.json()
        except ValueError as e:
            raise ExternalDependencyError("Payment gateway returned invalid JSON") from e

        return parse_paystack_charge(body.get("data") or {}, fallback_reference=reference)


def parse_paystack_charge(data: Dict[str, Any], fallback_reference: str = "") -> GatewayVerification:
    """Build a verification from a Paystack charge object (verify response or webhook data)"""
    raw_amount = data.get("amount") or 0
    try:
        amount = Decimal(str(raw_amount)) / Decimal("100")
    except ArithmeticError as e:
        raise ValidationError("Invalid amount from gateway") from e
    return GatewayVerification(
        success=data.get("status") == "success",
        amount=amount,
        reference=str(data.get("reference") or fallback_reference),
        currency=data.get("currency"),
        metadata=data.get("metadata") if isinstance(data.get("metadata"), dict) else None,
    )


_default_gateway: Optional[PaymentGateway] = None


def get_payment_gateway() -> PaymentGateway:
    """FastAPI dependency returning the configured gateway"""
    global _default_gateway
    if _default_gateway is None:
        _default_gateway = PaystackGateway()
    return _default_gateway
