"""
Paystack implementation of the payment gateway contract.

Talks to the Paystack REST API with httpx: transaction initialization
(checkout), transaction verification, and webhook signature checks.
"""
import hashlib
import hmac
import logging
import re
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Dict, Optional

import httpx

from hkup.core.config import (
    PAYSTACK_SECRET_KEY,
    PAYSTACK_BASE_URL,
    PAYSTACK_TIMEOUT_SECONDS,
)
from hkup.core.exceptions import GatewayUnavailable, InvalidRequest, ReferenceNotFound
from hkup.core.logging_config import sanitize_log_data
from hkup.services.payment_gateway import (
    InitializedTransaction,
    PaymentGateway,
    PaymentVerificationResult,
    SettlementStatus,
)

logger = logging.getLogger(__name__)

CURRENCY_PATTERN = re.compile(r"^[A-Z]{3}$")

# Paystack transaction status -> settlement status
PAYSTACK_STATUS_MAP = {
    "success": SettlementStatus.SUCCESS,
    "failed": SettlementStatus.FAILED,
    "reversed": SettlementStatus.FAILED,
    "abandoned": SettlementStatus.ABANDONED,
}


def to_minor_units(amount: Decimal) -> int:
    """Convert a major-unit amount (e.g. 20.00 USD) to Paystack subunits (2000)."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount: Any) -> Decimal:
    """Convert Paystack subunits back to a two-decimal major-unit amount."""
    return (Decimal(str(amount or 0)) / 100).quantize(Decimal("0.01"))


def parse_paystack_datetime(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed


class PaystackGateway(PaymentGateway):
    """Synchronous Paystack client."""

    def __init__(
        self,
        secret_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.secret_key = secret_key if secret_key is not None else PAYSTACK_SECRET_KEY
        if not self.secret_key:
            logger.warning("PAYSTACK_SECRET_KEY not configured - Paystack calls will fail")

        self.client = httpx.Client(
            base_url=(base_url or PAYSTACK_BASE_URL).rstrip("/"),
            headers={
                "Authorization": f"Bearer {self.secret_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout if timeout is not None else PAYSTACK_TIMEOUT_SECONDS,
            transport=transport,
        )

    def close(self) -> None:
        self.client.close()

    def _request(self, method: str, endpoint: str, data: Optional[Dict[str, Any]] = None) -> httpx.Response:
        try:
            return self.client.request(method, endpoint, json=data)
        except httpx.TimeoutException as e:
            logger.error(f"Paystack timeout: endpoint={endpoint}, error={e}")
            raise GatewayUnavailable(f"Paystack timed out on {endpoint}") from e
        except httpx.HTTPError as e:
            logger.error(f"Paystack network error: endpoint={endpoint}, error={e}")
            raise GatewayUnavailable(f"Paystack unreachable: {e}") from e

    @staticmethod
    def _payload(response: httpx.Response) -> Dict[str, Any]:
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        return payload if isinstance(payload, dict) else {}

    @staticmethod
    def _is_not_found(response: httpx.Response, payload: Dict[str, Any]) -> bool:
        if response.status_code == 404:
            return True
        return "not found" in str(payload.get("message") or "").lower()

    def initialize_transaction(
        self,
        amount: Decimal,
        currency: str,
        callback_url: str,
        metadata: Dict[str, Any],
        email: str,
        reference: str,
    ) -> InitializedTransaction:
        try:
            amount = Decimal(amount)
        except (InvalidOperation, TypeError) as e:
            raise InvalidRequest(f"Invalid amount: {amount}") from e
        if not amount.is_finite() or amount <= 0:
            raise InvalidRequest(f"Amount must be positive, got {amount}")
        if not isinstance(currency, str) or not CURRENCY_PATTERN.match(currency):
            raise InvalidRequest(f"Invalid currency code: {currency!r}")

        data = {
            "amount": to_minor_units(amount),
            "email": email,
            "currency": currency,
            "reference": reference,
            "callback_url": callback_url,
            "metadata": metadata,
        }
        response = self._request("POST", "/transaction/initialize", data)
        payload = self._payload(response)

        if response.status_code >= 500 or response.status_code == 429:
            logger.error(f"Paystack initialize failed: status={response.status_code}, reference={reference}")
            raise GatewayUnavailable(f"Paystack returned {response.status_code}", reference)

        if response.status_code >= 400 or not payload.get("status"):
            logger.error(
                f"Paystack rejected initialize: status={response.status_code}, "
                f"response={sanitize_log_data(payload)}"
            )
            raise InvalidRequest(payload.get("message") or "Paystack rejected the transaction", reference)

        body = payload.get("data")
        if not isinstance(body, dict) or not body.get("authorization_url"):
            logger.error(
                f"Paystack initialize returned no checkout URL: reference={reference}, "
                f"response={sanitize_log_data(payload)}"
            )
            raise GatewayUnavailable("Paystack returned no authorization_url", reference)

        logger.info(f"Paystack transaction initialized: reference={body.get('reference', reference)}")
        return InitializedTransaction(
            authorization_url=body["authorization_url"],
            reference=body.get("reference", reference),
            access_code=body.get("access_code"),
        )

    def verify_transaction(self, reference: str) -> PaymentVerificationResult:
        response = self._request("GET", f"/transaction/verify/{reference}")
        payload = self._payload(response)

        if response.status_code >= 500 or response.status_code == 429:
            logger.error(f"Paystack verify failed: status={response.status_code}, reference={reference}")
            raise GatewayUnavailable(f"Paystack returned {response.status_code}", reference)

        if response.status_code in (401, 403):
            logger.error(
                f"Paystack refused credentials on verify: status={response.status_code}, "
                f"reference={reference}, message={payload.get('message')}"
            )
            raise GatewayUnavailable(f"Paystack rejected the secret key ({response.status_code})", reference)

        if response.status_code >= 400 or not payload.get("status"):
            # Paystack answers 400/404 "Transaction reference not found" for unknown references
            if not self._is_not_found(response, payload):
                logger.error(
                    f"Paystack verify error: status={response.status_code}, reference={reference}, "
                    f"response={sanitize_log_data(payload)}"
                )
                raise GatewayUnavailable(f"Paystack verify failed with {response.status_code}", reference)
            logger.warning(f"Paystack has no transaction: reference={reference}, message={payload.get('message')}")
            raise ReferenceNotFound(payload.get("message") or "Transaction reference not found", reference)

        body = payload.get("data") or {}
        raw_status = str(body.get("status") or "").lower()
        status = PAYSTACK_STATUS_MAP.get(raw_status, SettlementStatus.PENDING)
        metadata = body.get("metadata")

        result = PaymentVerificationResult(
            reference=body.get("reference", reference),
            status=status,
            amount=from_minor_units(body.get("amount")),
            currency=str(body.get("currency") or "").upper(),
            paid_at=parse_paystack_datetime(body.get("paid_at") or body.get("paidAt")),
            gateway_response=body.get("gateway_response"),
            metadata=metadata if isinstance(metadata, dict) else {},
        )
        logger.info(f"Paystack verification: reference={reference}, status={raw_status}, amount={result.amount} {result.currency}")
        return result

    def verify_webhook_signature(self, payload: bytes, signature: Optional[str]) -> bool:
        """Paystack signs webhook bodies with HMAC-SHA512 keyed by the secret key."""
        if not signature or not self.secret_key:
            return False
        expected = hmac.new(self.secret_key.encode("utf-8"), payload, hashlib.sha512).hexdigest()
        return hmac.compare_digest(expected, signature)


_gateway: Optional[PaystackGateway] = None


def get_payment_gateway() -> PaymentGateway:
    """FastAPI dependency returning the process-wide Paystack gateway."""
    global _gateway
    if _gateway is None:
        _gateway = PaystackGateway()
    return _gateway
