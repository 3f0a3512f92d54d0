"""
Payment gateway contract.

The subscription workflow depends only on this interface; Paystack is one
implementation (see paystack_service). Any substitute provider must raise the
same errors for the same conditions.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional


class SettlementStatus(str, Enum):
    """Provider's verdict on whether money moved."""

    SUCCESS = "success"
    FAILED = "failed"
    ABANDONED = "abandoned"
    PENDING = "pending"


@dataclass(frozen=True)
class InitializedTransaction:
    authorization_url: str
    reference: str
    access_code: Optional[str] = None


@dataclass(frozen=True)
class PaymentVerificationResult:
    reference: str
    status: SettlementStatus
    amount: Decimal
    currency: str
    paid_at: Optional[datetime] = None
    gateway_response: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class PaymentGateway(ABC):
    """Outbound calls to a payment provider. No side effects beyond the network call."""

    @abstractmethod
    def initialize_transaction(
        self,
        amount: Decimal,
        currency: str,
        callback_url: str,
        metadata: Dict[str, Any],
        email: str,
        reference: str,
    ) -> InitializedTransaction:
        """
        Start a checkout.

        Raises:
            InvalidRequest: malformed amount/currency or provider rejected the request
            GatewayUnavailable: network error, timeout or provider 5xx
        """

    @abstractmethod
    def verify_transaction(self, reference: str) -> PaymentVerificationResult:
        """
        Fetch the settlement status of ``reference``.

        Raises:
            ReferenceNotFound: provider has no record of the reference
            GatewayUnavailable: transient provider error
        """

    @abstractmethod
    def verify_webhook_signature(self, payload: bytes, signature: Optional[str]) -> bool:
        """Return True when ``signature`` authenticates the raw webhook ``payload``."""
