"""
Error taxonomy for the subscription workflow.

Services raise these; route modules translate them into HTTP responses.
"""
from typing import Optional

from fastapi import HTTPException


class SubscriptionError(Exception):
    """Base class for subscription workflow errors."""

    status_code = 500

    def __init__(self, message: str, reference: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.reference = reference


class PlanNotFound(SubscriptionError):
    """Requested plan does not exist or is not active."""

    status_code = 404


class InvalidRequest(SubscriptionError):
    """Malformed create parameters or a request the provider rejected."""

    status_code = 400


class GatewayUnavailable(SubscriptionError):
    """Transient provider failure (network, timeout, 5xx). Safe to retry."""

    status_code = 503


class ReferenceNotFound(SubscriptionError):
    """The payment provider has no record of the reference."""

    status_code = 404


class SubscriptionNotFound(SubscriptionError):
    """No ledger entry exists for the reference."""

    status_code = 404


class AuthenticationFailed(SubscriptionError):
    """Webhook signature missing or invalid."""

    status_code = 401


class Forbidden(SubscriptionError):
    """Caller does not own the reference."""

    status_code = 403


class AmountMismatch(SubscriptionError):
    """Settled amount or currency differs from the ledger entry."""

    status_code = 409

    def __init__(self, message: str, reference: Optional[str] = None, expected=None, received=None):
        super().__init__(message, reference)
        self.expected = expected
        self.received = received


def to_http_exception(error: SubscriptionError):
    """Translate a workflow error into the HTTPException routes raise."""
    code = "".join(
        f"_{char.lower()}" if char.isupper() else char
        for char in type(error).__name__
    ).lstrip("_")
    return HTTPException(
        status_code=error.status_code,
        detail={"error": code, "message": error.message},
    )
