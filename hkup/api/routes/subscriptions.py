"""
Subscription endpoints: checkout creation, the Paystack redirect callback,
client polling, and the caller's entitlement/ledger views.
"""
import logging
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, status
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from hkup.core.auth_dependency import get_db, get_current_user_obj
from hkup.core.config import CLIENT_URL, VERIFY_RATE_LIMIT, VERIFY_RATE_WINDOW_SECONDS
from hkup.core.exceptions import (
    Forbidden,
    SubscriptionError,
    SubscriptionNotFound,
    to_http_exception,
)
from hkup.core.gating import get_entitlement, is_entitled
from hkup.core.rate_limit import check_rate_limit
from hkup.db.models.user import User
from hkup.schemas.billing import (
    CreateSubscriptionRequest,
    CreateSubscriptionResponse,
    SubscriptionHistoryResponse,
    SubscriptionResponse,
    ReconcilePendingResponse,
    SubscriptionStatusResponse,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
)
from hkup.services.payment_gateway import PaymentGateway
from hkup.services.paystack_service import get_payment_gateway
from hkup.services.subscription_service import (
    ReconcileOutcome,
    create_subscription,
    get_latest_active_subscription,
    list_user_subscriptions,
    parse_reference_user_id,
    reconcile,
    reconcile_pending,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/subscriptions", tags=["Subscriptions"])


def _client_redirect(page: str, **params) -> RedirectResponse:
    query = urlencode({key: value for key, value in params.items() if value is not None})
    url = f"{CLIENT_URL}/subscription/{page}"
    if query:
        url = f"{url}?{query}"
    return RedirectResponse(url=url, status_code=status.HTTP_303_SEE_OTHER)


# ✅ START CHECKOUT
@router.post("", response_model=CreateSubscriptionResponse, status_code=status.HTTP_201_CREATED)
def create(
    request: CreateSubscriptionRequest,
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """
    Create a pending subscription and a Paystack checkout for it.

    The client sends the browser to ``authorizationUrl``; Paystack returns it to
    ``/subscriptions/callback`` when the checkout completes.
    """
    try:
        checkout = create_subscription(db, gateway, user, request.plan_id, request.country_code)
    except SubscriptionError as e:
        raise to_http_exception(e)

    return CreateSubscriptionResponse(
        subscription_id=checkout.subscription_id,
        authorization_url=checkout.authorization_url,
        reference=checkout.reference,
    )


# ✅ PAYSTACK REDIRECT CALLBACK
@router.get("/callback")
def paystack_callback(
    reference: Optional[str] = None,
    trxref: Optional[str] = None,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """
    Browser lands here after checkout. Always answers with a redirect to the client.
    """
    payment_reference = reference or trxref
    if not payment_reference:
        logger.warning("Callback without payment reference")
        return _client_redirect("failed", reason="missing_reference")

    try:
        outcome = reconcile(db, gateway, payment_reference)
    except SubscriptionNotFound:
        logger.warning(f"Callback for unknown reference: {payment_reference}")
        return _client_redirect("failed", reference=payment_reference, reason="not_found")
    except SubscriptionError as e:
        logger.error(f"Callback reconcile failed: reference={payment_reference}, error={e}")
        return _client_redirect("pending", reference=payment_reference, reason="retry")
    except Exception:
        logger.exception(f"Callback crashed: reference={payment_reference}")
        return _client_redirect("pending", reference=payment_reference, reason="retry")

    logger.info(f"Callback reconciled: reference={payment_reference}, outcome={outcome.value}")

    if outcome in (ReconcileOutcome.ACTIVATED, ReconcileOutcome.ALREADY_ACTIVE):
        return _client_redirect("success", reference=payment_reference, verified="true")
    if outcome == ReconcileOutcome.PENDING:
        return _client_redirect("pending", reference=payment_reference)
    return _client_redirect("failed", reference=payment_reference, reason="payment_failed")


# ✅ CLIENT POLLING
@router.post("/verify", response_model=VerifyPaymentResponse)
def verify_payment(
    request: VerifyPaymentRequest,
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """
    Ask whether a checkout has settled. Keep polling while ``outcome`` is ``pending``.
    """
    reference = request.reference.strip()

    # Ownership comes from the reference itself, before any ledger read
    if parse_reference_user_id(reference) != user.id:
        logger.warning(f"Verify forbidden: user_id={user.id}, reference={reference}")
        raise to_http_exception(Forbidden("Reference does not belong to the caller", reference))

    check_rate_limit(
        f"verify:{user.id}:{reference}",
        max_requests=VERIFY_RATE_LIMIT,
        window_seconds=VERIFY_RATE_WINDOW_SECONDS,
    )

    try:
        outcome = reconcile(db, gateway, reference)
    except SubscriptionError as e:
        raise to_http_exception(e)

    db.refresh(user)
    return VerifyPaymentResponse(
        reference=reference,
        outcome=outcome.value,
        is_subscribed=is_entitled(user),
    )


# ✅ ENTITLEMENT STATUS
@router.get("/status", response_model=SubscriptionStatusResponse)
def subscription_status(
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db),
):
    """Current entitlement and latest active subscription of the caller."""
    entitlement = get_entitlement(user)
    latest = get_latest_active_subscription(db, user.id) if entitlement["is_subscribed"] else None
    return SubscriptionStatusResponse(
        **entitlement,
        subscription=SubscriptionResponse.model_validate(latest) if latest else None,
    )


# ✅ LEDGER HISTORY
@router.get("/history", response_model=SubscriptionHistoryResponse)
def subscription_history(
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db),
):
    """All checkout attempts of the caller, newest first."""
    rows = list_user_subscriptions(db, user.id)
    return SubscriptionHistoryResponse(
        subscriptions=[SubscriptionResponse.model_validate(row) for row in rows]
    )


# ✅ RE-CHECK ALL OF MY PENDING CHECKOUTS
@router.post("/reconcile-pending", response_model=ReconcilePendingResponse)
def reconcile_my_pending(
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """
    Verify each of the caller's pending checkouts with Paystack.

    Nothing is activated without a confirmed settlement.
    """
    check_rate_limit(
        f"reconcile-pending:{user.id}",
        max_requests=VERIFY_RATE_LIMIT,
        window_seconds=VERIFY_RATE_WINDOW_SECONDS,
    )
    outcomes = reconcile_pending(db, gateway, user_id=user.id)
    db.refresh(user)
    return ReconcilePendingResponse(
        outcomes={reference: outcome.value for reference, outcome in outcomes.items()},
        is_subscribed=is_entitled(user),
    )
