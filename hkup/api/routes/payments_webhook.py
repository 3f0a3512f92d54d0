import json
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from hkup.core.auth_dependency import get_db
from hkup.core.exceptions import (
    AuthenticationFailed,
    GatewayUnavailable,
    SubscriptionNotFound,
    to_http_exception,
)
from hkup.core.rate_limit import get_client_ip
from hkup.schemas.billing import WebhookAck
from hkup.services.payment_gateway import PaymentGateway
from hkup.services.paystack_service import get_payment_gateway
from hkup.services.subscription_service import reconcile

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments Webhook"])

# Events that carry a transaction reference worth reconciling
RECONCILE_EVENTS = {"charge.success", "charge.failed"}


@router.post("/webhook", response_model=WebhookAck)
async def paystack_webhook(
    request: Request,
    x_paystack_signature: str = Header(None),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """
    Paystack server-to-server notification.

    The payload only tells us which reference to look at; settlement is always
    re-verified with Paystack inside ``reconcile``.
    """
    payload = await request.body()

    if not gateway.verify_webhook_signature(payload, x_paystack_signature):
        logger.warning(f"Webhook signature rejected: ip={get_client_ip(request)}")
        raise to_http_exception(AuthenticationFailed("Invalid webhook signature"))

    try:
        event = json.loads(payload)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid webhook payload")

    event_type = event.get("event") if isinstance(event, dict) else None
    data = event.get("data") if isinstance(event, dict) else None
    reference = data.get("reference") if isinstance(data, dict) else None

    if event_type not in RECONCILE_EVENTS or not reference:
        logger.info(f"Webhook acknowledged without action: event={event_type}")
        return WebhookAck(outcome="ignored")

    try:
        outcome = await run_in_threadpool(reconcile, db, gateway, reference)
    except SubscriptionNotFound:
        # Not a subscription checkout (or not ours); nothing to do
        logger.info(f"Webhook for unknown reference: event={event_type}, reference={reference}")
        return WebhookAck(outcome="ignored")
    except GatewayUnavailable as e:
        # 5xx makes Paystack redeliver later
        logger.error(f"Webhook reconcile deferred: reference={reference}, error={e}")
        raise to_http_exception(e)

    logger.info(f"Webhook reconciled: event={event_type}, reference={reference}, outcome={outcome.value}")
    return WebhookAck(outcome=outcome.value)
