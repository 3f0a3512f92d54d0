"""
Subscription workflow: checkout creation and payment reconciliation.

Every way of learning about a payment (browser callback, Paystack webhook,
client polling) goes through ``reconcile``. The ledger row moves out of
``pending`` only through a conditional UPDATE guarded by
``status = 'pending'``, so concurrent reconciles of one reference produce
exactly one transition and exactly one entitlement update.
"""
import logging
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Union

from sqlalchemy.orm import Session
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from hkup.core.config import (
    BASE_URL,
    PENDING_TTL_HOURS,
    VERIFY_BACKOFF_SECONDS,
    VERIFY_MAX_ATTEMPTS,
)
from hkup.core.exceptions import (
    AmountMismatch,
    GatewayUnavailable,
    InvalidRequest,
    ReferenceNotFound,
    SubscriptionNotFound,
)
from hkup.core.gating import as_utc, utcnow
from hkup.db.models.plan import Plan
from hkup.db.models.subscription import Subscription, SubscriptionStatus
from hkup.db.models.user import User
from hkup.services.payment_gateway import (
    PaymentGateway,
    PaymentVerificationResult,
    SettlementStatus,
)
from hkup.services.plan_service import get_active_plan, resolve_checkout_price

logger = logging.getLogger(__name__)

REFERENCE_PREFIX = "SUB"
REFERENCE_PATTERN = re.compile(r"^SUB_(\d+)_(\d+)_([0-9a-f]{6})$")
COUNTRY_CODE_PATTERN = re.compile(r"^[A-Za-z]{2}$")
CALLBACK_PATH = "/subscriptions/callback"


class ReconcileOutcome(str, Enum):
    ALREADY_ACTIVE = "already_active"
    ACTIVATED = "activated"
    REJECTED = "rejected"
    PENDING = "pending"


@dataclass(frozen=True)
class CheckoutSession:
    subscription_id: int
    authorization_url: str
    reference: str


@dataclass(frozen=True)
class SweepResult:
    subscriptions: int
    users: int


# ============================================
# REFERENCES
# ============================================

def generate_reference(user_id: int, now: Optional[datetime] = None) -> str:
    """``SUB_<user_id>_<epoch ms>_<nonce>``; the owner is recoverable from the reference."""
    now = now or utcnow()
    return f"{REFERENCE_PREFIX}_{user_id}_{int(now.timestamp() * 1000)}_{secrets.token_hex(3)}"


def parse_reference_user_id(reference: Optional[str]) -> Optional[int]:
    """User id embedded in a reference, or None when it is not one of ours."""
    if not reference:
        return None
    match = REFERENCE_PATTERN.match(reference.strip())
    if not match:
        return None
    return int(match.group(1))


# ============================================
# LEDGER ACCESS
# ============================================

def get_subscription_by_reference(db: Session, reference: str) -> Subscription:
    subscription = (
        db.query(Subscription)
        .filter(Subscription.paystack_reference == reference)
        .first()
    )
    if subscription is None:
        raise SubscriptionNotFound(f"Subscription not found for reference {reference}", reference)
    return subscription


def list_user_subscriptions(db: Session, user_id: int) -> List[Subscription]:
    return (
        db.query(Subscription)
        .filter(Subscription.user_id == user_id)
        .order_by(Subscription.created_at.desc(), Subscription.id.desc())
        .all()
    )


def get_latest_active_subscription(db: Session, user_id: int) -> Optional[Subscription]:
    return (
        db.query(Subscription)
        .filter(
            Subscription.user_id == user_id,
            Subscription.status == SubscriptionStatus.ACTIVE.value,
        )
        .order_by(Subscription.activated_at.desc(), Subscription.id.desc())
        .first()
    )


def _compare_and_set(db: Session, reference: str, new_status: SubscriptionStatus, **values) -> bool:
    """
    Move a ``pending`` row to ``new_status``.

    Returns False when the row already left ``pending``; the caller lost the race.
    """
    values["status"] = new_status.value
    values["updated_at"] = utcnow()
    updated = (
        db.query(Subscription)
        .filter(
            Subscription.paystack_reference == reference,
            Subscription.status == SubscriptionStatus.PENDING.value,
        )
        .update(values, synchronize_session=False)
    )
    return updated == 1


def _outcome_for_status(status: str) -> Optional[ReconcileOutcome]:
    if status in (SubscriptionStatus.ACTIVE.value, SubscriptionStatus.EXPIRED.value):
        return ReconcileOutcome.ALREADY_ACTIVE
    if status == SubscriptionStatus.FAILED.value:
        return ReconcileOutcome.REJECTED
    return None


def _current_outcome(db: Session, reference: str) -> ReconcileOutcome:
    """Outcome as seen after losing a compare-and-set."""
    db.expire_all()
    subscription = get_subscription_by_reference(db, reference)
    return _outcome_for_status(subscription.status) or ReconcileOutcome.PENDING


# ============================================
# CREATE
# ============================================

def create_subscription(
    db: Session,
    gateway: PaymentGateway,
    user: User,
    plan_id: Union[int, str],
    country_code: str,
) -> CheckoutSession:
    """
    Record a pending ledger entry and start a Paystack checkout for it.

    Raises:
        PlanNotFound: plan missing or inactive
        InvalidRequest: malformed country code, or the gateway rejected the charge
        GatewayUnavailable: Paystack could not be reached
    """
    if not isinstance(country_code, str) or not COUNTRY_CODE_PATTERN.match(country_code):
        raise InvalidRequest(f"Invalid country code: {country_code!r}")
    country_code = country_code.upper()

    plan = get_active_plan(db, plan_id)
    amount, currency = resolve_checkout_price(plan, country_code)
    reference = generate_reference(user.id)

    subscription = Subscription(
        user_id=user.id,
        plan_id=plan.id,
        amount=amount,
        currency=currency,
        country_code=country_code,
        paystack_reference=reference,
        status=SubscriptionStatus.PENDING.value,
        created_at=utcnow(),
    )
    db.add(subscription)
    db.commit()
    db.refresh(subscription)
    subscription_id = subscription.id

    logger.info(
        f"Subscription created: subscription_id={subscription_id}, user_id={user.id}, "
        f"plan={plan.plan_name}, amount={amount} {currency}, reference={reference}"
    )

    try:
        checkout = gateway.initialize_transaction(
            amount=amount,
            currency=currency,
            callback_url=f"{BASE_URL}{CALLBACK_PATH}",
            metadata={
                "user_id": user.id,
                "plan_id": plan.id,
                "subscription_id": subscription_id,
                "country_code": country_code,
            },
            email=user.email,
            reference=reference,
        )
    except Exception as e:
        if isinstance(e, GatewayUnavailable):
            reason = "gateway_unavailable"
        elif isinstance(e, InvalidRequest):
            reason = "gateway_rejected"
        else:
            reason = "gateway_error"
        db.rollback()
        _compare_and_set(db, reference, SubscriptionStatus.FAILED, failure_reason=reason)
        db.commit()
        logger.error(f"Checkout initialization failed: reference={reference}, reason={reason}, error={e}")
        raise

    if checkout.reference != reference:
        logger.warning(f"Gateway echoed a different reference: sent={reference}, received={checkout.reference}")

    return CheckoutSession(
        subscription_id=subscription_id,
        authorization_url=checkout.authorization_url,
        reference=reference,
    )


# ============================================
# RECONCILE
# ============================================

def _verify_with_retry(gateway: PaymentGateway, reference: str) -> PaymentVerificationResult:
    """verify_transaction with exponential backoff on transient failures."""
    retrying = Retrying(
        stop=stop_after_attempt(max(1, VERIFY_MAX_ATTEMPTS)),
        wait=wait_exponential(multiplier=VERIFY_BACKOFF_SECONDS, max=8),
        retry=retry_if_exception_type(GatewayUnavailable),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    return retrying(gateway.verify_transaction, reference)


def check_settled_amount(expected_amount: Decimal, expected_currency: str, result: PaymentVerificationResult) -> None:
    """
    Raises:
        AmountMismatch: settled amount or currency differs from the ledger entry
    """
    expected = (Decimal(expected_amount).quantize(Decimal("0.01")), expected_currency.upper())
    received = (Decimal(result.amount).quantize(Decimal("0.01")), result.currency.upper())
    if expected != received:
        raise AmountMismatch(
            f"Settled {received[0]} {received[1]}, expected {expected[0]} {expected[1]}",
            result.reference,
            expected=expected,
            received=received,
        )


def _activate(
    db: Session,
    reference: str,
    user_id: int,
    plan: Plan,
    result: PaymentVerificationResult,
) -> ReconcileOutcome:
    """Ledger transition and entitlement update in one transaction."""
    now = utcnow()
    user = db.query(User).filter(User.id == user_id).with_for_update().one()

    # Renewals bought before the current window closes extend it
    current_expiry = as_utc(user.subscription_expires_at)
    window_start = current_expiry if user.is_subscribed and current_expiry and current_expiry > now else now
    expires_at = window_start + timedelta(days=plan.period_days)

    if not _compare_and_set(db, reference, SubscriptionStatus.ACTIVE, activated_at=now, expires_at=expires_at):
        db.rollback()
        outcome = _current_outcome(db, reference)
        logger.info(f"Reconcile lost activation race: reference={reference}, outcome={outcome.value}")
        return outcome

    user.is_subscribed = True
    user.subscription_tier = plan.tier
    user.subscription_expires_at = expires_at
    db.commit()

    logger.info(
        f"Subscription activated: reference={reference}, user_id={user_id}, tier={plan.tier}, "
        f"expires_at={expires_at.isoformat()}, paid_at={result.paid_at}"
    )
    return ReconcileOutcome.ACTIVATED


def _reject(db: Session, reference: str, reason: str) -> ReconcileOutcome:
    if not _compare_and_set(db, reference, SubscriptionStatus.FAILED, failure_reason=reason):
        db.rollback()
        return _current_outcome(db, reference)
    db.commit()
    logger.info(f"Subscription rejected: reference={reference}, reason={reason}")
    return ReconcileOutcome.REJECTED


def reconcile(db: Session, gateway: PaymentGateway, reference: str) -> ReconcileOutcome:
    """
    Confirm settlement of ``reference`` with the gateway and activate it at most once.

    Returns:
        already_active / rejected for rows that already left ``pending``;
        activated when this call performed the activation;
        pending when the provider has not settled yet.

    Raises:
        SubscriptionNotFound: no ledger entry for the reference
        GatewayUnavailable: retries exhausted; the row stays ``pending``
    """
    subscription = get_subscription_by_reference(db, reference)
    settled = _outcome_for_status(subscription.status)
    if settled is not None:
        logger.debug(f"Reconcile no-op: reference={reference}, status={subscription.status}")
        return settled

    user_id = subscription.user_id
    plan_id = subscription.plan_id
    expected_amount = Decimal(subscription.amount)
    expected_currency = subscription.currency

    # No transaction is held open across the network call
    db.rollback()

    try:
        result = _verify_with_retry(gateway, reference)
    except ReferenceNotFound:
        logger.info(f"Reconcile: provider has no transaction yet, reference={reference}")
        return ReconcileOutcome.PENDING

    if result.status == SettlementStatus.PENDING:
        logger.info(f"Reconcile: payment not settled yet, reference={reference}")
        return ReconcileOutcome.PENDING

    if result.status in (SettlementStatus.FAILED, SettlementStatus.ABANDONED):
        return _reject(db, reference, result.status.value)

    try:
        check_settled_amount(expected_amount, expected_currency, result)
    except AmountMismatch as e:
        logger.error(f"AUDIT amount mismatch: reference={reference}, user_id={user_id}, {e.message}")
        return _reject(db, reference, "amount_mismatch")

    plan = db.query(Plan).filter(Plan.id == plan_id).one()
    return _activate(db, reference, user_id, plan, result)


# ============================================
# SWEEPS
# ============================================

def expire_lapsed_subscriptions(db: Session, now: Optional[datetime] = None) -> SweepResult:
    """
    ``active -> expired`` for rows past their window, then clear the
    entitlement of users with no remaining open window.
    """
    now = now or utcnow()

    expired = (
        db.query(Subscription)
        .filter(
            Subscription.status == SubscriptionStatus.ACTIVE.value,
            Subscription.expires_at <= now,
        )
        .update(
            {"status": SubscriptionStatus.EXPIRED.value, "updated_at": now},
            synchronize_session=False,
        )
    )
    db.commit()

    cleared = 0
    lapsed_users = (
        db.query(User)
        .filter(User.is_subscribed.is_(True))
        .filter((User.subscription_expires_at.is_(None)) | (User.subscription_expires_at <= now))
        .all()
    )
    for user in lapsed_users:
        still_open = (
            db.query(Subscription.id)
            .filter(
                Subscription.user_id == user.id,
                Subscription.status == SubscriptionStatus.ACTIVE.value,
                Subscription.expires_at > now,
            )
            .first()
        )
        if still_open:
            continue
        user.is_subscribed = False
        user.subscription_tier = None
        cleared += 1
    db.commit()

    if expired or cleared:
        logger.info(f"Expiry sweep: subscriptions_expired={expired}, users_cleared={cleared}")
    return SweepResult(subscriptions=expired, users=cleared)


def fail_stale_pending(db: Session, now: Optional[datetime] = None, max_age: Optional[timedelta] = None) -> int:
    """``pending -> failed`` for checkouts that never resolved."""
    now = now or utcnow()
    cutoff = now - (max_age or timedelta(hours=PENDING_TTL_HOURS))

    failed = (
        db.query(Subscription)
        .filter(
            Subscription.status == SubscriptionStatus.PENDING.value,
            Subscription.created_at < cutoff,
        )
        .update(
            {
                "status": SubscriptionStatus.FAILED.value,
                "failure_reason": "stale",
                "updated_at": now,
            },
            synchronize_session=False,
        )
    )
    db.commit()

    if failed:
        logger.info(f"Stale pending sweep: subscriptions_failed={failed}, cutoff={cutoff.isoformat()}")
    return failed


def reconcile_pending(db: Session, gateway: PaymentGateway, user_id: Optional[int] = None) -> Dict[str, ReconcileOutcome]:
    """
    Reconcile every ``pending`` row (optionally only one user's).

    Rows whose verification hits a gateway outage are skipped and stay pending.
    """
    query = db.query(Subscription.paystack_reference).filter(
        Subscription.status == SubscriptionStatus.PENDING.value
    )
    if user_id is not None:
        query = query.filter(Subscription.user_id == user_id)
    references = [row[0] for row in query.order_by(Subscription.created_at.asc()).all()]

    outcomes: Dict[str, ReconcileOutcome] = {}
    for reference in references:
        try:
            outcomes[reference] = reconcile(db, gateway, reference)
        except GatewayUnavailable as e:
            logger.warning(f"Pending reconcile skipped: reference={reference}, error={e}")
    return outcomes
