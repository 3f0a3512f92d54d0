"""
Integration tests for POST /payments/webhook.
"""
import json

from hkup.core.exceptions import GatewayUnavailable
from hkup.db.models import Subscription, SubscriptionStatus, User
from hkup.services.payment_gateway import SettlementStatus
from hkup.services.subscription_service import create_subscription


def webhook_body(event, reference):
    return json.dumps({
        "event": event,
        "data": {"reference": reference, "status": "success", "amount": 2000, "currency": "USD"},
    }).encode()


def post_webhook(client, gateway, payload, signature=None):
    return client.post(
        "/payments/webhook",
        content=payload,
        headers={
            "Content-Type": "application/json",
            "x-paystack-signature": signature if signature is not None else gateway.sign(payload),
        },
    )


def pending_reference(db, gateway, user):
    return create_subscription(db, gateway, user, "Basic Access", "NG").reference


def test_charge_success_activates(client, db, gateway, test_user, basic_plan):
    reference = pending_reference(db, gateway, test_user)
    gateway.settle(reference)

    response = post_webhook(client, gateway, webhook_body("charge.success", reference))

    assert response.status_code == 200
    assert response.json() == {"received": True, "outcome": "activated"}
    db.expire_all()
    assert db.query(User).filter(User.id == test_user.id).one().is_subscribed is True


def test_redelivery_is_idempotent(client, db, gateway, test_user, basic_plan):
    reference = pending_reference(db, gateway, test_user)
    gateway.settle(reference)
    payload = webhook_body("charge.success", reference)

    outcomes = [post_webhook(client, gateway, payload).json()["outcome"] for _ in range(3)]

    assert outcomes == ["activated", "already_active", "already_active"]


def test_payload_status_is_not_trusted(client, db, gateway, test_user, basic_plan):
    """The event claims success but Paystack reports the charge abandoned."""
    reference = pending_reference(db, gateway, test_user)
    gateway.settle(reference, status=SettlementStatus.ABANDONED)

    response = post_webhook(client, gateway, webhook_body("charge.success", reference))

    assert response.json()["outcome"] == "rejected"
    db.expire_all()
    assert db.query(Subscription).one().status == SubscriptionStatus.FAILED.value
    assert db.query(User).filter(User.id == test_user.id).one().is_subscribed is False


def test_charge_failed_rejects(client, db, gateway, test_user, basic_plan):
    reference = pending_reference(db, gateway, test_user)
    gateway.settle(reference, status=SettlementStatus.FAILED)

    response = post_webhook(client, gateway, webhook_body("charge.failed", reference))

    assert response.json()["outcome"] == "rejected"


def test_invalid_signature_is_rejected(client, db, gateway, test_user, basic_plan):
    reference = pending_reference(db, gateway, test_user)
    gateway.settle(reference)

    response = post_webhook(client, gateway, webhook_body("charge.success", reference), signature="forged")

    assert response.status_code == 401
    assert gateway.verify_calls == []
    db.expire_all()
    assert db.query(Subscription).one().status == SubscriptionStatus.PENDING.value


def test_missing_signature_is_rejected(client, gateway):
    response = client.post("/payments/webhook", content=webhook_body("charge.success", "SUB_1_1_abcdef"))
    assert response.status_code == 401


def test_malformed_json(client, gateway):
    response = post_webhook(client, gateway, b"{not json")
    assert response.status_code == 400


def test_other_events_are_acknowledged(client, db, gateway, test_user, basic_plan):
    reference = pending_reference(db, gateway, test_user)

    response = post_webhook(client, gateway, webhook_body("transfer.success", reference))

    assert response.status_code == 200
    assert response.json() == {"received": True, "outcome": "ignored"}
    assert gateway.verify_calls == []


def test_event_without_reference_is_acknowledged(client, gateway):
    payload = json.dumps({"event": "charge.success", "data": {}}).encode()

    response = post_webhook(client, gateway, payload)

    assert response.status_code == 200
    assert response.json()["outcome"] == "ignored"


def test_unknown_reference_is_acknowledged(client, gateway):
    response = post_webhook(client, gateway, webhook_body("charge.success", "T_not_a_subscription"))

    assert response.status_code == 200
    assert response.json()["outcome"] == "ignored"


def test_gateway_outage_asks_for_redelivery(client, db, gateway, test_user, basic_plan):
    reference = pending_reference(db, gateway, test_user)
    gateway.settle(reference)
    gateway.verify_errors = [GatewayUnavailable("down")] * 3

    response = post_webhook(client, gateway, webhook_body("charge.success", reference))

    assert response.status_code == 503
    db.expire_all()
    assert db.query(Subscription).one().status == SubscriptionStatus.PENDING.value

    # Paystack redelivers once we are reachable again
    response = post_webhook(client, gateway, webhook_body("charge.success", reference))
    assert response.json()["outcome"] == "activated"
