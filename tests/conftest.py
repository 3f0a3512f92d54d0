"""
Shared fixtures: in-memory SQLite database, seeded user/plan, and a fake
payment gateway standing in for Paystack.
"""
import hashlib
import hmac
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from hkup.core.exceptions import ReferenceNotFound
from hkup.core.rate_limit import reset_rate_limits
from hkup.db.base import Base
from hkup.db.models import Plan, User
from hkup.services import subscription_service
from hkup.services.payment_gateway import (
    InitializedTransaction,
    PaymentGateway,
    PaymentVerificationResult,
    SettlementStatus,
)

WEBHOOK_SECRET = "sk_test_webhook_secret"

# Setup in-memory SQLite database for testing
TEST_DATABASE_URL = "sqlite:///:memory:"
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


class FakeGateway(PaymentGateway):
    """Records calls and answers from ``results``; raises queued ``verify_errors`` first."""

    def __init__(self, secret: str = WEBHOOK_SECRET):
        self.secret = secret
        self.results = {}
        self.verify_errors = []
        self.init_error = None
        self.on_verify = None
        self.initialized = []
        self.verify_calls = []

    def initialize_transaction(self, amount, currency, callback_url, metadata, email, reference):
        self.initialized.append({
            "amount": amount,
            "currency": currency,
            "callback_url": callback_url,
            "metadata": metadata,
            "email": email,
            "reference": reference,
        })
        if self.init_error is not None:
            raise self.init_error
        return InitializedTransaction(
            authorization_url=f"https://checkout.paystack.com/{reference}",
            reference=reference,
            access_code="access_test",
        )

    def verify_transaction(self, reference):
        self.verify_calls.append(reference)
        if self.on_verify is not None:
            hook, self.on_verify = self.on_verify, None
            hook(reference)
        if self.verify_errors:
            raise self.verify_errors.pop(0)
        if reference not in self.results:
            raise ReferenceNotFound("Transaction reference not found", reference)
        return self.results[reference]

    def verify_webhook_signature(self, payload, signature):
        return bool(signature) and hmac.compare_digest(self.sign(payload), signature)

    def sign(self, payload: bytes) -> str:
        return hmac.new(self.secret.encode(), payload, hashlib.sha512).hexdigest()

    def settle(self, reference, status=SettlementStatus.SUCCESS, amount="20.00", currency="USD"):
        self.results[reference] = PaymentVerificationResult(
            reference=reference,
            status=status,
            amount=Decimal(amount),
            currency=currency,
            gateway_response="Approved" if status == SettlementStatus.SUCCESS else status.value,
        )


@pytest.fixture(autouse=True)
def fast_retries(monkeypatch):
    """No backoff sleeps and fresh rate-limit buckets in tests."""
    monkeypatch.setattr(subscription_service, "VERIFY_BACKOFF_SECONDS", 0)
    reset_rate_limits()
    yield
    reset_rate_limits()


@pytest.fixture(scope="function")
def db():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=test_engine)
    db = TestSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def test_user(db):
    user = User(full_name="Test User", email="test@example.com", country_code="NG")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def other_user(db):
    user = User(full_name="Other User", email="other@example.com", country_code="GH")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def basic_plan(db):
    plan = Plan(
        plan_name="Basic Access",
        description="Full access to the Hkup platform",
        price=Decimal("20.00"),
        currency="USD",
        tier="basic",
        period_days=30,
        features=["Full platform access"],
        is_active=True,
    )
    db.add(plan)
    db.commit()
    db.refresh(plan)
    return plan


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def session_factory(db):
    """Opens extra sessions on the test database (concurrent entry points)."""
    return TestSessionLocal


@pytest.fixture
def client(db, gateway):
    """TestClient wired to the test database and the fake gateway."""
    from fastapi.testclient import TestClient

    from hkup.core.auth_dependency import get_db
    from hkup.main import app
    from hkup.services.paystack_service import get_payment_gateway

    def override_get_db():
        session = TestSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def auth_headers(user) -> dict:
    from hkup.core.security import create_access_token

    return {"Authorization": f"Bearer {create_access_token({'sub': user.id})}"}


@pytest.fixture
def user_headers(test_user):
    return auth_headers(test_user)


@pytest.fixture
def other_headers(other_user):
    return auth_headers(other_user)
