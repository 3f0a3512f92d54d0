from enum import Enum
from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from hkup.db.base import Base


class SubscriptionStatus(str, Enum):
    """Ledger lifecycle: pending -> active | failed, active -> expired."""

    PENDING = "pending"
    ACTIVE = "active"
    FAILED = "failed"
    EXPIRED = "expired"


class Subscription(Base):
    """
    One checkout attempt and its outcome.

    Rows are never deleted. ``status`` only moves forward and is changed
    exclusively through conditional updates in the subscription service.
    """
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    plan_id = Column(Integer, ForeignKey("subscription_plans.id"), nullable=False)

    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    country_code = Column(String(2), nullable=True)

    paystack_reference = Column(String(255), nullable=False, unique=True, index=True)
    status = Column(String(20), nullable=False, default=SubscriptionStatus.PENDING.value)
    failure_reason = Column(String(50), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    activated_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    plan = relationship("Plan")
    user = relationship("User")

    __table_args__ = (
        Index("idx_subscriptions_user_status", "user_id", "status"),
    )
