from sqlalchemy import Column, Integer, String, Numeric, Boolean, DateTime, JSON, Text
from sqlalchemy.sql import func
from hkup.db.base import Base


class Plan(Base):
    """
    Subscription plan offered in the catalog.

    Plans are never edited once a subscription references them; publish a new
    plan and deactivate the old one instead.
    """
    __tablename__ = "subscription_plans"

    id = Column(Integer, primary_key=True, index=True)
    plan_name = Column(String(100), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    tier = Column(String(50), nullable=False, default="basic")
    period_days = Column(Integer, nullable=False, default=30)
    features = Column(JSON, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
