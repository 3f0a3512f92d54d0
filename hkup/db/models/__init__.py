"""
Database models module.

This module imports all database models to ensure they are registered with SQLAlchemy's Base.metadata
before table creation.
"""
from hkup.db.models.user import User
from hkup.db.models.plan import Plan
from hkup.db.models.subscription import Subscription, SubscriptionStatus

__all__ = [
    "User",
    "Plan",
    "Subscription",
    "SubscriptionStatus",
]
