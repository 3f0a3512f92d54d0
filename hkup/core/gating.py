"""
Entitlement checks for paid features.

A user is entitled while ``is_subscribed`` is set and the subscription window
has not closed. The flag itself is only written by the subscription workflow.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status

from hkup.core.auth_dependency import get_current_user_obj
from hkup.core.config import CLIENT_URL
from hkup.db.models.user import User

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_entitled(user: User, now: Optional[datetime] = None) -> bool:
    """True while the user has a paid subscription window open."""
    if not user.is_subscribed:
        return False
    expires_at = as_utc(user.subscription_expires_at)
    if expires_at is None:
        return False
    return expires_at > (now or utcnow())


def get_entitlement(user: User, now: Optional[datetime] = None) -> dict:
    """Entitlement summary for API responses."""
    entitled = is_entitled(user, now)
    return {
        "is_subscribed": entitled,
        "subscription_tier": user.subscription_tier if entitled else None,
        "subscription_expires_at": as_utc(user.subscription_expires_at) if entitled else None,
    }


def require_entitlement(user: User = Depends(get_current_user_obj)) -> User:
    """
    Dependency gating paid features.

    Raises:
        HTTPException 402: caller has no active subscription
    """
    if not is_entitled(user):
        logger.info(f"Entitlement required: user_id={user.id}")
        raise HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail={
                "error": "subscription_required",
                "message": "An active subscription is required for this feature.",
                "upgrade_url": f"{CLIENT_URL}/subscription",
            },
        )
    return user
