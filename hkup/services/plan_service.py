"""
Plan catalog lookups.
"""
import logging
from decimal import Decimal
from typing import List, Tuple, Union

from sqlalchemy import func
from sqlalchemy.orm import Session

from hkup.core.exceptions import PlanNotFound
from hkup.db.models.plan import Plan

logger = logging.getLogger(__name__)


def list_active_plans(db: Session) -> List[Plan]:
    """Active plans, cheapest first."""
    return (
        db.query(Plan)
        .filter(Plan.is_active.is_(True))
        .order_by(Plan.price.asc(), Plan.id.asc())
        .all()
    )


def get_active_plan(db: Session, plan_id: Union[int, str]) -> Plan:
    """
    Resolve an active plan by numeric id or by plan name.

    Raises:
        PlanNotFound: no active plan matches
    """
    query = db.query(Plan).filter(Plan.is_active.is_(True))

    plan = None
    if isinstance(plan_id, int) or str(plan_id).strip().isdigit():
        plan = query.filter(Plan.id == int(plan_id)).first()
    if plan is None and isinstance(plan_id, str):
        name = plan_id.strip().lower()
        # Clients send either the catalog name ("Basic Access") or the tier ("basic")
        plan = (
            query.filter(func.lower(Plan.plan_name) == name).first()
            or query.filter(func.lower(Plan.tier) == name).order_by(Plan.price.asc(), Plan.id.asc()).first()
        )

    if plan is None:
        logger.warning(f"Plan lookup failed: plan_id={plan_id}")
        raise PlanNotFound(f"Subscription plan not found: {plan_id}")
    return plan


def resolve_checkout_price(plan: Plan, country_code: str) -> Tuple[Decimal, str]:
    """
    Amount and currency to charge for ``plan`` in ``country_code``.

    Every country is charged the catalog price in the plan's currency; there
    is no per-country currency conversion.
    """
    # country_code is kept on Subscription.country_code as the audit field
    return Decimal(plan.price).quantize(Decimal("0.01")), plan.currency.upper()
