from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from hkup.core.auth_dependency import get_db
from hkup.schemas.billing import PlanListResponse, PlanResponse
from hkup.services.plan_service import list_active_plans

router = APIRouter(prefix="/plans", tags=["Plans"])


@router.get("", response_model=PlanListResponse)
def get_plans(db: Session = Depends(get_db)):
    """List active subscription plans, cheapest first."""
    plans = list_active_plans(db)
    return PlanListResponse(plans=[PlanResponse.model_validate(plan) for plan in plans])
