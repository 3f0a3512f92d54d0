"""
Pydantic schemas for plan and subscription endpoints.
"""
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field


class PlanResponse(BaseModel):
    """Active plan as shown in the catalog."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    plan_name: str
    description: Optional[str] = None
    price: Decimal
    currency: str
    tier: str
    period_days: int
    features: Optional[List[str]] = None


class PlanListResponse(BaseModel):
    plans: List[PlanResponse]


class CreateSubscriptionRequest(BaseModel):
    """Request schema for starting a subscription checkout."""
    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={"example": {"planId": "Basic Access", "countryCode": "NG"}},
    )

    plan_id: Union[int, str] = Field(..., alias="planId", description="Plan id or plan name")
    country_code: str = Field(..., alias="countryCode", min_length=2, max_length=2)


class CreateSubscriptionResponse(BaseModel):
    """Response schema for subscription checkout creation."""
    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "subscriptionId": 42,
                "authorizationUrl": "https://checkout.paystack.com/0peioxfhpn",
                "reference": "SUB_7_1760692800000_a1b2c3",
            }
        },
    )

    subscription_id: int = Field(..., alias="subscriptionId")
    authorization_url: str = Field(..., alias="authorizationUrl", description="Paystack checkout URL")
    reference: str


class VerifyPaymentRequest(BaseModel):
    """Poll request for a checkout reference."""
    model_config = ConfigDict(populate_by_name=True)

    reference: str = Field(..., min_length=1)


class VerifyPaymentResponse(BaseModel):
    reference: str
    outcome: str = Field(..., description="already_active | activated | rejected | pending")
    is_subscribed: bool


class SubscriptionResponse(BaseModel):
    """One ledger entry."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    plan_id: int
    amount: Decimal
    currency: str
    country_code: Optional[str] = None
    reference: str = Field(..., validation_alias="paystack_reference")
    status: str
    failure_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    activated_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None


class SubscriptionStatusResponse(BaseModel):
    is_subscribed: bool
    subscription_tier: Optional[str] = None
    subscription_expires_at: Optional[datetime] = None
    subscription: Optional[SubscriptionResponse] = None


class SubscriptionHistoryResponse(BaseModel):
    subscriptions: List[SubscriptionResponse]


class WebhookAck(BaseModel):
    received: bool = True
    outcome: Optional[str] = None


class ReconcilePendingResponse(BaseModel):
    outcomes: Dict[str, str]
    is_subscribed: bool
