"""Subscription schemas.

Enums shared by the subscription record, the billing bridge and the
entitlement evaluator, plus the request/response bodies of the
subscription endpoints. Wire bodies use camelCase to match the web client.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class PlanId(str, Enum):
    """Plan tiers. ``free`` is never sold through the provider."""

    FREE = "free"
    STARTER = "starter"
    PROFESSIONAL = "professional"
    ENTERPRISE = "enterprise"


class SubscriptionStatus(str, Enum):
    """Local subscription status.

    Transitions are governed by ``domains.billing.types.next_status``.
    """

    NONE = "none"
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    UNPAID = "unpaid"


class CamelModel(BaseModel):
    """Base for wire bodies exchanged with the web client."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Subscription record
# ---------------------------------------------------------------------------


class UserSubscriptionCreate(BaseModel):
    """Schema for creating a user subscription record."""

    user_id: UUID
    plan_id: PlanId = PlanId.FREE
    status: SubscriptionStatus = SubscriptionStatus.NONE
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    current_period_end: Optional[datetime] = None
    last_event_at: Optional[datetime] = None


class UserSubscriptionUpdate(BaseModel):
    """Schema for updating a user subscription record. Only set fields are written."""

    plan_id: Optional[PlanId] = None
    status: Optional[SubscriptionStatus] = None
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    current_period_end: Optional[datetime] = None
    last_event_at: Optional[datetime] = None
    canceled_at: Optional[datetime] = None


class UserSubscription(CamelModel):
    """Subscription record returned to clients."""

    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)

    user_id: UUID
    plan_id: PlanId
    status: SubscriptionStatus
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    current_period_end: Optional[datetime] = None
    canceled_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Request / response bodies
# ---------------------------------------------------------------------------


class CreateSubscriptionRequest(CamelModel):
    """Body of ``POST /subscription``."""

    plan_id: PlanId
    payment_method_id: str = Field(..., min_length=1)


class CheckoutSessionRequest(CamelModel):
    """Body of ``POST /create-checkout-session``."""

    price_id: str = Field(..., min_length=1)


class CheckoutSessionResponse(BaseModel):
    """Redirect target for the hosted checkout page."""

    url: str


class PortalSessionRequest(CamelModel):
    """Body of ``POST /subscription/portal``."""

    return_url: Optional[str] = None


class PortalSessionResponse(BaseModel):
    """Redirect target for the hosted billing portal."""

    url: str


LimitValue = Union[int, str]
"""A quota on the wire: an integer or the string ``"unlimited"``."""


class PlanFeatures(CamelModel):
    """Boolean capabilities of a plan."""

    automation: bool
    api: bool


class PlanLimits(CamelModel):
    """Quotas of a plan as rendered on the wire."""

    users: LimitValue
    ai_queries: LimitValue
    categories: LimitValue


class PlanResponse(CamelModel):
    """One plan of the catalog for the pricing page."""

    id: PlanId
    name: str
    price_cents: Optional[int] = Field(
        default=None, description="Monthly list price in cents; null for custom pricing"
    )
    limits: PlanLimits
    features: PlanFeatures


class UsageCounts(CamelModel):
    """Usage shown next to the limits: seats in use and this period's totals."""

    users: int
    ai_queries: int = 0
    automation_runs: int = 0
    categories: int = 0
    api_calls: int = 0


class SubscriptionStatusResponse(CamelModel):
    """Everything the UI gate needs in one call."""

    is_active: bool
    plan_id: PlanId
    status: SubscriptionStatus
    current_period_end: Optional[datetime] = None
    features: PlanFeatures
    usage: UsageCounts
    limits: PlanLimits
