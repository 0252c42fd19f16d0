"""Schemas for the RepSpheres backend."""

from .entitlement import AccessDecision, GatedFeature
from .subscription import (
    CheckoutSessionRequest,
    CheckoutSessionResponse,
    CreateSubscriptionRequest,
    PlanFeatures,
    PlanId,
    PlanLimits,
    PlanResponse,
    PortalSessionRequest,
    PortalSessionResponse,
    SubscriptionStatus,
    SubscriptionStatusResponse,
    UsageCounts,
    UserSubscription,
    UserSubscriptionCreate,
    UserSubscriptionUpdate,
)
from .usage import (
    TrackUsageRequest,
    UsageEvent,
    UsageEventCreate,
    UsageFeatureType,
    UsageSummary,
)
from .user import User

__all__ = [
    "AccessDecision",
    "CheckoutSessionRequest",
    "CheckoutSessionResponse",
    "CreateSubscriptionRequest",
    "GatedFeature",
    "PlanFeatures",
    "PlanId",
    "PlanLimits",
    "PlanResponse",
    "PortalSessionRequest",
    "PortalSessionResponse",
    "SubscriptionStatus",
    "SubscriptionStatusResponse",
    "TrackUsageRequest",
    "UsageCounts",
    "UsageEvent",
    "UsageEventCreate",
    "UsageFeatureType",
    "UsageSummary",
    "User",
    "UserSubscription",
    "UserSubscriptionCreate",
    "UserSubscriptionUpdate",
]
