"""Entitlement types and pure rules shared by the evaluator and the usage ledger."""

from dataclasses import dataclass
from typing import Optional

from repspheres.models import UserSubscription
from repspheres.schemas.subscription import PlanId, SubscriptionStatus

REASON_INACTIVE = "Subscription inactive"
REASON_EXPIRED = "Subscription expired"
REASON_ERROR = "Error checking access"
REASON_UNKNOWN_FEATURE = "Unknown feature"
REASON_AUTOMATION = "Automation requires Professional plan or higher"
REASON_API = "API access requires Professional plan or higher"


def ai_query_limit_reason(limit: int) -> str:
    """Denial reason once the monthly AI query quota is used up."""
    return f"AI query limit reached ({limit}/month)"


def category_limit_reason(limit: int) -> str:
    """Denial reason once the category quota is used up."""
    return f"Category limit reached ({limit} categories)"


def user_limit_reason(limit: int) -> str:
    """Denial reason once every seat is taken."""
    return f"User limit reached ({limit} users)"


@dataclass(frozen=True)
class EntitlementPolicy:
    """Deployment switches that widen who counts as entitled."""

    free_tier_enabled: bool = True
    trial_grants_access: bool = False


def effective_plan(
    record: Optional[UserSubscription], policy: EntitlementPolicy
) -> Optional[str]:
    """Id of the plan the user is entitled to right now, or None when they are not.

    ``active`` (and ``trialing`` when trials grant access) return the stored
    plan id unvalidated; the catalog rejects unknown ids. A user without a
    record, or whose record never left ``none``, is on the free tier when it
    is enabled. Every other status is not entitled.
    """
    status = SubscriptionStatus(record.status) if record is not None else SubscriptionStatus.NONE
    if status == SubscriptionStatus.ACTIVE:
        return record.plan_id  # type: ignore[union-attr]
    if status == SubscriptionStatus.TRIALING and policy.trial_grants_access:
        return record.plan_id  # type: ignore[union-attr]
    if status == SubscriptionStatus.NONE and policy.free_tier_enabled:
        return PlanId.FREE.value
    return None
