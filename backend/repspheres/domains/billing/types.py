"""Billing domain types and shared pure functions.

Types, constants, and pure business logic that multiple billing components
depend on (service, webhook processor, entitlement evaluator, endpoints):

- the plan catalog (plan id -> limits and capabilities)
- the subscription status state machine
- the typed view of provider webhook events
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

from repspheres import schemas
from repspheres.domains.billing.exceptions import UnknownPlanError
from repspheres.schemas.subscription import PlanId, SubscriptionStatus

# ---------------------------------------------------------------------------
# Plan catalog
# ---------------------------------------------------------------------------


class _Unlimited:
    """Sentinel for quotas without a ceiling. Never compare it numerically."""

    _instance: Optional["_Unlimited"] = None

    def __new__(cls) -> "_Unlimited":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNLIMITED"


UNLIMITED = _Unlimited()

Limit = Union[int, _Unlimited]


@dataclass(frozen=True)
class PlanLimits:
    """Quotas and capabilities of one plan."""

    users: Limit
    ai_queries: Limit
    categories: Limit
    automation: bool
    api: bool


@dataclass(frozen=True)
class PlanDefinition:
    """A sellable (or free) tier."""

    plan_id: PlanId
    name: str
    price_cents: Optional[int]
    limits: PlanLimits


PLANS: Dict[PlanId, PlanDefinition] = {
    PlanId.FREE: PlanDefinition(
        plan_id=PlanId.FREE,
        name="Free",
        price_cents=0,
        limits=PlanLimits(users=1, ai_queries=10, categories=3, automation=False, api=False),
    ),
    PlanId.STARTER: PlanDefinition(
        plan_id=PlanId.STARTER,
        name="Starter",
        price_cents=9900,
        limits=PlanLimits(users=1, ai_queries=100, categories=5, automation=False, api=False),
    ),
    PlanId.PROFESSIONAL: PlanDefinition(
        plan_id=PlanId.PROFESSIONAL,
        name="Professional",
        price_cents=29900,
        limits=PlanLimits(
            users=5, ai_queries=1000, categories=UNLIMITED, automation=True, api=True
        ),
    ),
    PlanId.ENTERPRISE: PlanDefinition(
        plan_id=PlanId.ENTERPRISE,
        name="Enterprise",
        price_cents=None,
        limits=PlanLimits(
            users=UNLIMITED,
            ai_queries=UNLIMITED,
            categories=UNLIMITED,
            automation=True,
            api=True,
        ),
    ),
}


def get_plan(plan_id: Union[PlanId, str]) -> PlanDefinition:
    """Look up a plan by id.

    Raises:
        UnknownPlanError: for ids the catalog does not define. This is a
            configuration fault, never a user error.
    """
    try:
        return PLANS[PlanId(plan_id)]
    except (ValueError, KeyError):
        raise UnknownPlanError(str(getattr(plan_id, "value", plan_id))) from None


def is_unlimited(limit: Limit) -> bool:
    """Whether ``limit`` is the UNLIMITED sentinel."""
    return limit is UNLIMITED


def is_within_limit(current: int, limit: Limit) -> bool:
    """Whether ``current`` usage still leaves room under ``limit``."""
    if is_unlimited(limit):
        return True
    return current < limit  # type: ignore[operator]


def format_limit(limit: Limit) -> Union[int, str]:
    """Wire rendering of a limit: the integer, or ``"unlimited"``."""
    return "unlimited" if is_unlimited(limit) else limit  # type: ignore[return-value]


def purchasable_plans() -> List[PlanDefinition]:
    """Plans sold through the billing provider (everything but free)."""
    return [plan for plan_id, plan in PLANS.items() if plan_id != PlanId.FREE]


def plan_features_response(plan: PlanDefinition) -> schemas.PlanFeatures:
    """Wire view of a plan's boolean capabilities."""
    return schemas.PlanFeatures(automation=plan.limits.automation, api=plan.limits.api)


def plan_limits_response(plan: PlanDefinition) -> schemas.PlanLimits:
    """Wire view of a plan's quotas, with ``"unlimited"`` for the sentinel."""
    return schemas.PlanLimits(
        users=format_limit(plan.limits.users),
        ai_queries=format_limit(plan.limits.ai_queries),
        categories=format_limit(plan.limits.categories),
    )


def plan_response(plan: PlanDefinition) -> schemas.PlanResponse:
    """Pricing page entry for ``plan``."""
    return schemas.PlanResponse(
        id=plan.plan_id,
        name=plan.name,
        price_cents=plan.price_cents,
        limits=plan_limits_response(plan),
        features=plan_features_response(plan),
    )


def plan_for_price_id(
    price_id: Optional[str], price_ids: Mapping[str, Optional[str]]
) -> Optional[PlanId]:
    """Map a provider price id back to the plan it sells.

    Args:
        price_id: Provider price id from a subscription item.
        price_ids: Configured plan id -> provider price id mapping.
    """
    if not price_id:
        return None
    for plan_id, configured in price_ids.items():
        if configured and configured == price_id:
            return PlanId(plan_id)
    return None


# ---------------------------------------------------------------------------
# Subscription status state machine
# ---------------------------------------------------------------------------

_ALLOWED_TRANSITIONS: Dict[SubscriptionStatus, frozenset] = {
    SubscriptionStatus.NONE: frozenset(
        {
            SubscriptionStatus.TRIALING,
            SubscriptionStatus.ACTIVE,
            SubscriptionStatus.PAST_DUE,
            SubscriptionStatus.UNPAID,
            SubscriptionStatus.CANCELED,
        }
    ),
    SubscriptionStatus.TRIALING: frozenset(
        {
            SubscriptionStatus.ACTIVE,
            SubscriptionStatus.PAST_DUE,
            SubscriptionStatus.UNPAID,
            SubscriptionStatus.CANCELED,
        }
    ),
    SubscriptionStatus.ACTIVE: frozenset(
        {SubscriptionStatus.PAST_DUE, SubscriptionStatus.UNPAID, SubscriptionStatus.CANCELED}
    ),
    SubscriptionStatus.PAST_DUE: frozenset(
        {SubscriptionStatus.ACTIVE, SubscriptionStatus.UNPAID, SubscriptionStatus.CANCELED}
    ),
    SubscriptionStatus.UNPAID: frozenset(
        {SubscriptionStatus.ACTIVE, SubscriptionStatus.PAST_DUE, SubscriptionStatus.CANCELED}
    ),
    # Terminal
    SubscriptionStatus.CANCELED: frozenset(),
}


def can_transition(current: SubscriptionStatus, proposed: SubscriptionStatus) -> bool:
    """Whether the state machine permits ``current -> proposed``.

    Staying in the same state is always permitted.
    """
    if current == proposed:
        return True
    return proposed in _ALLOWED_TRANSITIONS[current]


def next_status(current: SubscriptionStatus, proposed: SubscriptionStatus) -> SubscriptionStatus:
    """Status to store when the provider proposes ``proposed``.

    Returns ``current`` unchanged for transitions the state machine forbids,
    so nothing ever leaves ``canceled``.
    """
    return proposed if can_transition(current, proposed) else current


_PROVIDER_STATUS_MAP: Dict[str, SubscriptionStatus] = {
    "trialing": SubscriptionStatus.TRIALING,
    "active": SubscriptionStatus.ACTIVE,
    "past_due": SubscriptionStatus.PAST_DUE,
    "canceled": SubscriptionStatus.CANCELED,
    "unpaid": SubscriptionStatus.UNPAID,
    "incomplete": SubscriptionStatus.NONE,
    "incomplete_expired": SubscriptionStatus.CANCELED,
    "paused": SubscriptionStatus.UNPAID,
}


def map_provider_status(provider_status: Optional[str]) -> Optional[SubscriptionStatus]:
    """Translate a provider subscription status; None for statuses we do not know."""
    if not provider_status:
        return None
    return _PROVIDER_STATUS_MAP.get(provider_status)


# ---------------------------------------------------------------------------
# Webhook events
# ---------------------------------------------------------------------------


class WebhookEventKind(Enum):
    """Provider event types the billing bridge reacts to."""

    SUBSCRIPTION_CREATED = "customer.subscription.created"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
    PAYMENT_FAILED = "invoice.payment_failed"
    TRIAL_WILL_END = "customer.subscription.trial_will_end"
    UNKNOWN = "unknown"

    @classmethod
    def from_type(cls, event_type: str) -> "WebhookEventKind":
        """Classify a raw provider event type; anything unrecognised is UNKNOWN."""
        for kind in cls:
            if kind.value == event_type:
                return kind
        return cls.UNKNOWN


def _timestamp(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


@dataclass(frozen=True)
class WebhookEvent:
    """Verified provider event reduced to what the processor reads."""

    id: str
    type: str
    created: datetime
    data_object: Dict[str, Any] = field(default_factory=dict)

    @property
    def kind(self) -> WebhookEventKind:
        """Closed classification of ``type``."""
        return WebhookEventKind.from_type(self.type)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "WebhookEvent":
        """Build from a decoded provider event body.

        Raises:
            ValueError: if the body lacks an id, a type or a creation time.
        """
        try:
            event_id = payload["id"]
            event_type = payload["type"]
            created = _timestamp(payload["created"])
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Malformed webhook event: {e}") from e
        data = payload.get("data") or {}
        return cls(
            id=str(event_id),
            type=str(event_type),
            created=created,  # type: ignore[arg-type]
            data_object=dict(data.get("object") or {}),
        )

    # --- Subscription object accessors -----------------------------------

    @property
    def metadata(self) -> Dict[str, str]:
        """Metadata of the event object (subscription or invoice)."""
        metadata = dict(self.data_object.get("metadata") or {})
        if not metadata:
            # Invoices carry the subscription metadata under parent details
            details = (self.data_object.get("parent") or {}).get("subscription_details") or {}
            metadata = dict(details.get("metadata") or {})
        return metadata

    @property
    def customer_id(self) -> Optional[str]:
        """Provider customer id of the event object."""
        customer = self.data_object.get("customer")
        if isinstance(customer, Mapping):
            return customer.get("id")
        return customer

    @property
    def subscription_id(self) -> Optional[str]:
        """Provider subscription id, for subscription and invoice objects alike."""
        if self.data_object.get("object") == "subscription":
            return self.data_object.get("id")
        subscription = self.data_object.get("subscription")
        if subscription is None:
            details = (self.data_object.get("parent") or {}).get("subscription_details") or {}
            subscription = details.get("subscription")
        if isinstance(subscription, Mapping):
            return subscription.get("id")
        return subscription

    @property
    def provider_status(self) -> Optional[str]:
        """Raw provider status of a subscription object."""
        return self.data_object.get("status")

    def _items(self) -> List[Dict[str, Any]]:
        return list((self.data_object.get("items") or {}).get("data") or [])

    @property
    def current_period_end(self) -> Optional[datetime]:
        """Period end; newer API versions only carry it on subscription items."""
        value = self.data_object.get("current_period_end")
        if value is None:
            ends = [
                item["current_period_end"]
                for item in self._items()
                if item.get("current_period_end")
            ]
            value = max(ends) if ends else None
        return _timestamp(value)

    @property
    def canceled_at(self) -> Optional[datetime]:
        """Cancellation time of a subscription object."""
        return _timestamp(self.data_object.get("canceled_at"))

    @property
    def price_ids(self) -> List[str]:
        """Price ids of the subscription items."""
        return [
            (item.get("price") or {}).get("id")
            for item in self._items()
            if (item.get("price") or {}).get("id")
        ]
