"""Usage domain types and pure business logic.

Billing periods are calendar months in UTC; usage counters reset at the
first instant of each month. No IO here.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from repspheres.models import UserSubscription
from repspheres.schemas.subscription import SubscriptionStatus

# Stripe rejects meter events timestamped further back than this
METER_EVENT_MAX_AGE = timedelta(days=35)


def current_period_start(now: Optional[datetime] = None) -> datetime:
    """First instant of the calendar month containing ``now`` (UTC)."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    now = now.astimezone(timezone.utc)
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


@dataclass
class ReconcileResult:
    """Outcome of one reconciliation pass."""

    examined: int = 0
    reported: int = 0
    skipped: int = 0
    failed: int = 0


def is_reportable(record: Optional[UserSubscription]) -> bool:
    """Whether usage of the record's owner is billed through the provider.

    Free-tier usage (no record, no provider subscription, or a subscription
    that never got past ``none``) stays local.
    """
    return (
        record is not None
        and bool(record.stripe_subscription_id)
        and bool(record.stripe_customer_id)
        and record.status != SubscriptionStatus.NONE.value
    )
