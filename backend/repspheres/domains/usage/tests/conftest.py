"""Usage domain test fixtures and helpers.

Follows the pattern from domains/billing/tests/.
"""

from contextlib import asynccontextmanager
from typing import Any, Optional
from unittest.mock import AsyncMock
from uuid import UUID

import pytest

from repspheres.core.config import Settings
from repspheres.domains.billing.fakes.repository import FakeSubscriptionRepository
from repspheres.domains.usage.fakes import FakeUsageEventRepository, FakeUsageReporter
from repspheres.domains.usage.ledger import UsageLedger
from repspheres.domains.usage.reconciler import UsageReconciler
from repspheres.models import UserSubscription
from repspheres.schemas.subscription import PlanId, SubscriptionStatus

DEFAULT_USER_ID = UUID("00000000-0000-0000-0000-0000000000bb")
OTHER_USER_ID = UUID("00000000-0000-0000-0000-0000000000cc")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = dict(ENVIRONMENT="test", AUTH_ENABLED=False, STRIPE_ENABLED=False)
    values.update(overrides)
    return Settings(**values)


def _seed_paid(
    repo: FakeSubscriptionRepository,
    user_id: UUID = DEFAULT_USER_ID,
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
    plan_id: PlanId = PlanId.PROFESSIONAL,
) -> UserSubscription:
    """Seed a record that is billed through the provider."""
    return repo.seed(
        user_id,
        stripe_customer_id=f"cus_{user_id.hex[-4:]}",
        stripe_subscription_id=f"sub_{user_id.hex[-4:]}",
        status=status.value,
        plan_id=plan_id.value,
    )


def _make_ledger(
    *,
    usage_repo: Optional[FakeUsageEventRepository] = None,
    subscription_repo: Optional[FakeSubscriptionRepository] = None,
    reporter: Optional[FakeUsageReporter] = None,
    **settings_overrides: Any,
) -> tuple[UsageLedger, FakeUsageEventRepository, FakeSubscriptionRepository, FakeUsageReporter]:
    """Build a UsageLedger wired to fakes. Returns (ledger, *fakes)."""
    ur = usage_repo or FakeUsageEventRepository()
    sr = subscription_repo or FakeSubscriptionRepository()
    rep = reporter or FakeUsageReporter()
    ledger = UsageLedger(
        usage_repo=ur,
        subscription_repo=sr,
        reporter=rep,
        settings=_make_settings(**settings_overrides),
    )
    return ledger, ur, sr, rep


@asynccontextmanager
async def _fake_session():
    yield AsyncMock()


def _make_reconciler(
    *,
    usage_repo: Optional[FakeUsageEventRepository] = None,
    subscription_repo: Optional[FakeSubscriptionRepository] = None,
    reporter: Optional[FakeUsageReporter] = None,
    **settings_overrides: Any,
) -> tuple[
    UsageReconciler, FakeUsageEventRepository, FakeSubscriptionRepository, FakeUsageReporter
]:
    """Build a UsageReconciler wired to fakes. Returns (reconciler, *fakes)."""
    ur = usage_repo or FakeUsageEventRepository()
    sr = subscription_repo or FakeSubscriptionRepository()
    rep = reporter or FakeUsageReporter()
    reconciler = UsageReconciler(
        usage_repo=ur,
        subscription_repo=sr,
        reporter=rep,
        session_factory=_fake_session,
        settings=_make_settings(**settings_overrides),
    )
    return reconciler, ur, sr, rep


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def db():
    return AsyncMock()
