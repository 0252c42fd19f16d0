"""Entitlement domain test fixtures and helpers."""

from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import AsyncMock
from uuid import UUID

import pytest

from repspheres.core.config import Settings
from repspheres.domains.billing.fakes.repository import FakeSubscriptionRepository
from repspheres.domains.entitlements.evaluator import EntitlementEvaluator
from repspheres.domains.entitlements.fakes import FakeTeamSeatRepository
from repspheres.domains.usage.fakes import FakeUsageLedger
from repspheres.models import UserSubscription
from repspheres.schemas.subscription import PlanId, SubscriptionStatus

DEFAULT_USER_ID = UUID("00000000-0000-0000-0000-0000000000dd")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_evaluator(
    **settings_overrides: Any,
) -> tuple[
    EntitlementEvaluator, FakeSubscriptionRepository, FakeUsageLedger, FakeTeamSeatRepository
]:
    """Build an EntitlementEvaluator wired to fakes. Returns (evaluator, *fakes)."""
    values: dict[str, Any] = dict(ENVIRONMENT="test", AUTH_ENABLED=False, STRIPE_ENABLED=False)
    values.update(settings_overrides)
    sub_repo = FakeSubscriptionRepository()
    ledger = FakeUsageLedger()
    seats = FakeTeamSeatRepository()
    evaluator = EntitlementEvaluator(
        subscription_repo=sub_repo,
        usage_ledger=ledger,
        seat_repo=seats,
        settings=Settings(**values),
    )
    return evaluator, sub_repo, ledger, seats


def _seed(
    repo: FakeSubscriptionRepository,
    plan_id: PlanId,
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
    user_id: UUID = DEFAULT_USER_ID,
    **fields: Any,
) -> UserSubscription:
    """Seed a paid record whose period ends in the future."""
    values: dict[str, Any] = dict(
        stripe_customer_id="cus_test",
        stripe_subscription_id="sub_test",
        current_period_end=datetime.now(timezone.utc) + timedelta(days=20),
    )
    values.update(fields)
    return repo.seed(user_id, plan_id=plan_id.value, status=status.value, **values)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def db():
    return AsyncMock()
