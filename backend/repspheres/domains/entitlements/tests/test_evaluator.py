"""Unit tests for EntitlementEvaluator."""

from datetime import datetime, timedelta, timezone

import pytest

from repspheres.domains.billing.fakes.repository import make_subscription_record
from repspheres.domains.entitlements.evaluator import is_expired
from repspheres.domains.entitlements.tests.conftest import (
    DEFAULT_USER_ID,
    _make_evaluator,
    _seed,
)
from repspheres.schemas.subscription import PlanId, SubscriptionStatus
from repspheres.schemas.usage import UsageFeatureType

AI = UsageFeatureType.AI_QUERIES
CATEGORIES = UsageFeatureType.CATEGORIES


async def _check(evaluator, db, feature: str):
    decision = await evaluator.check_access(db, user_id=DEFAULT_USER_ID, feature=feature)
    return decision.model_dump(by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Subscription state
# ---------------------------------------------------------------------------


class TestSubscriptionState:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status",
        [
            SubscriptionStatus.CANCELED,
            SubscriptionStatus.PAST_DUE,
            SubscriptionStatus.UNPAID,
            SubscriptionStatus.TRIALING,
        ],
    )
    async def test_inactive_statuses_require_upgrade(self, db, status):
        evaluator, sub_repo, *_ = _make_evaluator()
        _seed(sub_repo, PlanId.PROFESSIONAL, status=status)

        assert await _check(evaluator, db, "automation") == {
            "hasAccess": False,
            "reason": "Subscription inactive",
            "requiresUpgrade": True,
        }

    @pytest.mark.asyncio
    async def test_trialing_counts_when_configured(self, db):
        evaluator, sub_repo, *_ = _make_evaluator(TRIAL_GRANTS_ACCESS=True)
        _seed(sub_repo, PlanId.PROFESSIONAL, status=SubscriptionStatus.TRIALING)

        assert await _check(evaluator, db, "automation") == {"hasAccess": True}

    @pytest.mark.asyncio
    async def test_expired_period_is_denied(self, db):
        """Scenario C: active record whose period already ended."""
        evaluator, sub_repo, *_ = _make_evaluator()
        _seed(
            sub_repo,
            PlanId.PROFESSIONAL,
            current_period_end=datetime.now(timezone.utc) - timedelta(minutes=1),
        )

        assert await _check(evaluator, db, "automation") == {
            "hasAccess": False,
            "reason": "Subscription expired",
        }

    @pytest.mark.asyncio
    async def test_missing_period_end_never_expires(self, db):
        evaluator, sub_repo, *_ = _make_evaluator()
        _seed(sub_repo, PlanId.PROFESSIONAL, current_period_end=None)

        assert await _check(evaluator, db, "api") == {"hasAccess": True}

    @pytest.mark.asyncio
    async def test_user_without_record_gets_free_tier(self, db):
        evaluator, *_ = _make_evaluator()

        assert await _check(evaluator, db, "ai_query") == {"hasAccess": True}
        assert (await _check(evaluator, db, "automation"))["hasAccess"] is False

    @pytest.mark.asyncio
    async def test_free_tier_disabled_denies_users_without_subscription(self, db):
        evaluator, *_ = _make_evaluator(FREE_TIER_ENABLED=False)

        assert await _check(evaluator, db, "ai_query") == {
            "hasAccess": False,
            "reason": "Subscription inactive",
            "requiresUpgrade": True,
        }

    def test_is_expired_treats_naive_datetimes_as_utc(self):
        now = datetime(2025, 1, 10, tzinfo=timezone.utc)
        record = make_subscription_record(
            DEFAULT_USER_ID, current_period_end=datetime(2025, 1, 9, 23, 0)
        )
        assert is_expired(record, now)
        assert not is_expired(None, now)


# ---------------------------------------------------------------------------
# AI queries
# ---------------------------------------------------------------------------


class TestAiQuery:
    @pytest.mark.asyncio
    async def test_limit_reached_offers_overage(self, db):
        """Scenario A: starter plan with 100 queries this period."""
        evaluator, sub_repo, ledger, _ = _make_evaluator()
        _seed(sub_repo, PlanId.STARTER)
        ledger.set_total(DEFAULT_USER_ID, AI, 100)

        assert await _check(evaluator, db, "ai_query") == {
            "hasAccess": False,
            "reason": "AI query limit reached (100/month)",
            "canPurchase": True,
            "price": 0.5,
        }

    @pytest.mark.asyncio
    async def test_under_limit_is_allowed(self, db):
        evaluator, sub_repo, ledger, _ = _make_evaluator()
        _seed(sub_repo, PlanId.STARTER)
        ledger.set_total(DEFAULT_USER_ID, AI, 99)

        assert await _check(evaluator, db, "ai_query") == {"hasAccess": True}

    @pytest.mark.asyncio
    async def test_overage_price_is_configurable(self, db):
        evaluator, sub_repo, ledger, _ = _make_evaluator(AI_QUERY_OVERAGE_PRICE=0.25)
        _seed(sub_repo, PlanId.STARTER)
        ledger.set_total(DEFAULT_USER_ID, AI, 500)

        assert (await _check(evaluator, db, "ai_query"))["price"] == 0.25

    @pytest.mark.asyncio
    @pytest.mark.parametrize("used", [0, 10**6, 10**12])
    async def test_unlimited_plan_allows_any_usage(self, db, used):
        evaluator, sub_repo, ledger, _ = _make_evaluator()
        _seed(sub_repo, PlanId.ENTERPRISE)
        ledger.set_total(DEFAULT_USER_ID, AI, used)

        assert await _check(evaluator, db, "ai_query") == {"hasAccess": True}


# ---------------------------------------------------------------------------
# Capabilities and quotas
# ---------------------------------------------------------------------------


class TestCapabilities:
    @pytest.mark.asyncio
    async def test_professional_enables_automation(self, db):
        """Scenario B."""
        evaluator, sub_repo, *_ = _make_evaluator()
        _seed(sub_repo, PlanId.PROFESSIONAL)

        assert await _check(evaluator, db, "automation") == {"hasAccess": True}

    @pytest.mark.asyncio
    async def test_starter_lacks_automation_and_api(self, db):
        evaluator, sub_repo, *_ = _make_evaluator()
        _seed(sub_repo, PlanId.STARTER)

        assert await _check(evaluator, db, "automation") == {
            "hasAccess": False,
            "reason": "Automation requires Professional plan or higher",
            "requiresUpgrade": True,
        }
        assert await _check(evaluator, db, "api") == {
            "hasAccess": False,
            "reason": "API access requires Professional plan or higher",
            "requiresUpgrade": True,
        }

    @pytest.mark.asyncio
    async def test_category_limit(self, db):
        evaluator, sub_repo, ledger, _ = _make_evaluator()
        _seed(sub_repo, PlanId.STARTER)
        ledger.set_total(DEFAULT_USER_ID, CATEGORIES, 5)

        assert await _check(evaluator, db, "category") == {
            "hasAccess": False,
            "reason": "Category limit reached (5 categories)",
            "requiresUpgrade": True,
        }

    @pytest.mark.asyncio
    async def test_unlimited_categories(self, db):
        evaluator, sub_repo, ledger, _ = _make_evaluator()
        _seed(sub_repo, PlanId.PROFESSIONAL)
        ledger.set_total(DEFAULT_USER_ID, CATEGORIES, 10_000)

        assert await _check(evaluator, db, "category") == {"hasAccess": True}

    @pytest.mark.asyncio
    async def test_seats_include_the_owner(self, db):
        evaluator, sub_repo, _, seats = _make_evaluator()
        _seed(sub_repo, PlanId.PROFESSIONAL)
        seats.invite(DEFAULT_USER_ID, "a@x.test", "b@x.test", "c@x.test")

        assert await _check(evaluator, db, "user") == {"hasAccess": True}

        seats.invite(DEFAULT_USER_ID, "d@x.test")
        assert await _check(evaluator, db, "user") == {
            "hasAccess": False,
            "reason": "User limit reached (5 users)",
            "requiresUpgrade": True,
        }

    @pytest.mark.asyncio
    async def test_single_seat_plan_is_full_with_just_the_owner(self, db):
        evaluator, sub_repo, *_ = _make_evaluator()
        _seed(sub_repo, PlanId.STARTER)

        assert (await _check(evaluator, db, "user"))["reason"] == "User limit reached (1 users)"


# ---------------------------------------------------------------------------
# Unknown features and errors
# ---------------------------------------------------------------------------


class TestUnknownAndErrors:
    @pytest.mark.asyncio
    async def test_unknown_feature_allowed_by_default(self, db):
        evaluator, sub_repo, *_ = _make_evaluator()
        _seed(sub_repo, PlanId.STARTER)

        assert await _check(evaluator, db, "time_travel") == {"hasAccess": True}

    @pytest.mark.asyncio
    async def test_unknown_feature_denied_when_configured(self, db):
        evaluator, sub_repo, *_ = _make_evaluator(UNKNOWN_FEATURE_POLICY="deny")
        _seed(sub_repo, PlanId.STARTER)

        assert await _check(evaluator, db, "time_travel") == {
            "hasAccess": False,
            "reason": "Unknown feature",
        }

    @pytest.mark.asyncio
    async def test_unknown_feature_still_requires_subscription(self, db):
        evaluator, sub_repo, *_ = _make_evaluator()
        _seed(sub_repo, PlanId.STARTER, status=SubscriptionStatus.CANCELED)

        assert (await _check(evaluator, db, "time_travel"))["reason"] == "Subscription inactive"

    @pytest.mark.asyncio
    async def test_unknown_stored_plan_is_reported_as_error(self, db):
        evaluator, sub_repo, *_ = _make_evaluator()
        sub_repo.seed(DEFAULT_USER_ID, plan_id="platinum", status="active")

        assert await _check(evaluator, db, "ai_query") == {
            "hasAccess": False,
            "reason": "Error checking access",
        }

    @pytest.mark.asyncio
    async def test_storage_failure_is_reported_as_error(self, db):
        evaluator, sub_repo, ledger, _ = _make_evaluator()
        _seed(sub_repo, PlanId.STARTER)
        ledger.summary_error = RuntimeError("connection reset")

        assert await _check(evaluator, db, "ai_query") == {
            "hasAccess": False,
            "reason": "Error checking access",
        }


# ---------------------------------------------------------------------------
# get_status
# ---------------------------------------------------------------------------


class TestGetStatus:
    @pytest.mark.asyncio
    async def test_active_professional(self, db):
        evaluator, sub_repo, ledger, _ = _make_evaluator()
        _seed(sub_repo, PlanId.PROFESSIONAL)
        ledger.set_total(DEFAULT_USER_ID, AI, 42)

        status = await evaluator.get_status(db, user_id=DEFAULT_USER_ID)
        body = status.model_dump(by_alias=True, mode="json")

        assert body["isActive"] is True
        assert body["planId"] == "professional"
        assert body["features"] == {"automation": True, "api": True}
        assert body["limits"] == {"users": 5, "aiQueries": 1000, "categories": "unlimited"}
        assert body["usage"] == {
            "users": 1,
            "aiQueries": 42,
            "automationRuns": 0,
            "categories": 0,
            "apiCalls": 0,
        }

    @pytest.mark.asyncio
    async def test_status_usage_counts_team_seats(self, db):
        evaluator, sub_repo, _, seats = _make_evaluator()
        _seed(sub_repo, PlanId.PROFESSIONAL)
        seats.invite(DEFAULT_USER_ID, "a@x.test", "b@x.test")

        status = await evaluator.get_status(db, user_id=DEFAULT_USER_ID)

        assert status.usage.users == 3

    @pytest.mark.asyncio
    async def test_canceled_user_sees_stored_plan_inactive(self, db):
        evaluator, sub_repo, *_ = _make_evaluator()
        _seed(sub_repo, PlanId.STARTER, status=SubscriptionStatus.CANCELED)

        status = await evaluator.get_status(db, user_id=DEFAULT_USER_ID)

        assert status.is_active is False
        assert status.plan_id == PlanId.STARTER
        assert status.status == SubscriptionStatus.CANCELED

    @pytest.mark.asyncio
    async def test_user_without_record_is_on_free(self, db):
        evaluator, *_ = _make_evaluator()

        status = await evaluator.get_status(db, user_id=DEFAULT_USER_ID)

        assert status.is_active is True
        assert status.plan_id == PlanId.FREE
        assert status.status == SubscriptionStatus.NONE
