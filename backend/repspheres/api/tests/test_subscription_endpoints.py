"""Tests for the subscription endpoints: plans, status, access, usage and management."""

import pytest

from repspheres.api.conftest import TEST_USER
from repspheres.api.deps import get_container
from repspheres.domains.entitlements.fakes import FakeEntitlementEvaluator
from repspheres.schemas.entitlement import AccessDecision
from repspheres.schemas.subscription import PlanId, SubscriptionStatus


def _seed_paid(fakes, plan_id: PlanId = PlanId.PROFESSIONAL, **fields):
    values = dict(
        plan_id=plan_id.value,
        status=SubscriptionStatus.ACTIVE.value,
        stripe_customer_id="cus_api",
        stripe_subscription_id="sub_api",
    )
    values.update(fields)
    return fakes.subscriptions.seed(TEST_USER.id, **values)


# ---------------------------------------------------------------------------
# GET /api/subscription/plans
# ---------------------------------------------------------------------------


class TestListPlans:
    @pytest.mark.asyncio
    async def test_lists_catalog_in_wire_format(self, client):
        resp = await client.get("/api/subscription/plans")

        assert resp.status_code == 200
        plans = {plan["id"]: plan for plan in resp.json()}
        assert list(plans) == ["free", "starter", "professional", "enterprise"]
        assert plans["professional"]["limits"] == {
            "users": 5,
            "aiQueries": 1000,
            "categories": "unlimited",
        }
        assert plans["professional"]["features"] == {"automation": True, "api": True}
        assert plans["enterprise"]["limits"]["users"] == "unlimited"


# ---------------------------------------------------------------------------
# GET /api/subscription/status
# ---------------------------------------------------------------------------


class TestStatus:
    @pytest.mark.asyncio
    async def test_new_user_is_on_free_tier(self, client):
        resp = await client.get("/api/subscription/status")

        assert resp.status_code == 200
        body = resp.json()
        assert body["isActive"] is True
        assert body["planId"] == "free"
        assert body["status"] == "none"
        assert body["usage"] == {
            "users": 1,
            "aiQueries": 0,
            "automationRuns": 0,
            "categories": 0,
            "apiCalls": 0,
        }

    @pytest.mark.asyncio
    async def test_paid_user_sees_usage_and_limits(self, client, fakes):
        _seed_paid(fakes)
        fakes.usage_events.seed(TEST_USER.id, "ai_queries", quantity=3)

        resp = await client.get("/api/subscription/status")

        body = resp.json()
        assert body["planId"] == "professional"
        assert body["status"] == "active"
        assert body["usage"]["aiQueries"] == 3
        assert body["usage"]["users"] == 1
        assert body["limits"]["aiQueries"] == 1000

    @pytest.mark.asyncio
    async def test_usage_reports_seats_in_use(self, client, fakes):
        _seed_paid(fakes)
        fakes.seats.invite(TEST_USER.id, "rep1@example.com", "rep2@example.com")

        resp = await client.get("/api/subscription/status")

        assert resp.json()["usage"]["users"] == 3
        assert resp.json()["limits"]["users"] == 5

    @pytest.mark.asyncio
    async def test_canceled_user_is_inactive(self, client, fakes):
        _seed_paid(fakes, status=SubscriptionStatus.CANCELED.value)

        resp = await client.get("/api/subscription/status")

        assert resp.json()["isActive"] is False
        assert resp.json()["status"] == "canceled"


# ---------------------------------------------------------------------------
# GET /api/subscription/access/{feature}
# ---------------------------------------------------------------------------


class TestCheckAccess:
    @pytest.mark.asyncio
    async def test_allowed_decision_omits_empty_fields(self, client, fakes):
        _seed_paid(fakes)

        resp = await client.get("/api/subscription/access/automation")

        assert resp.status_code == 200
        assert resp.json() == {"hasAccess": True}

    @pytest.mark.asyncio
    async def test_ai_query_quota_offers_purchase(self, client, fakes):
        for _ in range(10):
            fakes.usage_events.seed(TEST_USER.id, "ai_queries")

        resp = await client.get("/api/subscription/access/ai_query")

        assert resp.json() == {
            "hasAccess": False,
            "reason": "AI query limit reached (10/month)",
            "canPurchase": True,
            "price": 0.5,
        }

    @pytest.mark.asyncio
    async def test_inactive_subscription_requires_upgrade(self, client, fakes):
        _seed_paid(fakes, status=SubscriptionStatus.PAST_DUE.value)

        resp = await client.get("/api/subscription/access/api")

        assert resp.status_code == 200
        assert resp.json() == {
            "hasAccess": False,
            "reason": "Subscription inactive",
            "requiresUpgrade": True,
        }

    @pytest.mark.asyncio
    async def test_storage_failure_is_denied_not_raised(self, client, fakes):
        _seed_paid(fakes, plan_id=PlanId.STARTER)
        fakes.seats.error = RuntimeError("db down")

        resp = await client.get("/api/subscription/access/user")

        assert resp.status_code == 200
        assert resp.json() == {"hasAccess": False, "reason": "Error checking access"}

    @pytest.mark.asyncio
    async def test_feature_name_is_passed_through_verbatim(self, client, test_container):
        from repspheres.main import app

        evaluator = FakeEntitlementEvaluator()
        evaluator.decisions["bulk-export"] = AccessDecision.deny(
            "Exports are disabled", requires_upgrade=True
        )
        app.dependency_overrides[get_container] = lambda: test_container.replace(
            entitlement_evaluator=evaluator
        )

        resp = await client.get("/api/subscription/access/bulk-export")

        assert resp.json() == {
            "hasAccess": False,
            "reason": "Exports are disabled",
            "requiresUpgrade": True,
        }
        assert evaluator.checks == [(TEST_USER.id, "bulk-export")]


# ---------------------------------------------------------------------------
# POST /api/subscription/track-usage
# ---------------------------------------------------------------------------


class TestTrackUsage:
    @pytest.mark.asyncio
    async def test_records_and_reports_usage(self, client, fakes):
        _seed_paid(fakes)

        resp = await client.post(
            "/api/subscription/track-usage", json={"feature": "ai_queries", "quantity": 2}
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["featureType"] == "ai_queries"
        assert body["quantity"] == 2
        assert body["externalUsageRecordId"] == body["id"]
        assert body["id"] in fakes.gateway.meter_events

    @pytest.mark.asyncio
    async def test_provider_outage_still_records_usage(self, client, fakes):
        _seed_paid(fakes)
        fakes.gateway.fail("report_usage_increment")

        resp = await client.post("/api/subscription/track-usage", json={"feature": "api_calls"})

        assert resp.status_code == 200
        assert resp.json()["externalUsageRecordId"] is None
        assert len(fakes.usage_events.events) == 1

    @pytest.mark.asyncio
    async def test_inactive_subscription_is_402(self, client, fakes):
        _seed_paid(fakes, status=SubscriptionStatus.CANCELED.value)

        resp = await client.post("/api/subscription/track-usage", json={"feature": "ai_queries"})

        assert resp.status_code == 402
        assert "active subscription" in resp.json()["error"]
        assert fakes.usage_events.events == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            {"feature": "ai_queries", "quantity": 0},
            {"feature": "ai_queries", "quantity": -3},
            {"feature": "teleportation"},
            {},
        ],
    )
    async def test_invalid_body_is_422(self, client, fakes, body):
        _seed_paid(fakes)

        resp = await client.post("/api/subscription/track-usage", json=body)

        assert resp.status_code == 422
        assert fakes.usage_events.events == []


# ---------------------------------------------------------------------------
# POST /api/subscription and /api/subscription/portal
# ---------------------------------------------------------------------------


class TestManageSubscription:
    @pytest.mark.asyncio
    async def test_create_subscription(self, client, fakes):
        resp = await client.post(
            "/api/subscription",
            json={"planId": "professional", "paymentMethodId": "pm_card"},
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["planId"] == "professional"
        assert body["status"] == "active"
        assert body["stripeCustomerId"].startswith("cus_")
        assert fakes.gateway.call_count("attach_payment_method") == 1

    @pytest.mark.asyncio
    async def test_create_free_subscription_is_400(self, client):
        resp = await client.post(
            "/api/subscription", json={"planId": "free", "paymentMethodId": "pm_card"}
        )

        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_portal_for_existing_customer(self, client, fakes):
        _seed_paid(fakes)

        resp = await client.post("/api/subscription/portal", json={})

        assert resp.status_code == 200
        assert resp.json() == {"url": "https://portal.fake/session"}
        (args, _), = fakes.gateway.calls_for("create_portal_session")
        assert args == ("cus_api", "https://app.test/account")

    @pytest.mark.asyncio
    async def test_portal_without_customer_is_400(self, client):
        resp = await client.post("/api/subscription/portal", json={})

        assert resp.status_code == 400
