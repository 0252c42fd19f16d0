"""API test fixtures.

Provides an async HTTP client wired to the FastAPI app with the DI container
overridden to use fakes. Available to all colocated API tests under api/.

Pattern:
    1. Override get_container -> returns test_container (real services over fakes)
    2. Override get_current_user -> fixed test user; get_db -> AsyncMock session
    3. Test hits the endpoint, asserts on HTTP response + fake state
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock
from uuid import UUID

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from repspheres import schemas
from repspheres.adapters.notifications.fake import FakeSubscriptionNotifier
from repspheres.adapters.payment.fake import FakePaymentGateway
from repspheres.api.deps import get_container, get_current_user, get_db
from repspheres.core.config import Settings
from repspheres.core.container import Container
from repspheres.domains.billing.fakes.repository import (
    FakeSubscriptionRepository,
    FakeWebhookEventRepository,
)
from repspheres.domains.billing.locks import UserLockRegistry
from repspheres.domains.billing.service import BillingService
from repspheres.domains.billing.webhook_processor import BillingWebhookProcessor
from repspheres.domains.entitlements.evaluator import EntitlementEvaluator
from repspheres.domains.entitlements.fakes import FakeTeamSeatRepository
from repspheres.domains.usage.fakes import FakeUsageEventRepository
from repspheres.domains.usage.ledger import UsageLedger
from repspheres.domains.usage.reconciler import NullUsageReconciler

TEST_USER = schemas.User(id=UUID("00000000-0000-0000-0000-0000000000ee"), email="api@example.com")


@pytest.fixture
def fakes() -> SimpleNamespace:
    """The in-memory collaborators behind test_container, for seeding and assertions."""
    return SimpleNamespace(
        gateway=FakePaymentGateway(),
        notifier=FakeSubscriptionNotifier(),
        subscriptions=FakeSubscriptionRepository(),
        webhook_events=FakeWebhookEventRepository(),
        usage_events=FakeUsageEventRepository(),
        seats=FakeTeamSeatRepository(),
    )


@pytest.fixture
def test_container(fakes) -> Container:
    """Container with the real domain services running against fakes."""
    settings = Settings(
        ENVIRONMENT="test",
        AUTH_ENABLED=False,
        STRIPE_ENABLED=False,
        CHECKOUT_SUCCESS_URL="https://app.test/success",
        CHECKOUT_CANCEL_URL="https://app.test/cancel",
        PORTAL_RETURN_URL="https://app.test/account",
    )
    locks = UserLockRegistry()
    billing_service = BillingService(
        payment_gateway=fakes.gateway,
        subscription_repo=fakes.subscriptions,
        locks=locks,
        settings=settings,
    )
    usage_ledger = UsageLedger(
        usage_repo=fakes.usage_events,
        subscription_repo=fakes.subscriptions,
        reporter=billing_service,
        settings=settings,
    )
    return Container(
        payment_gateway=fakes.gateway,
        notifier=fakes.notifier,
        billing_service=billing_service,
        billing_webhook=BillingWebhookProcessor(
            payment_gateway=fakes.gateway,
            subscription_repo=fakes.subscriptions,
            webhook_event_repo=fakes.webhook_events,
            notifier=fakes.notifier,
            locks=locks,
        ),
        usage_ledger=usage_ledger,
        usage_reconciler=NullUsageReconciler(),
        entitlement_evaluator=EntitlementEvaluator(
            subscription_repo=fakes.subscriptions,
            usage_ledger=usage_ledger,
            seat_repo=fakes.seats,
            settings=settings,
        ),
    )


async def _fake_db():
    yield AsyncMock()


@pytest_asyncio.fixture
async def client(test_container):
    """Async HTTP client with faked DI container, session and user."""
    from repspheres.main import app

    app.dependency_overrides[get_container] = lambda: test_container
    app.dependency_overrides[get_current_user] = lambda: TEST_USER
    app.dependency_overrides[get_db] = _fake_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
