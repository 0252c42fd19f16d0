"""Billing domain test fixtures and helpers.

Provides service/processor wiring against fakes and builders for the
provider event shapes the webhook processor consumes.
"""

import json
import time
from typing import Any, Optional
from unittest.mock import AsyncMock
from uuid import UUID

import pytest

from repspheres.adapters.notifications.fake import FakeSubscriptionNotifier
from repspheres.adapters.payment.fake import FakePaymentGateway
from repspheres.core.config import Settings
from repspheres.domains.billing.fakes.repository import (
    FakeSubscriptionRepository,
    FakeWebhookEventRepository,
)
from repspheres.domains.billing.locks import UserLockRegistry
from repspheres.domains.billing.service import BillingService
from repspheres.domains.billing.webhook_processor import BillingWebhookProcessor

DEFAULT_USER_ID = UUID("00000000-0000-0000-0000-0000000000aa")
DEFAULT_EMAIL = "rep@example.com"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_settings(**overrides: Any) -> Settings:
    """Settings for tests; auth and Stripe disabled unless overridden."""
    values: dict[str, Any] = dict(
        ENVIRONMENT="test",
        AUTH_ENABLED=False,
        STRIPE_ENABLED=False,
        CHECKOUT_SUCCESS_URL="https://app.test/success",
        CHECKOUT_CANCEL_URL="https://app.test/cancel",
        PORTAL_RETURN_URL="https://app.test/account",
    )
    values.update(overrides)
    return Settings(**values)


def _make_service(
    *,
    payment_gateway: Optional[FakePaymentGateway] = None,
    subscription_repo: Optional[FakeSubscriptionRepository] = None,
    locks: Optional[UserLockRegistry] = None,
) -> tuple[BillingService, FakePaymentGateway, FakeSubscriptionRepository]:
    """Build a BillingService wired to fakes. Returns (service, *fakes)."""
    gw = payment_gateway or FakePaymentGateway()
    repo = subscription_repo or FakeSubscriptionRepository()
    svc = BillingService(
        payment_gateway=gw,
        subscription_repo=repo,
        locks=locks or UserLockRegistry(),
        settings=_make_settings(),
    )
    return svc, gw, repo


def _make_webhook_processor(
    *,
    payment_gateway: Optional[FakePaymentGateway] = None,
    subscription_repo: Optional[FakeSubscriptionRepository] = None,
    webhook_event_repo: Optional[FakeWebhookEventRepository] = None,
    notifier: Optional[FakeSubscriptionNotifier] = None,
) -> tuple[
    BillingWebhookProcessor,
    FakePaymentGateway,
    FakeSubscriptionRepository,
    FakeWebhookEventRepository,
    FakeSubscriptionNotifier,
]:
    """Build a BillingWebhookProcessor wired to fakes. Returns (processor, *fakes)."""
    gw = payment_gateway or FakePaymentGateway()
    repo = subscription_repo or FakeSubscriptionRepository()
    events = webhook_event_repo or FakeWebhookEventRepository()
    notifier = notifier or FakeSubscriptionNotifier()
    proc = BillingWebhookProcessor(
        payment_gateway=gw,
        subscription_repo=repo,
        webhook_event_repo=events,
        notifier=notifier,
        locks=UserLockRegistry(),
    )
    return proc, gw, repo, events, notifier


def _make_event(
    event_type: str,
    data_object: dict,
    event_id: str = "evt_test",
    created: Optional[int] = None,
) -> dict:
    """Build a decoded provider event body."""
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "created": created if created is not None else int(time.time()),
        "data": {"object": data_object},
    }


def _make_subscription_obj(**overrides: Any) -> dict:
    """Build a provider subscription object with defaults."""
    now_ts = int(time.time())
    defaults: dict[str, Any] = dict(
        id="sub_test",
        object="subscription",
        customer="cus_test",
        status="active",
        current_period_end=now_ts + 30 * 86400,
        canceled_at=None,
        items={"data": [{"id": "si_test", "price": {"id": "price_pro", "metadata": {}}}]},
        metadata={"user_id": str(DEFAULT_USER_ID), "plan_id": "professional"},
    )
    defaults.update(overrides)
    return defaults


def _make_invoice_obj(**overrides: Any) -> dict:
    """Build a provider invoice object."""
    defaults: dict[str, Any] = dict(
        id="in_test",
        object="invoice",
        customer="cus_test",
        subscription="sub_test",
        attempt_count=1,
        metadata={},
    )
    defaults.update(overrides)
    return defaults


def _payload(event: dict) -> bytes:
    return json.dumps(event).encode("utf-8")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def db():
    """AsyncMock database session; fakes ignore it."""
    return AsyncMock()
