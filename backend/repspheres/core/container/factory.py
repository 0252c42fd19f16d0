"""Container Factory.

All construction logic lives here. The factory reads settings and builds
the container with environment-appropriate implementations.

Design principles:
- Single place for all wiring decisions
- Environment-aware: Stripe and notifications only when configured
- Fail fast: broken wiring crashes at startup, not on the first request
"""

from repspheres.adapters.notifications.http import HttpSubscriptionNotifier
from repspheres.adapters.notifications.logging import LoggingSubscriptionNotifier
from repspheres.core.config import Settings
from repspheres.core.container.container import Container
from repspheres.core.logging import logger
from repspheres.core.protocols import PaymentGatewayProtocol, SubscriptionNotifierProtocol
from repspheres.db.session import get_db_context
from repspheres.domains.billing.locks import UserLockRegistry
from repspheres.domains.billing.repository import SubscriptionRepository, WebhookEventRepository
from repspheres.domains.billing.service import BillingService
from repspheres.domains.billing.webhook_processor import BillingWebhookProcessor
from repspheres.domains.entitlements.evaluator import EntitlementEvaluator
from repspheres.domains.entitlements.repository import TeamSeatRepository
from repspheres.domains.usage.ledger import UsageLedger
from repspheres.domains.usage.protocols import UsageReconcilerProtocol, UsageReporterProtocol
from repspheres.domains.usage.reconciler import NullUsageReconciler, UsageReconciler
from repspheres.domains.usage.repository import UsageEventRepository


def create_container(settings: Settings) -> Container:
    """Build container with environment-appropriate implementations.

    This is the single source of truth for dependency wiring.

    Args:
        settings: Application settings (from core/config)

    Returns:
        Fully constructed Container ready for use
    """
    payment_gateway = _create_payment_gateway(settings)
    notifier = _create_notifier(settings)

    # -----------------------------------------------------------------
    # Billing services
    # The service and the webhook processor share one lock registry so
    # customer creation and webhook writes for a user never interleave.
    # -----------------------------------------------------------------
    subscription_repo = SubscriptionRepository()
    locks = UserLockRegistry()
    billing_service = BillingService(
        payment_gateway=payment_gateway,
        subscription_repo=subscription_repo,
        locks=locks,
        settings=settings,
    )
    billing_webhook = BillingWebhookProcessor(
        payment_gateway=payment_gateway,
        subscription_repo=subscription_repo,
        webhook_event_repo=WebhookEventRepository(),
        notifier=notifier,
        locks=locks,
    )

    # -----------------------------------------------------------------
    # Usage ledger + reconciler (billing service is the reporter)
    # -----------------------------------------------------------------
    usage_repo = UsageEventRepository()
    usage_ledger = UsageLedger(
        usage_repo=usage_repo,
        subscription_repo=subscription_repo,
        reporter=billing_service,
        settings=settings,
    )
    usage_reconciler = _create_usage_reconciler(
        settings, usage_repo, subscription_repo, billing_service
    )

    # -----------------------------------------------------------------
    # Entitlements
    # -----------------------------------------------------------------
    entitlement_evaluator = EntitlementEvaluator(
        subscription_repo=subscription_repo,
        usage_ledger=usage_ledger,
        seat_repo=TeamSeatRepository(),
        settings=settings,
    )

    return Container(
        payment_gateway=payment_gateway,
        notifier=notifier,
        billing_service=billing_service,
        billing_webhook=billing_webhook,
        usage_ledger=usage_ledger,
        usage_reconciler=usage_reconciler,
        entitlement_evaluator=entitlement_evaluator,
    )


# ---------------------------------------------------------------------------
# Private factory functions
# ---------------------------------------------------------------------------


def _create_payment_gateway(settings: Settings) -> PaymentGatewayProtocol:
    """Create payment gateway: Stripe if enabled, otherwise a null implementation."""
    if settings.STRIPE_ENABLED:
        from repspheres.adapters.payment.stripe import StripePaymentGateway

        return StripePaymentGateway(settings)

    from repspheres.adapters.payment.null import NullPaymentGateway

    logger.info("Stripe disabled; using NullPaymentGateway")
    return NullPaymentGateway()


def _create_notifier(settings: Settings) -> SubscriptionNotifierProtocol:
    """HTTP notifier when a receiver is configured, log-only otherwise."""
    if settings.NOTIFICATION_WEBHOOK_URL:
        return HttpSubscriptionNotifier(settings.NOTIFICATION_WEBHOOK_URL)
    return LoggingSubscriptionNotifier()


def _create_usage_reconciler(
    settings: Settings,
    usage_repo: UsageEventRepository,
    subscription_repo: SubscriptionRepository,
    reporter: UsageReporterProtocol,
) -> UsageReconcilerProtocol:
    """Reconciler against Stripe, or a no-op when there is nothing to report to."""
    if not settings.STRIPE_ENABLED:
        return NullUsageReconciler()
    return UsageReconciler(
        usage_repo=usage_repo,
        subscription_repo=subscription_repo,
        reporter=reporter,
        session_factory=get_db_context,
        settings=settings,
    )
