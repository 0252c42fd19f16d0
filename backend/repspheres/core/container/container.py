"""Dependency Injection Container.

The container is a simple immutable dataclass that holds protocol implementations.
It has no construction logic; that belongs in the factory.

Design principles:
- Container serves, factory builds
- Fail fast: all construction at startup
- Type safety: fields are protocol types
- Testing: construct directly with fakes
"""

from dataclasses import dataclass, replace
from typing import Any

from repspheres.core.protocols import PaymentGatewayProtocol, SubscriptionNotifierProtocol
from repspheres.domains.billing.protocols import BillingServiceProtocol, BillingWebhookProtocol
from repspheres.domains.entitlements.protocols import EntitlementEvaluatorProtocol
from repspheres.domains.usage.protocols import UsageLedgerProtocol, UsageReconcilerProtocol


@dataclass(frozen=True)
class Container:
    """Immutable container holding all protocol implementations.

    Usage:
        # Production: use the global container built by factory
        from repspheres.core.container import container
        await container.usage_ledger.record_usage(db, user_id=..., feature_type=...)

        # Testing: construct directly with fakes (see api/conftest.py)
        test_container = Container(payment_gateway=FakePaymentGateway(), ...)

        # FastAPI endpoints: use Inject() to pull individual protocols
        from repspheres.api.deps import Inject
        async def my_endpoint(ledger: UsageLedgerProtocol = Inject(UsageLedgerProtocol)):
            ...
    """

    # Provider adapters
    payment_gateway: PaymentGatewayProtocol
    notifier: SubscriptionNotifierProtocol

    # Billing domain
    billing_service: BillingServiceProtocol
    billing_webhook: BillingWebhookProtocol

    # Usage domain
    usage_ledger: UsageLedgerProtocol
    usage_reconciler: UsageReconcilerProtocol

    # Entitlements domain
    entitlement_evaluator: EntitlementEvaluatorProtocol

    # -----------------------------------------------------------------
    # Convenience methods
    # -----------------------------------------------------------------

    def replace(self, **changes: Any) -> "Container":
        """Create a new container with some dependencies replaced.

        Useful for partial overrides in tests:

            modified = container.replace(entitlement_evaluator=FakeEntitlementEvaluator())
        """
        return replace(self, **changes)
