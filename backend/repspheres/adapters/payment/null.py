"""Null payment gateway for when Stripe is disabled.

Satisfies PaymentGatewayProtocol so the container can always be fully
constructed.

No prices are configured, so the billing service raises
PriceNotConfiguredError before reaching the provider for subscriptions;
the remaining user-facing operations raise BillingNotAvailableError.
Metered reporting is never attempted because no metered price exists.

verify_webhook_signature raises ValueError, matching the Stripe adapter's
contract for invalid signatures.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from repspheres.core.protocols.payment import PaymentGatewayProtocol
from repspheres.domains.billing.exceptions import BillingNotAvailableError


class NullPaymentGateway(PaymentGatewayProtocol):
    """No-op payment gateway used when Stripe is disabled."""

    # ------------------------------------------------------------------
    # Price mapping: nothing is configured
    # ------------------------------------------------------------------

    def get_price_for_plan(self, plan_id: str) -> Optional[str]:
        """No prices without a provider."""
        return None

    def get_plan_price_ids(self) -> Dict[str, Optional[str]]:
        """No prices without a provider."""
        return {}

    def get_metered_price(self, feature_type: str) -> Optional[str]:
        """No metered prices without a provider."""
        return None

    # ------------------------------------------------------------------
    # Infrastructure / lifecycle: silent no-ops
    # ------------------------------------------------------------------

    async def delete_customer(self, customer_id: str) -> None:
        """No-op: nothing to clean up."""
        return None

    # ------------------------------------------------------------------
    # User-facing operations: fail clearly
    # ------------------------------------------------------------------

    async def create_customer(
        self,
        email: str,
        metadata: Optional[Dict[str, str]] = None,
        idempotency_key: Optional[str] = None,
    ) -> Any:
        """Billing disabled."""
        raise BillingNotAvailableError()

    async def retrieve_customer(self, customer_id: str) -> Any:
        """Billing disabled."""
        raise BillingNotAvailableError()

    async def attach_payment_method(self, payment_method_id: str, customer_id: str) -> Any:
        """Billing disabled."""
        raise BillingNotAvailableError()

    async def set_default_payment_method(self, customer_id: str, payment_method_id: str) -> Any:
        """Billing disabled."""
        raise BillingNotAvailableError()

    async def create_subscription(
        self,
        customer_id: str,
        price_id: str,
        metadata: Optional[Dict[str, str]] = None,
        idempotency_key: Optional[str] = None,
    ) -> Any:
        """Billing disabled."""
        raise BillingNotAvailableError()

    async def find_subscription_item(
        self, subscription_id: str, product_type: str
    ) -> Optional[str]:
        """Billing disabled."""
        raise BillingNotAvailableError()

    async def add_subscription_item(
        self, subscription_id: str, price_id: str, idempotency_key: Optional[str] = None
    ) -> str:
        """Billing disabled."""
        raise BillingNotAvailableError()

    async def report_usage_increment(
        self,
        customer_id: str,
        feature_type: str,
        quantity: int,
        identifier: str,
        timestamp: datetime,
    ) -> str:
        """Billing disabled."""
        raise BillingNotAvailableError()

    async def create_checkout_session(
        self,
        customer_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> Any:
        """Billing disabled."""
        raise BillingNotAvailableError()

    async def create_portal_session(self, customer_id: str, return_url: str) -> Any:
        """Billing disabled."""
        raise BillingNotAvailableError()

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    def verify_webhook_signature(self, payload: bytes, signature: str) -> Dict[str, Any]:
        """Always rejects: there is no signing secret without a provider."""
        raise ValueError("Billing is not enabled; webhooks are not accepted")
