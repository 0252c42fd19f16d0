"""Payment gateway protocol.

Cross-cutting infrastructure protocol for the billing provider (Stripe).
All methods must be implemented by the same provider; the protocol is not split.

Direct consumers: BillingService, BillingWebhookProcessor.
"""

from datetime import datetime
from typing import Any, Dict, Optional, Protocol, runtime_checkable


@runtime_checkable
class PaymentGatewayProtocol(Protocol):
    """Protocol for payment gateway operations.

    Abstracts all payment provider interactions (customer management,
    subscriptions, metered usage, checkout, portal, webhooks).
    Implementations raise ``ExternalServiceError`` for provider failures.
    """

    # -------------------------------------------------------------------------
    # Price / plan mapping
    # -------------------------------------------------------------------------

    def get_price_for_plan(self, plan_id: str) -> Optional[str]:
        """Get provider price ID for a plan id, or None when not configured."""
        ...

    def get_plan_price_ids(self) -> Dict[str, Optional[str]]:
        """Configured plan id -> provider price id mapping."""
        ...

    def get_metered_price(self, feature_type: str) -> Optional[str]:
        """Get the metered price ID for a usage feature type, if configured."""
        ...

    # -------------------------------------------------------------------------
    # Customer operations
    # -------------------------------------------------------------------------

    async def create_customer(
        self,
        email: str,
        metadata: Optional[Dict[str, str]] = None,
        idempotency_key: Optional[str] = None,
    ) -> Any:
        """Create a customer in the payment provider."""
        ...

    async def retrieve_customer(self, customer_id: str) -> Any:
        """Fetch an existing customer."""
        ...

    async def delete_customer(self, customer_id: str) -> None:
        """Delete a customer (for rollback). Best-effort."""
        ...

    # -------------------------------------------------------------------------
    # Payment method operations
    # -------------------------------------------------------------------------

    async def attach_payment_method(self, payment_method_id: str, customer_id: str) -> Any:
        """Attach a payment method to a customer."""
        ...

    async def set_default_payment_method(self, customer_id: str, payment_method_id: str) -> Any:
        """Make a payment method the customer's default for invoices."""
        ...

    # -------------------------------------------------------------------------
    # Subscription operations
    # -------------------------------------------------------------------------

    async def create_subscription(
        self,
        customer_id: str,
        price_id: str,
        metadata: Optional[Dict[str, str]] = None,
        idempotency_key: Optional[str] = None,
    ) -> Any:
        """Create a subscription with quantity 1 of ``price_id``."""
        ...

    # -------------------------------------------------------------------------
    # Metered usage
    # -------------------------------------------------------------------------

    async def find_subscription_item(
        self, subscription_id: str, product_type: str
    ) -> Optional[str]:
        """Find the item whose price metadata ``product_type`` matches. Returns its id."""
        ...

    async def add_subscription_item(
        self, subscription_id: str, price_id: str, idempotency_key: Optional[str] = None
    ) -> str:
        """Add a metered price to a subscription. Returns the new item id."""
        ...

    async def report_usage_increment(
        self,
        customer_id: str,
        feature_type: str,
        quantity: int,
        identifier: str,
        timestamp: datetime,
    ) -> str:
        """Report an increment of metered usage.

        ``identifier`` deduplicates on the provider side, so re-reporting the
        same event is safe. Returns the provider's usage record id.
        """
        ...

    # -------------------------------------------------------------------------
    # Checkout / portal
    # -------------------------------------------------------------------------

    async def create_checkout_session(
        self,
        customer_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> Any:
        """Create a checkout session for a subscription. Result carries ``url``."""
        ...

    async def create_portal_session(self, customer_id: str, return_url: str) -> Any:
        """Create a customer portal session. Result carries ``url``."""
        ...

    # -------------------------------------------------------------------------
    # Webhook operations
    # -------------------------------------------------------------------------

    def verify_webhook_signature(self, payload: bytes, signature: str) -> Dict[str, Any]:
        """Verify a webhook signature and return the decoded event body.

        Raises ValueError if the signature is invalid.
        """
        ...
