"""Stripe payment gateway.

Implements PaymentGatewayProtocol with the async ``StripeClient``. Every
call is bounded by ``STRIPE_TIMEOUT_SECONDS``, retried on transient
failures (connection errors, rate limits), and any Stripe error that
escapes is re-raised as ``ExternalServiceError`` so raw provider messages
never cross the adapter boundary.

Metered usage is reported as Billing Meter Events. The local usage event id
is sent as the meter event ``identifier``, which Stripe deduplicates, so the
reconciler can re-report safely.
"""

import functools
import json
from datetime import datetime
from typing import Any, Dict, Optional

import stripe
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from repspheres.core.config import Settings, settings
from repspheres.core.exceptions import ExternalServiceError
from repspheres.core.logging import logger
from repspheres.core.protocols.payment import PaymentGatewayProtocol

_TRANSIENT_ERRORS = (stripe.APIConnectionError, stripe.RateLimitError)

# Stripe rejects signatures older than this many seconds
WEBHOOK_TOLERANCE_SECONDS = 300


def _stripe_call(fn):
    """Retry transient Stripe failures, then wrap Stripe errors as ExternalServiceError."""
    retrying = retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, max=4),
        retry=retry_if_exception_type(_TRANSIENT_ERRORS),
        reraise=True,
    )(fn)

    @functools.wraps(fn)
    async def wrapper(*args, **kwargs):
        try:
            return await retrying(*args, **kwargs)
        except stripe.StripeError as e:
            logger.error(f"Stripe call {fn.__name__} failed: {e}")
            raise ExternalServiceError("Stripe", f"{fn.__name__} failed") from e

    return wrapper


class StripePaymentGateway(PaymentGatewayProtocol):
    """PaymentGatewayProtocol backed by Stripe."""

    def __init__(self, config: Optional[Settings] = None) -> None:
        """Build the async Stripe client from settings."""
        self._settings = config or settings
        self._client = stripe.StripeClient(
            api_key=self._settings.STRIPE_SECRET_KEY,
            http_client=stripe.HTTPXClient(timeout=self._settings.STRIPE_TIMEOUT_SECONDS),
            max_network_retries=self._settings.STRIPE_MAX_NETWORK_RETRIES,
        )
        self._plan_prices = self._settings.plan_price_ids()
        self._metered_prices = self._settings.metered_price_ids()

    # ---- Price / plan mapping ----

    def get_price_for_plan(self, plan_id: str) -> Optional[str]:
        """Configured price id for a plan."""
        return self._plan_prices.get(plan_id)

    def get_plan_price_ids(self) -> Dict[str, Optional[str]]:
        """Configured plan id -> price id mapping."""
        return dict(self._plan_prices)

    def get_metered_price(self, feature_type: str) -> Optional[str]:
        """Configured metered price id for a usage feature type."""
        return self._metered_prices.get(feature_type)

    # ---- Customer operations ----

    @_stripe_call
    async def create_customer(
        self,
        email: str,
        metadata: Optional[Dict[str, str]] = None,
        idempotency_key: Optional[str] = None,
    ) -> Any:
        """Create a Stripe customer."""
        options = {"idempotency_key": idempotency_key} if idempotency_key else {}
        return await self._client.customers.create_async(
            params={"email": email, "metadata": metadata or {}},
            options=options,
        )

    @_stripe_call
    async def retrieve_customer(self, customer_id: str) -> Any:
        """Fetch a Stripe customer."""
        return await self._client.customers.retrieve_async(customer_id)

    async def delete_customer(self, customer_id: str) -> None:
        """Delete a Stripe customer. Best-effort: failures are logged."""
        try:
            await self._client.customers.delete_async(customer_id)
        except stripe.StripeError as e:
            logger.warning(f"Failed to delete Stripe customer {customer_id}: {e}")

    # ---- Payment method operations ----

    @_stripe_call
    async def attach_payment_method(self, payment_method_id: str, customer_id: str) -> Any:
        """Attach a payment method to a customer."""
        return await self._client.payment_methods.attach_async(
            payment_method_id, params={"customer": customer_id}
        )

    @_stripe_call
    async def set_default_payment_method(self, customer_id: str, payment_method_id: str) -> Any:
        """Set the customer's default invoice payment method."""
        return await self._client.customers.update_async(
            customer_id,
            params={"invoice_settings": {"default_payment_method": payment_method_id}},
        )

    # ---- Subscription operations ----

    @_stripe_call
    async def create_subscription(
        self,
        customer_id: str,
        price_id: str,
        metadata: Optional[Dict[str, str]] = None,
        idempotency_key: Optional[str] = None,
    ) -> Any:
        """Create a subscription with one unit of ``price_id``."""
        options = {"idempotency_key": idempotency_key} if idempotency_key else {}
        return await self._client.subscriptions.create_async(
            params={
                "customer": customer_id,
                "items": [{"price": price_id, "quantity": 1}],
                "metadata": metadata or {},
                "expand": ["latest_invoice.payment_intent"],
            },
            options=options,
        )

    # ---- Metered usage ----

    @_stripe_call
    async def find_subscription_item(
        self, subscription_id: str, product_type: str
    ) -> Optional[str]:
        """Find the subscription item whose price is tagged with ``product_type``."""
        subscription = await self._client.subscriptions.retrieve_async(subscription_id)
        metered_price = self._metered_prices.get(product_type)
        for item in subscription["items"]["data"]:
            price = item["price"]
            metadata = price.get("metadata") or {}
            if metadata.get("product_type") == product_type:
                return item["id"]
            if metered_price and price["id"] == metered_price:
                return item["id"]
        return None

    @_stripe_call
    async def add_subscription_item(
        self, subscription_id: str, price_id: str, idempotency_key: Optional[str] = None
    ) -> str:
        """Add a metered price to the subscription."""
        options = {"idempotency_key": idempotency_key} if idempotency_key else {}
        item = await self._client.subscription_items.create_async(
            params={"subscription": subscription_id, "price": price_id},
            options=options,
        )
        return item["id"]

    @_stripe_call
    async def report_usage_increment(
        self,
        customer_id: str,
        feature_type: str,
        quantity: int,
        identifier: str,
        timestamp: datetime,
    ) -> str:
        """Send a meter event for ``quantity`` units of ``feature_type``."""
        event = await self._client.billing.meter_events.create_async(
            params={
                "event_name": f"{self._settings.STRIPE_METER_EVENT_NAME_PREFIX}_{feature_type}",
                "payload": {"stripe_customer_id": customer_id, "value": str(quantity)},
                "identifier": identifier,
                "timestamp": int(timestamp.timestamp()),
            }
        )
        return event["identifier"]

    # ---- Checkout / portal ----

    @_stripe_call
    async def create_checkout_session(
        self,
        customer_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> Any:
        """Create a hosted checkout session in subscription mode."""
        return await self._client.checkout.sessions.create_async(
            params={
                "customer": customer_id,
                "mode": "subscription",
                "line_items": [{"price": price_id, "quantity": 1}],
                "success_url": success_url,
                "cancel_url": cancel_url,
                "metadata": metadata or {},
                "subscription_data": {"metadata": metadata or {}},
            }
        )

    @_stripe_call
    async def create_portal_session(self, customer_id: str, return_url: str) -> Any:
        """Create a billing portal session."""
        return await self._client.billing_portal.sessions.create_async(
            params={"customer": customer_id, "return_url": return_url}
        )

    # ---- Webhook operations ----

    def verify_webhook_signature(self, payload: bytes, signature: str) -> Dict[str, Any]:
        """Verify the ``stripe-signature`` header and decode the event.

        Raises:
            ValueError: on a bad signature, a missing secret or a body that is not JSON.
        """
        secret = self._settings.STRIPE_WEBHOOK_SECRET
        if not secret:
            raise ValueError("Webhook secret not configured")
        body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        try:
            stripe.WebhookSignature.verify_header(
                body, signature, secret, tolerance=WEBHOOK_TOLERANCE_SECONDS
            )
        except stripe.SignatureVerificationError as e:
            raise ValueError(f"Invalid signature: {e}") from e
        try:
            return json.loads(body)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid payload: {e}") from e
