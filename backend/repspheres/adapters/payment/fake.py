"""Fake payment gateway for testing.

In-memory implementation of PaymentGatewayProtocol.
Records all calls for assertions. No external API calls.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import uuid4

from repspheres.core.exceptions import ExternalServiceError
from repspheres.core.protocols.payment import PaymentGatewayProtocol


class FakePaymentGateway(PaymentGatewayProtocol):
    """Test implementation of PaymentGatewayProtocol.

    Usage::

        fake = FakePaymentGateway()
        customer = await fake.create_customer("a@b.com")
        assert fake.call_count("create_customer") == 1

    Error injection:
        ``should_raise`` fails every call; ``fail_on`` fails only the named
        methods with an ``ExternalServiceError``.
    """

    def __init__(
        self,
        price_ids: Optional[dict[str, Optional[str]]] = None,
        metered_price_ids: Optional[dict[str, Optional[str]]] = None,
        should_raise: Optional[Exception] = None,
        fail_on: Optional[set[str]] = None,
        latency: float = 0.0,
    ) -> None:
        """Initialize with optional price IDs, error injection and simulated latency."""
        self._price_ids = (
            price_ids
            if price_ids is not None
            else {
                "starter": "price_starter",
                "professional": "price_pro",
                "enterprise": "price_ent",
            }
        )
        self._metered_price_ids = (
            metered_price_ids
            if metered_price_ids is not None
            else {
                "ai_queries": "price_metered_ai",
                "automation_runs": "price_metered_automation",
                "categories": None,
                "api_calls": "price_metered_api",
            }
        )
        self._should_raise = should_raise
        self._fail_on = set(fail_on or ())
        self._latency = latency
        self._calls: list[tuple[str, tuple, dict]] = []

        # In-memory state
        self._customers: dict[str, Any] = {}
        self._customers_by_key: dict[str, str] = {}
        self._subscriptions: dict[str, Any] = {}
        self.meter_events: dict[str, Any] = {}

    async def _record(self, method: str, *args: Any, **kwargs: Any) -> None:
        self._calls.append((method, args, kwargs))
        if self._latency:
            await asyncio.sleep(self._latency)
        else:
            await asyncio.sleep(0)
        if self._should_raise:
            raise self._should_raise
        if method in self._fail_on:
            raise ExternalServiceError("Stripe", f"{method} failed")

    # ---- Test helpers ----

    def call_count(self, method: str) -> int:
        """Number of times a method was called."""
        return sum(1 for name, _, _ in self._calls if name == method)

    def calls_for(self, method: str) -> list[tuple[tuple, dict]]:
        """Return (args, kwargs) for each call to *method*."""
        return [(a, k) for name, a, k in self._calls if name == method]

    def clear(self) -> None:
        """Reset all recorded state."""
        self._calls.clear()
        self._customers.clear()
        self._customers_by_key.clear()
        self._subscriptions.clear()
        self.meter_events.clear()

    def fail(self, *methods: str) -> None:
        """Make the named methods raise from now on."""
        self._fail_on.update(methods)

    def recover(self) -> None:
        """Stop injecting failures."""
        self._fail_on.clear()
        self._should_raise = None

    @property
    def customer_ids(self) -> list[str]:
        """Ids of customers currently alive in the fake provider."""
        return list(self._customers)

    def seed_subscription(self, subscription_id: str, customer_id: str, **fields: Any) -> Any:
        """Register a provider subscription created outside the fake."""
        obj = _obj(
            id=subscription_id,
            customer=customer_id,
            status=fields.pop("status", "active"),
            current_period_end=fields.pop("current_period_end", None),
            items=_obj(data=list(fields.pop("items", []))),
            metadata=fields.pop("metadata", {}),
            **fields,
        )
        self._subscriptions[subscription_id] = obj
        return obj

    # ---- Price / plan mapping ----

    def get_price_for_plan(self, plan_id: str) -> Optional[str]:
        """Return fake price ID for a plan."""
        return self._price_ids.get(plan_id)

    def get_plan_price_ids(self) -> Dict[str, Optional[str]]:
        """Return the configured fake plan prices."""
        return dict(self._price_ids)

    def get_metered_price(self, feature_type: str) -> Optional[str]:
        """Return fake metered price ID for a feature type."""
        return self._metered_price_ids.get(feature_type)

    # ---- Customer operations ----

    async def create_customer(
        self,
        email: str,
        metadata: Optional[Dict[str, str]] = None,
        idempotency_key: Optional[str] = None,
    ) -> Any:
        """Create a fake customer in memory.

        Honours ``idempotency_key`` only while the earlier customer still
        exists, like a real provider's retention window.
        """
        await self._record(
            "create_customer", email, metadata=metadata, idempotency_key=idempotency_key
        )
        if idempotency_key and self._customers_by_key.get(idempotency_key) in self._customers:
            return self._customers[self._customers_by_key[idempotency_key]]
        cid = f"cus_{uuid4().hex[:14]}"
        obj = _obj(id=cid, email=email, metadata=metadata or {})
        self._customers[cid] = obj
        if idempotency_key:
            self._customers_by_key[idempotency_key] = cid
        return obj

    async def retrieve_customer(self, customer_id: str) -> Any:
        """Retrieve a fake customer."""
        await self._record("retrieve_customer", customer_id)
        return self._customers.get(customer_id) or _obj(id=customer_id)

    async def delete_customer(self, customer_id: str) -> None:
        """Delete a fake customer from memory."""
        self._calls.append(("delete_customer", (customer_id,), {}))
        self._customers.pop(customer_id, None)

    # ---- Payment method operations ----

    async def attach_payment_method(self, payment_method_id: str, customer_id: str) -> Any:
        """Pretend to attach a payment method."""
        await self._record("attach_payment_method", payment_method_id, customer_id)
        return _obj(id=payment_method_id, customer=customer_id)

    async def set_default_payment_method(self, customer_id: str, payment_method_id: str) -> Any:
        """Pretend to set the default payment method."""
        await self._record("set_default_payment_method", customer_id, payment_method_id)
        customer = self._customers.get(customer_id) or _obj(id=customer_id)
        customer.invoice_settings = _obj(default_payment_method=payment_method_id)
        return customer

    # ---- Subscription operations ----

    async def create_subscription(
        self,
        customer_id: str,
        price_id: str,
        metadata: Optional[Dict[str, str]] = None,
        idempotency_key: Optional[str] = None,
    ) -> Any:
        """Create a fake active subscription in memory."""
        await self._record(
            "create_subscription",
            customer_id,
            price_id,
            metadata=metadata,
            idempotency_key=idempotency_key,
        )
        sid = f"sub_{uuid4().hex[:14]}"
        obj = _obj(
            id=sid,
            customer=customer_id,
            status="active",
            current_period_end=int(datetime(2099, 1, 1, tzinfo=timezone.utc).timestamp()),
            items=_obj(
                data=[
                    _obj(
                        id=f"si_{uuid4().hex[:8]}",
                        price=_obj(id=price_id, metadata={}),
                        quantity=1,
                    )
                ]
            ),
            metadata=metadata or {},
        )
        self._subscriptions[sid] = obj
        return obj

    # ---- Metered usage ----

    async def find_subscription_item(
        self, subscription_id: str, product_type: str
    ) -> Optional[str]:
        """Find an item tagged with ``product_type``."""
        await self._record("find_subscription_item", subscription_id, product_type)
        sub = self._subscriptions.get(subscription_id)
        if sub is None:
            return None
        for item in sub.items.data:
            if (item.price.metadata or {}).get("product_type") == product_type:
                return item.id
        return None

    async def add_subscription_item(
        self, subscription_id: str, price_id: str, idempotency_key: Optional[str] = None
    ) -> str:
        """Add a metered item tagged with the feature type the price belongs to."""
        await self._record(
            "add_subscription_item", subscription_id, price_id, idempotency_key=idempotency_key
        )
        product_type = next(
            (ft for ft, pid in self._metered_price_ids.items() if pid == price_id), None
        )
        item = _obj(
            id=f"si_{uuid4().hex[:8]}",
            price=_obj(id=price_id, metadata={"product_type": product_type}),
        )
        sub = self._subscriptions.get(subscription_id)
        if sub is None:
            sub = self.seed_subscription(subscription_id, customer_id="")
        sub.items.data.append(item)
        return item.id

    async def report_usage_increment(
        self,
        customer_id: str,
        feature_type: str,
        quantity: int,
        identifier: str,
        timestamp: datetime,
    ) -> str:
        """Record a meter event; a repeated identifier is deduplicated."""
        await self._record(
            "report_usage_increment",
            customer_id,
            feature_type,
            quantity,
            identifier=identifier,
            timestamp=timestamp,
        )
        self.meter_events.setdefault(
            identifier,
            _obj(
                identifier=identifier,
                customer=customer_id,
                feature_type=feature_type,
                value=quantity,
                timestamp=timestamp,
            ),
        )
        return identifier

    # ---- Checkout / portal ----

    async def create_checkout_session(
        self,
        customer_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> Any:
        """Return a fake checkout session URL."""
        await self._record("create_checkout_session", customer_id, price_id, metadata=metadata)
        return _obj(id=f"cs_{uuid4().hex[:14]}", url="https://checkout.fake/session")

    async def create_portal_session(self, customer_id: str, return_url: str) -> Any:
        """Return a fake portal session URL."""
        await self._record("create_portal_session", customer_id, return_url)
        return _obj(url="https://portal.fake/session")

    # ---- Webhook operations ----

    def verify_webhook_signature(self, payload: bytes, signature: str) -> Dict[str, Any]:
        """Accept ``valid_sig``; reject anything else."""
        self._calls.append(("verify_webhook_signature", (payload, signature), {}))
        if signature != "valid_sig":
            raise ValueError("Invalid signature")
        return json.loads(payload)


class _obj:
    """Tiny attribute-bag to emulate Stripe object shapes in tests."""

    def __init__(self, **kwargs: Any):
        for k, v in kwargs.items():
            setattr(self, k, v)

    def get(self, key: str, default: Any = None) -> Any:
        """Get attribute by key with default."""
        return getattr(self, key, default)
