"""Billing service: the outbound half of the billing bridge.

Owns every call this backend makes to the billing provider on a user's
behalf: customer creation, subscription creation, hosted checkout and
portal sessions, and metered usage reports. Inbound provider events are
handled by ``BillingWebhookProcessor``.

Local subscription state is written only after the provider has confirmed
the corresponding change.
"""

from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from repspheres.core.config import Settings
from repspheres.core.logging import logger
from repspheres.core.protocols.payment import PaymentGatewayProtocol
from repspheres.domains.billing.exceptions import (
    BillingStateError,
    PriceNotConfiguredError,
    wrap_gateway_errors,
)
from repspheres.domains.billing.locks import UserLockRegistry
from repspheres.domains.billing.protocols import BillingServiceProtocol
from repspheres.domains.billing.repository import SubscriptionRepositoryProtocol
from repspheres.domains.billing.types import (
    get_plan,
    map_provider_status,
    next_status,
    plan_for_price_id,
)
from repspheres.models import UserSubscription
from repspheres.schemas.subscription import PlanId, SubscriptionStatus
from repspheres.schemas.usage import UsageFeatureType

# Statuses in which the user still holds a live provider subscription
_LIVE_STATUSES = {
    SubscriptionStatus.TRIALING,
    SubscriptionStatus.ACTIVE,
    SubscriptionStatus.PAST_DUE,
    SubscriptionStatus.UNPAID,
}


def period_end_of(subscription: Any) -> Optional[datetime]:
    """Current period end of a provider subscription object.

    Newer API versions carry it on the subscription items only.
    """
    value = subscription.get("current_period_end")
    if value is None:
        items = (subscription.get("items") or {}).get("data") or []
        ends = [
            item.get("current_period_end") for item in items if item.get("current_period_end")
        ]
        value = max(ends) if ends else None
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def _ensure_can_subscribe(record: Optional[UserSubscription]) -> None:
    """Refuse a new purchase for a live or canceled subscription record."""
    if record is None:
        return
    status = SubscriptionStatus(record.status)
    if status == SubscriptionStatus.CANCELED:
        raise BillingStateError("Subscription was canceled; a canceled account cannot resubscribe")
    if record.stripe_subscription_id and status in _LIVE_STATUSES:
        raise BillingStateError("User already has a subscription; use the billing portal")


class BillingService(BillingServiceProtocol):
    """Outbound billing operations for a single user."""

    def __init__(
        self,
        payment_gateway: PaymentGatewayProtocol,
        subscription_repo: SubscriptionRepositoryProtocol,
        locks: UserLockRegistry,
        settings: Settings,
    ) -> None:
        """Initialize with all required dependencies."""
        self._payment_gateway = payment_gateway
        self._subscription_repo = subscription_repo
        self._locks = locks
        self._success_url = settings.CHECKOUT_SUCCESS_URL
        self._cancel_url = settings.CHECKOUT_CANCEL_URL
        self._portal_return_url = settings.PORTAL_RETURN_URL

    # ------------------------------------------------------------------
    # Customers
    # ------------------------------------------------------------------

    @wrap_gateway_errors
    async def find_or_create_customer(self, db: AsyncSession, *, user_id: UUID, email: str) -> str:
        """Return the user's provider customer id, creating the customer at most once.

        In-process callers are serialised per user. Across processes the
        stored mapping is claimed with a compare-and-set; a caller that loses
        the race deletes the customer it just created and adopts the winner's.
        """
        log = logger.with_context(user_id=str(user_id))
        async with self._locks.hold(user_id):
            record = await self._subscription_repo.get_by_user_id(db, user_id=user_id)
            if record is not None and record.stripe_customer_id:
                await self._payment_gateway.retrieve_customer(record.stripe_customer_id)
                return record.stripe_customer_id

            customer = await self._payment_gateway.create_customer(
                email=email,
                metadata={"user_id": str(user_id)},
                idempotency_key=f"customer-{user_id}",
            )
            stored = await self._subscription_repo.claim_customer_id(
                db, user_id=user_id, stripe_customer_id=customer.id
            )
            if stored != customer.id:
                log.warning(
                    f"Customer {customer.id} lost the race to {stored}; deleting the duplicate"
                )
                await self._payment_gateway.delete_customer(customer.id)
            else:
                log.info(f"Created provider customer {stored}")
            return stored

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def _price_for(self, plan_id: PlanId) -> str:
        get_plan(plan_id)
        if plan_id == PlanId.FREE:
            raise BillingStateError("The free plan cannot be purchased")
        price_id = self._payment_gateway.get_price_for_plan(plan_id.value)
        if not price_id:
            raise PriceNotConfiguredError(plan_id.value)
        return price_id

    @wrap_gateway_errors
    async def create_subscription(
        self,
        db: AsyncSession,
        *,
        user_id: UUID,
        email: str,
        plan_id: PlanId,
        payment_method_id: str,
    ) -> UserSubscription:
        """Subscribe the user to ``plan_id`` paying with ``payment_method_id``.

        The local record is written only after the provider returns the
        created subscription.
        """
        log = logger.with_context(user_id=str(user_id), plan_id=plan_id.value)
        price_id = self._price_for(plan_id)

        existing = await self._subscription_repo.get_by_user_id(db, user_id=user_id)
        _ensure_can_subscribe(existing)

        customer_id = await self.find_or_create_customer(db, user_id=user_id, email=email)
        await self._payment_gateway.attach_payment_method(payment_method_id, customer_id)
        await self._payment_gateway.set_default_payment_method(customer_id, payment_method_id)
        subscription = await self._payment_gateway.create_subscription(
            customer_id=customer_id,
            price_id=price_id,
            metadata={"user_id": str(user_id), "plan_id": plan_id.value},
            idempotency_key=f"subscription-{user_id}-{plan_id.value}-{payment_method_id}",
        )
        proposed = map_provider_status(subscription.get("status")) or SubscriptionStatus.NONE

        async with self._locks.hold(user_id):
            record = await self._subscription_repo.ensure_exists(db, user_id=user_id)
            status = next_status(SubscriptionStatus(record.status), proposed)
            if status == SubscriptionStatus.CANCELED:
                log.warning(f"Record was canceled while creating {subscription.id}")
                raise BillingStateError("Subscription was canceled")
            record = await self._subscription_repo.update(
                db,
                db_obj=record,
                obj_in={
                    "stripe_customer_id": record.stripe_customer_id or customer_id,
                    "stripe_subscription_id": subscription.id,
                    "plan_id": plan_id.value,
                    "status": status.value,
                    "current_period_end": period_end_of(subscription),
                },
            )
        log.info(f"Created subscription {subscription.id} with status {status.value}")
        return record

    # ------------------------------------------------------------------
    # Hosted pages
    # ------------------------------------------------------------------

    @wrap_gateway_errors
    async def start_checkout(
        self, db: AsyncSession, *, user_id: UUID, email: str, price_id: str
    ) -> str:
        """Create a subscription-mode checkout session for a catalog price."""
        plan_id = plan_for_price_id(price_id, self._payment_gateway.get_plan_price_ids())
        if plan_id is None:
            raise BillingStateError(f"Unknown price: {price_id}")
        _ensure_can_subscribe(
            await self._subscription_repo.get_by_user_id(db, user_id=user_id)
        )

        customer_id = await self.find_or_create_customer(db, user_id=user_id, email=email)
        session = await self._payment_gateway.create_checkout_session(
            customer_id=customer_id,
            price_id=price_id,
            success_url=self._success_url,
            cancel_url=self._cancel_url,
            metadata={"user_id": str(user_id), "plan_id": plan_id.value},
        )
        logger.with_context(user_id=str(user_id)).info(
            f"Started checkout for plan {plan_id.value}"
        )
        return session.url

    @wrap_gateway_errors
    async def create_portal_session(
        self, db: AsyncSession, *, user_id: UUID, return_url: Optional[str] = None
    ) -> str:
        """Open the provider's billing portal for the user's customer."""
        record = await self._subscription_repo.get_by_user_id(db, user_id=user_id)
        if record is None or not record.stripe_customer_id:
            raise BillingStateError("No billing account exists for this user")
        session = await self._payment_gateway.create_portal_session(
            customer_id=record.stripe_customer_id,
            return_url=return_url or self._portal_return_url,
        )
        return session.url

    # ------------------------------------------------------------------
    # Metered usage
    # ------------------------------------------------------------------

    def metered_feature_types(self) -> list[str]:
        """Feature types with a metered price configured."""
        return [
            ft.value for ft in UsageFeatureType if self._payment_gateway.get_metered_price(ft.value)
        ]

    @wrap_gateway_errors
    async def report_usage(
        self,
        *,
        subscription_id: str,
        customer_id: str,
        feature_type: str,
        quantity: int,
        identifier: str,
        timestamp: datetime,
    ) -> Optional[str]:
        """Report ``quantity`` units of ``feature_type`` against the subscription.

        Adds the feature's metered price to the subscription first when no
        item carries it yet. ``identifier`` is the local usage event id and
        makes the report idempotent on the provider side.

        Returns:
            The provider usage record id, or None when the feature is not metered.
        """
        price_id = self._payment_gateway.get_metered_price(feature_type)
        if not price_id:
            return None

        item_id = await self._payment_gateway.find_subscription_item(subscription_id, feature_type)
        if item_id is None:
            item_id = await self._payment_gateway.add_subscription_item(
                subscription_id,
                price_id,
                idempotency_key=f"metered-item-{subscription_id}-{feature_type}",
            )
            logger.info(f"Added metered item {item_id} ({feature_type}) to {subscription_id}")

        return await self._payment_gateway.report_usage_increment(
            customer_id=customer_id,
            feature_type=feature_type,
            quantity=quantity,
            identifier=identifier,
            timestamp=timestamp,
        )
