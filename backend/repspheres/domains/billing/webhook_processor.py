"""Webhook processor for Stripe billing events.

The inbound half of the billing bridge. Verified provider events are parsed
into a typed ``WebhookEvent`` and dispatched to one handler per
``WebhookEventKind``. Each event is applied at most once: its id is written
to the replay ledger in the same transaction as the state change. Writes for
one user are serialised by the shared per-user lock, and ``last_event_at``
keeps an older event from overwriting newer state.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from repspheres.core.logging import ContextualLogger, logger
from repspheres.core.protocols.notifier import SubscriptionNotifierProtocol
from repspheres.core.protocols.payment import PaymentGatewayProtocol
from repspheres.domains.billing.exceptions import wrap_gateway_errors
from repspheres.domains.billing.locks import UserLockRegistry
from repspheres.domains.billing.protocols import BillingWebhookProtocol
from repspheres.domains.billing.repository import (
    SubscriptionRepositoryProtocol,
    WebhookEventRepositoryProtocol,
)
from repspheres.domains.billing.types import (
    WebhookEvent,
    WebhookEventKind,
    map_provider_status,
    next_status,
    plan_for_price_id,
)
from repspheres.models import UserSubscription
from repspheres.schemas.subscription import PlanId, SubscriptionStatus


@dataclass(frozen=True)
class _Notice:
    """Lifecycle notice sent after the state change commits."""

    event: str
    details: Dict[str, Any] = field(default_factory=dict)


_Handler = Callable[
    [AsyncSession, WebhookEvent, UserSubscription, ContextualLogger],
    Awaitable[Optional[_Notice]],
]


class BillingWebhookProcessor(BillingWebhookProtocol):
    """Process Stripe webhook events for user subscriptions."""

    def __init__(
        self,
        payment_gateway: PaymentGatewayProtocol,
        subscription_repo: SubscriptionRepositoryProtocol,
        webhook_event_repo: WebhookEventRepositoryProtocol,
        notifier: SubscriptionNotifierProtocol,
        locks: UserLockRegistry,
    ) -> None:
        """Initialize with all required dependencies."""
        self._payment_gateway = payment_gateway
        self._subscription_repo = subscription_repo
        self._webhook_event_repo = webhook_event_repo
        self._notifier = notifier
        self._locks = locks

        # Event handler mapping; UNKNOWN has no entry and is ignored
        self.handlers: Dict[WebhookEventKind, _Handler] = {
            WebhookEventKind.SUBSCRIPTION_CREATED: self._handle_subscription_upsert,
            WebhookEventKind.SUBSCRIPTION_UPDATED: self._handle_subscription_upsert,
            WebhookEventKind.SUBSCRIPTION_DELETED: self._handle_subscription_deleted,
            WebhookEventKind.PAYMENT_SUCCEEDED: self._handle_payment_succeeded,
            WebhookEventKind.PAYMENT_FAILED: self._handle_payment_failed,
            WebhookEventKind.TRIAL_WILL_END: self._handle_trial_will_end,
        }

    @wrap_gateway_errors
    async def process_webhook(self, db: AsyncSession, payload: bytes, signature: str) -> None:
        """Verify webhook signature and process the resulting event.

        Raises ValueError if the signature is invalid or the body is malformed.
        """
        body = self._payment_gateway.verify_webhook_signature(payload, signature)
        event = WebhookEvent.from_payload(body)
        await self._process_event(db, event)

    async def _process_event(self, db: AsyncSession, event: WebhookEvent) -> None:
        """Apply a verified event once, under the owning user's lock."""
        log = logger.with_context(stripe_event_id=event.id, event_type=event.type)

        handler = self.handlers.get(event.kind)
        if handler is None:
            log.info(f"Unhandled webhook event type: {event.type}")
            return

        if await self._webhook_event_repo.is_processed(db, event_id=event.id):
            log.info(f"Skipping already processed event {event.id}")
            return

        user_id = await self._resolve_user_id(db, event, log)
        if user_id is None:
            log.warning(f"Could not resolve a user for {event.type}; ignoring")
            return
        log = log.with_context(user_id=str(user_id))

        async with self._locks.hold(user_id):
            try:
                record = await self._subscription_repo.get_by_user_id(
                    db, user_id=user_id, for_update=True
                )
                if record is None:
                    record = await self._subscription_repo.ensure_exists(db, user_id=user_id)

                first_delivery = await self._webhook_event_repo.mark_processed(
                    db, event_id=event.id, event_type=event.type
                )
                if not first_delivery:
                    await db.rollback()
                    log.info(f"Event {event.id} was applied concurrently; skipping")
                    return

                log.info(f"Processing webhook event: {event.type}")
                notice = await handler(db, event, record, log)
                await db.commit()
            except Exception as e:
                await db.rollback()
                log.error(f"Error handling {event.type}: {e}", exc_info=True)
                raise

        if notice is not None:
            await self._notifier.notify(notice.event, user_id, notice.details)

    async def _resolve_user_id(
        self, db: AsyncSession, event: WebhookEvent, log: ContextualLogger
    ) -> Optional[UUID]:
        """Owner of the event: metadata, then subscription id, then customer id."""
        raw_user_id = event.metadata.get("user_id")
        if raw_user_id:
            try:
                return UUID(raw_user_id)
            except ValueError:
                log.warning(f"Ignoring malformed user_id in metadata: {raw_user_id!r}")

        record = None
        if event.subscription_id:
            record = await self._subscription_repo.get_by_stripe_subscription_id(
                db, stripe_subscription_id=event.subscription_id
            )
        if record is None and event.customer_id:
            record = await self._subscription_repo.get_by_stripe_customer_id(
                db, stripe_customer_id=event.customer_id
            )
        return record.user_id if record is not None else None

    # ---- Helpers ----

    @staticmethod
    def _is_stale(event: WebhookEvent, record: UserSubscription) -> bool:
        """Whether a newer event has already been applied to the record."""
        return record.last_event_at is not None and event.created < record.last_event_at

    @staticmethod
    def _last_event_at(event: WebhookEvent, record: UserSubscription) -> datetime:
        if record.last_event_at is None:
            return event.created
        return max(record.last_event_at, event.created)

    @staticmethod
    def _belongs_to_record(event: WebhookEvent, record: UserSubscription) -> bool:
        """Whether the event is about the subscription the record tracks."""
        return (
            record.stripe_subscription_id is None
            or event.subscription_id is None
            or event.subscription_id == record.stripe_subscription_id
        )

    def _plan_for_event(self, event: WebhookEvent, log: ContextualLogger) -> Optional[PlanId]:
        """Plan from metadata ``plan_id``, else from the subscription's prices."""
        raw_plan = event.metadata.get("plan_id")
        if raw_plan:
            try:
                return PlanId(raw_plan)
            except ValueError:
                log.warning(f"Ignoring unknown plan_id in metadata: {raw_plan!r}")
        price_ids = self._payment_gateway.get_plan_price_ids()
        for price_id in event.price_ids:
            plan_id = plan_for_price_id(price_id, price_ids)
            if plan_id is not None:
                return plan_id
        return None

    # ---- Event handlers ----

    async def _handle_subscription_upsert(
        self,
        db: AsyncSession,
        event: WebhookEvent,
        record: UserSubscription,
        log: ContextualLogger,
    ) -> Optional[_Notice]:
        """Handle subscription created/updated: mirror status, plan, period and ids."""
        current = SubscriptionStatus(record.status)
        if self._is_stale(event, record):
            log.info(f"Ignoring stale {event.type} from {event.created.isoformat()}")
            return None

        adopting = (
            event.subscription_id is not None
            and record.stripe_subscription_id is not None
            and event.subscription_id != record.stripe_subscription_id
        )
        # Only a record that never got going takes on another subscription
        if adopting and current != SubscriptionStatus.NONE:
            log.warning(
                f"Ignoring {event.subscription_id}: user holds "
                f"{record.stripe_subscription_id} ({current.value})"
            )
            return None

        proposed = map_provider_status(event.provider_status)
        if proposed is None:
            log.warning(f"Unknown provider status {event.provider_status!r}; keeping {current}")
            status = current
        else:
            status = next_status(current, proposed)
            if status != proposed:
                log.warning(f"Refusing transition {current.value} -> {proposed.value}")

        plan_id = self._plan_for_event(event, log)
        updates: Dict[str, Any] = {
            "stripe_subscription_id": event.subscription_id or record.stripe_subscription_id,
            "stripe_customer_id": record.stripe_customer_id or event.customer_id,
            "status": status.value,
            "plan_id": plan_id.value if plan_id else record.plan_id,
            "current_period_end": event.current_period_end or record.current_period_end,
            "last_event_at": self._last_event_at(event, record),
        }
        if status == SubscriptionStatus.CANCELED:
            updates["canceled_at"] = event.canceled_at or record.canceled_at or event.created

        await self._subscription_repo.update(db, db_obj=record, obj_in=updates, auto_commit=False)
        log.info(
            f"Subscription {updates['stripe_subscription_id']} is {status.value} "
            f"on plan {updates['plan_id']}"
        )
        return None

    async def _handle_subscription_deleted(
        self,
        db: AsyncSession,
        event: WebhookEvent,
        record: UserSubscription,
        log: ContextualLogger,
    ) -> Optional[_Notice]:
        """Handle subscription deletion: always ends in ``canceled``."""
        if not self._belongs_to_record(event, record):
            log.info(
                f"Ignoring deletion of {event.subscription_id}; "
                f"record tracks {record.stripe_subscription_id}"
            )
            return None

        await self._subscription_repo.update(
            db,
            db_obj=record,
            obj_in={
                "stripe_subscription_id": record.stripe_subscription_id or event.subscription_id,
                "status": SubscriptionStatus.CANCELED.value,
                "canceled_at": event.canceled_at or event.created,
                "last_event_at": self._last_event_at(event, record),
            },
            auto_commit=False,
        )
        log.info(f"Subscription {event.subscription_id} canceled")
        return _Notice("subscription_canceled", {"subscription_id": event.subscription_id})

    async def _handle_payment_succeeded(
        self,
        db: AsyncSession,
        event: WebhookEvent,
        record: UserSubscription,
        log: ContextualLogger,
    ) -> Optional[_Notice]:
        """Handle a paid invoice: restore ``active`` after a failed payment."""
        if not self._belongs_to_record(event, record) or self._is_stale(event, record):
            log.info(f"Ignoring {event.type} for {event.subscription_id}")
            return None

        current = SubscriptionStatus(record.status)
        updates: Dict[str, Any] = {"last_event_at": self._last_event_at(event, record)}
        if current in (SubscriptionStatus.PAST_DUE, SubscriptionStatus.UNPAID):
            updates["status"] = next_status(current, SubscriptionStatus.ACTIVE).value
            log.info(f"Payment recovered: {current.value} -> active")

        await self._subscription_repo.update(db, db_obj=record, obj_in=updates, auto_commit=False)
        return None

    async def _handle_payment_failed(
        self,
        db: AsyncSession,
        event: WebhookEvent,
        record: UserSubscription,
        log: ContextualLogger,
    ) -> Optional[_Notice]:
        """Handle a failed invoice payment: ``active|trialing -> past_due``."""
        if not self._belongs_to_record(event, record) or self._is_stale(event, record):
            log.info(f"Ignoring {event.type} for {event.subscription_id}")
            return None

        current = SubscriptionStatus(record.status)
        updates: Dict[str, Any] = {"last_event_at": self._last_event_at(event, record)}
        if current in (SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING):
            updates["status"] = next_status(current, SubscriptionStatus.PAST_DUE).value
            log.warning(f"Payment failed: {current.value} -> past_due")

        await self._subscription_repo.update(db, db_obj=record, obj_in=updates, auto_commit=False)
        return _Notice(
            "payment_failed",
            {
                "subscription_id": event.subscription_id,
                "invoice_id": event.data_object.get("id"),
                "attempt_count": event.data_object.get("attempt_count"),
            },
        )

    async def _handle_trial_will_end(
        self,
        db: AsyncSession,
        event: WebhookEvent,
        record: UserSubscription,
        log: ContextualLogger,
    ) -> Optional[_Notice]:
        """Handle the trial ending reminder. Notification only."""
        trial_end = event.data_object.get("trial_end")
        log.info(f"Trial for {event.subscription_id} ends at {trial_end}")
        return _Notice(
            "trial_will_end",
            {"subscription_id": event.subscription_id, "trial_end": trial_end},
        )
