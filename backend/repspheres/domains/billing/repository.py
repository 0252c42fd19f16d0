"""Billing repositories and protocols."""

from typing import Optional, Protocol, Union
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from repspheres import crud
from repspheres.domains.billing.exceptions import SubscriptionNotFoundError
from repspheres.models import UserSubscription
from repspheres.schemas.subscription import UserSubscriptionUpdate


class SubscriptionRepositoryProtocol(Protocol):
    """Access to the per-user subscription record."""

    async def get_by_user_id(
        self, db: AsyncSession, *, user_id: UUID, for_update: bool = False
    ) -> Optional[UserSubscription]:
        """Get the record of a user."""
        ...

    async def get_by_stripe_subscription_id(
        self, db: AsyncSession, *, stripe_subscription_id: str
    ) -> Optional[UserSubscription]:
        """Get a record by provider subscription ID."""
        ...

    async def get_by_stripe_customer_id(
        self, db: AsyncSession, *, stripe_customer_id: str
    ) -> Optional[UserSubscription]:
        """Get a record by provider customer ID."""
        ...

    async def ensure_exists(self, db: AsyncSession, *, user_id: UUID) -> UserSubscription:
        """Get the record of a user, inserting an empty one if absent. Does not commit."""
        ...

    async def claim_customer_id(
        self, db: AsyncSession, *, user_id: UUID, stripe_customer_id: str
    ) -> str:
        """Compare-and-set the provider customer ID. Returns the stored ID."""
        ...

    async def update(
        self,
        db: AsyncSession,
        *,
        db_obj: UserSubscription,
        obj_in: Union[UserSubscriptionUpdate, dict],
        auto_commit: bool = True,
    ) -> UserSubscription:
        """Update a record."""
        ...


class WebhookEventRepositoryProtocol(Protocol):
    """Replay ledger for provider events."""

    async def is_processed(self, db: AsyncSession, *, event_id: str) -> bool:
        """Whether the event was already applied."""
        ...

    async def mark_processed(self, db: AsyncSession, *, event_id: str, event_type: str) -> bool:
        """Record the event in the caller's transaction. False if already recorded."""
        ...


class SubscriptionRepository(SubscriptionRepositoryProtocol):
    """Delegates to the crud.user_subscription singleton."""

    async def get_by_user_id(
        self, db: AsyncSession, *, user_id: UUID, for_update: bool = False
    ) -> Optional[UserSubscription]:
        """Get the record of a user."""
        return await crud.user_subscription.get_by_user_id(
            db, user_id=user_id, for_update=for_update
        )

    async def get_by_stripe_subscription_id(
        self, db: AsyncSession, *, stripe_subscription_id: str
    ) -> Optional[UserSubscription]:
        """Get a record by provider subscription ID."""
        return await crud.user_subscription.get_by_stripe_subscription_id(
            db, stripe_subscription_id=stripe_subscription_id
        )

    async def get_by_stripe_customer_id(
        self, db: AsyncSession, *, stripe_customer_id: str
    ) -> Optional[UserSubscription]:
        """Get a record by provider customer ID."""
        return await crud.user_subscription.get_by_stripe_customer_id(
            db, stripe_customer_id=stripe_customer_id
        )

    async def ensure_exists(self, db: AsyncSession, *, user_id: UUID) -> UserSubscription:
        """Get the record of a user, inserting an empty one if absent."""
        await crud.user_subscription.ensure_exists(db, user_id=user_id)
        record = await crud.user_subscription.get_by_user_id(db, user_id=user_id, for_update=True)
        if record is None:
            raise SubscriptionNotFoundError(f"Subscription record for user {user_id} vanished")
        return record

    async def claim_customer_id(
        self, db: AsyncSession, *, user_id: UUID, stripe_customer_id: str
    ) -> str:
        """Compare-and-set the provider customer ID."""
        return await crud.user_subscription.claim_customer_id(
            db, user_id=user_id, stripe_customer_id=stripe_customer_id
        )

    async def update(
        self,
        db: AsyncSession,
        *,
        db_obj: UserSubscription,
        obj_in: Union[UserSubscriptionUpdate, dict],
        auto_commit: bool = True,
    ) -> UserSubscription:
        """Update a record."""
        return await crud.user_subscription.update(
            db, db_obj=db_obj, obj_in=obj_in, auto_commit=auto_commit
        )


class WebhookEventRepository(WebhookEventRepositoryProtocol):
    """Delegates to the crud.processed_webhook_event singleton."""

    async def is_processed(self, db: AsyncSession, *, event_id: str) -> bool:
        """Whether the event was already applied."""
        return await crud.processed_webhook_event.is_processed(db, event_id=event_id)

    async def mark_processed(self, db: AsyncSession, *, event_id: str, event_type: str) -> bool:
        """Record the event in the caller's transaction."""
        return await crud.processed_webhook_event.mark_processed(
            db, event_id=event_id, event_type=event_type
        )
