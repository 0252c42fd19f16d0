"""Fake billing repositories for testing."""

from datetime import datetime, timezone
from typing import Optional, Union
from uuid import UUID, uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from repspheres.models import UserSubscription
from repspheres.schemas.subscription import PlanId, SubscriptionStatus, UserSubscriptionUpdate


def make_subscription_record(user_id: UUID, **overrides: object) -> UserSubscription:
    """Return a UserSubscription ORM model with free-tier defaults."""
    now = datetime.now(timezone.utc)
    defaults = dict(
        id=uuid4(),
        created_at=now,
        modified_at=now,
        user_id=user_id,
        stripe_customer_id=None,
        stripe_subscription_id=None,
        plan_id=PlanId.FREE.value,
        status=SubscriptionStatus.NONE.value,
        current_period_end=None,
        last_event_at=None,
        canceled_at=None,
    )
    defaults.update(overrides)
    return UserSubscription(**defaults)


class FakeSubscriptionRepository:
    """In-memory fake for SubscriptionRepositoryProtocol.

    ``claim_customer_id`` is atomic (no await between check and set), which
    mirrors the compare-and-set the real repository performs in SQL.
    """

    def __init__(self) -> None:
        """Initialize with empty store and call log."""
        self._store: dict[UUID, UserSubscription] = {}
        self._calls: list[tuple] = []

    def seed(self, user_id: UUID, **fields: object) -> UserSubscription:
        """Populate store with a record for ``user_id``."""
        record = make_subscription_record(user_id, **fields)
        self._store[user_id] = record
        return record

    def get(self, user_id: UUID) -> Optional[UserSubscription]:
        """Synchronous lookup for assertions."""
        return self._store.get(user_id)

    def call_count(self, method: str) -> int:
        """Number of calls to ``method``."""
        return sum(1 for call in self._calls if call[0] == method)

    async def get_by_user_id(
        self, db: AsyncSession, *, user_id: UUID, for_update: bool = False
    ) -> Optional[UserSubscription]:
        """Get the record of a user."""
        self._calls.append(("get_by_user_id", user_id, for_update))
        return self._store.get(user_id)

    async def get_by_stripe_subscription_id(
        self, db: AsyncSession, *, stripe_subscription_id: str
    ) -> Optional[UserSubscription]:
        """Get a record by provider subscription ID."""
        self._calls.append(("get_by_stripe_subscription_id", stripe_subscription_id))
        for record in self._store.values():
            if record.stripe_subscription_id == stripe_subscription_id:
                return record
        return None

    async def get_by_stripe_customer_id(
        self, db: AsyncSession, *, stripe_customer_id: str
    ) -> Optional[UserSubscription]:
        """Get a record by provider customer ID."""
        self._calls.append(("get_by_stripe_customer_id", stripe_customer_id))
        for record in self._store.values():
            if record.stripe_customer_id == stripe_customer_id:
                return record
        return None

    async def ensure_exists(self, db: AsyncSession, *, user_id: UUID) -> UserSubscription:
        """Get the record of a user, inserting an empty one if absent."""
        self._calls.append(("ensure_exists", user_id))
        if user_id not in self._store:
            self._store[user_id] = make_subscription_record(user_id)
        return self._store[user_id]

    async def claim_customer_id(
        self, db: AsyncSession, *, user_id: UUID, stripe_customer_id: str
    ) -> str:
        """Compare-and-set the provider customer ID."""
        self._calls.append(("claim_customer_id", user_id, stripe_customer_id))
        record = self._store.setdefault(user_id, make_subscription_record(user_id))
        if record.stripe_customer_id is None:
            record.stripe_customer_id = stripe_customer_id
        return record.stripe_customer_id

    async def update(
        self,
        db: AsyncSession,
        *,
        db_obj: UserSubscription,
        obj_in: Union[UserSubscriptionUpdate, dict],
        auto_commit: bool = True,
    ) -> UserSubscription:
        """Update a record (fake)."""
        self._calls.append(("update", db_obj.user_id, obj_in, auto_commit))
        if isinstance(obj_in, dict):
            updates = obj_in
        else:
            updates = obj_in.model_dump(exclude_unset=True)
        for key, value in updates.items():
            setattr(db_obj, key, value)
        db_obj.modified_at = datetime.now(timezone.utc)
        return db_obj


class FakeWebhookEventRepository:
    """In-memory fake for WebhookEventRepositoryProtocol."""

    def __init__(self) -> None:
        """Initialize with an empty ledger."""
        self.processed: dict[str, str] = {}

    async def is_processed(self, db: AsyncSession, *, event_id: str) -> bool:
        """Whether the event was already applied."""
        return event_id in self.processed

    async def mark_processed(self, db: AsyncSession, *, event_id: str, event_type: str) -> bool:
        """Record the event. False if already recorded."""
        if event_id in self.processed:
            return False
        self.processed[event_id] = event_type
        return True
