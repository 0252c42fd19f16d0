"""CRUD operations for the UserSubscription model."""

from typing import Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from repspheres.crud._base import CRUDBase
from repspheres.models.subscription import UserSubscription
from repspheres.schemas.subscription import (
    PlanId,
    SubscriptionStatus,
    UserSubscriptionCreate,
    UserSubscriptionUpdate,
)


class CRUDUserSubscription(
    CRUDBase[UserSubscription, UserSubscriptionCreate, UserSubscriptionUpdate]
):
    """CRUD operations for UserSubscription model."""

    async def get_by_user_id(
        self, db: AsyncSession, *, user_id: UUID, for_update: bool = False
    ) -> Optional[UserSubscription]:
        """Get the subscription record of a user.

        Args:
            db: Database session
            user_id: Owning user id
            for_update: Lock the row until the transaction ends

        Returns:
            The record or None
        """
        query = select(self.model).where(self.model.user_id == user_id)
        if for_update:
            query = query.with_for_update()
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def get_by_stripe_subscription_id(
        self, db: AsyncSession, *, stripe_subscription_id: str
    ) -> Optional[UserSubscription]:
        """Get a record by provider subscription id."""
        result = await db.execute(
            select(self.model).where(self.model.stripe_subscription_id == stripe_subscription_id)
        )
        return result.scalar_one_or_none()

    async def get_by_stripe_customer_id(
        self, db: AsyncSession, *, stripe_customer_id: str
    ) -> Optional[UserSubscription]:
        """Get a record by provider customer id."""
        result = await db.execute(
            select(self.model).where(self.model.stripe_customer_id == stripe_customer_id)
        )
        return result.scalar_one_or_none()

    async def ensure_exists(self, db: AsyncSession, *, user_id: UUID) -> None:
        """Insert an empty free-tier record for ``user_id`` unless one exists.

        Does not commit.
        """
        stmt = (
            insert(self.model)
            .values(
                user_id=user_id,
                plan_id=PlanId.FREE.value,
                status=SubscriptionStatus.NONE.value,
            )
            .on_conflict_do_nothing(index_elements=[self.model.user_id])
        )
        await db.execute(stmt)

    async def claim_customer_id(
        self, db: AsyncSession, *, user_id: UUID, stripe_customer_id: str
    ) -> str:
        """Store ``stripe_customer_id`` for the user unless another id got there first.

        Compare-and-set on a NULL column: only the first committed claim
        sticks. Commits.

        Returns:
            The customer id stored for the user after the claim (ours or the winner's).
        """
        await self.ensure_exists(db, user_id=user_id)
        stmt = (
            update(self.model)
            .where(self.model.user_id == user_id, self.model.stripe_customer_id.is_(None))
            .values(stripe_customer_id=stripe_customer_id)
            .returning(self.model.stripe_customer_id)
        )
        claimed = (await db.execute(stmt)).scalar_one_or_none()
        await db.commit()
        if claimed is not None:
            return claimed

        stored = await db.execute(
            select(self.model.stripe_customer_id).where(self.model.user_id == user_id)
        )
        return stored.scalar_one()


user_subscription = CRUDUserSubscription(UserSubscription)
