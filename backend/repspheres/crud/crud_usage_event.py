"""CRUD operations for the UsageEvent model."""

from datetime import datetime
from typing import Dict, List, Sequence
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from repspheres.crud._base import CRUDBase
from repspheres.models.subscription import UserSubscription
from repspheres.models.usage_event import UsageEvent
from repspheres.schemas.usage import UsageEventCreate


class CRUDUsageEvent(CRUDBase[UsageEvent, UsageEventCreate, BaseModel]):
    """CRUD operations for the append-only usage log."""

    async def sum_by_feature(
        self, db: AsyncSession, *, user_id: UUID, since: datetime
    ) -> Dict[str, int]:
        """Total quantity per feature type for events at or after ``since``.

        Args:
            db: Database session
            user_id: Owning user id
            since: Inclusive lower bound on ``created_at``

        Returns:
            Mapping of feature type to summed quantity; absent types were not used.
        """
        query = (
            select(self.model.feature_type, func.sum(self.model.quantity))
            .where(self.model.user_id == user_id, self.model.created_at >= since)
            .group_by(self.model.feature_type)
        )
        result = await db.execute(query)
        return {feature_type: int(total or 0) for feature_type, total in result.all()}

    async def get_unreported(
        self,
        db: AsyncSession,
        *,
        created_after: datetime,
        created_before: datetime,
        feature_types: Sequence[str],
        limit: int,
    ) -> List[UsageEvent]:
        """Oldest events still lacking an external usage record id.

        Only events of ``feature_types`` created inside
        ``[created_after, created_before)`` whose owner has a provider
        subscription are returned; free-tier usage is never reported.
        """
        query = (
            select(self.model)
            .join(UserSubscription, UserSubscription.user_id == self.model.user_id)
            .where(
                self.model.external_usage_record_id.is_(None),
                self.model.created_at >= created_after,
                self.model.created_at < created_before,
                self.model.feature_type.in_(list(feature_types)),
                UserSubscription.stripe_subscription_id.is_not(None),
            )
            .order_by(self.model.created_at.asc())
            .limit(limit)
        )
        result = await db.execute(query)
        return list(result.scalars().all())

    async def mark_reported(
        self,
        db: AsyncSession,
        *,
        db_obj: UsageEvent,
        external_usage_record_id: str,
        reported_at: datetime,
    ) -> bool:
        """Stamp the external id once. Commits.

        Only the first stamp sticks. ``db_obj`` is brought in line with the
        row without being marked dirty.

        Returns:
            False when the event had already been stamped.
        """
        stmt = (
            update(self.model)
            .where(self.model.id == db_obj.id, self.model.external_usage_record_id.is_(None))
            .values(external_usage_record_id=external_usage_record_id, reported_at=reported_at)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        await db.commit()
        if not result.rowcount:
            return False
        set_committed_value(db_obj, "external_usage_record_id", external_usage_record_id)
        set_committed_value(db_obj, "reported_at", reported_at)
        return True


usage_event = CRUDUsageEvent(UsageEvent)
