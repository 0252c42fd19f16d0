"""Usage domain repository wrapping crud.usage_event."""

from datetime import datetime
from typing import Dict, List, Protocol, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from repspheres import crud
from repspheres.models import UsageEvent


class UsageEventRepositoryProtocol(Protocol):
    """Data access for the append-only usage log."""

    async def create(self, db: AsyncSession, *, obj_in: dict) -> UsageEvent:
        """Append and commit one event."""
        ...

    async def sum_by_feature(
        self, db: AsyncSession, *, user_id: UUID, since: datetime
    ) -> Dict[str, int]:
        """Total quantity per feature type since ``since``."""
        ...

    async def get_unreported(
        self,
        db: AsyncSession,
        *,
        created_after: datetime,
        created_before: datetime,
        feature_types: Sequence[str],
        limit: int,
    ) -> List[UsageEvent]:
        """Oldest reportable events without an external usage record id."""
        ...

    async def mark_reported(
        self,
        db: AsyncSession,
        *,
        db_obj: UsageEvent,
        external_usage_record_id: str,
        reported_at: datetime,
    ) -> bool:
        """Stamp the external id once. False if it was already stamped."""
        ...


class UsageEventRepository(UsageEventRepositoryProtocol):
    """Delegates to the crud.usage_event singleton."""

    async def create(self, db: AsyncSession, *, obj_in: dict) -> UsageEvent:
        """Append and commit one event."""
        return await crud.usage_event.create(db, obj_in=obj_in)

    async def sum_by_feature(
        self, db: AsyncSession, *, user_id: UUID, since: datetime
    ) -> Dict[str, int]:
        """Total quantity per feature type since ``since``."""
        return await crud.usage_event.sum_by_feature(db, user_id=user_id, since=since)

    async def get_unreported(
        self,
        db: AsyncSession,
        *,
        created_after: datetime,
        created_before: datetime,
        feature_types: Sequence[str],
        limit: int,
    ) -> List[UsageEvent]:
        """Oldest reportable events without an external usage record id."""
        return await crud.usage_event.get_unreported(
            db,
            created_after=created_after,
            created_before=created_before,
            feature_types=feature_types,
            limit=limit,
        )

    async def mark_reported(
        self,
        db: AsyncSession,
        *,
        db_obj: UsageEvent,
        external_usage_record_id: str,
        reported_at: datetime,
    ) -> bool:
        """Stamp the external id once."""
        return await crud.usage_event.mark_reported(
            db,
            db_obj=db_obj,
            external_usage_record_id=external_usage_record_id,
            reported_at=reported_at,
        )
