"""Fake usage event repository for testing."""

from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence
from uuid import UUID, uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from repspheres.models import UsageEvent


class FakeUsageEventRepository:
    """In-memory fake for UsageEventRepositoryProtocol.

    ``owners_with_subscription`` stands in for the join the real query does
    against user_subscription; leave it as None to skip that filter.
    """

    def __init__(self) -> None:
        """Initialize with an empty log."""
        self.events: List[UsageEvent] = []
        self.owners_with_subscription: Optional[set[UUID]] = None
        self._calls: list[tuple] = []

    def seed(self, user_id: UUID, feature_type: str, **fields: object) -> UsageEvent:
        """Append an event directly, bypassing ``create``."""
        values: dict = dict(
            id=uuid4(),
            user_id=user_id,
            feature_type=feature_type,
            quantity=1,
            created_at=datetime.now(timezone.utc),
            external_usage_record_id=None,
            reported_at=None,
        )
        values.update(fields)
        event = UsageEvent(**values)
        self.events.append(event)
        return event

    def call_count(self, method: str) -> int:
        """Number of calls to ``method``."""
        return sum(1 for call in self._calls if call[0] == method)

    async def create(self, db: AsyncSession, *, obj_in: dict) -> UsageEvent:
        """Append one event."""
        self._calls.append(("create", obj_in))
        fields = {k: v for k, v in obj_in.items() if k not in ("user_id", "feature_type")}
        return self.seed(obj_in["user_id"], obj_in["feature_type"], **fields)

    async def sum_by_feature(
        self, db: AsyncSession, *, user_id: UUID, since: datetime
    ) -> Dict[str, int]:
        """Total quantity per feature type since ``since``."""
        self._calls.append(("sum_by_feature", user_id, since))
        totals: Dict[str, int] = {}
        for event in self.events:
            if event.user_id == user_id and event.created_at >= since:
                totals[event.feature_type] = totals.get(event.feature_type, 0) + event.quantity
        return totals

    async def get_unreported(
        self,
        db: AsyncSession,
        *,
        created_after: datetime,
        created_before: datetime,
        feature_types: Sequence[str],
        limit: int,
    ) -> List[UsageEvent]:
        """Oldest matching events without an external usage record id."""
        self._calls.append(("get_unreported", created_after, created_before, limit))
        matches = [
            e
            for e in self.events
            if e.external_usage_record_id is None
            and created_after <= e.created_at < created_before
            and e.feature_type in feature_types
            and self._has_subscription(e.user_id)
        ]
        matches.sort(key=lambda e: e.created_at)
        return matches[:limit]

    def _has_subscription(self, user_id: UUID) -> bool:
        owners = self.owners_with_subscription
        return owners is None or user_id in owners

    async def mark_reported(
        self,
        db: AsyncSession,
        *,
        db_obj: UsageEvent,
        external_usage_record_id: str,
        reported_at: datetime,
    ) -> bool:
        """Stamp the external id once."""
        self._calls.append(("mark_reported", db_obj.id, external_usage_record_id))
        if db_obj.external_usage_record_id is not None:
            return False
        db_obj.external_usage_record_id = external_usage_record_id
        db_obj.reported_at = reported_at
        return True
