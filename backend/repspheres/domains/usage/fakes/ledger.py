"""Fake usage ledger for testing.

Serves summaries from in-memory totals without touching the database.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from repspheres.domains.usage.protocols import UsageLedgerProtocol
from repspheres.domains.usage.types import current_period_start
from repspheres.models import UsageEvent
from repspheres.schemas.usage import UsageFeatureType, UsageSummary


class FakeUsageLedger(UsageLedgerProtocol):
    """Test implementation of UsageLedgerProtocol.

    Usage:
        ledger = FakeUsageLedger()
        ledger.set_total(user_id, UsageFeatureType.AI_QUERIES, 100)

        decision = await evaluator.check_access(db, user_id=user_id, feature="ai_query")
    """

    def __init__(self) -> None:
        """Initialize empty totals."""
        self.totals: dict[UUID, dict[UsageFeatureType, int]] = defaultdict(dict)
        self.record_calls: list[tuple[UUID, UsageFeatureType, int]] = []
        self.summary_error: Optional[Exception] = None

    def set_total(self, user_id: UUID, feature_type: UsageFeatureType, total: int) -> None:
        """Set the current-period total for a feature."""
        self.totals[user_id][feature_type] = total

    async def record_usage(
        self,
        db: AsyncSession,
        *,
        user_id: UUID,
        feature_type: UsageFeatureType,
        quantity: int = 1,
    ) -> UsageEvent:
        """Add ``quantity`` to the in-memory total."""
        self.record_calls.append((user_id, feature_type, quantity))
        per_user = self.totals[user_id]
        per_user[feature_type] = per_user.get(feature_type, 0) + quantity
        return UsageEvent(
            id=uuid4(),
            user_id=user_id,
            feature_type=feature_type.value,
            quantity=quantity,
            created_at=datetime.now(timezone.utc),
        )

    async def get_summary(
        self,
        db: AsyncSession,
        *,
        user_id: UUID,
        period_start: Optional[datetime] = None,
    ) -> UsageSummary:
        """Summary from the in-memory totals, or raise ``summary_error`` if set."""
        if self.summary_error is not None:
            raise self.summary_error
        return UsageSummary(
            user_id=user_id,
            period_start=period_start or current_period_start(),
            totals=dict(self.totals.get(user_id, {})),
        )
