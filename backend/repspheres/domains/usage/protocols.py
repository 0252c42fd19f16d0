"""Usage domain protocols, split into the write path (ledger) and repair (reconciler).

UsageLedger: records events and serves period summaries.
UsageReconciler: background job that re-reports unreported metered usage.
UsageReporter: the billing-side collaborator that delivers usage upstream.
"""

from datetime import datetime
from typing import Optional, Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from repspheres.domains.usage.types import ReconcileResult
from repspheres.models import UsageEvent
from repspheres.schemas.usage import UsageFeatureType, UsageSummary


@runtime_checkable
class UsageLedgerProtocol(Protocol):
    """Append-only usage log.

    Counting is never idempotent: every successful ``record_usage`` call is
    a new unit of consumption.
    """

    async def record_usage(
        self,
        db: AsyncSession,
        *,
        user_id: UUID,
        feature_type: UsageFeatureType,
        quantity: int = 1,
    ) -> UsageEvent:
        """Append a usage event and report it upstream best-effort.

        Raises NoActiveSubscriptionError or InvalidUsageQuantityError.
        """
        ...

    async def get_summary(
        self,
        db: AsyncSession,
        *,
        user_id: UUID,
        period_start: Optional[datetime] = None,
    ) -> UsageSummary:
        """Totals per feature type since ``period_start`` (default: this month)."""
        ...


@runtime_checkable
class UsageReconcilerProtocol(Protocol):
    """Scheduled, idempotent re-reporting of unreported usage events."""

    async def reconcile_once(self) -> ReconcileResult:
        """Run a single pass over the oldest unreported events."""
        ...

    def start(self) -> None:
        """Start the periodic background loop."""
        ...

    async def stop(self) -> None:
        """Stop the background loop."""
        ...


@runtime_checkable
class UsageReporterProtocol(Protocol):
    """Delivers metered usage to the billing provider."""

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
        """Report usage. Returns the usage record id, None if not metered."""
        ...

    def metered_feature_types(self) -> list[str]:
        """Feature types with a metered price configured."""
        ...
