"""Usage ledger: append-only write path and period summaries.

``record_usage`` commits the local event before anything else, then reports
the increment to the billing provider under a bounded timeout. A failed or
slow report never fails the call: the event simply stays unreported and the
UsageReconciler picks it up later. Summaries are always derived with a
grouped SUM over the log; there is no mutable counter to drift.
"""

import asyncio
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from repspheres.core.config import Settings
from repspheres.core.exceptions import ExternalServiceError
from repspheres.core.logging import logger
from repspheres.domains.billing.repository import SubscriptionRepositoryProtocol
from repspheres.domains.entitlements.types import EntitlementPolicy, effective_plan
from repspheres.domains.usage.exceptions import (
    InvalidUsageQuantityError,
    NoActiveSubscriptionError,
)
from repspheres.domains.usage.protocols import UsageLedgerProtocol, UsageReporterProtocol
from repspheres.domains.usage.repository import UsageEventRepositoryProtocol
from repspheres.domains.usage.types import current_period_start, is_reportable
from repspheres.models import UsageEvent, UserSubscription
from repspheres.schemas.usage import UsageFeatureType, UsageSummary


class UsageLedger(UsageLedgerProtocol):
    """Records usage events and serves per-period summaries."""

    def __init__(
        self,
        usage_repo: UsageEventRepositoryProtocol,
        subscription_repo: SubscriptionRepositoryProtocol,
        reporter: UsageReporterProtocol,
        settings: Settings,
    ) -> None:
        """Initialize with repositories, the upstream reporter and settings."""
        self._usage_repo = usage_repo
        self._subscription_repo = subscription_repo
        self._reporter = reporter
        self._report_timeout = settings.METERED_REPORT_TIMEOUT_SECONDS
        self._policy = EntitlementPolicy(
            free_tier_enabled=settings.FREE_TIER_ENABLED,
            trial_grants_access=settings.TRIAL_GRANTS_ACCESS,
        )

    async def record_usage(
        self,
        db: AsyncSession,
        *,
        user_id: UUID,
        feature_type: UsageFeatureType,
        quantity: int = 1,
    ) -> UsageEvent:
        """Append one usage event for the user and report it upstream best-effort.

        Raises:
            InvalidUsageQuantityError: for quantities below one.
            NoActiveSubscriptionError: when the user is not entitled to use anything.
        """
        if quantity < 1:
            raise InvalidUsageQuantityError(quantity)

        record = await self._subscription_repo.get_by_user_id(db, user_id=user_id)
        if effective_plan(record, self._policy) is None:
            raise NoActiveSubscriptionError(record.status if record is not None else None)

        event = await self._usage_repo.create(
            db,
            obj_in={
                "user_id": user_id,
                "feature_type": feature_type.value,
                "quantity": quantity,
                "created_at": datetime.now(timezone.utc),
            },
        )
        logger.with_context(user_id=str(user_id), feature_type=feature_type.value).debug(
            f"Recorded usage event {event.id} (quantity={quantity})"
        )

        if is_reportable(record):
            await self._report(db, event, record)  # type: ignore[arg-type]
        return event

    async def _report(self, db: AsyncSession, event: UsageEvent, record: UserSubscription) -> None:
        """Report ``event`` upstream and stamp it. Failures leave it for the reconciler."""
        log = logger.with_context(user_id=str(event.user_id), usage_event_id=str(event.id))
        try:
            usage_record_id = await asyncio.wait_for(
                self._reporter.report_usage(
                    subscription_id=record.stripe_subscription_id,
                    customer_id=record.stripe_customer_id,
                    feature_type=event.feature_type,
                    quantity=event.quantity,
                    identifier=str(event.id),
                    timestamp=datetime.now(timezone.utc),
                ),
                timeout=self._report_timeout,
            )
        except asyncio.TimeoutError:
            log.warning(
                f"Metered report timed out after {self._report_timeout}s; left for reconciliation"
            )
            return
        except ExternalServiceError as e:
            log.warning(f"Metered report failed ({e.message}); left for reconciliation")
            return

        if usage_record_id is None:
            return
        try:
            await self._usage_repo.mark_reported(
                db,
                db_obj=event,
                external_usage_record_id=usage_record_id,
                reported_at=datetime.now(timezone.utc),
            )
        except Exception as e:
            # Left unstamped; the reconciler re-sends under the same identifier
            log.warning(f"Reported {usage_record_id} but could not stamp the event: {e}")

    async def get_summary(
        self,
        db: AsyncSession,
        *,
        user_id: UUID,
        period_start: Optional[datetime] = None,
    ) -> UsageSummary:
        """Totals per feature type since ``period_start`` (default: start of this month)."""
        since = period_start or current_period_start()
        raw = await self._usage_repo.sum_by_feature(db, user_id=user_id, since=since)
        totals = {
            feature_type: raw.get(feature_type.value, 0) for feature_type in UsageFeatureType
        }
        return UsageSummary(user_id=user_id, period_start=since, totals=totals)
