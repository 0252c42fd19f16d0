"""Usage reconciler: re-reports metered usage the inline path failed to deliver.

Each pass picks the oldest unreported events of metered feature types that
are older than a grace period (so in-flight inline reports are left alone)
and younger than the provider's backdating limit. Reports carry the usage
event id as their identifier, so a pass that overlaps an inline report, or
another pass, never double-bills.
"""

import asyncio
from contextlib import AbstractAsyncContextManager
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from repspheres.core.config import Settings
from repspheres.core.exceptions import ExternalServiceError
from repspheres.core.logging import logger
from repspheres.domains.billing.repository import SubscriptionRepositoryProtocol
from repspheres.domains.usage.protocols import UsageReconcilerProtocol, UsageReporterProtocol
from repspheres.domains.usage.repository import UsageEventRepositoryProtocol
from repspheres.domains.usage.types import METER_EVENT_MAX_AGE, ReconcileResult, is_reportable
from repspheres.models import UserSubscription

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


class UsageReconciler(UsageReconcilerProtocol):
    """Periodic, idempotent repair of the upstream usage record."""

    def __init__(
        self,
        usage_repo: UsageEventRepositoryProtocol,
        subscription_repo: SubscriptionRepositoryProtocol,
        reporter: UsageReporterProtocol,
        session_factory: SessionFactory,
        settings: Settings,
    ) -> None:
        """Initialize with repositories, the reporter, a session factory and settings."""
        self._usage_repo = usage_repo
        self._subscription_repo = subscription_repo
        self._reporter = reporter
        self._session_factory = session_factory
        self._interval = settings.USAGE_RECONCILE_INTERVAL_SECONDS
        self._grace = timedelta(seconds=settings.USAGE_RECONCILE_GRACE_SECONDS)
        self._batch_size = settings.USAGE_RECONCILE_BATCH_SIZE
        self._report_timeout = settings.METERED_REPORT_TIMEOUT_SECONDS
        self._task: Optional[asyncio.Task] = None

    async def reconcile_once(self, now: Optional[datetime] = None) -> ReconcileResult:
        """Run one pass over the oldest unreported events."""
        result = ReconcileResult()
        feature_types = self._reporter.metered_feature_types()
        if not feature_types:
            return result

        now = now or datetime.now(timezone.utc)
        records: Dict[UUID, Optional[UserSubscription]] = {}

        async with self._session_factory() as db:
            events = await self._usage_repo.get_unreported(
                db,
                created_after=now - METER_EVENT_MAX_AGE,
                created_before=now - self._grace,
                feature_types=feature_types,
                limit=self._batch_size,
            )
            for event in events:
                result.examined += 1
                if event.user_id not in records:
                    records[event.user_id] = await self._subscription_repo.get_by_user_id(
                        db, user_id=event.user_id
                    )
                record = records[event.user_id]
                if not is_reportable(record):
                    result.skipped += 1
                    continue

                log = logger.with_context(
                    user_id=str(event.user_id), usage_event_id=str(event.id)
                )
                try:
                    usage_record_id = await asyncio.wait_for(
                        self._reporter.report_usage(
                            subscription_id=record.stripe_subscription_id,  # type: ignore
                            customer_id=record.stripe_customer_id,  # type: ignore
                            feature_type=event.feature_type,
                            quantity=event.quantity,
                            identifier=str(event.id),
                            timestamp=event.created_at,
                        ),
                        timeout=self._report_timeout,
                    )
                except (asyncio.TimeoutError, ExternalServiceError) as e:
                    log.warning(f"Reconciliation report failed: {e!r}")
                    result.failed += 1
                    continue

                if usage_record_id is None:
                    result.skipped += 1
                    continue
                await self._usage_repo.mark_reported(
                    db,
                    db_obj=event,
                    external_usage_record_id=usage_record_id,
                    reported_at=datetime.now(timezone.utc),
                )
                result.reported += 1

        if result.examined:
            logger.info(
                f"Usage reconciliation: examined={result.examined} reported={result.reported} "
                f"skipped={result.skipped} failed={result.failed}"
            )
        return result

    # ------------------------------------------------------------------
    # Background loop
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the periodic loop. An interval of zero disables it."""
        if self._interval <= 0:
            logger.info("UsageReconciler disabled (interval=0)")
            return
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self._periodic_loop())
        logger.info(f"UsageReconciler started (interval={self._interval}s)")

    async def stop(self) -> None:
        """Cancel the loop and wait for it to unwind."""
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("UsageReconciler stopped")

    async def _periodic_loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.reconcile_once()
            except Exception:
                logger.error("Periodic usage reconciliation failed", exc_info=True)


class NullUsageReconciler(UsageReconcilerProtocol):
    """Reconciler used when metered billing is disabled."""

    async def reconcile_once(self, now: Optional[datetime] = None) -> ReconcileResult:
        """Nothing to reconcile."""
        return ReconcileResult()

    def start(self) -> None:
        """No-op."""

    async def stop(self) -> None:
        """No-op."""
