"""Entitlement evaluator.

Answers "may this user use feature X right now?" from the subscription
record, the plan catalog, current-period usage and the seat registry.
User-state problems come back as denied AccessDecisions; only the status
endpoint lets configuration faults (an unknown stored plan id) surface.
"""

from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from repspheres.core.config import Settings
from repspheres.core.config.enums import UnknownFeaturePolicy
from repspheres.core.logging import ContextualLogger, logger
from repspheres.domains.billing.repository import SubscriptionRepositoryProtocol
from repspheres.domains.billing.types import (
    PlanDefinition,
    get_plan,
    is_unlimited,
    is_within_limit,
    plan_features_response,
    plan_limits_response,
)
from repspheres.domains.entitlements.protocols import EntitlementEvaluatorProtocol
from repspheres.domains.entitlements.repository import TeamSeatRepositoryProtocol
from repspheres.domains.entitlements.types import (
    REASON_API,
    REASON_AUTOMATION,
    REASON_ERROR,
    REASON_EXPIRED,
    REASON_INACTIVE,
    REASON_UNKNOWN_FEATURE,
    EntitlementPolicy,
    ai_query_limit_reason,
    category_limit_reason,
    effective_plan,
    user_limit_reason,
)
from repspheres.domains.usage.protocols import UsageLedgerProtocol
from repspheres.models import UserSubscription
from repspheres.schemas.entitlement import AccessDecision, GatedFeature
from repspheres.schemas.subscription import (
    PlanId,
    SubscriptionStatus,
    SubscriptionStatusResponse,
    UsageCounts,
)
from repspheres.schemas.usage import UsageFeatureType

_FeatureCheck = Callable[[AsyncSession, UUID, PlanDefinition], Awaitable[AccessDecision]]


def is_expired(record: Optional[UserSubscription], now: Optional[datetime] = None) -> bool:
    """Whether the record's paid period has ended. Records without a period end never expire."""
    if record is None or record.current_period_end is None:
        return False
    period_end = record.current_period_end
    if period_end.tzinfo is None:
        period_end = period_end.replace(tzinfo=timezone.utc)
    return period_end < (now or datetime.now(timezone.utc))


class EntitlementEvaluator(EntitlementEvaluatorProtocol):
    """Evaluates feature access against plan limits and live usage."""

    def __init__(
        self,
        subscription_repo: SubscriptionRepositoryProtocol,
        usage_ledger: UsageLedgerProtocol,
        seat_repo: TeamSeatRepositoryProtocol,
        settings: Settings,
    ) -> None:
        """Initialize with repositories, the usage ledger and settings."""
        self._subscription_repo = subscription_repo
        self._usage_ledger = usage_ledger
        self._seat_repo = seat_repo
        self._policy = EntitlementPolicy(
            free_tier_enabled=settings.FREE_TIER_ENABLED,
            trial_grants_access=settings.TRIAL_GRANTS_ACCESS,
        )
        self._unknown_feature_policy = settings.UNKNOWN_FEATURE_POLICY
        self._overage_price = settings.AI_QUERY_OVERAGE_PRICE
        self._checks: Dict[GatedFeature, _FeatureCheck] = {
            GatedFeature.AI_QUERY: self._check_ai_query,
            GatedFeature.AUTOMATION: self._check_automation,
            GatedFeature.CATEGORY: self._check_category,
            GatedFeature.API: self._check_api,
            GatedFeature.USER: self._check_user,
        }

    # ------------------------------------------------------------------
    # check_access
    # ------------------------------------------------------------------

    async def check_access(
        self, db: AsyncSession, *, user_id: UUID, feature: str
    ) -> AccessDecision:
        """Evaluate ``feature`` for ``user_id``.

        Any internal failure (storage, catalog lookup) is logged and
        reported as a denial rather than raised.
        """
        log = logger.with_context(user_id=str(user_id), feature=feature)
        try:
            return await self._evaluate(db, user_id, feature, log)
        except Exception:
            log.error("Entitlement check failed", exc_info=True)
            return AccessDecision.deny(REASON_ERROR)

    async def _evaluate(
        self, db: AsyncSession, user_id: UUID, feature: str, log: ContextualLogger
    ) -> AccessDecision:
        record = await self._subscription_repo.get_by_user_id(db, user_id=user_id)
        plan_id = effective_plan(record, self._policy)
        if plan_id is None:
            return AccessDecision.deny(REASON_INACTIVE, requires_upgrade=True)
        if is_expired(record):
            return AccessDecision.deny(REASON_EXPIRED)

        plan = get_plan(plan_id)

        gated = GatedFeature.parse(feature)
        if gated is None:
            if self._unknown_feature_policy == UnknownFeaturePolicy.DENY:
                log.warning(f"Denied unknown feature '{feature}'")
                return AccessDecision.deny(REASON_UNKNOWN_FEATURE)
            log.warning(f"Allowed unknown feature '{feature}'")
            return AccessDecision.allow()

        return await self._checks[gated](db, user_id, plan)

    async def _usage(self, db: AsyncSession, user_id: UUID, feature_type: UsageFeatureType) -> int:
        summary = await self._usage_ledger.get_summary(db, user_id=user_id)
        return summary.get(feature_type)

    async def _check_ai_query(
        self, db: AsyncSession, user_id: UUID, plan: PlanDefinition
    ) -> AccessDecision:
        limit = plan.limits.ai_queries
        if is_unlimited(limit):
            return AccessDecision.allow()
        used = await self._usage(db, user_id, UsageFeatureType.AI_QUERIES)
        if is_within_limit(used, limit):
            return AccessDecision.allow()
        return AccessDecision.deny(
            ai_query_limit_reason(limit),  # type: ignore[arg-type]
            can_purchase=True,
            price=self._overage_price,
        )

    async def _check_automation(
        self, db: AsyncSession, user_id: UUID, plan: PlanDefinition
    ) -> AccessDecision:
        if plan.limits.automation:
            return AccessDecision.allow()
        return AccessDecision.deny(REASON_AUTOMATION, requires_upgrade=True)

    async def _check_category(
        self, db: AsyncSession, user_id: UUID, plan: PlanDefinition
    ) -> AccessDecision:
        limit = plan.limits.categories
        if is_unlimited(limit):
            return AccessDecision.allow()
        used = await self._usage(db, user_id, UsageFeatureType.CATEGORIES)
        if is_within_limit(used, limit):
            return AccessDecision.allow()
        return AccessDecision.deny(
            category_limit_reason(limit), requires_upgrade=True  # type: ignore[arg-type]
        )

    async def _check_api(
        self, db: AsyncSession, user_id: UUID, plan: PlanDefinition
    ) -> AccessDecision:
        if plan.limits.api:
            return AccessDecision.allow()
        return AccessDecision.deny(REASON_API, requires_upgrade=True)

    async def _seats(self, db: AsyncSession, user_id: UUID) -> int:
        # The owner holds a seat without a team_seat row
        return 1 + await self._seat_repo.count_for_owner(db, owner_user_id=user_id)

    async def _check_user(
        self, db: AsyncSession, user_id: UUID, plan: PlanDefinition
    ) -> AccessDecision:
        limit = plan.limits.users
        if is_unlimited(limit):
            return AccessDecision.allow()
        if is_within_limit(await self._seats(db, user_id), limit):
            return AccessDecision.allow()
        return AccessDecision.deny(
            user_limit_reason(limit), requires_upgrade=True  # type: ignore[arg-type]
        )

    # ------------------------------------------------------------------
    # get_status
    # ------------------------------------------------------------------

    async def get_status(self, db: AsyncSession, *, user_id: UUID) -> SubscriptionStatusResponse:
        """Plan, capabilities, limits and current usage for the UI gate.

        Users who are not entitled see the plan stored on their record (or
        free) so the UI can show what an upgrade would unlock.

        Raises:
            UnknownPlanError: when the stored plan id is not in the catalog.
        """
        record = await self._subscription_repo.get_by_user_id(db, user_id=user_id)
        entitled_plan = effective_plan(record, self._policy)
        is_active = entitled_plan is not None and not is_expired(record)

        plan = get_plan(entitled_plan or (record.plan_id if record else PlanId.FREE))
        summary = await self._usage_ledger.get_summary(db, user_id=user_id)
        usage = UsageCounts(
            users=await self._seats(db, user_id),
            ai_queries=summary.get(UsageFeatureType.AI_QUERIES),
            automation_runs=summary.get(UsageFeatureType.AUTOMATION_RUNS),
            categories=summary.get(UsageFeatureType.CATEGORIES),
            api_calls=summary.get(UsageFeatureType.API_CALLS),
        )

        return SubscriptionStatusResponse(
            is_active=is_active,
            plan_id=plan.plan_id,
            status=SubscriptionStatus(record.status) if record else SubscriptionStatus.NONE,
            current_period_end=record.current_period_end if record else None,
            features=plan_features_response(plan),
            usage=usage,
            limits=plan_limits_response(plan),
        )
