"""Fake entitlement evaluator for testing.

Returns canned decisions per feature and records every check.
"""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from repspheres.domains.entitlements.protocols import EntitlementEvaluatorProtocol
from repspheres.schemas.entitlement import AccessDecision
from repspheres.schemas.subscription import (
    PlanFeatures,
    PlanId,
    PlanLimits,
    SubscriptionStatus,
    SubscriptionStatusResponse,
    UsageCounts,
)


class FakeEntitlementEvaluator(EntitlementEvaluatorProtocol):
    """Test implementation of EntitlementEvaluatorProtocol.

    Usage:
        evaluator = FakeEntitlementEvaluator()
        evaluator.decisions["automation"] = AccessDecision.deny("nope")
    """

    def __init__(self, status: Optional[SubscriptionStatusResponse] = None) -> None:
        """Initialize allowing everything unless told otherwise."""
        self.decisions: dict[str, AccessDecision] = {}
        self.checks: list[tuple[UUID, str]] = []
        self.status = status or SubscriptionStatusResponse(
            is_active=True,
            plan_id=PlanId.FREE,
            status=SubscriptionStatus.NONE,
            features=PlanFeatures(automation=False, api=False),
            usage=UsageCounts(users=1),
            limits=PlanLimits(users=1, ai_queries=10, categories=3),
        )

    async def check_access(
        self, db: AsyncSession, *, user_id: UUID, feature: str
    ) -> AccessDecision:
        """Return the canned decision for ``feature`` (allow by default)."""
        self.checks.append((user_id, feature))
        return self.decisions.get(feature, AccessDecision.allow())

    async def get_status(self, db: AsyncSession, *, user_id: UUID) -> SubscriptionStatusResponse:
        """Return the canned status."""
        return self.status
