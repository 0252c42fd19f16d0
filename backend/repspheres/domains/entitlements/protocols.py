"""Entitlement domain protocols."""

from typing import Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from repspheres.schemas.entitlement import AccessDecision
from repspheres.schemas.subscription import SubscriptionStatusResponse


@runtime_checkable
class EntitlementEvaluatorProtocol(Protocol):
    """Decides whether a user may use a gated feature right now."""

    async def check_access(
        self, db: AsyncSession, *, user_id: UUID, feature: str
    ) -> AccessDecision:
        """Evaluate one feature. Never raises for user-state problems."""
        ...

    async def get_status(self, db: AsyncSession, *, user_id: UUID) -> SubscriptionStatusResponse:
        """Plan, capabilities, limits and current usage for the UI gate."""
        ...
