"""Billing domain protocols.

BillingServiceProtocol: what the subscription and checkout endpoints need injected.
BillingWebhookProtocol: single method for webhook event processing.
"""

from datetime import datetime
from typing import Optional, Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from repspheres.models import UserSubscription
from repspheres.schemas.subscription import PlanId


@runtime_checkable
class BillingServiceProtocol(Protocol):
    """Public billing bridge interface."""

    async def find_or_create_customer(self, db: AsyncSession, *, user_id: UUID, email: str) -> str:
        """Return the user's provider customer ID, creating the customer once."""
        ...

    async def create_subscription(
        self,
        db: AsyncSession,
        *,
        user_id: UUID,
        email: str,
        plan_id: PlanId,
        payment_method_id: str,
    ) -> UserSubscription:
        """Create a provider subscription and mirror it locally."""
        ...

    async def start_checkout(
        self, db: AsyncSession, *, user_id: UUID, email: str, price_id: str
    ) -> str:
        """Create a hosted checkout session. Returns its URL."""
        ...

    async def create_portal_session(
        self, db: AsyncSession, *, user_id: UUID, return_url: Optional[str] = None
    ) -> str:
        """Create a billing portal session. Returns its URL."""
        ...

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
        """Report metered usage. Returns the usage record ID, None if not metered."""
        ...

    def metered_feature_types(self) -> list[str]:
        """Feature types with a metered price configured."""
        ...


@runtime_checkable
class BillingWebhookProtocol(Protocol):
    """Process verified provider webhook events."""

    async def process_webhook(self, db: AsyncSession, payload: bytes, signature: str) -> None:
        """Verify signature and process the event.

        Raises ValueError if the signature is invalid.
        """
        ...
