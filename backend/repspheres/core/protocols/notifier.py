"""Subscription notifier protocol.

Downstream collaborator for lifecycle notices (payment failed, trial
ending). Dunning emails and in-app banners are built on the receiving side.
"""

from typing import Any, Dict, Optional, Protocol, runtime_checkable
from uuid import UUID


@runtime_checkable
class SubscriptionNotifierProtocol(Protocol):
    """Fire-and-forget lifecycle notifications. Implementations never raise."""

    async def notify(
        self,
        event: str,
        user_id: UUID,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Deliver ``event`` (e.g. ``payment_failed``) for ``user_id``."""
        ...
