"""Fake subscription notifier for testing."""

from typing import Any, Dict, Optional
from uuid import UUID

from repspheres.core.protocols.notifier import SubscriptionNotifierProtocol


class FakeSubscriptionNotifier(SubscriptionNotifierProtocol):
    """Records every notice."""

    def __init__(self) -> None:
        """Initialize with an empty outbox."""
        self.sent: list[tuple[str, UUID, Dict[str, Any]]] = []

    async def notify(
        self,
        event: str,
        user_id: UUID,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Record the notice."""
        self.sent.append((event, user_id, details or {}))

    def events_for(self, user_id: UUID) -> list[str]:
        """Event names sent for ``user_id``, in order."""
        return [event for event, uid, _ in self.sent if uid == user_id]
