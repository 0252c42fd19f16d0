"""Logging subscription notifier, used when no receiver URL is configured."""

from typing import Any, Dict, Optional
from uuid import UUID

from repspheres.core.logging import logger
from repspheres.core.protocols.notifier import SubscriptionNotifierProtocol


class LoggingSubscriptionNotifier(SubscriptionNotifierProtocol):
    """Writes notices to the application log only."""

    async def notify(
        self,
        event: str,
        user_id: UUID,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Log the notice."""
        logger.with_context(user_id=str(user_id), notification=event).info(
            f"Subscription notification: {event} {details or {}}"
        )
