"""HTTP subscription notifier.

Posts lifecycle notices as JSON to ``NOTIFICATION_WEBHOOK_URL``. Delivery is
best-effort: failures are logged, never raised into webhook processing.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import UUID

import httpx

from repspheres.core.logging import logger
from repspheres.core.protocols.notifier import SubscriptionNotifierProtocol


class HttpSubscriptionNotifier(SubscriptionNotifierProtocol):
    """Deliver notices to a downstream webhook (email/dunning service)."""

    def __init__(self, url: str, timeout: float = 5.0) -> None:
        """Initialize with the receiver URL."""
        self._url = url
        self._timeout = timeout

    async def notify(
        self,
        event: str,
        user_id: UUID,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """POST ``{event, user_id, details, sent_at}``."""
        body = {
            "event": event,
            "user_id": str(user_id),
            "details": details or {},
            "sent_at": datetime.now(timezone.utc).isoformat(),
        }
        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(self._url, json=body, timeout=self._timeout)
                response.raise_for_status()
            logger.info(f"Sent {event} notification for user {user_id}")
        except httpx.HTTPError as e:
            logger.warning(f"Failed to send {event} notification for user {user_id}: {e}")
