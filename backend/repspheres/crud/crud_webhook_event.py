"""CRUD operations for the ProcessedWebhookEvent model."""

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from repspheres.models.processed_webhook_event import ProcessedWebhookEvent


class CRUDProcessedWebhookEvent:
    """Replay ledger for provider webhook events."""

    def __init__(self) -> None:
        """Bind to the ProcessedWebhookEvent model."""
        self.model = ProcessedWebhookEvent

    async def is_processed(self, db: AsyncSession, *, event_id: str) -> bool:
        """Whether ``event_id`` has already been applied."""
        result = await db.execute(
            select(self.model.event_id).where(self.model.event_id == event_id)
        )
        return result.scalar_one_or_none() is not None

    async def mark_processed(self, db: AsyncSession, *, event_id: str, event_type: str) -> bool:
        """Record ``event_id`` inside the caller's transaction. Does not commit.

        Returns:
            False if a concurrent delivery recorded it first.
        """
        stmt = (
            insert(self.model)
            .values(event_id=event_id, event_type=event_type)
            .on_conflict_do_nothing(index_elements=[self.model.event_id])
            .returning(self.model.event_id)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none() is not None


processed_webhook_event = CRUDProcessedWebhookEvent()
