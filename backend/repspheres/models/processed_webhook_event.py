"""Processed webhook event model."""

from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from repspheres.models._base import Base, utcnow


class ProcessedWebhookEvent(Base):
    """Provider event ids already applied. Replays are skipped."""

    __tablename__ = "processed_webhook_event"

    event_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    processed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
