"""Usage event model."""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, DateTime, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from repspheres.models._base import Base, utcnow


class UsageEvent(Base):
    """One unit (or batch) of consumption. Append-only.

    The only update ever made is stamping ``external_usage_record_id`` and
    ``reported_at`` once the increment has been reported upstream.
    """

    __tablename__ = "usage_event"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(nullable=False)
    feature_type: Mapped[str] = mapped_column(String(50), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    external_usage_record_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    reported_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("quantity > 0", name="positive_quantity"),
        Index("idx_usage_event_user_feature_created", "user_id", "feature_type", "created_at"),
        Index(
            "idx_usage_event_unreported",
            "created_at",
            postgresql_where=text("external_usage_record_id IS NULL"),
        ),
    )
