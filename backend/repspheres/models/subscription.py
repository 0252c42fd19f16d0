"""User subscription model."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from repspheres.models._base import TimestampedBase
from repspheres.schemas.subscription import PlanId, SubscriptionStatus


class UserSubscription(TimestampedBase):
    """Local mirror of a user's provider subscription.

    One row per user, never deleted. ``stripe_customer_id`` is unique so a
    user can hold at most one provider customer; the first committed claim
    wins.
    """

    __tablename__ = "user_subscription"

    user_id: Mapped[UUID] = mapped_column(nullable=False, unique=True)
    stripe_customer_id: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True, unique=True
    )
    stripe_subscription_id: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True, unique=True
    )
    plan_id: Mapped[str] = mapped_column(String(50), nullable=False, default=PlanId.FREE.value)
    status: Mapped[str] = mapped_column(
        String(50), nullable=False, default=SubscriptionStatus.NONE.value
    )
    current_period_end: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_event_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    canceled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("idx_user_subscription_status", "status"),)
