"""Team seat model."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import DateTime, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from repspheres.models._base import Base, utcnow


class TeamSeat(Base):
    """A team member invited by a subscription owner. The owner is not a row."""

    __tablename__ = "team_seat"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    owner_user_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    member_email: Mapped[str] = mapped_column(String(320), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        UniqueConstraint("owner_user_id", "member_email", name="uq_team_seat_owner_member"),
    )
