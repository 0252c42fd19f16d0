"""CRUD operations for the TeamSeat model."""

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from repspheres.models.team_seat import TeamSeat


class CRUDTeamSeat:
    """Seat registry queries."""

    def __init__(self) -> None:
        """Bind to the TeamSeat model."""
        self.model = TeamSeat

    async def count_for_owner(self, db: AsyncSession, *, owner_user_id: UUID) -> int:
        """Number of invited members (the owner is not counted)."""
        result = await db.execute(
            select(func.count()).select_from(self.model).where(
                self.model.owner_user_id == owner_user_id
            )
        )
        return int(result.scalar_one())


team_seat = CRUDTeamSeat()
