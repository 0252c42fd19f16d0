"""Seat registry repository wrapping crud.team_seat."""

from typing import Protocol
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from repspheres import crud


class TeamSeatRepositoryProtocol(Protocol):
    """Read access to the seats a subscription owner has handed out."""

    async def count_for_owner(self, db: AsyncSession, *, owner_user_id: UUID) -> int:
        """Number of invited members, excluding the owner."""
        ...


class TeamSeatRepository(TeamSeatRepositoryProtocol):
    """Delegates to the crud.team_seat singleton."""

    async def count_for_owner(self, db: AsyncSession, *, owner_user_id: UUID) -> int:
        """Number of invited members, excluding the owner."""
        return await crud.team_seat.count_for_owner(db, owner_user_id=owner_user_id)
