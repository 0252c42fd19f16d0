"""Fake seat registry for testing."""

from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession


class FakeTeamSeatRepository:
    """In-memory fake for TeamSeatRepositoryProtocol."""

    def __init__(self) -> None:
        """Initialize with no seats."""
        self.seats: dict[UUID, set[str]] = {}
        self.error: Optional[Exception] = None

    def invite(self, owner_user_id: UUID, *emails: str) -> None:
        """Add member seats for ``owner_user_id``."""
        self.seats.setdefault(owner_user_id, set()).update(emails)

    async def count_for_owner(self, db: AsyncSession, *, owner_user_id: UUID) -> int:
        """Number of invited members, or raise ``error`` if set."""
        if self.error is not None:
            raise self.error
        return len(self.seats.get(owner_user_id, ()))
