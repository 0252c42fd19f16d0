"""Per-user locks shared by every writer of a user's subscription record.

The billing service (customer/subscription creation) and the webhook
processor take the same lock, so in-process writes for one user never
interleave. Cross-process safety comes from the storage layer (unique
columns, compare-and-set, row locks).
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict
from uuid import UUID


class UserLockRegistry:
    """``asyncio.Lock`` per user id, kept only while someone holds or awaits it."""

    def __init__(self) -> None:
        """Initialize with no locks."""
        self._locks: Dict[UUID, asyncio.Lock] = {}
        self._users: Dict[UUID, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, user_id: UUID) -> AsyncIterator[None]:
        """Hold the lock for ``user_id`` for the duration of the block."""
        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks[user_id] = asyncio.Lock()
        self._users[user_id] = self._users.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[user_id] -= 1
            if not self._users[user_id]:
                del self._users[user_id]
                del self._locks[user_id]
