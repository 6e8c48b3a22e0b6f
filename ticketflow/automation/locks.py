from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator


class TicketLockRegistry:
    """One ``asyncio.Lock`` per ticket id so writes to the same ticket never interleave.

    Locks are created lazily and dropped again once nobody holds or waits for them,
    keeping the registry proportional to the number of tickets currently in flight.
    Locks are not reentrant: do not fire a trigger while holding the ticket's lock.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, ticket_id: str) -> AsyncIterator[None]:
        lock = self._locks.get(ticket_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[ticket_id] = lock
        self._users[ticket_id] = self._users.get(ticket_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._users[ticket_id] - 1
            if remaining:
                self._users[ticket_id] = remaining
            else:
                del self._users[ticket_id]
                del self._locks[ticket_id]

    def __len__(self) -> int:
        return len(self._locks)

    def is_locked(self, ticket_id: str) -> bool:
        lock = self._locks.get(ticket_id)
        return lock is not None and lock.locked()
