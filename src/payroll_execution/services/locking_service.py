"""Per-run mutual exclusion for state changes.

Every operation that changes a run, its pay lines, or postings against it
holds the run's lock for the duration of the change. Operations on
different runs never contend. This covers a single process; across
processes the compare-and-set on PayrollRun.version does the same job.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Hashable
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)


class RunLockRegistry:
    """Registry of asyncio locks keyed by run id (or any hashable key).

    Locks are created on first use and dropped once nobody holds or waits
    for them, so the registry does not grow with the number of runs.
    """

    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._users: dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        """Hold the lock for a key until the block exits."""
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1

        try:
            if lock.locked():
                logger.debug("Waiting for lock on %s", key)
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def is_held(self, key: Hashable) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)


# Process-wide registry shared by the API and CLI
run_locks = RunLockRegistry()
