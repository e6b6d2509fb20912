"""
Per-BOM locking for structural mutations.

At most one mutation may be in flight per BOM; two concurrent
insertions could otherwise jointly create a cycle that neither check
sees on its own, and two whole-BOM saves would overwrite each other.

Use cases share one process-wide registry unless given their own.
"""

import asyncio
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

from bomcore.domain.shared.value_objects import BOMId


class BOMLockRegistry:
    """
    One asyncio.Lock per BOM and event loop.

    An asyncio.Lock is bound to the loop it first waits in, so every
    running loop gets its own set of locks.
    """

    def __init__(self):
        self._locks: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, Dict[BOMId, asyncio.Lock]]" = (
            weakref.WeakKeyDictionary()
        )

    def _loop_locks(self) -> Dict[BOMId, asyncio.Lock]:
        return self._locks.setdefault(asyncio.get_running_loop(), {})

    def lock_for(self, bom_id: BOMId) -> asyncio.Lock:
        locks = self._loop_locks()
        lock = locks.get(bom_id)
        if lock is None:
            lock = locks[bom_id] = asyncio.Lock()
        return lock

    def is_locked(self, bom_id: BOMId) -> bool:
        lock = self._loop_locks().get(bom_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, bom_id: BOMId) -> AsyncIterator[None]:
        async with self.lock_for(bom_id):
            yield


_default_registry = BOMLockRegistry()


def default_lock_registry() -> BOMLockRegistry:
    """The registry shared by every use case that is not given its own."""
    return _default_registry
