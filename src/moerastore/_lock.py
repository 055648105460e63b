"""Named asyncio critical sections."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator

_logger = logging.getLogger(__name__)


class NamedLock:
    """A set of mutexes addressed by name.

    ``async with locks.acquire("clientData"):`` admits one holder of that
    name at a time; waiters are served in FIFO order.  Locks are created
    lazily and live as long as the ``NamedLock`` instance.  Holders must
    not re-acquire a name they already hold.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock(self, name: str) -> asyncio.Lock:
        lock = self._locks.get(name)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[name] = lock
        return lock

    @contextlib.asynccontextmanager
    async def acquire(self, name: str) -> AsyncIterator[None]:
        lock = self._lock(name)
        if lock.locked():
            _logger.debug("Waiting for lock %s", name)
        async with lock:
            _logger.debug("Lock %s acquired", name)
            try:
                yield
            finally:
                _logger.debug("Lock %s released", name)
