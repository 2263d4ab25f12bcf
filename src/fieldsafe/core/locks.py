"""Per-facility serialization of compliance runs.

Runs for different facilities share no mutable state and may proceed
concurrently. Runs for the same facility must not interleave, otherwise
one run could read pre-update data while another writes post-update data.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fieldsafe.core.logging import get_logger

logger = get_logger(__name__)


class FacilityLocks:
    """Registry of one ``asyncio.Lock`` per facility.

    Locks are created lazily and live as long as the registry. A registry
    is bound to the event loop its locks are first awaited on.

    Usage:
        locks = FacilityLocks()
        async with locks.hold(facility_id):
            await aggregator.assess(facility_id, options)
    """

    def __init__(self) -> None:
        self._locks: dict[int, asyncio.Lock] = {}

    def lock_for(self, facility_id: int) -> asyncio.Lock:
        """Get (or create) the lock for a facility."""
        lock = self._locks.get(facility_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[facility_id] = lock
        return lock

    def is_locked(self, facility_id: int) -> bool:
        """Check whether a run currently holds the facility's lock."""
        lock = self._locks.get(facility_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, facility_id: int) -> AsyncIterator[None]:
        """Hold the facility lock for the duration of the block."""
        lock = self.lock_for(facility_id)
        if lock.locked():
            logger.debug("facility_run_waiting", facility_id=facility_id)
        async with lock:
            yield
