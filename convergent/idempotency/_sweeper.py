"""
Cleanup sweeper — periodic deletion of expired idempotency records.

A missed sweep only delays storage reclamation, so failures are logged and the
loop keeps going.
"""

from __future__ import annotations

import asyncio

from kungfu import Error, Ok

from convergent._types import Clock, utcnow
from convergent.idempotency._store import Store
from convergent.log import get_logger

log = get_logger(__name__)


class CleanupSweeper:
    """
    Deletes records whose expires_at has passed, every interval seconds.

        sweeper = CleanupSweeper(store, interval=3600)
        sweeper.start()
        ...
        await sweeper.stop()
    """

    def __init__(
        self,
        store: Store,
        interval: float = 3600.0,
        clock: Clock = utcnow,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._store = store
        self._interval = interval
        self._clock = clock
        self._task: asyncio.Task[None] | None = None

    async def sweep_once(self) -> int:
        """Run one sweep. Returns number deleted, 0 on failure."""
        try:
            result = await self._store.delete_expired(self._clock())
        except Exception:
            log.exception("sweeper.failed")
            return 0

        match result:
            case Ok(count):
                if count > 0:
                    log.info("sweeper.deleted_expired", count=count)
                return count
            case Error(err):
                log.error("sweeper.failed", error=err.message)
                return 0

    async def run_forever(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            await self.sweep_once()

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run_forever(), name="idempotency-sweeper")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()


__all__ = ("CleanupSweeper",)
