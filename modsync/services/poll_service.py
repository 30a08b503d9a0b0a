"""Fixed-interval polling that triggers synchronization passes."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from modsync.services.datetime_service import now_timestamp

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class Poller:
    """Runs a sync pass whenever ``interval_seconds`` have passed since the last one.

    ``get_last_sync`` reads the persisted cursor; ``run_pass(since, until)``
    performs the pass and is expected to advance that cursor.
    """

    def __init__(
        self,
        get_last_sync: Callable[[], int],
        run_pass: Callable[[int, int], Awaitable[None]],
        *,
        interval_seconds: int,
        tick_seconds: float = 1.0,
        clock: Callable[[], int] = now_timestamp,
    ) -> None:
        self.get_last_sync = get_last_sync
        self.run_pass = run_pass
        self.interval_seconds = interval_seconds
        self.tick_seconds = tick_seconds
        self.clock = clock
        self._task: asyncio.Task[None] | None = None

    @property
    def enabled(self) -> bool:
        return self._task is not None and not self._task.done()

    async def tick(self) -> bool:
        """Run one pass if the interval has elapsed. Returns whether a pass ran."""
        now = self.clock()
        last_sync = self.get_last_sync()
        if now - last_sync < self.interval_seconds:
            return False
        logger.debug("Polling for changes in [%d, %d)", last_sync, now)
        await self.run_pass(last_sync, now)
        return True

    def enable(self) -> None:
        """Start ticking in the background. No-op if already running."""
        if self.enabled:
            return
        self._task = asyncio.create_task(self._run(), name="modsync-poller")
        logger.info("Polling enabled every %ds", self.interval_seconds)

    async def disable(self) -> None:
        """Stop ticking. No-op if not running."""
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Polling disabled")

    async def _run(self) -> None:
        while True:
            try:
                await self.tick()
            except Exception:
                logger.exception("Sync pass failed")
            await asyncio.sleep(self.tick_seconds)
