"""Fixed-interval tick scheduler.

Fires the tick function every ``interval`` seconds after an initial delay.
Each tick runs in its own task so a slow broker call never delays the
detection of the next due time. A tick that is still running when the next
one is due causes that next tick to be skipped, never queued.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

TickFunction = Callable[[], Awaitable[Any]]


class TickScheduler:
    """Background asyncio loop with an explicit start/stop lifecycle."""

    def __init__(
        self,
        tick: TickFunction,
        interval: float = 1800.0,
        initial_delay: float = 60.0,
    ):
        """
        Args:
            tick: Coroutine function run on every due time
            interval: Seconds between due times (default 30 minutes)
            initial_delay: Seconds before the first tick (default 60)
        """
        if interval <= 0:
            raise ValueError("interval must be > 0")
        if initial_delay < 0:
            raise ValueError("initial_delay must be >= 0")

        self._tick = tick
        self.interval = interval
        self.initial_delay = initial_delay

        self._running = False
        self._task: asyncio.Task | None = None
        self._tick_task: asyncio.Task | None = None
        self._stop_event = asyncio.Event()

        self.tick_count = 0
        self.skipped_count = 0
        self.next_run_at: datetime | None = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def tick_in_progress(self) -> bool:
        return self._tick_task is not None and not self._tick_task.done()

    async def start(self) -> None:
        """Start the scheduler loop."""
        if self._running:
            return

        self._running = True
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run())
        logger.info(
            f"Scheduler started: first tick in {self.initial_delay:.0f}s, "
            f"then every {self.interval:.0f}s"
        )

    async def stop(self, grace: float = 30.0) -> None:
        """
        Stop the loop and wind down an in-flight tick.

        The in-flight tick gets ``grace`` seconds to finish, then it is
        cancelled. Ticks write state only at their very end, so a cancelled
        tick leaves the store as it was.
        """
        if not self._running:
            return

        self._running = False
        self._stop_event.set()
        if self._task:
            await self._task
            self._task = None

        if self.tick_in_progress:
            logger.info(f"Waiting up to {grace:.0f}s for in-flight tick")
            try:
                await asyncio.wait_for(asyncio.shield(self._tick_task), timeout=grace)
            except asyncio.TimeoutError:
                logger.warning("In-flight tick did not finish in time, cancelling")
                self._tick_task.cancel()
                try:
                    await self._tick_task
                except asyncio.CancelledError:
                    pass

        self.next_run_at = None
        logger.info(
            f"Scheduler stopped ({self.tick_count} ticks, {self.skipped_count} skipped)"
        )

    def trigger(self) -> bool:
        """Start a tick now unless one is running. Returns True if started."""
        if self.tick_in_progress:
            self.skipped_count += 1
            logger.warning("Previous tick still running, skipping this one")
            return False

        self.tick_count += 1
        self._tick_task = asyncio.create_task(self._run_tick())
        return True

    async def _run(self) -> None:
        """Main loop: wait for the next due time, then fire."""
        loop = asyncio.get_running_loop()
        due = loop.time() + self.initial_delay

        while self._running:
            delay = max(0.0, due - loop.time())
            self.next_run_at = datetime.now(timezone.utc) + timedelta(seconds=delay)

            if await self._wait_for_stop(delay):
                break

            self.trigger()

            due += self.interval
            now = loop.time()
            if due <= now:
                # Loop stalled past one or more due times; resume from now
                due = now + self.interval

    async def _wait_for_stop(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds. Returns True if stop was requested."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    async def _run_tick(self) -> None:
        try:
            await self._tick()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Unhandled error in scheduled tick")
