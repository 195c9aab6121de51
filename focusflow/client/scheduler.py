"""Repeating jobs that drive a `TimerManager`.

One asyncio task per periodic concern (tick, batch flush, fixed-task
recompute, running-timer poll) plus a consumer for visibility events.
`sleep` is injectable so tests can run the loops without wall-clock waits.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from focusflow.client.timer_manager import TimerManager
from focusflow.models.constants import (
    DURATION_BATCH_SECONDS,
    NOW_UPDATE_SECONDS,
    RUNNING_TIMER_POLL_SECONDS,
    TIMER_TICK_SECONDS,
)

logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[object]]


class TimerScheduler:
    """Runs a TimerManager's periodic jobs until stopped."""

    def __init__(
        self,
        manager: TimerManager,
        tick_interval: float = TIMER_TICK_SECONDS,
        flush_interval: float = DURATION_BATCH_SECONDS,
        refresh_interval: float = NOW_UPDATE_SECONDS,
        poll_interval: Optional[float] = RUNNING_TIMER_POLL_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.manager = manager
        self.intervals = {
            "tick": tick_interval,
            "flush": flush_interval,
            "refresh": refresh_interval,
            "poll": poll_interval,
        }
        self._sleep = sleep
        self._tasks: List[asyncio.Task] = []
        self._visibility: "asyncio.Queue[bool]" = asyncio.Queue()

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    def jobs(self) -> Dict[str, Tuple[float, Job]]:
        async def refresh():
            self.manager.refresh_fixed_tasks()

        jobs = {
            "tick": (self.intervals["tick"], self.manager.tick),
            "flush": (self.intervals["flush"], self.manager.flush),
            "refresh": (self.intervals["refresh"], refresh),
        }
        # A push-based subscription can replace polling (poll_interval=None).
        if self.intervals["poll"]:
            jobs["poll"] = (self.intervals["poll"], self.manager.refresh_running_timer)
        return jobs

    async def _repeat(self, name: str, interval: float, job: Job) -> None:
        while True:
            await self._sleep(interval)
            try:
                await job()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Timer job {name} failed: {type(e).__name__}: {str(e)}")

    async def _consume_visibility(self) -> None:
        while True:
            visible = await self._visibility.get()
            try:
                await self.manager.on_visibility_change(visible)
            except Exception as e:
                logger.error(f"Visibility resync failed: {type(e).__name__}: {str(e)}")

    def notify_visibility(self, visible: bool) -> None:
        """Queue a visibility change (e.g. app returned to foreground)."""
        self._visibility.put_nowait(visible)

    async def start(self) -> None:
        if self._tasks:
            return
        for name, (interval, job) in self.jobs().items():
            self._tasks.append(asyncio.create_task(self._repeat(name, interval, job), name=f"timer-{name}"))
        self._tasks.append(asyncio.create_task(self._consume_visibility(), name="timer-visibility"))
        logger.debug(f"Started {len(self._tasks)} timer jobs")

    async def stop(self) -> None:
        """Cancel all jobs, then make one best-effort flush."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if not await self.manager.flush():
            logger.warning("Final duration flush failed; pending values were not written")

    async def __aenter__(self) -> "TimerScheduler":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()
