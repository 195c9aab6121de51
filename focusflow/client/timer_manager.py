"""Client-side timer reconciliation.

`TimerManager` mirrors the authoritative running timer, ticks a local
countdown once per second, queues the ticked values and flushes them to the
store in batches. Local values are an approximation between round trips;
they are overwritten from the store on visibility change and after every
control call.
"""

import inspect
import logging
from datetime import datetime
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Union

from focusflow.engine.reconciliation import initial_timers, live_remaining, recompute_remaining
from focusflow.engine.time_utils import today_local_iso, utc_now
from focusflow.errors import StoreUnavailable
from focusflow.models.task import Task

logger = logging.getLogger(__name__)

FinishedListener = Callable[[str], Union[None, Awaitable[None]]]


class TimerManager:
    """Local countdown state for one user-day.

    Args:
        store: Timer store client (see `focusflow.client.store.HttpTimerStoreClient`)
        date: Day key, defaults to today
        clock: Store clock (naive UTC), used to age the running segment
        local_clock: Local wall clock, used for fixed-task previews
    """

    def __init__(
        self,
        store,
        date: Optional[str] = None,
        clock: Callable[[], datetime] = utc_now,
        local_clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.date = date or today_local_iso()
        self.clock = clock
        self.local_clock = local_clock

        self.timers: Dict[str, int] = {}
        self.running_task_id: Optional[str] = None
        self.running_timer: Optional[Task] = None
        self.pending: Dict[str, int] = {}
        self.schedule: List[Task] = []
        self._finished_listeners: List[FinishedListener] = []

    @property
    def is_paused(self) -> bool:
        return bool(self.running_timer and self.running_timer.is_paused)

    def add_finished_listener(self, listener: FinishedListener) -> None:
        """Register a callback invoked with the task id when a countdown hits zero."""
        self._finished_listeners.append(listener)

    def remaining(self, task_id: str) -> Optional[int]:
        return self.timers.get(task_id)

    # Inputs from the store

    def on_running_timer(self, task: Optional[Task]) -> None:
        """Mirror the authoritative running record (None when nothing runs)."""
        previous = self.running_task_id
        self.running_timer = task
        self.running_task_id = task.id if task else None
        if task is not None and (task.id != previous or task.id not in self.timers):
            self._seed_live(task)
        if previous != self.running_task_id:
            logger.debug(f"Running timer changed: {previous} -> {self.running_task_id}")

    def on_schedule(self, tasks: Iterable[Task]) -> None:
        """(Re)seed countdowns from the day's tasks.

        Unflushed local values win, except for a running task: its stored
        countdown is only current as of `started_at`, so it is seeded from
        the live value instead.
        """
        self.schedule = list(tasks)
        timers = initial_timers(self.schedule)
        for task_id, value in self.pending.items():
            if task_id in timers:
                timers[task_id] = value
        self.timers = timers
        for task in self.schedule:
            if task.timer is not None and task.timer.is_running:
                self._seed_live(task)

    def _seed_live(self, task: Task) -> None:
        self.timers[task.id] = live_remaining(task, self.clock())
        self.pending.pop(task.id, None)

    # Periodic jobs

    async def tick(self) -> None:
        """Advance the running countdown by one second."""
        task_id = self.running_task_id
        if task_id is None or self.is_paused:
            return
        current = self.timers.get(task_id, 0)
        if current > 0:
            current -= 1
            self.timers[task_id] = current
            self.pending[task_id] = current
        if current <= 0:
            await self._finish(task_id)

    async def _finish(self, task_id: str) -> None:
        try:
            await self.store.stop_timer(task_id)
        except StoreUnavailable as e:
            # Still running locally, so the next tick retries.
            logger.warning(f"Failed to stop finished timer {task_id}: {e}")
            return
        logger.info(f"Timer finished for task {task_id}")
        if self.running_task_id == task_id:
            self.running_task_id = None
            self.running_timer = None
        for listener in list(self._finished_listeners):
            result = listener(task_id)
            if inspect.isawaitable(result):
                await result

    async def flush(self) -> bool:
        """Write all pending countdown values in one batch.

        Only entries that were sent and have not changed since are cleared;
        on failure the whole buffer is kept for the next cycle.

        Returns:
            True if the buffer was empty or the write succeeded
        """
        if not self.pending:
            return True
        snapshot = dict(self.pending)
        try:
            result = await self.store.batch_update_durations(snapshot)
        except StoreUnavailable as e:
            logger.warning(f"Duration flush of {len(snapshot)} timers failed, keeping buffer: {e}")
            return False
        for task_id, value in snapshot.items():
            if self.pending.get(task_id) == value:
                del self.pending[task_id]
        not_found = (result or {}).get("not_found_ids") or []
        if not_found:
            logger.debug(f"Flush skipped {len(not_found)} deleted tasks")
        return True

    def refresh_fixed_tasks(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Recompute wall-clock countdowns of fixed tasks that are not running."""
        updated = recompute_remaining(self.schedule, now or self.local_clock(), self.running_task_id)
        self.timers.update(updated)
        return updated

    async def refresh_running_timer(self) -> bool:
        """Poll the store for the running timer."""
        try:
            task = await self.store.get_running_timer(self.date)
        except StoreUnavailable as e:
            logger.warning(f"Could not refresh running timer: {e}")
            return False
        self.on_running_timer(task)
        return True

    async def on_visibility_change(self, visible: bool) -> None:
        """Resync the running countdown from the store when the view becomes visible."""
        if not visible:
            return
        if not await self.refresh_running_timer():
            return
        task = self.running_timer
        if task is None or task.timer is None:
            return
        self._seed_live(task)
        logger.debug(f"Resynced task {task.id} to {self.timers[task.id]}s")

    # Control calls

    async def _control(self, action: str, call: Callable[[], Awaitable[Optional[Task]]]) -> bool:
        try:
            task = await call()
        except StoreUnavailable as e:
            logger.error(f"Failed to {action} timer: {e}")
            return False
        if task is not None and task.timer is not None:
            self._seed_live(task)
        await self.refresh_running_timer()
        return True

    async def start(self, task_id: str) -> bool:
        previous = self.running_task_id
        ok = await self._control("start", lambda: self.store.start_timer(task_id, self.date))
        if ok and previous and previous != task_id:
            # The store has already settled the previous task.
            self.pending.pop(previous, None)
        return ok

    async def stop(self, task_id: str) -> bool:
        return await self._control("stop", lambda: self.store.stop_timer(task_id))

    async def pause(self, task_id: str) -> bool:
        return await self._control("pause", lambda: self.store.pause_timer(task_id))

    async def resume(self, task_id: str) -> bool:
        return await self._control("resume", lambda: self.store.resume_timer(task_id))
