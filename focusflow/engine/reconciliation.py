"""Schedule reconciliation.

Derives the client-side countdown map from a day's tasks. Only fixed tasks
track the wall clock; flexible suggested windows are advisory and never
drive a countdown.
"""

from datetime import datetime
from typing import Dict, Iterable, Optional

from focusflow.engine.time_utils import calculate_remaining_time
from focusflow.models.task import FixedSchedule, ScheduleKind, Task, baseline_duration


def initial_timers(tasks: Iterable[Task]) -> Dict[str, int]:
    """Countdown seeds for every fixed/flexible task.

    The persisted `remaining_duration` wins; a timed task without timer state
    falls back to the duration derived from its schedule. Timeless tasks are
    left out.
    """
    timers: Dict[str, int] = {}
    for task in tasks:
        if task.kind == ScheduleKind.TIMELESS.value:
            continue
        if task.timer is not None:
            timers[task.id] = task.timer.remaining_duration
        else:
            timers[task.id] = baseline_duration(task.schedule) or 0
    return timers


def live_remaining(task: Task, now: datetime) -> int:
    """Authoritative countdown of `task` as of `now`.

    The stored `remaining_duration` of a running task is only current as of
    its `started_at`; the open segment is subtracted here without touching
    the record. `now` must be on the store's clock (naive UTC).
    """
    timer = task.timer
    if timer is None:
        return 0
    if not timer.is_running or timer.is_paused or timer.started_at is None:
        return timer.remaining_duration
    elapsed = max(0, int((now - timer.started_at).total_seconds()))
    return max(0, timer.remaining_duration - elapsed)


def recompute_remaining(
    tasks: Iterable[Task],
    now: datetime,
    running_task_id: Optional[str] = None,
) -> Dict[str, int]:
    """Wall-clock remaining seconds for each fixed task except the running one.

    Args:
        tasks: Tasks of the day
        now: Local wall-clock time
        running_task_id: Task whose live countdown must not be overwritten

    Returns:
        Map of task id to remaining seconds (only entries to overwrite)
    """
    updated: Dict[str, int] = {}
    for task in tasks:
        if not isinstance(task.schedule, FixedSchedule):
            continue
        if running_task_id is not None and task.id == running_task_id:
            continue
        updated[task.id] = calculate_remaining_time(now, task.schedule.start, task.schedule.end)
    return updated
