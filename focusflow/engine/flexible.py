"""Suggested time windows for flexible tasks.

Walks each preferred time-of-day range in 15-minute steps and returns the
first window that fits inside the task bounds without overlapping a fixed
task. When nothing fits, the earliest allowed start is suggested.
"""

from typing import Iterable, List, NamedTuple, Optional, Tuple

from focusflow.engine.time_utils import format_hhmm, time_to_minutes
from focusflow.models.constants import SUGGESTION_STEP_MINUTES, TIME_SLOT_RANGES
from focusflow.models.task import FixedSchedule, FlexibleSchedule, Task, TimeSlot

_LAST_MINUTE_OF_DAY = 23 * 60 + 59


class SuggestedWindow(NamedTuple):
    start: str
    end: str


def _occupied(fixed_tasks: Iterable[Task]) -> List[Tuple[int, int]]:
    slots = [
        (time_to_minutes(t.schedule.start), time_to_minutes(t.schedule.end))
        for t in fixed_tasks
        if isinstance(t.schedule, FixedSchedule)
    ]
    return sorted(slots)


def _slot_bounds(slot: str, earliest: int, latest: int) -> Tuple[int, int]:
    if slot in TIME_SLOT_RANGES:
        range_start, range_end = TIME_SLOT_RANGES[slot]
        return max(earliest, time_to_minutes(range_start)), min(latest, time_to_minutes(range_end))
    return earliest, latest


def _first_free(start: int, end: int, duration: int, occupied: List[Tuple[int, int]]) -> Optional[int]:
    current = start
    while current + duration <= end:
        current_end = current + duration
        if not any(current < busy_end and current_end > busy_start for busy_start, busy_end in occupied):
            return current
        current += SUGGESTION_STEP_MINUTES
    return None


def suggest_flexible_task_times(schedule: FlexibleSchedule, fixed_tasks: Iterable[Task]) -> SuggestedWindow:
    """Pick a start/end window for a flexible schedule.

    Args:
        schedule: The flexible schedule to place
        fixed_tasks: Tasks of the same day; only fixed ones block time

    Returns:
        SuggestedWindow with "HH:MM" start and end
    """
    duration = schedule.duration_min
    earliest = time_to_minutes(schedule.earliest_start)
    latest = time_to_minutes(schedule.latest_end)
    occupied = _occupied(fixed_tasks)

    for slot in schedule.preferred_time_slots or [TimeSlot.ANYTIME]:
        slot_value = slot.value if isinstance(slot, TimeSlot) else slot
        slot_start, slot_end = _slot_bounds(slot_value, earliest, latest)
        found = _first_free(slot_start, slot_end, duration, occupied)
        if found is not None:
            return SuggestedWindow(format_hhmm(found), format_hhmm(found + duration))

    return SuggestedWindow(format_hhmm(earliest), format_hhmm(min(earliest + duration, _LAST_MINUTE_OF_DAY)))


def with_suggestions(tasks: List[Task]) -> List[Task]:
    """Copy of `tasks` where every flexible task carries a suggested window.

    Fixed tasks in the same list are the obstacles.
    """
    fixed = [t for t in tasks if isinstance(t.schedule, FixedSchedule)]
    out: List[Task] = []
    for task in tasks:
        if isinstance(task.schedule, FlexibleSchedule):
            window = suggest_flexible_task_times(task.schedule, fixed)
            schedule = task.schedule.model_copy(
                update={"suggested_start": window.start, "suggested_end": window.end}
            )
            task = task.model_copy(update={"schedule": schedule})
        out.append(task)
    return out
