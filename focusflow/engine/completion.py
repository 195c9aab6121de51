"""Completion classification.

A manual override always wins. Without one, a timed task is complete once
its countdown reaches zero; a timeless task is only ever completed manually.
"""

from enum import Enum
from typing import Iterable

from pydantic import BaseModel

from focusflow.models.task import ManualStatus, Task


class CompletionStatus(str, Enum):
    DONE = "done"
    MISSED = "missed"
    PENDING = "pending"


class CompletionStats(BaseModel):
    """Daily completion summary."""
    completed: int
    total: int
    remaining: int
    percentage: int


def is_completed(task: Task) -> bool:
    if task.manual_status == ManualStatus.DONE.value:
        return True
    if task.manual_status == ManualStatus.MISSED.value:
        return False
    if task.timer is None:
        return False
    return task.timer.remaining_duration <= 0


def completion_status(task: Task) -> CompletionStatus:
    """Three-way status: manual `missed` is reported as such, otherwise done/pending."""
    if task.manual_status == ManualStatus.MISSED.value:
        return CompletionStatus.MISSED
    return CompletionStatus.DONE if is_completed(task) else CompletionStatus.PENDING


def completion_stats(tasks: Iterable[Task]) -> CompletionStats:
    """Completed/total counts with a rounded percentage (0 for an empty day)."""
    tasks = list(tasks)
    total = len(tasks)
    completed = sum(1 for task in tasks if is_completed(task))
    # Round half up, matching what a user sees on the stats page.
    percentage = int(completed * 100 / total + 0.5) if total else 0
    return CompletionStats(
        completed=completed,
        total=total,
        remaining=total - completed,
        percentage=percentage,
    )
