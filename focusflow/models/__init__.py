"""Data models for FocusFlow."""

from focusflow.models.task import (
    Task,
    TaskDescriptor,
    TimerState,
    Subtask,
    ScheduleKind,
    ManualStatus,
    TimeSlot,
    FixedSchedule,
    FlexibleSchedule,
    TimelessSchedule,
)
from focusflow.models.user import User

__all__ = [
    "Task",
    "TaskDescriptor",
    "TimerState",
    "Subtask",
    "ScheduleKind",
    "ManualStatus",
    "TimeSlot",
    "FixedSchedule",
    "FlexibleSchedule",
    "TimelessSchedule",
    "User",
]
