"""Task creation factory for FocusFlow.

This module centralizes task creation logic so that manual entry, whole-day
replacement and AI-generated descriptors all go through the same validation
and receive the same timer baseline.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from focusflow.engine.time_utils import parse_day, utc_now
from focusflow.errors import InvalidFormat
from focusflow.models.constants import MAX_TITLE_LENGTH
from focusflow.models.task import (
    Schedule,
    Subtask,
    Task,
    TaskDescriptor,
    TimerState,
    baseline_duration,
)


def normalize_title(title: Optional[str]) -> str:
    """Strip a title and reject empty or oversized values.

    Raises:
        InvalidFormat: If the title is empty after stripping or too long
    """
    cleaned = (title or "").strip()
    if not cleaned:
        raise InvalidFormat("Task title must not be empty")
    if len(cleaned) > MAX_TITLE_LENGTH:
        raise InvalidFormat(f"Task title exceeds {MAX_TITLE_LENGTH} characters")
    return cleaned


def build_timer_state(schedule: Schedule) -> Optional[TimerState]:
    """Fresh, stopped timer state for a schedule (None for timeless tasks)."""
    duration = baseline_duration(schedule)
    if duration is None:
        return None
    return TimerState(remaining_duration=duration)


def parse_descriptor(data: Dict[str, Any]) -> TaskDescriptor:
    """Validate a raw descriptor dict.

    Raises:
        InvalidFormat: If the descriptor does not describe a valid task
    """
    try:
        return TaskDescriptor.model_validate(data)
    except ValidationError as e:
        raise InvalidFormat(f"Invalid task descriptor: {e.errors()[0].get('msg', 'invalid')}") from e


def create_task_base(
    user_id: str,
    date: str,
    title: str,
    schedule: Schedule,
    icon: Optional[str] = None,
    color: Optional[str] = None,
    subtasks: Optional[List[str]] = None,
    now: Optional[datetime] = None,
) -> Task:
    """Create a task with a fresh timer baseline.

    Args:
        user_id: User ID who owns this task
        date: Local calendar day (YYYY-MM-DD)
        title: Task title (stripped, must be non-empty)
        schedule: Fixed, flexible or timeless schedule
        icon: Optional display icon
        color: Optional display color
        subtasks: Initial subtask texts (blank entries are dropped)
        now: Creation timestamp (defaults to current UTC time)

    Returns:
        Task object ready to persist

    Raises:
        InvalidFormat: If title or date are invalid
    """
    parse_day(date)
    timestamp = now or utc_now()
    return Task(
        id=str(uuid.uuid4()),
        user_id=user_id,
        date=date,
        title=normalize_title(title),
        schedule=schedule,
        timer=build_timer_state(schedule),
        manual_status=None,
        subtasks=[
            Subtask(id=str(uuid.uuid4()), text=text.strip(), completed=False)
            for text in (subtasks or [])
            if text and text.strip()
        ],
        icon=icon,
        color=color,
        created_at=timestamp,
        updated_at=timestamp,
    )


def create_task_from_descriptor(user_id: str, date: str, descriptor: TaskDescriptor) -> Task:
    """Create a task from a validated descriptor."""
    return create_task_base(
        user_id=user_id,
        date=date,
        title=descriptor.title,
        schedule=descriptor.schedule,
        icon=descriptor.icon,
        color=descriptor.color,
        subtasks=descriptor.subtasks,
    )
