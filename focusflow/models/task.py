"""Task data model for FocusFlow.

A task is one schedule entry for a user on a calendar day. Its scheduling
mode is a tagged union (fixed / flexible / timeless); only fixed and
flexible tasks carry timer state.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from focusflow.engine.time_utils import calculate_duration, minutes_to_seconds, parse_day, time_to_minutes
from focusflow.models.constants import (
    DEFAULT_EARLIEST_START,
    DEFAULT_LATEST_END,
    MAX_FLEXIBLE_DURATION_MIN,
    MAX_TITLE_LENGTH,
    MIN_FLEXIBLE_DURATION_MIN,
)


class ScheduleKind(str, Enum):
    """Scheduling mode of a task."""
    FIXED = "fixed"
    FLEXIBLE = "flexible"
    TIMELESS = "timeless"


class ManualStatus(str, Enum):
    """User override of automatic completion, cleared at the day boundary."""
    DONE = "done"
    MISSED = "missed"


class TimeSlot(str, Enum):
    """Preferred time of day for flexible tasks."""
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    ANYTIME = "anytime"


def _check_time(value: Optional[str]) -> Optional[str]:
    if value is not None:
        time_to_minutes(value)
    return value


class FixedSchedule(BaseModel):
    """Explicit same-day start/end window."""

    kind: Literal["fixed"] = "fixed"
    start: str = Field(..., description="Start time (HH:MM)")
    end: str = Field(..., description="End time (HH:MM), strictly after start")

    @field_validator("start", "end")
    @classmethod
    def _validate_time(cls, v):
        return _check_time(v)

    @model_validator(mode="after")
    def _validate_window(self):
        if time_to_minutes(self.end) <= time_to_minutes(self.start):
            raise ValueError("end must be after start (overnight tasks are not supported)")
        return self


class FlexibleSchedule(BaseModel):
    """Duration-based task placed anywhere inside its bounds."""

    kind: Literal["flexible"] = "flexible"
    duration_min: int = Field(..., ge=MIN_FLEXIBLE_DURATION_MIN, le=MAX_FLEXIBLE_DURATION_MIN)
    preferred_time_slots: List[TimeSlot] = Field(default_factory=lambda: [TimeSlot.ANYTIME])
    earliest_start: str = Field(DEFAULT_EARLIEST_START, description="Earliest allowed start (HH:MM)")
    latest_end: str = Field(DEFAULT_LATEST_END, description="Latest allowed end (HH:MM)")
    # Advisory only; never drives timers or completion.
    suggested_start: Optional[str] = None
    suggested_end: Optional[str] = None

    @field_validator("earliest_start", "latest_end", "suggested_start", "suggested_end")
    @classmethod
    def _validate_time(cls, v):
        return _check_time(v)

    @field_validator("preferred_time_slots")
    @classmethod
    def _dedupe_slots(cls, v):
        seen = set()
        out: List[TimeSlot] = []
        for slot in v:
            if slot not in seen:
                seen.add(slot)
                out.append(slot)
        return out or [TimeSlot.ANYTIME]

    @model_validator(mode="after")
    def _validate_bounds(self):
        if time_to_minutes(self.latest_end) <= time_to_minutes(self.earliest_start):
            raise ValueError("latest_end must be after earliest_start")
        return self


class TimelessSchedule(BaseModel):
    """A todo with no time dimension."""

    kind: Literal["timeless"] = "timeless"


Schedule = Annotated[
    Union[FixedSchedule, FlexibleSchedule, TimelessSchedule],
    Field(discriminator="kind"),
]


class TimerState(BaseModel):
    """Countdown and elapsed-time accounting for a timed task."""

    remaining_duration: int = Field(0, ge=0, description="Seconds left on the countdown")
    is_running: bool = False
    is_paused: bool = False
    started_at: Optional[datetime] = Field(None, description="Start of the current running segment")
    paused_at: Optional[datetime] = None
    total_elapsed: int = Field(0, ge=0, description="Seconds accumulated across all segments")

    @model_validator(mode="after")
    def _paused_implies_running(self):
        if self.is_paused and not self.is_running:
            raise ValueError("a paused timer must be running")
        return self


class Subtask(BaseModel):
    id: str
    text: str
    completed: bool = False


class Task(BaseModel):
    """Canonical Task model."""

    id: str = Field(..., description="Unique task identifier (UUID v4)")
    user_id: str = Field(..., description="User ID who owns this task")
    date: str = Field(..., description="Local calendar day (YYYY-MM-DD)")
    title: str = Field(..., min_length=1, max_length=MAX_TITLE_LENGTH)
    schedule: Schedule
    timer: Optional[TimerState] = Field(None, description="Timer state (absent for timeless tasks)")
    manual_status: Optional[ManualStatus] = None
    subtasks: List[Subtask] = Field(default_factory=list)
    icon: Optional[str] = None
    color: Optional[str] = None
    created_at: datetime = Field(..., description="Task creation timestamp")
    updated_at: datetime = Field(..., description="Task last update timestamp")

    @field_validator("date")
    @classmethod
    def _validate_date(cls, v):
        parse_day(v)
        return v

    @model_validator(mode="after")
    def _timer_matches_kind(self):
        if self.kind == ScheduleKind.TIMELESS.value:
            if self.timer is not None:
                raise ValueError("timeless tasks cannot carry timer state")
        elif self.timer is None:
            raise ValueError("fixed and flexible tasks require timer state")
        return self

    @property
    def kind(self) -> str:
        return self.schedule.kind

    @property
    def is_timed(self) -> bool:
        return self.timer is not None

    @property
    def is_running(self) -> bool:
        return bool(self.timer and self.timer.is_running)

    @property
    def is_paused(self) -> bool:
        return bool(self.timer and self.timer.is_paused)

    class Config:
        """Pydantic configuration."""
        use_enum_values = True


class TaskDescriptor(BaseModel):
    """Input shape for creating a task (manual entry or AI generator)."""

    title: str = Field(..., description="Task title")
    schedule: Schedule = Field(default_factory=TimelessSchedule)
    icon: Optional[str] = None
    color: Optional[str] = None
    subtasks: List[str] = Field(default_factory=list, description="Initial subtask texts")


def baseline_duration(schedule: Union[FixedSchedule, FlexibleSchedule, TimelessSchedule]) -> Optional[int]:
    """Initial countdown in seconds for a schedule, or None for timeless tasks."""
    if isinstance(schedule, FixedSchedule):
        return calculate_duration(schedule.start, schedule.end)
    if isinstance(schedule, FlexibleSchedule):
        return minutes_to_seconds(schedule.duration_min)
    return None
