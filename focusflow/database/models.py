"""SQLAlchemy database models for FocusFlow."""

from typing import Optional, Type, TypeVar, Union
import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, JSON, String
from sqlalchemy.orm import relationship

from focusflow.database.database import Base
from focusflow.engine.time_utils import utc_now
from focusflow.models.task import (
    FixedSchedule,
    FlexibleSchedule,
    ManualStatus,
    ScheduleKind,
    Subtask,
    TimelessSchedule,
    TimerState,
)

T = TypeVar('T')


def enum_to_value(enum_obj: Union[str, T, None]) -> Optional[str]:
    """Convert enum to string value (handles both enum and string).

    Args:
        enum_obj: Enum instance, string value or None

    Returns:
        String value of the enum, the string itself, or None
    """
    if enum_obj is None:
        return None
    if hasattr(enum_obj, 'value'):
        return enum_obj.value
    return str(enum_obj)


def value_to_enum(value: Optional[str], enum_class: Type[T], default: Optional[T]) -> Optional[T]:
    """Convert string to enum with fallback to default.

    Args:
        value: String value to convert
        enum_class: Enum class to convert to
        default: Default enum value if conversion fails

    Returns:
        Enum instance, or default if conversion fails
    """
    if not value:
        return default
    try:
        return enum_class(value.lower())
    except (ValueError, AttributeError):
        return default


class UserDB(Base):
    """Database model for User."""

    __tablename__ = "users"

    id = Column(String, primary_key=True)
    email = Column(String, nullable=False, unique=True, index=True)
    name = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    def to_pydantic(self):
        from focusflow.models.user import User

        return User(
            id=self.id,
            email=self.email,
            name=self.name,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    @classmethod
    def from_pydantic(cls, user):
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class ScheduleItemDB(Base):
    """Database model for a Task (one schedule entry for a user-day).

    The tagged-union schedule is flattened into nullable columns keyed by `kind`.
    """

    __tablename__ = "schedule_items"
    __table_args__ = (
        Index("ix_schedule_items_user_date", "user_id", "date"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(String, nullable=False)

    title = Column(String, nullable=False)
    icon = Column(String, nullable=True)
    color = Column(String, nullable=True)
    manual_status = Column(String, nullable=True)

    # Schedule (tagged union)
    kind = Column(String, nullable=False, default=ScheduleKind.TIMELESS.value)
    start = Column("start_time", String, nullable=True)
    end = Column("end_time", String, nullable=True)
    duration_min = Column(Integer, nullable=True)
    preferred_time_slots = Column(JSON, nullable=True)
    earliest_start = Column(String, nullable=True)
    latest_end = Column(String, nullable=True)
    suggested_start = Column(String, nullable=True)
    suggested_end = Column(String, nullable=True)

    # Timer (null for timeless tasks)
    remaining_duration = Column(Integer, nullable=True)
    is_running = Column(Boolean, nullable=False, default=False, index=True)
    is_paused = Column(Boolean, nullable=False, default=False)
    started_at = Column(DateTime, nullable=True)
    paused_at = Column(DateTime, nullable=True)
    total_elapsed = Column(Integer, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, index=True)

    subtasks = relationship(
        "SubtaskDB",
        order_by="SubtaskDB.position",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )

    def schedule_to_pydantic(self):
        if self.kind == ScheduleKind.FIXED.value:
            return FixedSchedule(start=self.start, end=self.end)
        if self.kind == ScheduleKind.FLEXIBLE.value:
            kwargs = {
                "duration_min": self.duration_min,
                "preferred_time_slots": self.preferred_time_slots or ["anytime"],
                "suggested_start": self.suggested_start,
                "suggested_end": self.suggested_end,
            }
            if self.earliest_start:
                kwargs["earliest_start"] = self.earliest_start
            if self.latest_end:
                kwargs["latest_end"] = self.latest_end
            return FlexibleSchedule(**kwargs)
        return TimelessSchedule()

    def timer_to_pydantic(self) -> Optional[TimerState]:
        if self.kind == ScheduleKind.TIMELESS.value:
            return None
        return TimerState(
            remaining_duration=max(0, self.remaining_duration or 0),
            is_running=bool(self.is_running),
            is_paused=bool(self.is_running and self.is_paused),
            started_at=self.started_at,
            paused_at=self.paused_at,
            total_elapsed=self.total_elapsed or 0,
        )

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from focusflow.models.task import Task

        return Task(
            id=self.id,
            user_id=self.user_id,
            date=self.date,
            title=self.title,
            schedule=self.schedule_to_pydantic(),
            timer=self.timer_to_pydantic(),
            manual_status=value_to_enum(self.manual_status, ManualStatus, None),
            subtasks=[s.to_pydantic() for s in self.subtasks],
            icon=self.icon,
            color=self.color,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    def apply_schedule(self, schedule) -> None:
        """Write a schedule variant into the flat columns, clearing the others."""
        self.kind = schedule.kind
        self.start = getattr(schedule, "start", None)
        self.end = getattr(schedule, "end", None)
        self.duration_min = getattr(schedule, "duration_min", None)
        slots = getattr(schedule, "preferred_time_slots", None)
        self.preferred_time_slots = [enum_to_value(s) for s in slots] if slots is not None else None
        self.earliest_start = getattr(schedule, "earliest_start", None)
        self.latest_end = getattr(schedule, "latest_end", None)
        self.suggested_start = getattr(schedule, "suggested_start", None)
        self.suggested_end = getattr(schedule, "suggested_end", None)

    def apply_timer(self, timer: Optional[TimerState]) -> None:
        if timer is None:
            self.remaining_duration = None
            self.is_running = False
            self.is_paused = False
            self.started_at = None
            self.paused_at = None
            self.total_elapsed = None
            return
        self.remaining_duration = timer.remaining_duration
        self.is_running = timer.is_running
        self.is_paused = timer.is_paused
        self.started_at = timer.started_at
        self.paused_at = timer.paused_at
        self.total_elapsed = timer.total_elapsed

    @classmethod
    def from_pydantic(cls, task):
        """Create database model from Pydantic model."""
        item = cls(
            id=task.id,
            user_id=task.user_id,
            date=task.date,
            title=task.title,
            icon=task.icon,
            color=task.color,
            manual_status=enum_to_value(task.manual_status),
            created_at=task.created_at,
            updated_at=task.updated_at,
        )
        item.apply_schedule(task.schedule)
        item.apply_timer(task.timer)
        item.subtasks = [
            SubtaskDB.from_pydantic(subtask, task.id, position)
            for position, subtask in enumerate(task.subtasks)
        ]
        return item


class SubtaskDB(Base):
    """Database model for Subtask."""

    __tablename__ = "subtasks"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    schedule_item_id = Column(
        String, ForeignKey("schedule_items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position = Column(Integer, nullable=False, default=0)
    text = Column(String, nullable=False)
    completed = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    def to_pydantic(self) -> Subtask:
        return Subtask(id=self.id, text=self.text, completed=bool(self.completed))

    @classmethod
    def from_pydantic(cls, subtask: Subtask, schedule_item_id: str, position: int):
        return cls(
            id=subtask.id,
            schedule_item_id=schedule_item_id,
            position=position,
            text=subtask.text,
            completed=subtask.completed,
        )
