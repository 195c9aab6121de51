"""Repository layer for schedule item (task) database operations."""

import logging
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from focusflow.database.models import ScheduleItemDB, enum_to_value
from focusflow.engine.time_utils import utc_now
from focusflow.errors import InvalidFormat
from focusflow.models.task import ManualStatus, ScheduleKind, Task
from focusflow.models.task_factory import build_timer_state, normalize_title

logger = logging.getLogger(__name__)


class TaskRepository:
    """Repository for Task database operations."""

    def __init__(self, db: Session, clock: Callable[[], datetime] = utc_now):
        self.db = db
        self.clock = clock

    def _get_row(self, user_id: str, task_id: str) -> Optional[ScheduleItemDB]:
        return self.db.query(ScheduleItemDB).filter(
            ScheduleItemDB.id == task_id,
            ScheduleItemDB.user_id == user_id,
        ).first()

    def _commit(self, action: str, task_id: str) -> None:
        try:
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to {action} task {task_id}: {type(e).__name__}: {str(e)}")
            raise

    def create(self, task: Task) -> Task:
        """Create a new task."""
        try:
            task_db = ScheduleItemDB.from_pydantic(task)
            self.db.add(task_db)
            self.db.commit()
            self.db.refresh(task_db)
            logger.debug(f"Created task {task.id}: {task.title[:50]}")
            return task_db.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create task {task.id}: {type(e).__name__}: {str(e)}")
            raise

    def get(self, user_id: str, task_id: str) -> Optional[Task]:
        """Get task by ID for a specific user."""
        task_db = self._get_row(user_id, task_id)
        return task_db.to_pydantic() if task_db else None

    def list_for_day(self, user_id: str, date: str) -> List[Task]:
        """Get all tasks for a user-day in creation order."""
        tasks_db = self.db.query(ScheduleItemDB).filter(
            ScheduleItemDB.user_id == user_id,
            ScheduleItemDB.date == date,
        ).order_by(ScheduleItemDB.created_at, ScheduleItemDB.id).all()
        return [task_db.to_pydantic() for task_db in tasks_db]

    def list_changed_since(self, user_id: str, date: str, since: Optional[datetime]) -> List[Task]:
        """Delta query: tasks of a user-day updated strictly after `since`."""
        query = self.db.query(ScheduleItemDB).filter(
            ScheduleItemDB.user_id == user_id,
            ScheduleItemDB.date == date,
        )
        if since is not None:
            query = query.filter(ScheduleItemDB.updated_at > since)
        return [task_db.to_pydantic() for task_db in query.order_by(ScheduleItemDB.updated_at).all()]

    def update_details(
        self,
        user_id: str,
        task_id: str,
        title: Optional[str] = None,
        schedule=None,
        icon: Optional[str] = None,
        color: Optional[str] = None,
    ) -> Optional[Task]:
        """Edit title, schedule or display hints of a task.

        Changing the schedule of a stopped task resets its countdown to the new
        baseline while keeping the accumulated elapsed time. A running task must
        be stopped before its schedule can change.

        Returns:
            Updated Task, or None if the task does not exist

        Raises:
            InvalidFormat: On an empty title or a schedule change while running
        """
        task_db = self._get_row(user_id, task_id)
        if not task_db:
            return None

        if schedule is not None and task_db.is_running:
            raise InvalidFormat("Stop the running timer before changing the task schedule")

        if title is not None:
            task_db.title = normalize_title(title)
        if icon is not None:
            task_db.icon = icon
        if color is not None:
            task_db.color = color

        if schedule is not None:
            previous_elapsed = task_db.total_elapsed or 0
            task_db.apply_schedule(schedule)
            timer = build_timer_state(schedule)
            if timer is not None:
                timer.total_elapsed = previous_elapsed
            task_db.apply_timer(timer)

        task_db.updated_at = self.clock()
        self._commit("update", task_id)
        self.db.refresh(task_db)
        logger.debug(f"Updated task {task_id}")
        return task_db.to_pydantic()

    def set_suggested_window(self, user_id: str, task_id: str, start: str, end: str) -> Optional[Task]:
        """Store an advisory window on a flexible task. Timer state is untouched."""
        task_db = self._get_row(user_id, task_id)
        if not task_db:
            return None
        if task_db.kind != ScheduleKind.FLEXIBLE.value:
            raise InvalidFormat("Only flexible tasks have a suggested window")
        task_db.suggested_start = start
        task_db.suggested_end = end
        task_db.updated_at = self.clock()
        self._commit("set suggested window on", task_id)
        self.db.refresh(task_db)
        return task_db.to_pydantic()

    def set_manual_status(self, user_id: str, task_id: str, status: Optional[ManualStatus]) -> Optional[Task]:
        """Set (or clear with None) the manual done/missed override."""
        task_db = self._get_row(user_id, task_id)
        if not task_db:
            return None
        task_db.manual_status = enum_to_value(status)
        task_db.updated_at = self.clock()
        self._commit("set manual status on", task_id)
        self.db.refresh(task_db)
        return task_db.to_pydantic()

    def delete(self, user_id: str, task_id: str) -> bool:
        """Permanently delete a task (subtasks cascade)."""
        task_db = self._get_row(user_id, task_id)
        if not task_db:
            return False
        self.db.delete(task_db)
        self._commit("delete", task_id)
        logger.debug(f"Deleted task {task_id}")
        return True

    def replace_day(self, user_id: str, date: str, tasks: List[Task]) -> List[Task]:
        """Replace every task of a user-day with `tasks` in one transaction."""
        try:
            existing = self.db.query(ScheduleItemDB).filter(
                ScheduleItemDB.user_id == user_id,
                ScheduleItemDB.date == date,
            ).all()
            for task_db in existing:
                self.db.delete(task_db)
            self.db.flush()
            for task in tasks:
                self.db.add(ScheduleItemDB.from_pydantic(task))
            self.db.commit()
            logger.debug(f"Replaced {len(existing)} tasks with {len(tasks)} for user {user_id} on {date}")
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to replace tasks for user {user_id} on {date}: {type(e).__name__}: {str(e)}")
            raise
        return self.list_for_day(user_id, date)

    def reset_daily(self, date: str, user_id: Optional[str] = None) -> int:
        """Day-boundary sweep: clear manual status and restart the countdowns of `date`.

        Earlier days are left untouched so their statistics survive.

        Args:
            date: Day being opened (YYYY-MM-DD)
            user_id: Limit the sweep to one user (all users when None)

        Returns:
            Number of tasks reset
        """
        query = self.db.query(ScheduleItemDB).filter(ScheduleItemDB.date == date)
        if user_id is not None:
            query = query.filter(ScheduleItemDB.user_id == user_id)
        now = self.clock()
        rows = query.all()
        try:
            for task_db in rows:
                task_db.manual_status = None
                task_db.apply_timer(build_timer_state(task_db.schedule_to_pydantic()))
                task_db.updated_at = now
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed daily reset: {type(e).__name__}: {str(e)}")
            raise
        logger.info(f"Daily reset cleared {len(rows)} tasks on {date}")
        return len(rows)
