"""Repository for subtask checklist operations."""

import logging
import uuid
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from focusflow.database.models import ScheduleItemDB, SubtaskDB
from focusflow.engine.time_utils import utc_now
from focusflow.errors import InvalidFormat
from focusflow.models.task import Subtask

logger = logging.getLogger(__name__)


def _clean_text(text: Optional[str]) -> str:
    cleaned = (text or "").strip()
    if not cleaned:
        raise InvalidFormat("Subtask text must not be empty")
    return cleaned


class SubtaskRepository:
    """Repository for Subtask database operations.

    Subtasks are always reached through their parent task so that ownership
    is checked against the task's user.
    """

    def __init__(self, db: Session, clock: Callable[[], datetime] = utc_now):
        self.db = db
        self.clock = clock

    def _parent(self, user_id: str, task_id: str) -> Optional[ScheduleItemDB]:
        return self.db.query(ScheduleItemDB).filter(
            ScheduleItemDB.id == task_id,
            ScheduleItemDB.user_id == user_id,
        ).first()

    def _owned(self, user_id: str, subtask_id: str) -> Optional[SubtaskDB]:
        return (
            self.db.query(SubtaskDB)
            .join(ScheduleItemDB, SubtaskDB.schedule_item_id == ScheduleItemDB.id)
            .filter(SubtaskDB.id == subtask_id, ScheduleItemDB.user_id == user_id)
            .first()
        )

    def _touch_parent(self, schedule_item_id: str) -> None:
        # Subtask edits count as task changes for the delta query.
        self.db.query(ScheduleItemDB).filter(ScheduleItemDB.id == schedule_item_id).update(
            {ScheduleItemDB.updated_at: self.clock()}, synchronize_session=False
        )

    def _commit(self, action: str, subtask_id: str) -> None:
        try:
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to {action} subtask {subtask_id}: {type(e).__name__}: {str(e)}")
            raise

    def list_for_task(self, user_id: str, task_id: str) -> List[Subtask]:
        parent = self._parent(user_id, task_id)
        if not parent:
            return []
        return [s.to_pydantic() for s in parent.subtasks]

    def create(self, user_id: str, task_id: str, text: str) -> Optional[Subtask]:
        """Append a subtask to a task.

        Returns:
            Created Subtask, or None if the parent task does not exist

        Raises:
            InvalidFormat: If text is empty after stripping
        """
        cleaned = _clean_text(text)
        parent = self._parent(user_id, task_id)
        if not parent:
            return None
        next_position = (
            self.db.query(func.coalesce(func.max(SubtaskDB.position), -1))
            .filter(SubtaskDB.schedule_item_id == task_id)
            .scalar()
            + 1
        )
        subtask_db = SubtaskDB(
            id=str(uuid.uuid4()),
            schedule_item_id=task_id,
            position=next_position,
            text=cleaned,
            completed=False,
        )
        self.db.add(subtask_db)
        self._touch_parent(task_id)
        self._commit("create", subtask_db.id)
        self.db.refresh(subtask_db)
        logger.debug(f"Created subtask {subtask_db.id} on task {task_id}")
        return subtask_db.to_pydantic()

    def update(self, user_id: str, subtask_id: str, text: Optional[str] = None,
               completed: Optional[bool] = None) -> Optional[Subtask]:
        subtask_db = self._owned(user_id, subtask_id)
        if not subtask_db:
            return None
        if text is not None:
            subtask_db.text = _clean_text(text)
        if completed is not None:
            subtask_db.completed = completed
        self._touch_parent(subtask_db.schedule_item_id)
        self._commit("update", subtask_id)
        self.db.refresh(subtask_db)
        return subtask_db.to_pydantic()

    def toggle(self, user_id: str, subtask_id: str) -> Optional[Subtask]:
        """Flip the completed flag of a subtask."""
        subtask_db = self._owned(user_id, subtask_id)
        if not subtask_db:
            return None
        subtask_db.completed = not subtask_db.completed
        self._touch_parent(subtask_db.schedule_item_id)
        self._commit("toggle", subtask_id)
        self.db.refresh(subtask_db)
        return subtask_db.to_pydantic()

    def delete(self, user_id: str, subtask_id: str) -> bool:
        subtask_db = self._owned(user_id, subtask_id)
        if not subtask_db:
            return False
        parent_id = subtask_db.schedule_item_id
        self.db.delete(subtask_db)
        self._touch_parent(parent_id)
        self._commit("delete", subtask_id)
        logger.debug(f"Deleted subtask {subtask_id}")
        return True
