"""Authoritative timer store.

Holds, per user and day, at most one running task and performs all
elapsed-time accounting at the instant of each state transition. Elapsed
time is always `now - started_at` measured with the store's clock, never a
client-supplied duration, so a client that disappears mid-session is settled
correctly by whichever transition arrives next.

Every operation runs in a single transaction. Rows are locked with
SELECT ... FOR UPDATE on backends that support it, which serializes
concurrent mutations for the same user-day.
"""

import logging
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from focusflow.database.models import ScheduleItemDB
from focusflow.engine.time_utils import seconds_to_minutes, utc_now
from focusflow.errors import InvalidFormat
from focusflow.models.task import ScheduleKind, Task

logger = logging.getLogger(__name__)


class DurationUpdate(BaseModel):
    """One entry of a batched duration write."""
    id: str
    remaining_duration: int = Field(..., ge=0)


class BatchUpdateResult(BaseModel):
    updated_count: int
    not_found_ids: List[str] = Field(default_factory=list)


def elapsed_seconds(started_at: Optional[datetime], now: datetime) -> int:
    """Whole seconds between `started_at` and `now`, never negative."""
    if started_at is None:
        return 0
    return max(0, int((now - started_at).total_seconds()))


def fold_elapsed(item: ScheduleItemDB, now: datetime) -> int:
    """Commit the current running segment into total_elapsed/remaining_duration.

    Only a running, unpaused segment contributes. Returns the seconds folded.
    """
    if not item.is_running or item.is_paused:
        return 0
    delta = elapsed_seconds(item.started_at, now)
    item.total_elapsed = (item.total_elapsed or 0) + delta
    if item.remaining_duration is not None:
        item.remaining_duration = max(0, item.remaining_duration - delta)
    return delta


def rebase_segment(item: ScheduleItemDB, now: datetime) -> None:
    """Re-anchor a running segment at `now` before a countdown overwrite.

    The elapsed seconds go into total_elapsed only; the written countdown
    already reflects them, so the next fold must not subtract them again.
    """
    if not item.is_running or item.is_paused:
        return
    item.total_elapsed = (item.total_elapsed or 0) + elapsed_seconds(item.started_at, now)
    item.started_at = now


def cap_to_live(item: ScheduleItemDB, value: int, now: datetime) -> int:
    """Limit a countdown write to the live value of a running segment.

    A client seeded from a stale record cannot push a running countdown back
    above what the store has already measured.
    """
    if not item.is_running or item.is_paused or item.remaining_duration is None:
        return value
    return min(value, max(0, item.remaining_duration - elapsed_seconds(item.started_at, now)))


def clear_running(item: ScheduleItemDB) -> None:
    item.is_running = False
    item.is_paused = False
    item.started_at = None
    item.paused_at = None


class TimerRepository:
    """Timer control operations over schedule items."""

    def __init__(self, db: Session, clock: Callable[[], datetime] = utc_now):
        self.db = db
        self.clock = clock

    def _locked_item(self, user_id: str, task_id: str) -> Optional[ScheduleItemDB]:
        return (
            self.db.query(ScheduleItemDB)
            .filter(ScheduleItemDB.id == task_id, ScheduleItemDB.user_id == user_id)
            .with_for_update()
            .first()
        )

    def _commit(self, action: str, task_id: str) -> None:
        try:
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to {action} timer for task {task_id}: {type(e).__name__}: {str(e)}")
            raise

    def _finish(self, action: str, item: ScheduleItemDB) -> Task:
        self._commit(action, item.id)
        self.db.refresh(item)
        return item.to_pydantic()

    def start_timer(self, user_id: str, date: str, task_id: str) -> Optional[Task]:
        """Start the timer of `task_id`, settling every other running timer of the user-day first.

        Restarting an already-running task folds its own segment before
        resetting `started_at`, so no elapsed time is lost.

        Returns:
            The started task, or None if it does not exist

        Raises:
            InvalidFormat: If the task is timeless or belongs to another day
        """
        now = self.clock()
        target = self._locked_item(user_id, task_id)
        if target is None:
            self.db.rollback()
            logger.info(f"Start ignored: task {task_id} not found")
            return None
        if target.kind == ScheduleKind.TIMELESS.value:
            self.db.rollback()
            raise InvalidFormat("Timeless tasks cannot be timed")
        if target.date != date:
            self.db.rollback()
            raise InvalidFormat(f"Task {task_id} belongs to {target.date}, not {date}")
        running = (
            self.db.query(ScheduleItemDB)
            .filter(
                ScheduleItemDB.user_id == user_id,
                ScheduleItemDB.date == date,
                ScheduleItemDB.is_running.is_(True),
            )
            .with_for_update()
            .all()
        )

        for item in running:
            if item.id == target.id:
                continue
            delta = fold_elapsed(item, now)
            clear_running(item)
            item.updated_at = now
            logger.info(f"Stopped task {item.id} (+{delta}s) to start task {task_id}")

        fold_elapsed(target, now)
        target.is_running = True
        target.is_paused = False
        target.started_at = now
        target.paused_at = None
        if target.total_elapsed is None:
            target.total_elapsed = 0
        target.updated_at = now
        logger.info(f"Started timer for task {task_id}")
        return self._finish("start", target)

    def stop_timer(self, user_id: str, task_id: str) -> Optional[Task]:
        """Fold the running segment (if any) and clear the running state. Safe on any task."""
        now = self.clock()
        item = self._locked_item(user_id, task_id)
        if item is None:
            self.db.rollback()
            logger.info(f"Stop ignored: task {task_id} not found")
            return None
        delta = fold_elapsed(item, now)
        clear_running(item)
        item.updated_at = now
        logger.info(f"Stopped timer for task {task_id} (+{delta}s, {seconds_to_minutes(item.total_elapsed or 0)} min total)")
        return self._finish("stop", item)

    def pause_timer(self, user_id: str, task_id: str) -> Optional[Task]:
        """Fold the running segment and freeze accounting. No-op unless running."""
        now = self.clock()
        item = self._locked_item(user_id, task_id)
        if item is None:
            self.db.rollback()
            return None
        if not item.is_running:
            self.db.rollback()
            return item.to_pydantic()
        if item.is_paused:
            self.db.rollback()
            return item.to_pydantic()
        delta = fold_elapsed(item, now)
        item.is_paused = True
        item.paused_at = now
        item.updated_at = now
        logger.info(f"Paused timer for task {task_id} (+{delta}s)")
        return self._finish("pause", item)

    def resume_timer(self, user_id: str, task_id: str) -> Optional[Task]:
        """Restart the elapsed-time baseline of a paused timer. No-op unless paused."""
        now = self.clock()
        item = self._locked_item(user_id, task_id)
        if item is None:
            self.db.rollback()
            return None
        if not (item.is_running and item.is_paused):
            self.db.rollback()
            return item.to_pydantic()
        item.is_paused = False
        item.paused_at = None
        item.started_at = now
        item.updated_at = now
        logger.info(f"Resumed timer for task {task_id}")
        return self._finish("resume", item)

    def update_timer_duration(self, user_id: str, task_id: str, remaining_duration: int) -> Optional[Task]:
        """Overwrite the stored countdown value.

        The value is not reduced by elapsed time; a running segment is
        re-anchored instead (see `rebase_segment`) and the value is capped at
        its live countdown.
        """
        if remaining_duration < 0:
            raise InvalidFormat("remaining_duration must be >= 0")
        now = self.clock()
        item = self._locked_item(user_id, task_id)
        if item is None:
            self.db.rollback()
            return None
        if item.kind == ScheduleKind.TIMELESS.value:
            self.db.rollback()
            return item.to_pydantic()
        remaining_duration = cap_to_live(item, remaining_duration, now)
        rebase_segment(item, now)
        item.remaining_duration = remaining_duration
        item.updated_at = now
        return self._finish("update duration of", item)

    def batch_update_durations(self, user_id: str, updates: Iterable[DurationUpdate]) -> BatchUpdateResult:
        """Apply many countdown overwrites in one transaction.

        Later entries for the same id win. Writing the same value twice is a
        no-op on the stored data, so retried flushes are safe.
        """
        latest: Dict[str, int] = {}
        for update in updates:
            if update.remaining_duration < 0:
                raise InvalidFormat("remaining_duration must be >= 0")
            latest[update.id] = update.remaining_duration
        if not latest:
            return BatchUpdateResult(updated_count=0)

        now = self.clock()
        rows = (
            self.db.query(ScheduleItemDB)
            .filter(ScheduleItemDB.user_id == user_id, ScheduleItemDB.id.in_(list(latest)))
            .with_for_update()
            .all()
        )
        found = {row.id: row for row in rows}
        updated = 0
        for task_id, remaining in latest.items():
            row = found.get(task_id)
            if row is None or row.kind == ScheduleKind.TIMELESS.value:
                continue
            remaining = cap_to_live(row, remaining, now)
            if row.remaining_duration != remaining:
                rebase_segment(row, now)
                row.remaining_duration = remaining
                row.updated_at = now
            updated += 1
        try:
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed batch duration update for user {user_id}: {type(e).__name__}: {str(e)}")
            raise
        not_found = [task_id for task_id in latest if task_id not in found]
        logger.debug(f"Batch duration update: {updated} applied, {len(not_found)} not found")
        return BatchUpdateResult(updated_count=updated, not_found_ids=not_found)

    def get_running_timer(self, user_id: str, date: str) -> Optional[Task]:
        """The task currently running for a user-day, or None."""
        item = (
            self.db.query(ScheduleItemDB)
            .filter(
                ScheduleItemDB.user_id == user_id,
                ScheduleItemDB.date == date,
                ScheduleItemDB.is_running.is_(True),
            )
            .order_by(ScheduleItemDB.started_at.desc())
            .first()
        )
        return item.to_pydantic() if item else None
