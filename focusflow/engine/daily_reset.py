"""Daily reset sweep.

At local 00:01 every day, the tasks of the day that just opened get their
manual status cleared and their countdown restored to the schedule baseline.
Earlier days keep their history. The loop runs inside the API process as a
background asyncio task; `POST /maintenance/daily-reset` triggers the same
sweep on demand.
"""

import asyncio
import logging
import os
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional

from dotenv import load_dotenv
from sqlalchemy.orm import Session

from focusflow.engine.time_utils import today_local_iso
from focusflow.models.constants import DAILY_RESET_HOUR, DAILY_RESET_MINUTE

load_dotenv()

logger = logging.getLogger(__name__)

DAILY_RESET_ENABLED = os.getenv("DAILY_RESET_ENABLED", "True").lower() == "true"


def next_reset_at(now: datetime) -> datetime:
    """The first reset instant strictly after `now` (local wall clock)."""
    candidate = now.replace(hour=DAILY_RESET_HOUR, minute=DAILY_RESET_MINUTE, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


def seconds_until_next_reset(now: datetime) -> float:
    return (next_reset_at(now) - now).total_seconds()


def run_daily_reset(
    session_factory: Callable[[], Session],
    user_id: Optional[str] = None,
    date: Optional[str] = None,
) -> int:
    """Run one reset sweep in its own session.

    Args:
        session_factory: Session maker bound to the application database
        user_id: Limit the sweep to one user (all users when None)
        date: Day to reset, defaults to the local today

    Returns:
        Number of tasks reset
    """
    from focusflow.database.repository import TaskRepository

    db = session_factory()
    try:
        return TaskRepository(db).reset_daily(date or today_local_iso(), user_id=user_id)
    finally:
        db.close()


async def daily_reset_loop(
    reset: Callable[[], int],
    now: Callable[[], datetime] = datetime.now,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> None:
    """Sleep until the next 00:01, run `reset`, repeat until cancelled.

    A failed sweep is logged and retried at the next boundary.
    """
    while True:
        delay = seconds_until_next_reset(now())
        logger.debug(f"Next daily reset in {delay:.0f}s")
        await sleep(delay)
        try:
            count = await asyncio.to_thread(reset)
            logger.info(f"Daily reset completed ({count} tasks)")
        except Exception as e:
            logger.error(f"Daily reset failed: {type(e).__name__}: {str(e)}")
