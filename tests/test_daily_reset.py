"""Tests for the daily reset sweep and its background loop."""

import asyncio
import logging
from datetime import datetime

import pytest
from sqlalchemy.orm import sessionmaker

from focusflow.engine.completion import completion_stats
from focusflow.engine.daily_reset import (
    daily_reset_loop,
    next_reset_at,
    run_daily_reset,
    seconds_until_next_reset,
)
from focusflow.models.task import ManualStatus
from tests.conftest import TEST_DAY


class StopAfter:
    """Fake sleep that records delays and cancels the loop on the n-th call."""

    def __init__(self, calls: int = 2):
        self.calls = calls
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)
        if len(self.delays) >= self.calls:
            raise asyncio.CancelledError()


class TestNextResetAt:
    """Test the 00:01 boundary computation."""

    def test_late_evening_rolls_to_next_day(self):
        assert next_reset_at(datetime(2025, 1, 15, 23, 0)) == datetime(2025, 1, 16, 0, 1)
        assert seconds_until_next_reset(datetime(2025, 1, 15, 23, 0)) == 3660

    def test_just_after_midnight_is_same_day(self):
        assert next_reset_at(datetime(2025, 1, 15, 0, 0, 30)) == datetime(2025, 1, 15, 0, 1)

    def test_exact_boundary_moves_to_next_day(self):
        assert next_reset_at(datetime(2025, 1, 15, 0, 1)) == datetime(2025, 1, 16, 0, 1)

    def test_month_end(self):
        assert next_reset_at(datetime(2025, 1, 31, 12, 0)) == datetime(2025, 2, 1, 0, 1)


class TestDailyResetLoop:
    """Test the background loop."""

    @pytest.mark.asyncio
    async def test_runs_reset_after_sleeping_until_boundary(self):
        calls = []
        sleep = StopAfter()

        with pytest.raises(asyncio.CancelledError):
            await daily_reset_loop(
                lambda: calls.append(1) or 3,
                now=lambda: datetime(2025, 1, 15, 23, 0),
                sleep=sleep,
            )

        assert sleep.delays == [3660, 3660]
        assert calls == [1]

    @pytest.mark.asyncio
    async def test_failed_reset_keeps_looping(self, caplog):
        def broken():
            raise RuntimeError("database is down")

        sleep = StopAfter(calls=3)
        with caplog.at_level(logging.ERROR, logger="focusflow.engine.daily_reset"):
            with pytest.raises(asyncio.CancelledError):
                await daily_reset_loop(broken, now=lambda: datetime(2025, 1, 15, 23, 0), sleep=sleep)

        assert len(sleep.delays) == 3
        assert "Daily reset failed" in caplog.text


class TestRunDailyReset:
    """Test a sweep in its own session."""

    def test_resets_tasks(self, db_session, task_repository, timer_repository, make_task, test_user_id, clock):
        task = make_task()
        timer_repository.update_timer_duration(test_user_id, task.id, 100)
        task_repository.set_manual_status(test_user_id, task.id, ManualStatus.DONE)

        factory = sessionmaker(bind=db_session.get_bind())
        assert run_daily_reset(factory, date=TEST_DAY) == 1

        db_session.expire_all()
        reset = task_repository.get(test_user_id, task.id)
        assert reset.manual_status is None
        assert reset.timer.remaining_duration == 3600

    def test_scoped_to_user(self, db_session, make_task):
        make_task()
        factory = sessionmaker(bind=db_session.get_bind())
        assert run_daily_reset(factory, user_id="someone-else", date=TEST_DAY) == 0

    def test_earlier_days_keep_history(
        self, db_session, task_repository, timer_repository, make_task, test_user_id, clock
    ):
        yesterday = make_task("Yesterday", date="2025-01-14")
        today = make_task("Today")
        for task in (yesterday, today):
            timer_repository.start_timer(test_user_id, task.date, task.id)
            clock.advance(60)
            timer_repository.stop_timer(test_user_id, task.id)
            task_repository.set_manual_status(test_user_id, task.id, ManualStatus.DONE)

        factory = sessionmaker(bind=db_session.get_bind())
        assert run_daily_reset(factory, date=TEST_DAY) == 1

        db_session.expire_all()
        kept = task_repository.get(test_user_id, yesterday.id)
        assert kept.manual_status == ManualStatus.DONE
        assert kept.timer.total_elapsed == 60
        assert kept.timer.remaining_duration == 3540
        assert completion_stats(task_repository.list_for_day(test_user_id, "2025-01-14")).completed == 1

        reset = task_repository.get(test_user_id, today.id)
        assert reset.manual_status is None
        assert reset.timer.total_elapsed == 0
