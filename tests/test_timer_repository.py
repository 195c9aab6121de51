"""Tests for the authoritative timer store."""

from datetime import datetime

import pytest

from focusflow.database.timer_repository import DurationUpdate, elapsed_seconds
from focusflow.errors import InvalidFormat
from focusflow.models.task import TimelessSchedule
from tests.conftest import TEST_DAY


class TestStartStop:
    """Test start/stop accounting."""

    def test_start_sets_running(self, timer_repository, make_task, test_user_id, clock):
        task = make_task()
        started = timer_repository.start_timer(test_user_id, TEST_DAY, task.id)

        assert started.timer.is_running is True
        assert started.timer.is_paused is False
        assert started.timer.started_at == clock()
        assert started.timer.remaining_duration == 3600

    def test_start_then_stop_accounts_elapsed(self, timer_repository, make_task, test_user_id, clock):
        task = make_task()
        timer_repository.start_timer(test_user_id, TEST_DAY, task.id)
        clock.advance(10)
        stopped = timer_repository.stop_timer(test_user_id, task.id)

        assert stopped.timer.remaining_duration == 3590
        assert stopped.timer.total_elapsed == 10
        assert stopped.timer.is_running is False
        assert stopped.timer.started_at is None

    def test_starting_another_task_stops_the_first(self, timer_repository, make_task, test_user_id, clock):
        first = make_task("A")
        second = make_task("B")
        timer_repository.start_timer(test_user_id, TEST_DAY, first.id)
        clock.advance(5)
        timer_repository.start_timer(test_user_id, TEST_DAY, second.id)

        a = timer_repository.stop_timer(test_user_id, first.id)
        assert a.timer.remaining_duration == 3595
        assert a.timer.total_elapsed == 5
        running = timer_repository.get_running_timer(test_user_id, TEST_DAY)
        assert running.id == second.id

    def test_restarting_same_task_keeps_elapsed(self, timer_repository, make_task, test_user_id, clock):
        task = make_task()
        timer_repository.start_timer(test_user_id, TEST_DAY, task.id)
        clock.advance(20)
        restarted = timer_repository.start_timer(test_user_id, TEST_DAY, task.id)

        assert restarted.timer.is_running is True
        assert restarted.timer.remaining_duration == 3580
        assert restarted.timer.total_elapsed == 20
        assert restarted.timer.started_at == clock()

    def test_stop_of_stopped_task_is_harmless(self, timer_repository, make_task, test_user_id):
        task = make_task()
        stopped = timer_repository.stop_timer(test_user_id, task.id)
        assert stopped.timer.remaining_duration == 3600
        assert stopped.timer.total_elapsed == 0

    def test_unknown_task_returns_none(self, timer_repository, test_user_id):
        assert timer_repository.start_timer(test_user_id, TEST_DAY, "missing") is None
        assert timer_repository.stop_timer(test_user_id, "missing") is None
        assert timer_repository.pause_timer(test_user_id, "missing") is None
        assert timer_repository.resume_timer(test_user_id, "missing") is None

    def test_other_users_task_is_not_found(self, timer_repository, make_task):
        task = make_task()
        assert timer_repository.start_timer("someone-else", TEST_DAY, task.id) is None

    def test_timeless_task_cannot_start(self, timer_repository, make_task, test_user_id):
        task = make_task("Call mom", TimelessSchedule())
        with pytest.raises(InvalidFormat):
            timer_repository.start_timer(test_user_id, TEST_DAY, task.id)

    def test_start_for_another_day_is_rejected(
        self, timer_repository, task_repository, make_task, test_user_id
    ):
        first = make_task("A", date="2025-01-16")
        second = make_task("B", date="2025-01-16")
        timer_repository.start_timer(test_user_id, "2025-01-16", first.id)

        with pytest.raises(InvalidFormat):
            timer_repository.start_timer(test_user_id, TEST_DAY, second.id)

        assert timer_repository.get_running_timer(test_user_id, "2025-01-16").id == first.id
        assert task_repository.get(test_user_id, second.id).timer.is_running is False

    def test_clock_going_backwards_counts_nothing(self, timer_repository, make_task, test_user_id, clock):
        task = make_task()
        timer_repository.start_timer(test_user_id, TEST_DAY, task.id)
        clock.advance(-60)
        stopped = timer_repository.stop_timer(test_user_id, task.id)
        assert stopped.timer.remaining_duration == 3600
        assert stopped.timer.total_elapsed == 0

    def test_countdown_never_negative(self, timer_repository, make_task, test_user_id, clock):
        task = make_task()
        timer_repository.start_timer(test_user_id, TEST_DAY, task.id)
        clock.advance(4000)
        stopped = timer_repository.stop_timer(test_user_id, task.id)
        assert stopped.timer.remaining_duration == 0
        assert stopped.timer.total_elapsed == 4000

    def test_get_running_timer(self, timer_repository, make_task, test_user_id):
        task = make_task()
        assert timer_repository.get_running_timer(test_user_id, TEST_DAY) is None
        timer_repository.start_timer(test_user_id, TEST_DAY, task.id)
        assert timer_repository.get_running_timer(test_user_id, TEST_DAY).id == task.id
        assert timer_repository.get_running_timer(test_user_id, "2025-01-16") is None


class TestPauseResume:
    """Test pause/resume accounting."""

    def test_pause_freezes_accounting(self, timer_repository, make_task, test_user_id, clock):
        task = make_task()
        timer_repository.start_timer(test_user_id, TEST_DAY, task.id)
        clock.advance(10)
        paused = timer_repository.pause_timer(test_user_id, task.id)

        assert paused.timer.is_running is True
        assert paused.timer.is_paused is True
        assert paused.timer.remaining_duration == 3590
        assert paused.timer.total_elapsed == 10

        clock.advance(100)
        timer_repository.resume_timer(test_user_id, task.id)
        clock.advance(5)
        stopped = timer_repository.stop_timer(test_user_id, task.id)

        assert stopped.timer.remaining_duration == 3585
        assert stopped.timer.total_elapsed == 15

    def test_stop_while_paused_adds_nothing(self, timer_repository, make_task, test_user_id, clock):
        task = make_task()
        timer_repository.start_timer(test_user_id, TEST_DAY, task.id)
        clock.advance(10)
        timer_repository.pause_timer(test_user_id, task.id)
        clock.advance(300)
        stopped = timer_repository.stop_timer(test_user_id, task.id)

        assert stopped.timer.total_elapsed == 10
        assert stopped.timer.is_paused is False

    def test_pause_of_stopped_task_is_noop(self, timer_repository, make_task, test_user_id):
        task = make_task()
        result = timer_repository.pause_timer(test_user_id, task.id)
        assert result.timer.is_running is False
        assert result.timer.is_paused is False

    def test_double_pause_is_noop(self, timer_repository, make_task, test_user_id, clock):
        task = make_task()
        timer_repository.start_timer(test_user_id, TEST_DAY, task.id)
        clock.advance(10)
        timer_repository.pause_timer(test_user_id, task.id)
        clock.advance(10)
        again = timer_repository.pause_timer(test_user_id, task.id)
        assert again.timer.total_elapsed == 10

    def test_resume_of_unpaused_task_is_noop(self, timer_repository, make_task, test_user_id, clock):
        task = make_task()
        started = timer_repository.start_timer(test_user_id, TEST_DAY, task.id)
        clock.advance(10)
        resumed = timer_repository.resume_timer(test_user_id, task.id)
        assert resumed.timer.started_at == started.timer.started_at


class TestDurationWrites:
    """Test single and batched countdown overwrites."""

    def test_update_timer_duration(self, timer_repository, make_task, test_user_id):
        task = make_task()
        updated = timer_repository.update_timer_duration(test_user_id, task.id, 1200)
        assert updated.timer.remaining_duration == 1200

    def test_negative_duration_rejected(self, timer_repository, make_task, test_user_id):
        task = make_task()
        with pytest.raises(InvalidFormat):
            timer_repository.update_timer_duration(test_user_id, task.id, -1)

    def test_update_on_timeless_task_is_noop(self, timer_repository, make_task, test_user_id):
        task = make_task("Call mom", TimelessSchedule())
        assert timer_repository.update_timer_duration(test_user_id, task.id, 100).timer is None

    def test_batch_reports_unknown_ids(self, timer_repository, make_task, test_user_id):
        task = make_task()
        timeless = make_task("Call mom", TimelessSchedule())
        result = timer_repository.batch_update_durations(test_user_id, [
            DurationUpdate(id=task.id, remaining_duration=3000),
            DurationUpdate(id=timeless.id, remaining_duration=10),
            DurationUpdate(id="gone", remaining_duration=5),
        ])

        assert result.updated_count == 1
        assert result.not_found_ids == ["gone"]

    def test_batch_last_entry_wins(self, timer_repository, task_repository, make_task, test_user_id):
        task = make_task()
        timer_repository.batch_update_durations(test_user_id, [
            DurationUpdate(id=task.id, remaining_duration=3000),
            DurationUpdate(id=task.id, remaining_duration=2900),
        ])
        assert task_repository.get(test_user_id, task.id).timer.remaining_duration == 2900

    def test_batch_retry_is_idempotent(self, timer_repository, task_repository, make_task, test_user_id, clock):
        task = make_task()
        updates = [DurationUpdate(id=task.id, remaining_duration=3000)]
        clock.advance(1)
        timer_repository.batch_update_durations(test_user_id, updates)
        first = task_repository.get(test_user_id, task.id)

        clock.advance(30)
        result = timer_repository.batch_update_durations(test_user_id, updates)
        second = task_repository.get(test_user_id, task.id)

        assert result.updated_count == 1
        assert second.timer == first.timer
        assert second.updated_at == first.updated_at

    def test_empty_batch(self, timer_repository, test_user_id):
        result = timer_repository.batch_update_durations(test_user_id, [])
        assert result.updated_count == 0
        assert result.not_found_ids == []

    def test_batch_on_running_task_does_not_double_count(
        self, timer_repository, make_task, test_user_id, clock
    ):
        task = make_task()
        timer_repository.start_timer(test_user_id, TEST_DAY, task.id)
        clock.advance(30)
        timer_repository.batch_update_durations(
            test_user_id, [DurationUpdate(id=task.id, remaining_duration=3570)]
        )
        clock.advance(10)
        stopped = timer_repository.stop_timer(test_user_id, task.id)

        assert stopped.timer.remaining_duration == 3560
        assert stopped.timer.total_elapsed == 40

    def test_write_above_live_countdown_is_capped(self, timer_repository, make_task, test_user_id, clock):
        task = make_task()
        timer_repository.start_timer(test_user_id, TEST_DAY, task.id)
        clock.advance(100)
        timer_repository.batch_update_durations(
            test_user_id, [DurationUpdate(id=task.id, remaining_duration=3600)]
        )
        stopped = timer_repository.stop_timer(test_user_id, task.id)

        assert stopped.timer.remaining_duration == 3500
        assert stopped.timer.total_elapsed == 100

    def test_single_write_on_running_task_is_capped(self, timer_repository, make_task, test_user_id, clock):
        task = make_task()
        timer_repository.start_timer(test_user_id, TEST_DAY, task.id)
        clock.advance(40)
        updated = timer_repository.update_timer_duration(test_user_id, task.id, 3590)

        assert updated.timer.remaining_duration == 3560
        assert updated.timer.total_elapsed == 40


class TestElapsedSeconds:
    """Test the elapsed-time helper."""

    def test_whole_seconds(self):
        start = datetime(2025, 1, 15, 9, 0, 0)
        assert elapsed_seconds(start, datetime(2025, 1, 15, 9, 0, 9, 900000)) == 9

    def test_no_start(self):
        assert elapsed_seconds(None, datetime(2025, 1, 15, 9, 0, 0)) == 0
