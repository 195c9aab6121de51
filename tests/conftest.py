"""Pytest fixtures and configuration for FocusFlow tests."""

import os

# Must be set before any focusflow module reads the environment.
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["DAILY_RESET_ENABLED"] = "false"
os.environ.pop("OPENAI_API_KEY", None)

from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from focusflow.database.database import Base, get_db, set_sqlite_pragmas
from focusflow.database.repository import TaskRepository
from focusflow.database.subtask_repository import SubtaskRepository
from focusflow.database.timer_repository import DurationUpdate, TimerRepository
from focusflow.errors import BatchWriteFailed, StoreUnavailable
from focusflow.models.task import FixedSchedule, FlexibleSchedule, TimelessSchedule
from focusflow.models.task_factory import create_task_base


# Use in-memory SQLite database for tests
TEST_DATABASE_URL = "sqlite:///:memory:"

# Every test runs on this local day
TEST_DAY = "2025-01-15"


class FakeClock:
    """Manually advanced clock, injectable wherever `utc_now` is expected."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class RepositoryStore:
    """Async timer store backed by a real TimerRepository.

    Set `fail = True` to simulate the network going away.
    """

    def __init__(self, timers: TimerRepository, user_id: str):
        self.timers = timers
        self.user_id = user_id
        self.fail = False
        self.batch_calls = []
        self.stop_calls = []

    def _check(self, batch: bool = False):
        if self.fail:
            raise (BatchWriteFailed if batch else StoreUnavailable)("store offline")

    async def get_running_timer(self, date):
        self._check()
        return self.timers.get_running_timer(self.user_id, date)

    async def start_timer(self, task_id, date=None):
        self._check()
        return self.timers.start_timer(self.user_id, date or TEST_DAY, task_id)

    async def stop_timer(self, task_id):
        self._check()
        self.stop_calls.append(task_id)
        return self.timers.stop_timer(self.user_id, task_id)

    async def pause_timer(self, task_id):
        self._check()
        return self.timers.pause_timer(self.user_id, task_id)

    async def resume_timer(self, task_id):
        self._check()
        return self.timers.resume_timer(self.user_id, task_id)

    async def batch_update_durations(self, updates):
        self._check(batch=True)
        self.batch_calls.append(dict(updates))
        result = self.timers.batch_update_durations(
            self.user_id,
            [DurationUpdate(id=k, remaining_duration=v) for k, v in updates.items()],
        )
        return result.model_dump()


@pytest.fixture
def test_user_id():
    """Test user ID for multi-user testing."""
    return "test-user-123"


@pytest.fixture
def clock():
    """Store clock starting at 09:00 on the test day."""
    return FakeClock(datetime(2025, 1, 15, 9, 0, 0))


@pytest.fixture(scope="function")
def db_session(test_user_id):
    """Create a database session for testing.

    Uses an in-memory SQLite database that is created fresh for each test.
    Also creates a test user in the database.
    """
    from focusflow.database.models import UserDB

    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    event.listen(engine, "connect", set_sqlite_pragmas)

    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    # Create test user (required for foreign key constraints)
    now = datetime(2025, 1, 1)
    session.add(UserDB(
        id=test_user_id,
        email="test@example.com",
        name="Test User",
        created_at=now,
        updated_at=now,
    ))
    session.commit()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def task_repository(db_session: Session, clock):
    return TaskRepository(db_session, clock=clock)


@pytest.fixture
def timer_repository(db_session: Session, clock):
    return TimerRepository(db_session, clock=clock)


@pytest.fixture
def subtask_repository(db_session: Session, clock):
    return SubtaskRepository(db_session, clock=clock)


@pytest.fixture
def make_task(task_repository, test_user_id, clock):
    """Persist a task and return it. Defaults to a fixed 09:00-10:00 "Focus" block."""

    def _make(title="Focus", schedule=None, date=TEST_DAY, subtasks=None):
        task = create_task_base(
            user_id=test_user_id,
            date=date,
            title=title,
            schedule=schedule or FixedSchedule(start="09:00", end="10:00"),
            subtasks=subtasks,
            now=clock(),
        )
        return task_repository.create(task)

    return _make


@pytest.fixture
def flexible_schedule():
    return FlexibleSchedule(duration_min=45, preferred_time_slots=["afternoon"])


@pytest.fixture
def timeless_schedule():
    return TimelessSchedule()


@pytest.fixture
def store(timer_repository, test_user_id):
    return RepositoryStore(timer_repository, test_user_id)


@pytest.fixture
def test_user(test_user_id):
    """Create a test user object."""
    from focusflow.models.user import User

    now = datetime(2025, 1, 1)
    return User(
        id=test_user_id,
        email="test@example.com",
        name="Test User",
        created_at=now,
        updated_at=now,
    )


@pytest.fixture
def api_app(db_session: Session, test_user, clock):
    """The FastAPI app with database, authentication and clock overridden."""
    from focusflow.api.app import app, get_clock
    from focusflow.auth.dependencies import get_current_user

    def override_get_db():
        try:
            yield db_session
        finally:
            pass  # Don't close the session here, let the fixture handle it

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = lambda: test_user
    app.dependency_overrides[get_clock] = lambda: clock

    yield app

    app.dependency_overrides.clear()


@pytest.fixture
def test_client(api_app):
    """FastAPI test client with overridden dependencies."""
    with TestClient(api_app) as client:
        yield client
