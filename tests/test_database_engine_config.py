from datetime import datetime


def test_get_engine_kwargs_sqlite_has_check_same_thread():
    from focusflow.database import database as db

    kwargs = db.get_engine_kwargs("sqlite:///./focusflow.db")
    assert "connect_args" in kwargs
    assert kwargs["connect_args"]["check_same_thread"] is False
    # SQLite should not require pool sizing knobs.
    assert "pool_size" not in kwargs
    assert "max_overflow" not in kwargs
    assert kwargs["pool_pre_ping"] is True


def test_get_engine_kwargs_postgres_has_conservative_pooling(monkeypatch):
    from focusflow.database import database as db

    monkeypatch.setenv("DB_POOL_SIZE", "7")
    monkeypatch.setenv("DB_MAX_OVERFLOW", "3")
    monkeypatch.setenv("DB_POOL_TIMEOUT_SEC", "15")

    kwargs = db.get_engine_kwargs("postgresql+psycopg://u:p@localhost:5432/db")
    assert "connect_args" not in kwargs
    assert kwargs["pool_pre_ping"] is True
    assert kwargs["pool_size"] == 7
    assert kwargs["max_overflow"] == 3
    assert kwargs["pool_timeout"] == 15


def test_is_sqlite_url():
    from focusflow.database import database as db

    assert db._is_sqlite_url("sqlite:///./focusflow.db") is True
    assert db._is_sqlite_url("postgresql+psycopg://u:p@localhost/db") is False


def test_build_engine_enables_foreign_keys_on_sqlite(tmp_path):
    from sqlalchemy import text
    from focusflow.database import database as db

    engine = db.build_engine(f"sqlite:///{tmp_path / 'pragmas.db'}")
    try:
        with engine.connect() as conn:
            assert conn.execute(text("PRAGMA foreign_keys")).scalar() == 1
            assert conn.execute(text("PRAGMA journal_mode")).scalar() == "wal"
    finally:
        engine.dispose()


def test_missing_requirements_on_empty_database(tmp_path):
    from sqlalchemy import create_engine
    from focusflow.database.migrate_runner import missing_requirements

    engine = create_engine(f"sqlite:///{tmp_path / 'empty.db'}")
    missing = missing_requirements(engine)
    engine.dispose()

    assert "missing table: users" in missing
    assert "missing table: schedule_items" in missing
    assert "missing table: subtasks" in missing


def test_missing_requirements_reports_absent_columns(tmp_path):
    from sqlalchemy import create_engine, text
    from focusflow.database.migrate_runner import missing_requirements

    engine = create_engine(f"sqlite:///{tmp_path / 'legacy.db'}")
    with engine.begin() as conn:
        conn.execute(text("CREATE TABLE users (id VARCHAR PRIMARY KEY)"))
        conn.execute(text("CREATE TABLE schedule_items (id VARCHAR PRIMARY KEY, kind VARCHAR)"))
        conn.execute(text("CREATE TABLE subtasks (id VARCHAR PRIMARY KEY, position INTEGER)"))
    missing = missing_requirements(engine)
    engine.dispose()

    assert "missing column: schedule_items.remaining_duration" in missing
    assert "missing column: schedule_items.kind" not in missing
    assert not any(m.startswith("missing table") for m in missing)


def test_full_schema_has_no_missing_requirements(tmp_path):
    from sqlalchemy import create_engine
    from focusflow.database import models  # noqa: F401
    from focusflow.database.database import Base
    from focusflow.database.migrate_runner import missing_requirements

    engine = create_engine(f"sqlite:///{tmp_path / 'full.db'}")
    Base.metadata.create_all(bind=engine)
    assert missing_requirements(engine) == []
    engine.dispose()


def test_user_repository_upsert(db_session):
    from focusflow.database.user_repository import UserRepository
    from focusflow.models.user import User

    repo = UserRepository(db_session)
    now = datetime(2025, 1, 2)
    created = repo.create_or_update(User(id="u-2", email="two@example.com", name="Two", created_at=now, updated_at=now))
    assert created.email == "two@example.com"

    later = datetime(2025, 1, 3)
    updated = repo.create_or_update(User(id="u-2", email="new@example.com", name="Two", created_at=now, updated_at=later))
    assert updated.email == "new@example.com"
    assert repo.get_by_email("new@example.com").id == "u-2"
    assert repo.get("missing") is None


def test_alembic_upgrade_creates_expected_schema(tmp_path):
    from pathlib import Path

    from alembic import command
    from alembic.config import Config
    from sqlalchemy import create_engine
    from focusflow.database.migrate_runner import missing_requirements

    url = f"sqlite:///{tmp_path / 'migrated.db'}"
    cfg = Config()
    cfg.set_main_option("script_location", str(Path(__file__).resolve().parents[1] / "alembic"))
    cfg.set_main_option("sqlalchemy.url", url)

    command.upgrade(cfg, "head")

    engine = create_engine(url)
    assert missing_requirements(engine) == []
    engine.dispose()
