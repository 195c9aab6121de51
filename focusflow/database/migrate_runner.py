"""Database migration runner.

Runs `alembic upgrade head`. When the upgrade fails because the tables were
already created outside Alembic (e.g. by `create_all()` in an earlier
deploy), the expected schema is verified and the database is stamped at head
instead.

Usage: python -m focusflow.database.migrate_runner
"""

from __future__ import annotations

import logging
import os
import sys
from typing import List, Tuple

from alembic import command
from alembic.config import Config
from sqlalchemy import inspect

from focusflow.database.database import DATABASE_URL, build_engine

logger = logging.getLogger(__name__)


def _alembic_cfg() -> Config:
    cfg = Config(os.getenv("ALEMBIC_INI", "alembic.ini"))
    cfg.set_main_option("sqlalchemy.url", DATABASE_URL)
    return cfg


def required_schema() -> List[Tuple[str, str]]:
    """(table, column) pairs the runtime depends on. Column "" means table only."""
    return [
        ("users", ""),
        ("schedule_items", ""),
        ("subtasks", ""),
        ("schedule_items", "kind"),
        ("schedule_items", "remaining_duration"),
        ("schedule_items", "is_running"),
        ("schedule_items", "is_paused"),
        ("schedule_items", "started_at"),
        ("schedule_items", "total_elapsed"),
        ("schedule_items", "manual_status"),
        ("subtasks", "position"),
    ]


def missing_requirements(engine) -> List[str]:
    inspector = inspect(engine)
    tables = set(inspector.get_table_names())
    columns = {}
    missing: List[str] = []
    for table, column in required_schema():
        if table not in tables:
            if not column:
                missing.append(f"missing table: {table}")
            continue
        if not column:
            continue
        if table not in columns:
            columns[table] = {c["name"] for c in inspector.get_columns(table)}
        if column not in columns[table]:
            missing.append(f"missing column: {table}.{column}")
    return missing


def main() -> int:
    logging.basicConfig(level=logging.INFO)
    try:
        command.upgrade(_alembic_cfg(), "head")
        return 0
    except Exception as e:
        msg = str(e).lower()
        if not any(s in msg for s in ("already exists", "duplicate")):
            raise

        missing = missing_requirements(build_engine(DATABASE_URL))
        if missing:
            raise RuntimeError(
                "Alembic upgrade failed and schema is not at expected baseline; refusing to stamp head. "
                + "; ".join(missing)
            ) from e

        logger.info("Schema already present; stamping alembic head")
        command.stamp(_alembic_cfg(), "head")
        return 0


if __name__ == "__main__":
    sys.exit(main())
