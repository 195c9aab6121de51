"""Create users, schedule_items and subtasks tables

Revision ID: 4e1a7c9d2b30
Revises:
Create Date: 2026-10-18
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "4e1a7c9d2b30"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "users",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)

    op.create_table(
        "schedule_items",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("user_id", sa.String(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("date", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("icon", sa.String(), nullable=True),
        sa.Column("color", sa.String(), nullable=True),
        sa.Column("manual_status", sa.String(), nullable=True),
        sa.Column("kind", sa.String(), nullable=False, server_default="timeless"),
        sa.Column("start_time", sa.String(), nullable=True),
        sa.Column("end_time", sa.String(), nullable=True),
        sa.Column("duration_min", sa.Integer(), nullable=True),
        sa.Column("preferred_time_slots", sa.JSON(), nullable=True),
        sa.Column("earliest_start", sa.String(), nullable=True),
        sa.Column("latest_end", sa.String(), nullable=True),
        sa.Column("suggested_start", sa.String(), nullable=True),
        sa.Column("suggested_end", sa.String(), nullable=True),
        sa.Column("remaining_duration", sa.Integer(), nullable=True),
        sa.Column("is_running", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_paused", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("paused_at", sa.DateTime(), nullable=True),
        sa.Column("total_elapsed", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index(op.f("ix_schedule_items_user_id"), "schedule_items", ["user_id"], unique=False)
    op.create_index("ix_schedule_items_user_date", "schedule_items", ["user_id", "date"], unique=False)
    op.create_index(op.f("ix_schedule_items_is_running"), "schedule_items", ["is_running"], unique=False)
    op.create_index(op.f("ix_schedule_items_updated_at"), "schedule_items", ["updated_at"], unique=False)

    op.create_table(
        "subtasks",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column(
            "schedule_item_id",
            sa.String(),
            sa.ForeignKey("schedule_items.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("text", sa.String(), nullable=False),
        sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index(op.f("ix_subtasks_schedule_item_id"), "subtasks", ["schedule_item_id"], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f("ix_subtasks_schedule_item_id"), table_name="subtasks")
    op.drop_table("subtasks")
    op.drop_index(op.f("ix_schedule_items_updated_at"), table_name="schedule_items")
    op.drop_index(op.f("ix_schedule_items_is_running"), table_name="schedule_items")
    op.drop_index("ix_schedule_items_user_date", table_name="schedule_items")
    op.drop_index(op.f("ix_schedule_items_user_id"), table_name="schedule_items")
    op.drop_table("schedule_items")
    op.drop_index(op.f("ix_users_email"), table_name="users")
    op.drop_table("users")
