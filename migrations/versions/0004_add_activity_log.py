"""add activity log"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0004_add_activity_log"
down_revision = "0003_add_task_dependencies"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "activity_log",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("type", sa.String(length=40), nullable=False),
        sa.Column("board_id", sa.Integer(), nullable=False),
        sa.Column("board_title", sa.String(length=200), nullable=False, server_default=""),
        sa.Column("task_id", sa.Integer(), nullable=True),
        sa.Column("task_text", sa.String(length=200), nullable=True),
        sa.Column("changes", sa.JSON(), nullable=False),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_activity_log_type", "activity_log", ["type"])
    op.create_index("ix_activity_log_board_id", "activity_log", ["board_id"])
    op.create_index("ix_activity_log_timestamp", "activity_log", ["timestamp"])


def downgrade() -> None:
    op.drop_index("ix_activity_log_timestamp", table_name="activity_log")
    op.drop_index("ix_activity_log_board_id", table_name="activity_log")
    op.drop_index("ix_activity_log_type", table_name="activity_log")
    op.drop_table("activity_log")
