"""add recurring definitions"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0002_add_recurring_definitions"
down_revision = "0001_create_boards_tasks"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "recurring_definitions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "board_id",
            sa.Integer(),
            sa.ForeignKey("boards.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("template_task_id", sa.Integer(), nullable=False),
        sa.Column("pattern", sa.JSON(), nullable=False),
        sa.Column("next_due_date", sa.DateTime(), nullable=False),
        sa.Column("last_generated_at", sa.DateTime(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_recurring_definitions_board_id", "recurring_definitions", ["board_id"])
    op.create_index("ix_recurring_definitions_next_due_date", "recurring_definitions", ["next_due_date"])
    op.create_index("ix_recurring_definitions_is_active", "recurring_definitions", ["is_active"])
    op.add_column("tasks", sa.Column("recurring_definition_id", sa.Integer(), nullable=True))
    op.create_index("ix_tasks_recurring_definition_id", "tasks", ["recurring_definition_id"])


def downgrade() -> None:
    op.drop_index("ix_tasks_recurring_definition_id", table_name="tasks")
    op.drop_column("tasks", "recurring_definition_id")
    op.drop_index("ix_recurring_definitions_is_active", table_name="recurring_definitions")
    op.drop_index("ix_recurring_definitions_next_due_date", table_name="recurring_definitions")
    op.drop_index("ix_recurring_definitions_board_id", table_name="recurring_definitions")
    op.drop_table("recurring_definitions")
