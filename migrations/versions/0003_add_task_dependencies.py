"""add task dependencies"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0003_add_task_dependencies"
down_revision = "0002_add_recurring_definitions"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "task_dependencies",
        sa.Column(
            "task_id",
            sa.Integer(),
            sa.ForeignKey("tasks.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "depends_on_id",
            sa.Integer(),
            sa.ForeignKey("tasks.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "board_id",
            sa.Integer(),
            sa.ForeignKey("boards.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("task_id != depends_on_id", name="no_self_dependency"),
    )
    op.create_index("ix_task_dependencies_board_id", "task_dependencies", ["board_id"])


def downgrade() -> None:
    op.drop_index("ix_task_dependencies_board_id", table_name="task_dependencies")
    op.drop_table("task_dependencies")
