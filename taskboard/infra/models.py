from __future__ import annotations

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from taskboard.domain.entities import utcnow

from .db import Base


class BoardModel(Base):
    __tablename__ = "boards"

    id = Column(Integer, primary_key=True)
    title = Column(String(200), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    tasks = relationship("TaskModel", cascade="all, delete-orphan")
    recurring_definitions = relationship(
        "RecurringDefinitionModel", cascade="all, delete-orphan"
    )


class TaskModel(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True)
    board_id = Column(Integer, ForeignKey("boards.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False, default="")
    completed = Column(Boolean, nullable=False, default=False)
    priority = Column(Integer, nullable=False, default=2)
    due_date = Column(DateTime, nullable=True)
    tags = Column(Text, nullable=False, default="")
    color = Column(String(20), nullable=True)
    progress = Column(Integer, nullable=False, default=0)
    sort_order = Column(Integer, nullable=False, default=0)
    recurring_definition_id = Column(Integer, nullable=True, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    subtasks = relationship(
        "SubtaskModel",
        cascade="all, delete-orphan",
        order_by="SubtaskModel.sort_order",
    )


class SubtaskModel(Base):
    __tablename__ = "subtasks"

    id = Column(Integer, primary_key=True)
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    is_done = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    sort_order = Column(Integer, nullable=False, default=0)


class RecurringDefinitionModel(Base):
    __tablename__ = "recurring_definitions"

    id = Column(Integer, primary_key=True)
    board_id = Column(Integer, ForeignKey("boards.id", ondelete="CASCADE"), nullable=False, index=True)
    template_task_id = Column(Integer, nullable=False)
    pattern = Column(JSON, nullable=False)
    next_due_date = Column(DateTime, nullable=False, index=True)
    last_generated_at = Column(DateTime, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class TaskDependencyModel(Base):
    __tablename__ = "task_dependencies"
    __table_args__ = (
        CheckConstraint("task_id != depends_on_id", name="no_self_dependency"),
    )

    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True)
    depends_on_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True)
    board_id = Column(Integer, ForeignKey("boards.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class ActivityModel(Base):
    __tablename__ = "activity_log"

    id = Column(Integer, primary_key=True)
    type = Column(String(40), nullable=False, index=True)
    board_id = Column(Integer, nullable=False, index=True)
    board_title = Column(String(200), nullable=False, default="")
    task_id = Column(Integer, nullable=True)
    task_text = Column(String(200), nullable=True)
    changes = Column(JSON, nullable=False, default=list)
    timestamp = Column(DateTime, nullable=False, default=utcnow, index=True)
