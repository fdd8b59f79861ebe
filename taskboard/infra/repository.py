from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from taskboard.domain.entities import (
    BoardEntity,
    RecurrencePattern,
    RecurringDefinitionEntity,
    SubtaskEntity,
    TaskEntity,
)
from taskboard.domain.errors import CircularDependencyError, NotFoundError, StorageError
from taskboard.domain.graph import reaches

from .db import SessionLocal
from .models import (
    BoardModel,
    RecurringDefinitionModel,
    SubtaskModel,
    TaskDependencyModel,
    TaskModel,
)

logger = logging.getLogger(__name__)

_TASK_FIELDS = (
    "title",
    "description",
    "completed",
    "priority",
    "due_date",
    "color",
    "progress",
    "sort_order",
    "recurring_definition_id",
)
_DEFINITION_FIELDS = ("next_due_date", "last_generated_at", "is_active", "template_task_id")


def _split_tags(raw: str) -> tuple[str, ...]:
    return tuple(tag.strip() for tag in raw.split(",") if tag.strip())


def _join_tags(tags) -> str:
    if isinstance(tags, str):
        return tags
    return ",".join(tags or ())


def _to_board(model: BoardModel) -> BoardEntity:
    return BoardEntity(
        id=model.id,
        title=model.title,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _to_entity(model: TaskModel, dependencies: set[int] | None = None) -> TaskEntity:
    return TaskEntity(
        id=model.id,
        board_id=model.board_id,
        title=model.title,
        description=model.description,
        completed=model.completed,
        priority=model.priority,
        due_date=model.due_date,
        tags=_split_tags(model.tags),
        created_at=model.created_at,
        updated_at=model.updated_at,
        color=model.color,
        progress=model.progress,
        sort_order=model.sort_order,
        subtasks=tuple(
            SubtaskEntity(
                id=subtask.id,
                title=subtask.title,
                completed=subtask.is_done,
                sort_order=subtask.sort_order,
            )
            for subtask in model.subtasks
        ),
        dependencies=frozenset(dependencies or ()),
        recurring_definition_id=model.recurring_definition_id,
    )


def _to_definition(model: RecurringDefinitionModel) -> RecurringDefinitionEntity:
    return RecurringDefinitionEntity(
        id=model.id,
        board_id=model.board_id,
        template_task_id=model.template_task_id,
        pattern=RecurrencePattern.from_dict(model.pattern),
        next_due_date=model.next_due_date,
        last_generated_at=model.last_generated_at,
        is_active=model.is_active,
        created_at=model.created_at,
    )


class TaskRepository:
    """SQLAlchemy-backed store for boards, tasks, recurring definitions and edges."""

    def __init__(self, session_factory: sessionmaker | None = None) -> None:
        self._session_factory = session_factory or SessionLocal

    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            with self._session_factory() as session:
                yield session
        except SQLAlchemyError as exc:
            logger.exception("Repository operation failed")
            raise StorageError(str(exc)) from exc

    # boards

    def list_boards(self) -> list[BoardEntity]:
        with self._session() as session:
            stmt = select(BoardModel).order_by(BoardModel.id.asc())
            return [_to_board(board) for board in session.scalars(stmt)]

    def get_board(self, board_id: int) -> Optional[BoardEntity]:
        with self._session() as session:
            board = session.get(BoardModel, board_id)
            return _to_board(board) if board else None

    def create_board(self, title: str) -> BoardEntity:
        with self._session() as session:
            board = BoardModel(title=title)
            session.add(board)
            session.commit()
            session.refresh(board)
            return _to_board(board)

    def delete_board(self, board_id: int) -> None:
        with self._session() as session:
            board = session.get(BoardModel, board_id)
            if not board:
                return
            session.execute(
                delete(TaskDependencyModel).where(TaskDependencyModel.board_id == board_id)
            )
            session.delete(board)
            session.commit()

    # tasks

    def list_tasks(self, board_id: int) -> list[TaskEntity]:
        with self._session() as session:
            edges = self._edges_for_board(session, board_id)
            stmt = (
                select(TaskModel)
                .where(TaskModel.board_id == board_id)
                .order_by(TaskModel.sort_order.asc(), TaskModel.id.asc())
            )
            return [_to_entity(task, edges.get(task.id)) for task in session.scalars(stmt)]

    def get_task(self, board_id: int, task_id: int) -> Optional[TaskEntity]:
        with self._session() as session:
            task = session.get(TaskModel, task_id)
            if not task or task.board_id != board_id:
                return None
            return _to_entity(task, self._edges_for_task(session, task_id))

    def create_task(self, board_id: int, data: dict) -> TaskEntity:
        with self._session() as session:
            task = self._add_task(session, board_id, data)
            session.commit()
            session.refresh(task)
            return _to_entity(task)

    def update_task(self, board_id: int, task_id: int, data: dict) -> Optional[TaskEntity]:
        with self._session() as session:
            task = session.get(TaskModel, task_id)
            if not task or task.board_id != board_id:
                return None
            for key, value in data.items():
                if key == "tags":
                    task.tags = _join_tags(value)
                elif key in _TASK_FIELDS:
                    setattr(task, key, value)
            session.commit()
            session.refresh(task)
            return _to_entity(task, self._edges_for_task(session, task_id))

    def delete_task(self, board_id: int, task_id: int) -> None:
        with self._session() as session:
            task = session.get(TaskModel, task_id)
            if not task or task.board_id != board_id:
                return
            session.execute(
                delete(TaskDependencyModel).where(
                    (TaskDependencyModel.task_id == task_id)
                    | (TaskDependencyModel.depends_on_id == task_id)
                )
            )
            session.delete(task)
            session.commit()

    # recurring definitions

    def list_active_recurring_definitions(self) -> list[RecurringDefinitionEntity]:
        with self._session() as session:
            stmt = (
                select(RecurringDefinitionModel)
                .where(RecurringDefinitionModel.is_active.is_(True))
                .order_by(RecurringDefinitionModel.next_due_date.asc())
            )
            return [_to_definition(model) for model in session.scalars(stmt)]

    def list_due_recurring_refs(self, now: datetime) -> list[tuple[int, int]]:
        """(definition_id, board_id) of active definitions due at ``now``, without decoding patterns."""
        with self._session() as session:
            stmt = (
                select(RecurringDefinitionModel.id, RecurringDefinitionModel.board_id)
                .where(
                    RecurringDefinitionModel.is_active.is_(True),
                    RecurringDefinitionModel.next_due_date <= now,
                )
                .order_by(RecurringDefinitionModel.next_due_date.asc(), RecurringDefinitionModel.id.asc())
            )
            return [(row.id, row.board_id) for row in session.execute(stmt)]

    def list_recurring_definitions(self, board_id: int) -> list[RecurringDefinitionEntity]:
        with self._session() as session:
            stmt = (
                select(RecurringDefinitionModel)
                .where(RecurringDefinitionModel.board_id == board_id)
                .order_by(RecurringDefinitionModel.next_due_date.asc())
            )
            return [_to_definition(model) for model in session.scalars(stmt)]

    def get_recurring_definition(self, definition_id: int) -> Optional[RecurringDefinitionEntity]:
        with self._session() as session:
            model = session.get(RecurringDefinitionModel, definition_id)
            return _to_definition(model) if model else None

    def create_recurring_definition(self, data: dict) -> RecurringDefinitionEntity:
        with self._session() as session:
            model = RecurringDefinitionModel(
                board_id=data["board_id"],
                template_task_id=data["template_task_id"],
                pattern=data["pattern"].to_dict(),
                next_due_date=data["next_due_date"],
                is_active=data.get("is_active", True),
            )
            session.add(model)
            session.commit()
            session.refresh(model)
            return _to_definition(model)

    def update_recurring_definition(self, definition_id: int, data: dict) -> bool:
        with self._session() as session:
            model = session.get(RecurringDefinitionModel, definition_id)
            if not model:
                return False
            self._apply_definition_changes(model, data)
            session.commit()
            return True

    def delete_recurring_definition(self, definition_id: int) -> bool:
        with self._session() as session:
            model = session.get(RecurringDefinitionModel, definition_id)
            if not model:
                return False
            session.delete(model)
            session.commit()
            return True

    def record_generation(
        self, definition_id: int, expected_next_due: datetime, task_data: dict, changes: dict
    ) -> Optional[TaskEntity]:
        """Create a generated instance and advance its definition in one transaction.

        Returns None, and writes nothing, when the stored cursor is no longer
        ``expected_next_due`` or the definition was deactivated meanwhile.
        """
        with self._session() as session:
            model = session.scalars(
                select(RecurringDefinitionModel)
                .where(RecurringDefinitionModel.id == definition_id)
                .with_for_update()
            ).first()
            if not model:
                raise NotFoundError("recurring definition", definition_id)
            if not model.is_active or model.next_due_date != expected_next_due:
                logger.info(
                    "Recurring definition %s already advanced to %s, nothing generated",
                    definition_id,
                    model.next_due_date,
                )
                return None
            task = self._add_task(session, model.board_id, task_data)
            self._apply_definition_changes(model, changes)
            session.commit()
            session.refresh(task)
            return _to_entity(task)

    # dependency edges

    def get_dependency_edges(self, board_id: int, task_id: int) -> set[int]:
        with self._session() as session:
            return self._edges_for_task(session, task_id, board_id)

    def set_dependency_edges(self, board_id: int, task_id: int, depends_on_ids: set[int]) -> None:
        with self._session() as session:
            session.execute(
                delete(TaskDependencyModel).where(
                    TaskDependencyModel.board_id == board_id,
                    TaskDependencyModel.task_id == task_id,
                )
            )
            for depends_on_id in sorted(depends_on_ids):
                session.add(
                    TaskDependencyModel(
                        task_id=task_id,
                        depends_on_id=depends_on_id,
                        board_id=board_id,
                    )
                )
            session.commit()

    def add_edge_if_acyclic(self, board_id: int, task_id: int, depends_on_id: int) -> bool:
        """Insert ``task_id -> depends_on_id`` unless it would close a cycle.

        The board row is locked for the whole check-and-insert. Returns False
        when the edge already exists.
        """
        with self._session() as session:
            board = session.scalars(
                select(BoardModel).where(BoardModel.id == board_id).with_for_update()
            ).first()
            if not board:
                raise NotFoundError("board", board_id)
            edges = self._edges_for_board(session, board_id)
            if depends_on_id in edges.get(task_id, ()):
                return False
            if reaches(edges, depends_on_id, task_id):
                raise CircularDependencyError(task_id, depends_on_id)
            session.add(
                TaskDependencyModel(task_id=task_id, depends_on_id=depends_on_id, board_id=board_id)
            )
            session.commit()
            return True

    def list_dependency_edges(self, board_id: int) -> dict[int, set[int]]:
        with self._session() as session:
            return self._edges_for_board(session, board_id)

    @staticmethod
    def _edges_for_task(session: Session, task_id: int, board_id: int | None = None) -> set[int]:
        stmt = select(TaskDependencyModel.depends_on_id).where(
            TaskDependencyModel.task_id == task_id
        )
        if board_id is not None:
            stmt = stmt.where(TaskDependencyModel.board_id == board_id)
        return set(session.scalars(stmt))

    @staticmethod
    def _edges_for_board(session: Session, board_id: int) -> dict[int, set[int]]:
        rows = session.execute(
            select(TaskDependencyModel.task_id, TaskDependencyModel.depends_on_id).where(
                TaskDependencyModel.board_id == board_id
            )
        ).all()
        edges: dict[int, set[int]] = {}
        for row in rows:
            edges.setdefault(row.task_id, set()).add(row.depends_on_id)
        return edges

    @staticmethod
    def _add_task(session: Session, board_id: int, data: dict) -> TaskModel:
        if not session.get(BoardModel, board_id):
            raise NotFoundError("board", board_id)
        task = TaskModel(
            board_id=board_id,
            tags=_join_tags(data.get("tags")),
            **{key: data[key] for key in _TASK_FIELDS if key in data},
        )
        for index, subtask in enumerate(data.get("subtasks") or (), start=1):
            task.subtasks.append(
                SubtaskModel(
                    title=subtask["title"],
                    is_done=subtask.get("completed", False),
                    sort_order=subtask.get("sort_order", index),
                )
            )
        session.add(task)
        return task

    @staticmethod
    def _apply_definition_changes(model: RecurringDefinitionModel, data: dict) -> None:
        for key, value in data.items():
            if key == "pattern":
                model.pattern = value.to_dict()
            elif key in _DEFINITION_FIELDS:
                setattr(model, key, value)
