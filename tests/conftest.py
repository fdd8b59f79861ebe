from __future__ import annotations

from dataclasses import replace
from datetime import datetime

import pytest

from taskboard.domain.entities import (
    ActivityEvent,
    BoardEntity,
    RecurringDefinitionEntity,
    SubtaskEntity,
    TaskEntity,
)
from taskboard.domain.errors import CircularDependencyError, NotFoundError, StorageError
from taskboard.domain.graph import reaches


class FakeRepo:
    def __init__(self) -> None:
        self.boards: dict[int, BoardEntity] = {}
        self.tasks: dict[int, TaskEntity] = {}
        self.definitions: dict[int, RecurringDefinitionEntity] = {}
        self.edges: dict[int, set[int]] = {}
        self.failing_definitions: set[int] = set()
        self._id = 1

    def _next_id(self) -> int:
        value = self._id
        self._id += 1
        return value

    def list_boards(self) -> list[BoardEntity]:
        return list(self.boards.values())

    def get_board(self, board_id: int) -> BoardEntity | None:
        return self.boards.get(board_id)

    def create_board(self, title: str) -> BoardEntity:
        now = datetime(2025, 1, 1)
        board = BoardEntity(id=self._next_id(), title=title, created_at=now, updated_at=now)
        self.boards[board.id] = board
        return board

    def list_tasks(self, board_id: int) -> list[TaskEntity]:
        return [
            replace(task, dependencies=frozenset(self.edges.get(task.id, ())))
            for task in self.tasks.values()
            if task.board_id == board_id
        ]

    def get_task(self, board_id: int, task_id: int) -> TaskEntity | None:
        task = self.tasks.get(task_id)
        if not task or task.board_id != board_id:
            return None
        return replace(task, dependencies=frozenset(self.edges.get(task_id, ())))

    def create_task(self, board_id: int, data: dict) -> TaskEntity:
        if board_id not in self.boards:
            raise NotFoundError("board", board_id)
        now = datetime(2025, 1, 1)
        task = TaskEntity(
            id=self._next_id(),
            board_id=board_id,
            title=data.get("title", ""),
            description=data.get("description", ""),
            completed=data.get("completed", False),
            priority=data.get("priority", 2),
            due_date=data.get("due_date"),
            tags=tuple(data.get("tags") or ()),
            created_at=now,
            updated_at=now,
            color=data.get("color"),
            progress=data.get("progress", 0),
            subtasks=tuple(
                SubtaskEntity(id=None, title=item["title"], completed=item.get("completed", False))
                for item in data.get("subtasks") or ()
            ),
            recurring_definition_id=data.get("recurring_definition_id"),
        )
        self.tasks[task.id] = task
        return task

    def update_task(self, board_id: int, task_id: int, data: dict) -> TaskEntity | None:
        task = self.get_task(board_id, task_id)
        if not task:
            return None
        updated = replace(task, **data)
        self.tasks[task_id] = updated
        return updated

    def delete_task(self, board_id: int, task_id: int) -> None:
        self.tasks.pop(task_id, None)
        self.edges.pop(task_id, None)
        for deps in self.edges.values():
            deps.discard(task_id)

    def list_active_recurring_definitions(self) -> list[RecurringDefinitionEntity]:
        return [item for item in self.definitions.values() if item.is_active]

    def list_due_recurring_refs(self, now: datetime) -> list[tuple[int, int]]:
        return [
            (item.id, item.board_id)
            for item in sorted(self.definitions.values(), key=lambda item: (item.next_due_date, item.id))
            if item.is_active and item.next_due_date <= now
        ]

    def list_recurring_definitions(self, board_id: int) -> list[RecurringDefinitionEntity]:
        return [item for item in self.definitions.values() if item.board_id == board_id]

    def get_recurring_definition(self, definition_id: int) -> RecurringDefinitionEntity | None:
        return self.definitions.get(definition_id)

    def create_recurring_definition(self, data: dict) -> RecurringDefinitionEntity:
        definition = RecurringDefinitionEntity(
            id=self._next_id(),
            board_id=data["board_id"],
            template_task_id=data["template_task_id"],
            pattern=data["pattern"],
            next_due_date=data["next_due_date"],
            last_generated_at=None,
            is_active=data.get("is_active", True),
            created_at=datetime(2025, 1, 1),
        )
        self.definitions[definition.id] = definition
        return definition

    def update_recurring_definition(self, definition_id: int, data: dict) -> bool:
        definition = self.definitions.get(definition_id)
        if not definition:
            return False
        self.definitions[definition_id] = replace(definition, **data)
        return True

    def delete_recurring_definition(self, definition_id: int) -> bool:
        return self.definitions.pop(definition_id, None) is not None

    def record_generation(
        self, definition_id: int, expected_next_due: datetime, task_data: dict, changes: dict
    ) -> TaskEntity | None:
        if definition_id in self.failing_definitions:
            raise StorageError("disk full")
        definition = self.definitions.get(definition_id)
        if not definition:
            raise NotFoundError("recurring definition", definition_id)
        if not definition.is_active or definition.next_due_date != expected_next_due:
            return None
        task = self.create_task(definition.board_id, task_data)
        self.update_recurring_definition(definition_id, changes)
        return task

    def get_dependency_edges(self, board_id: int, task_id: int) -> set[int]:
        return set(self.edges.get(task_id, ()))

    def set_dependency_edges(self, board_id: int, task_id: int, depends_on_ids: set[int]) -> None:
        self.edges[task_id] = set(depends_on_ids)

    def add_edge_if_acyclic(self, board_id: int, task_id: int, depends_on_id: int) -> bool:
        if board_id not in self.boards:
            raise NotFoundError("board", board_id)
        edges = self.list_dependency_edges(board_id)
        if depends_on_id in edges.get(task_id, ()):
            return False
        if reaches(edges, depends_on_id, task_id):
            raise CircularDependencyError(task_id, depends_on_id)
        self.edges.setdefault(task_id, set()).add(depends_on_id)
        return True

    def list_dependency_edges(self, board_id: int) -> dict[int, set[int]]:
        return {
            task_id: set(deps)
            for task_id, deps in self.edges.items()
            if task_id in self.tasks and self.tasks[task_id].board_id == board_id
        }


class FakeActivity:
    def __init__(self, fail: bool = False) -> None:
        self.events: list[ActivityEvent] = []
        self.fail = fail

    def record(self, event: ActivityEvent) -> None:
        if self.fail:
            raise RuntimeError("activity store offline")
        self.events.append(event)


@pytest.fixture
def repo() -> FakeRepo:
    return FakeRepo()


@pytest.fixture
def activity() -> FakeActivity:
    return FakeActivity()
