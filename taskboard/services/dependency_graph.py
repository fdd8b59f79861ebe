from __future__ import annotations

import logging
from collections.abc import Iterable

from taskboard.domain.entities import (
    ActivityEvent,
    BlockedTask,
    BoardEntity,
    DependencyChain,
    DependencyEdge,
    TaskEntity,
)
from taskboard.domain.enums import ActivityType
from taskboard.domain.errors import CircularDependencyError, NotFoundError
from taskboard.domain.graph import reaches
from taskboard.infra.activity import ActivityRecorder, safe_record
from taskboard.infra.repository import TaskRepository

from .locks import BoardLocks

logger = logging.getLogger(__name__)


class DependencyGraph:
    """Board-scoped "task depends on task" edges, kept acyclic on insertion."""

    def __init__(
        self,
        repo: TaskRepository,
        activity: ActivityRecorder | None = None,
        locks: BoardLocks | None = None,
    ) -> None:
        self._repo = repo
        self._activity = activity
        self._locks = locks or BoardLocks()

    def add_dependency(self, board_id: int, task_id: int, depends_on_id: int) -> DependencyEdge:
        with self._locks.hold(board_id):
            board = self._require_board(board_id)
            task = self._require_task(board_id, task_id)
            depends_on = self._require_task(board_id, depends_on_id)

            try:
                created = self._repo.add_edge_if_acyclic(board_id, task_id, depends_on_id)
            except CircularDependencyError:
                logger.info(
                    "Rejected dependency %s -> %s on board %s: cycle", task_id, depends_on_id, board_id
                )
                raise
            if not created:
                return DependencyEdge(board_id, task_id, depends_on_id, created=False)

        self._record_change(board, task, "dependency_added", None, depends_on.title)
        return DependencyEdge(board_id, task_id, depends_on_id)

    def remove_dependency(self, board_id: int, task_id: int, depends_on_id: int) -> bool:
        with self._locks.hold(board_id):
            board = self._require_board(board_id)
            task = self._require_task(board_id, task_id)
            current = self._repo.get_dependency_edges(board_id, task_id)
            if depends_on_id not in current:
                return False
            self._repo.set_dependency_edges(board_id, task_id, current - {depends_on_id})

        self._record_change(board, task, "dependency_removed", depends_on_id, None)
        return True

    def would_create_cycle(self, board_id: int, task_id: int, depends_on_id: int) -> bool:
        return reaches(self._repo.list_dependency_edges(board_id), depends_on_id, task_id)

    def get_dependencies(self, board_id: int, task_id: int) -> list[TaskEntity]:
        """Tasks that ``task_id`` depends on, which must complete first."""
        tasks = self._tasks_by_id(board_id)
        task = self._pick(tasks, task_id)
        return [tasks[dep_id] for dep_id in sorted(task.dependencies) if dep_id in tasks]

    def get_blockers(self, board_id: int, task_id: int) -> list[TaskEntity]:
        """Tasks that depend on ``task_id`` and stay blocked while it is open."""
        tasks = self._tasks_by_id(board_id)
        self._pick(tasks, task_id)
        return [task for task in tasks.values() if task_id in task.dependencies]

    def can_start(self, board_id: int, task_id: int) -> bool:
        return all(dep.completed for dep in self.get_dependencies(board_id, task_id))

    def get_dependency_chain(self, board_id: int, task_id: int) -> DependencyChain:
        return DependencyChain(
            task=self._require_task(board_id, task_id),
            dependencies=tuple(self.get_dependencies(board_id, task_id)),
            blockers=tuple(self.get_blockers(board_id, task_id)),
        )

    def list_blocked(self, boards: Iterable[BoardEntity] | None = None) -> list[BlockedTask]:
        blocked: list[BlockedTask] = []
        for board in boards if boards is not None else self._repo.list_boards():
            tasks = self._tasks_by_id(board.id)
            for task in tasks.values():
                if task.completed or not task.dependencies:
                    continue
                blocking = tuple(
                    tasks[dep_id]
                    for dep_id in sorted(task.dependencies)
                    if dep_id in tasks and not tasks[dep_id].completed
                )
                if blocking:
                    blocked.append(BlockedTask(board.id, board.title, task, blocking))
        return blocked

    def _tasks_by_id(self, board_id: int) -> dict[int, TaskEntity]:
        self._require_board(board_id)
        return {task.id: task for task in self._repo.list_tasks(board_id)}

    @staticmethod
    def _pick(tasks: dict[int, TaskEntity], task_id: int) -> TaskEntity:
        task = tasks.get(task_id)
        if not task:
            raise NotFoundError("task", task_id)
        return task

    def _require_board(self, board_id: int) -> BoardEntity:
        board = self._repo.get_board(board_id)
        if not board:
            raise NotFoundError("board", board_id)
        return board

    def _require_task(self, board_id: int, task_id: int) -> TaskEntity:
        task = self._repo.get_task(board_id, task_id)
        if not task:
            raise NotFoundError("task", task_id)
        return task

    def _record_change(self, board: BoardEntity, task: TaskEntity, field: str, old, new) -> None:
        safe_record(
            self._activity,
            ActivityEvent(
                type=ActivityType.TASK_UPDATED,
                board_id=board.id,
                board_title=board.title,
                task_id=task.id,
                task_text=task.title,
                changes=({"field": field, "old_value": old, "new_value": new},),
            ),
        )
