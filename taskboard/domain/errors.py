from __future__ import annotations


class TaskboardError(Exception):
    pass


class InvalidPatternError(TaskboardError):
    pass


class NotFoundError(TaskboardError):
    def __init__(self, kind: str, identifier: object) -> None:
        super().__init__(f"{kind} {identifier} not found")
        self.kind = kind
        self.identifier = identifier


class StorageError(TaskboardError):
    pass


class DependencyError(TaskboardError):
    pass


class CircularDependencyError(DependencyError):
    def __init__(self, task_id: int, depends_on_id: int) -> None:
        super().__init__(
            f"task {task_id} cannot depend on {depends_on_id}: "
            f"{depends_on_id} already depends on {task_id}"
        )
        self.task_id = task_id
        self.depends_on_id = depends_on_id
