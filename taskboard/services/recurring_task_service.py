from __future__ import annotations

from datetime import datetime

from taskboard.domain.entities import (
    ActivityEvent,
    BoardEntity,
    RecurrencePattern,
    RecurringDefinitionEntity,
    utcnow,
)
from taskboard.domain.enums import ActivityType
from taskboard.domain.errors import NotFoundError
from taskboard.infra.activity import ActivityRecorder, safe_record
from taskboard.infra.repository import TaskRepository

from .locks import BoardLocks
from .pattern_calculator import describe_pattern, next_due_date, validate_pattern
from .recurrence_scheduler import cursor_changes, instance_data


class RecurringTaskService:
    def __init__(
        self,
        repo: TaskRepository,
        activity: ActivityRecorder | None = None,
        locks: BoardLocks | None = None,
    ) -> None:
        self._repo = repo
        self._activity = activity
        self._locks = locks or BoardLocks()

    def list_for_board(self, board_id: int) -> list[RecurringDefinitionEntity]:
        return self._repo.list_recurring_definitions(board_id)

    def get(self, definition_id: int) -> RecurringDefinitionEntity:
        definition = self._repo.get_recurring_definition(definition_id)
        if not definition:
            raise NotFoundError("recurring definition", definition_id)
        return definition

    def create_recurring_task(
        self,
        board_id: int,
        template_task_id: int,
        pattern: RecurrencePattern,
        now: datetime | None = None,
        *,
        generate_first: bool = False,
    ) -> RecurringDefinitionEntity:
        validate_pattern(pattern)
        now = now or utcnow()
        board = self._require_board(board_id)
        template = self._repo.get_task(board_id, template_task_id)
        if not template:
            raise NotFoundError("task", template_task_id)

        with self._locks.hold(board_id):
            definition = self._repo.create_recurring_definition({
                "board_id": board_id,
                "template_task_id": template_task_id,
                "pattern": pattern,
                "next_due_date": next_due_date(now, pattern),
            })
            instance = None
            if generate_first:
                changes, _ = cursor_changes(definition, now)
                instance = self._repo.record_generation(
                    definition.id, definition.next_due_date, instance_data(template, definition), changes
                )

        self._record(
            board,
            ActivityType.RECURRING_CREATED,
            template_task_id,
            f"Recurring: {template.title}",
            {"field": "pattern", "old_value": None, "new_value": describe_pattern(pattern)},
        )
        if instance is None:
            return definition

        self._record(
            board,
            ActivityType.TASK_CREATED,
            instance.id,
            instance.title,
            {"field": "generated_from_recurrence", "old_value": None, "new_value": definition.id},
        )
        return self.get(definition.id)

    def update_recurring_task(
        self,
        definition_id: int,
        *,
        pattern: RecurrencePattern | None = None,
        next_due: datetime | None = None,
        is_active: bool | None = None,
    ) -> RecurringDefinitionEntity:
        if pattern is not None:
            validate_pattern(pattern)
        definition = self.get(definition_id)

        changes: dict = {}
        if pattern is not None:
            changes["pattern"] = pattern
        if next_due is not None:
            changes["next_due_date"] = next_due
        if is_active is not None:
            changes["is_active"] = is_active
        if not changes:
            return definition

        with self._locks.hold(definition.board_id):
            if not self._repo.update_recurring_definition(definition_id, changes):
                raise NotFoundError("recurring definition", definition_id)
        board = self._repo.get_board(definition.board_id)
        if board:
            self._record(
                board,
                ActivityType.RECURRING_UPDATED,
                definition.template_task_id,
                None,
                *(
                    {"field": key, "old_value": None, "new_value": _describe_change(value)}
                    for key, value in changes.items()
                ),
            )
        return self.get(definition_id)

    def toggle_active(self, definition_id: int) -> RecurringDefinitionEntity:
        definition = self.get(definition_id)
        return self.update_recurring_task(definition_id, is_active=not definition.is_active)

    def delete_recurring_task(self, definition_id: int) -> bool:
        definition = self._repo.get_recurring_definition(definition_id)
        if not definition:
            return False
        with self._locks.hold(definition.board_id):
            deleted = self._repo.delete_recurring_definition(definition_id)
        board = self._repo.get_board(definition.board_id)
        if deleted and board:
            self._record(board, ActivityType.RECURRING_DELETED, definition.template_task_id, None)
        return deleted

    def _require_board(self, board_id: int) -> BoardEntity:
        board = self._repo.get_board(board_id)
        if not board:
            raise NotFoundError("board", board_id)
        return board

    def _record(
        self,
        board: BoardEntity,
        activity_type: ActivityType,
        task_id: int | None,
        task_text: str | None,
        *changes: dict,
    ) -> None:
        safe_record(
            self._activity,
            ActivityEvent(
                type=activity_type,
                board_id=board.id,
                board_title=board.title,
                task_id=task_id,
                task_text=task_text,
                changes=changes,
            ),
        )


def _describe_change(value):
    if isinstance(value, RecurrencePattern):
        return describe_pattern(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value
