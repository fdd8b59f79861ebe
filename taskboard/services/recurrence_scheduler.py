from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime

from taskboard.config import SETTINGS
from taskboard.domain.entities import (
    ActivityEvent,
    RecurringDefinitionEntity,
    TaskEntity,
    utcnow,
)
from taskboard.domain.enums import ActivityType
from taskboard.domain.errors import NotFoundError, TaskboardError
from taskboard.infra.activity import ActivityRecorder, safe_record
from taskboard.infra.repository import TaskRepository

from .locks import BoardLocks
from .pattern_calculator import next_due_date

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DefinitionIssue:
    definition_id: int
    board_id: int
    reason: str


@dataclass
class GenerationSummary:
    generated: list[TaskEntity] = field(default_factory=list)
    skipped: list[DefinitionIssue] = field(default_factory=list)
    failed: list[DefinitionIssue] = field(default_factory=list)
    deferred: list[int] = field(default_factory=list)
    deactivated: list[int] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.generated)

    @property
    def partial_failure(self) -> bool:
        return bool(self.failed or self.skipped or self.deferred)

    def merge(self, other: "GenerationSummary") -> None:
        self.generated.extend(other.generated)
        self.skipped.extend(other.skipped)
        self.failed.extend(other.failed)
        self.deferred.extend(other.deferred)
        self.deactivated.extend(other.deactivated)


class RecurrenceScheduler:
    def __init__(
        self,
        repo: TaskRepository,
        activity: ActivityRecorder | None = None,
        locks: BoardLocks | None = None,
        *,
        max_workers: int | None = None,
        deadline_seconds: float | None = None,
        clock=time.monotonic,
    ) -> None:
        self._repo = repo
        self._activity = activity
        self._locks = locks or BoardLocks()
        self._max_workers = max_workers or SETTINGS.scheduler_max_workers
        self._deadline_seconds = (
            SETTINGS.scheduler_pass_deadline_seconds if deadline_seconds is None else deadline_seconds
        )
        self._clock = clock

    def generate_due_tasks(self, now: datetime | None = None) -> GenerationSummary:
        now = now or utcnow()
        started = self._clock()
        summary = GenerationSummary()

        due_by_board: dict[int, list[int]] = {}
        for definition_id, board_id in self._repo.list_due_recurring_refs(now):
            due_by_board.setdefault(board_id, []).append(definition_id)
        if not due_by_board:
            return summary

        if self._max_workers <= 1 or len(due_by_board) == 1:
            for board_id, definition_ids in due_by_board.items():
                summary.merge(self._process_board(board_id, definition_ids, now, started))
        else:
            workers = min(self._max_workers, len(due_by_board))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="recurrence-board") as pool:
                futures = [
                    pool.submit(self._process_board, board_id, definition_ids, now, started)
                    for board_id, definition_ids in due_by_board.items()
                ]
                for future in futures:
                    summary.merge(future.result())

        logger.info(
            "Generation pass: %s generated, %s skipped, %s failed, %s deferred",
            summary.count,
            len(summary.skipped),
            len(summary.failed),
            len(summary.deferred),
        )
        return summary

    def run_periodically(self, stop: threading.Event, interval: float | None = None) -> None:
        """Run a generation pass every ``interval`` seconds until ``stop`` is set."""
        interval = interval or SETTINGS.scheduler_tick_seconds
        while not stop.is_set():
            try:
                self.generate_due_tasks()
            except TaskboardError:
                logger.error("Generation pass aborted, retrying next tick", exc_info=True)
            stop.wait(interval)

    def _deadline_passed(self, started: float) -> bool:
        if self._deadline_seconds <= 0:
            return False
        return self._clock() - started >= self._deadline_seconds

    def _process_board(
        self, board_id: int, definition_ids: list[int], now: datetime, started: float
    ) -> GenerationSummary:
        summary = GenerationSummary()
        with self._locks.hold(board_id):
            for definition_id in definition_ids:
                if self._deadline_passed(started):
                    logger.warning("Pass deadline reached, deferring definition %s", definition_id)
                    summary.deferred.append(definition_id)
                    continue
                try:
                    self._process_definition(definition_id, now, summary)
                except NotFoundError as exc:
                    logger.warning("Skipping recurring definition %s: %s", definition_id, exc)
                    summary.skipped.append(DefinitionIssue(definition_id, board_id, str(exc)))
                except TaskboardError as exc:
                    logger.error(
                        "Recurring definition %s failed, retrying next tick",
                        definition_id,
                        exc_info=True,
                    )
                    summary.failed.append(DefinitionIssue(definition_id, board_id, str(exc)))
        return summary

    def _process_definition(self, definition_id: int, now: datetime, summary: GenerationSummary) -> None:
        # Re-read under the board lock; the store rejects a cursor that moved since.
        definition = self._repo.get_recurring_definition(definition_id)
        if not definition or not definition.is_active or definition.next_due_date > now:
            return

        board = self._repo.get_board(definition.board_id)
        if not board:
            raise NotFoundError("board", definition.board_id)

        pattern = definition.pattern
        if pattern.end_date and definition.next_due_date > pattern.end_date:
            self._repo.update_recurring_definition(definition_id, {"is_active": False})
            summary.deactivated.append(definition_id)
            logger.info("Recurring definition %s is past its end date, deactivated", definition_id)
            return

        template = self._repo.get_task(definition.board_id, definition.template_task_id)
        if not template:
            raise NotFoundError("template task", definition.template_task_id)

        changes, exhausted = cursor_changes(definition, now)
        instance = self._repo.record_generation(
            definition_id, definition.next_due_date, instance_data(template, definition), changes
        )
        if instance is None:
            return
        summary.generated.append(instance)
        if exhausted:
            summary.deactivated.append(definition_id)
            logger.info("Recurring definition %s reached its end date, deactivated", definition_id)

        safe_record(
            self._activity,
            ActivityEvent(
                type=ActivityType.TASK_CREATED,
                board_id=board.id,
                board_title=board.title,
                task_id=instance.id,
                task_text=instance.title,
                changes=(
                    {
                        "field": "generated_from_recurrence",
                        "old_value": None,
                        "new_value": definition_id,
                    },
                ),
            ),
        )


def cursor_changes(definition: RecurringDefinitionEntity, now: datetime) -> tuple[dict, bool]:
    """Definition changes for generating the occurrence at its current cursor.

    The second item is True when that occurrence is the last one before the
    pattern's end date.
    """
    pattern = definition.pattern
    exhausted = pattern.end_date is not None and definition.next_due_date >= pattern.end_date
    changes: dict = {"last_generated_at": now}
    if exhausted:
        changes["is_active"] = False
    else:
        changes["next_due_date"] = next_due_date(definition.next_due_date, pattern)
    return changes, exhausted


def instance_data(template: TaskEntity, definition: RecurringDefinitionEntity) -> dict:
    return {
        "title": template.title,
        "description": template.description,
        "completed": False,
        "priority": template.priority,
        "due_date": definition.next_due_date,
        "tags": template.tags,
        "color": template.color,
        "progress": 0,
        "subtasks": [
            {"title": subtask.title, "completed": False, "sort_order": subtask.sort_order}
            for subtask in template.subtasks
        ],
        "recurring_definition_id": definition.id,
    }
