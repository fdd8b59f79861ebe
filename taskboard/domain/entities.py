from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from .enums import ActivityType, RecurrenceFrequency
from .errors import InvalidPatternError


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _as_int(value: Any, name: str) -> int:
    # Whole numbers only; bools and fractional floats are rejected.
    if isinstance(value, bool):
        raise InvalidPatternError(f"{name} must be an integer, got {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and re.fullmatch(r"\s*[+-]?\d+\s*", value):
        return int(value)
    raise InvalidPatternError(f"{name} must be an integer, got {value!r}")


@dataclass(frozen=True)
class BoardEntity:
    id: int | None
    title: str
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class SubtaskEntity:
    id: int | None
    title: str
    completed: bool = False
    sort_order: int = 0


@dataclass(frozen=True)
class TaskEntity:
    id: int | None
    board_id: int
    title: str
    description: str
    completed: bool
    priority: int
    due_date: Optional[datetime]
    tags: tuple[str, ...]
    created_at: datetime
    updated_at: datetime
    color: str | None = None
    progress: int = 0
    sort_order: int = 0
    subtasks: tuple[SubtaskEntity, ...] = ()
    dependencies: frozenset[int] = frozenset()
    recurring_definition_id: int | None = None


@dataclass(frozen=True)
class RecurrencePattern:
    frequency: RecurrenceFrequency
    interval: int = 1
    days_of_week: frozenset[int] = frozenset()
    day_of_month: int | None = None
    end_date: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "frequency": self.frequency.value,
            "interval": self.interval,
            "days_of_week": sorted(self.days_of_week),
            "day_of_month": self.day_of_month,
            "end_date": self.end_date.isoformat() if self.end_date else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RecurrencePattern":
        if not isinstance(data, dict):
            raise InvalidPatternError(f"pattern must be an object, got {data!r}")
        try:
            frequency = RecurrenceFrequency(data["frequency"])
        except KeyError as exc:
            raise InvalidPatternError("pattern has no frequency") from exc
        except ValueError as exc:
            raise InvalidPatternError(f"unknown frequency {data['frequency']!r}") from exc

        end_date = data.get("end_date")
        if isinstance(end_date, str):
            try:
                end_date = datetime.fromisoformat(end_date)
            except ValueError as exc:
                raise InvalidPatternError(f"end_date {end_date!r} is not an ISO timestamp") from exc
        elif end_date is not None and not isinstance(end_date, datetime):
            raise InvalidPatternError(f"end_date {end_date!r} is not an ISO timestamp")

        days = data.get("days_of_week") or ()
        if not isinstance(days, (list, tuple, set, frozenset)):
            raise InvalidPatternError(f"days_of_week must be a list, got {days!r}")
        day_of_month = data.get("day_of_month")
        return cls(
            frequency=frequency,
            interval=_as_int(data.get("interval", 1), "interval"),
            days_of_week=frozenset(_as_int(day, "days_of_week") for day in days),
            day_of_month=None if day_of_month is None else _as_int(day_of_month, "day_of_month"),
            end_date=end_date,
        )


@dataclass(frozen=True)
class RecurringDefinitionEntity:
    id: int | None
    board_id: int
    template_task_id: int
    pattern: RecurrencePattern
    next_due_date: datetime
    last_generated_at: Optional[datetime]
    is_active: bool
    created_at: datetime


@dataclass(frozen=True)
class DependencyEdge:
    board_id: int
    task_id: int
    depends_on_id: int
    created: bool = True


@dataclass(frozen=True)
class BlockedTask:
    board_id: int
    board_title: str
    task: TaskEntity
    blocking_tasks: tuple[TaskEntity, ...]


@dataclass(frozen=True)
class DependencyChain:
    task: TaskEntity
    dependencies: tuple[TaskEntity, ...]
    blockers: tuple[TaskEntity, ...]


@dataclass(frozen=True)
class ActivityEvent:
    type: ActivityType
    board_id: int
    board_title: str
    task_id: int | None = None
    task_text: str | None = None
    changes: tuple[dict[str, Any], ...] = ()
    timestamp: datetime = field(default_factory=utcnow)
