from __future__ import annotations

from enum import StrEnum


class RecurrenceFrequency(StrEnum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"
    CUSTOM = "custom"


class ActivityType(StrEnum):
    TASK_CREATED = "task_created"
    TASK_UPDATED = "task_updated"
    RECURRING_CREATED = "recurring_created"
    RECURRING_UPDATED = "recurring_updated"
    RECURRING_DELETED = "recurring_deleted"


# 0 = Sunday, matching the board's weekday numbering
WEEKDAY_NAMES = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")
