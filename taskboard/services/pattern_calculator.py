from __future__ import annotations

from calendar import monthrange
from datetime import datetime, timedelta

from taskboard.domain.entities import RecurrencePattern
from taskboard.domain.enums import WEEKDAY_NAMES, RecurrenceFrequency
from taskboard.domain.errors import InvalidPatternError


def validate_pattern(pattern: RecurrencePattern) -> None:
    """Raise InvalidPatternError if the pattern cannot be scheduled."""
    if not isinstance(pattern.frequency, RecurrenceFrequency):
        raise InvalidPatternError(f"unknown frequency: {pattern.frequency!r}")
    if isinstance(pattern.interval, bool) or not isinstance(pattern.interval, int):
        raise InvalidPatternError(f"interval must be an integer, got {pattern.interval!r}")
    if pattern.interval < 1:
        raise InvalidPatternError(f"interval must be >= 1, got {pattern.interval}")
    if pattern.day_of_month is not None and not 1 <= pattern.day_of_month <= 31:
        raise InvalidPatternError(f"day_of_month must be within 1-31, got {pattern.day_of_month}")
    invalid_days = sorted(day for day in pattern.days_of_week if not 0 <= day <= 6)
    if invalid_days:
        raise InvalidPatternError(f"days_of_week must be within 0-6, got {invalid_days}")


def next_due_date(from_: datetime, pattern: RecurrencePattern) -> datetime:
    # Results past pattern.end_date are clamped to the end date itself.
    validate_pattern(pattern)
    interval = pattern.interval
    frequency = pattern.frequency

    if frequency == RecurrenceFrequency.WEEKLY:
        if pattern.days_of_week:
            result = _next_listed_weekday(from_, pattern.days_of_week)
        else:
            result = from_ + timedelta(weeks=interval)
    elif frequency == RecurrenceFrequency.MONTHLY:
        result = _add_months(from_, interval, pattern.day_of_month)
    elif frequency == RecurrenceFrequency.YEARLY:
        result = _add_months(from_, 12 * interval)
    else:
        # daily and custom both step in days
        result = from_ + timedelta(days=interval)

    if pattern.end_date and result > pattern.end_date:
        return pattern.end_date
    return result


def board_weekday(value: datetime) -> int:
    return (value.weekday() + 1) % 7


def _next_listed_weekday(from_: datetime, days_of_week: frozenset[int]) -> datetime:
    current = board_weekday(from_)
    sorted_days = sorted(days_of_week)
    upcoming = next((day for day in sorted_days if day > current), None)
    if upcoming is not None:
        days_to_add = upcoming - current
    else:
        days_to_add = 7 - current + sorted_days[0]
    return from_ + timedelta(days=days_to_add)


def _add_months(base: datetime, months: int, day: int | None = None) -> datetime:
    year = base.year + (base.month - 1 + months) // 12
    month = (base.month - 1 + months) % 12 + 1
    target_day = min(day or base.day, _days_in_month(year, month))
    return base.replace(year=year, month=month, day=target_day)


def _days_in_month(year: int, month: int) -> int:
    return monthrange(year, month)[1]


def describe_pattern(pattern: RecurrencePattern) -> str:
    frequency = pattern.frequency
    interval = pattern.interval

    if frequency == RecurrenceFrequency.DAILY:
        return "Daily" if interval == 1 else f"Every {interval} days"
    if frequency == RecurrenceFrequency.WEEKLY:
        if pattern.days_of_week:
            days = ", ".join(WEEKDAY_NAMES[day] for day in sorted(pattern.days_of_week))
            return f"Weekly on {days}" if interval == 1 else f"Every {interval} weeks on {days}"
        return "Weekly" if interval == 1 else f"Every {interval} weeks"
    if frequency == RecurrenceFrequency.MONTHLY:
        if pattern.day_of_month:
            if interval == 1:
                return f"Monthly on day {pattern.day_of_month}"
            return f"Every {interval} months on day {pattern.day_of_month}"
        return "Monthly" if interval == 1 else f"Every {interval} months"
    if frequency == RecurrenceFrequency.YEARLY:
        return "Yearly" if interval == 1 else f"Every {interval} years"
    return f"Every {interval} days"
