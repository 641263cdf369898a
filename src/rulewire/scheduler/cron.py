"""Six-field cron expressions on top of APScheduler's CronTrigger.

Field order is ``second minute hour day month day_of_week``. Day-of-week
numbers follow cron (0 and 7 are Sunday); APScheduler numbers Monday as 0,
so numeric values are rewritten to day names before building the trigger.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime, timedelta
from typing import Any

from apscheduler.triggers.cron import CronTrigger

from rulewire.errors import InvalidCronExpressionError

SCHEDULE_TIMEZONE = "UTC"

_CRON_DAYS = ["sun", "mon", "tue", "wed", "thu", "fri", "sat"]
_DOW_NUMERIC_RE = re.compile(r"^(\*|\d+)(?:-(\d+))?(?:/(\d+))?$")


def translate_day_of_week(field: str) -> str:
    """Rewrite cron day-of-week numbers as APScheduler day names.

    ``"1-5"`` becomes ``"mon,tue,wed,thu,fri"`` and ``"0,6"`` becomes
    ``"sun,sat"``. Named days pass through unchanged.
    """
    if field == "*":
        return field

    parts = []
    for part in field.split(","):
        match = _DOW_NUMERIC_RE.match(part)
        if not match:
            parts.append(part.lower())
            continue

        start, end, step = match.groups()
        if start == "*":
            if end is not None:
                raise ValueError(f"Invalid day-of-week range: {part}")
            low, high = 0, 6
        else:
            low = int(start)
            high = int(end) if end is not None else (6 if step else low)
        step_size = int(step) if step else 1

        if not (0 <= low <= 7 and 0 <= high <= 7):
            raise ValueError(f"Day-of-week value out of range (0-7): {part}")
        if low > high:
            raise ValueError(f"Invalid day-of-week range: {part}")
        if step_size < 1:
            raise ValueError(f"Invalid day-of-week step: {part}")

        for value in range(low, high + 1, step_size):
            name = _CRON_DAYS[value % 7]
            if name not in parts:
                parts.append(name)

    return ",".join(parts)


def parse_cron(expression: str, timezone: Any = SCHEDULE_TIMEZONE) -> CronTrigger:
    """Build a CronTrigger from a six-field expression.

    Raises:
        InvalidCronExpressionError: wrong field count or an invalid field
    """
    if not isinstance(expression, str):
        raise InvalidCronExpressionError(str(expression), "expression must be a string")

    fields = expression.split()
    if len(fields) != 6:
        raise InvalidCronExpressionError(expression, f"expected 6 fields, got {len(fields)}")

    second, minute, hour, day, month, day_of_week = fields
    try:
        return CronTrigger(
            second=second,
            minute=minute,
            hour=hour,
            day=day,
            month=month,
            day_of_week=translate_day_of_week(day_of_week),
            timezone=timezone,
        )
    except ValueError as e:
        raise InvalidCronExpressionError(expression, str(e)) from e


def is_valid_cron(expression: str) -> bool:
    try:
        parse_cron(expression)
    except InvalidCronExpressionError:
        return False
    return True


def next_fire_times(
    expression: str, count: int = 5, now: datetime | None = None
) -> list[datetime]:
    """Compute upcoming fire times, strictly after ``now``, without registering a job."""
    trigger = parse_cron(expression)
    current = now or datetime.now(UTC)

    fire_times: list[datetime] = []
    # A time equal to now is not upcoming
    fire_time = trigger.get_next_fire_time(None, current + timedelta(microseconds=1))
    while fire_time is not None and len(fire_times) < count:
        fire_times.append(fire_time)
        fire_time = trigger.get_next_fire_time(fire_time, fire_time)
    return fire_times


def preview_cron(expression: str, count: int = 5, now: datetime | None = None) -> dict[str, Any]:
    """Validate an expression and preview its next ``count`` fire times.

    Returns ``{"valid": True, "next_executions": [...]}`` with ISO-8601
    timestamps, or ``{"valid": False, "error": ...}``.
    """
    try:
        fire_times = next_fire_times(expression, count=count, now=now)
    except InvalidCronExpressionError as e:
        return {"valid": False, "error": e.message}
    return {"valid": True, "next_executions": [t.isoformat() for t in fire_times]}
