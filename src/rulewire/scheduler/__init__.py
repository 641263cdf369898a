"""Cron scheduling of rules."""

from rulewire.scheduler.cron import (
    SCHEDULE_TIMEZONE,
    is_valid_cron,
    next_fire_times,
    parse_cron,
    preview_cron,
    translate_day_of_week,
)
from rulewire.scheduler.rule_scheduler import RuleScheduler, ScheduledJob

__all__ = [
    "SCHEDULE_TIMEZONE",
    "RuleScheduler",
    "ScheduledJob",
    "is_valid_cron",
    "next_fire_times",
    "parse_cron",
    "preview_cron",
    "translate_day_of_week",
]
