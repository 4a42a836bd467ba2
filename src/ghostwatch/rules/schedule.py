"""Crontab schedule parsing and due-time computation."""

from __future__ import annotations

from datetime import datetime, timedelta

from apscheduler.triggers.cron import CronTrigger

from ghostwatch.errors import ConfigurationError


def parse_schedule(expression: str | None, timezone: str = "UTC") -> CronTrigger:
    """Parse a 5-field crontab expression (e.g. ``*/15 * * * *``).

    Raises:
        ConfigurationError: if the expression is empty or malformed
    """
    if expression is None or not expression.strip():
        raise ConfigurationError("Schedule is required for SCHEDULED rules", field="schedule")
    try:
        return CronTrigger.from_crontab(expression.strip(), timezone=timezone)
    except (ValueError, TypeError) as e:
        raise ConfigurationError(
            f"Invalid schedule '{expression}': {e}", field="schedule"
        ) from e


def validate_schedule(expression: str | None, timezone: str = "UTC") -> None:
    parse_schedule(expression, timezone)


def next_fire_after(expression: str, after: datetime, timezone: str = "UTC") -> datetime | None:
    """Return the first fire time strictly after ``after``."""
    trigger = parse_schedule(expression, timezone)
    return trigger.get_next_fire_time(None, after + timedelta(microseconds=1))


def is_due(expression: str, anchor: datetime, now: datetime, timezone: str = "UTC") -> bool:
    """True when a fire time falls in ``(anchor, now]``.

    Missed periods collapse into a single due run.
    """
    next_time = next_fire_after(expression, anchor, timezone)
    return next_time is not None and next_time <= now
