"""
Quiet-hours evaluation for alert rules.

During quiet hours an alert is still created but its notifications are
suppressed. Evaluation fails open: a bad timezone or a malformed time string
is logged and treated as "not suppressed" so that it can never abort a cycle.
"""

import logging
from datetime import datetime, timezone
from typing import Tuple

import pytz

from check_engine.domain import AlertRule, SuppressionDecision

# Module logger
logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "UTC"

NOT_SUPPRESSED = SuppressionDecision(suppressed=False, reason=None)


def parse_time_of_day(value: str) -> int:
    """
    Parses "HH:MM" or "HH:MM:SS" into minutes since midnight.

    Raises:
        ValueError: If the value is not a valid time of day.
    """
    parts = value.strip().split(":")
    if len(parts) < 2:
        raise ValueError(f"Invalid time of day: {value!r}")
    hour, minute = int(parts[0]), int(parts[1])
    if not (0 <= hour < 24 and 0 <= minute < 60):
        raise ValueError(f"Invalid time of day: {value!r}")
    return hour * 60 + minute


def in_window(current: int, start: int, end: int) -> bool:
    """
    Tells whether a minute of the day falls in [start, end).

    A start after the end describes an overnight window (e.g. 22:00-08:00), in
    which case a time is inside if it is at or after the start, or before the end.
    """
    if start <= end:
        return start <= current < end
    return current >= start or current < end


def local_minute_and_day(now: datetime, timezone_name: str) -> Tuple[int, str]:
    """
    Converts an instant to the minute of the day and weekday name in a timezone.

    Raises:
        pytz.UnknownTimeZoneError: If the timezone name is unknown.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    local = now.astimezone(pytz.timezone(timezone_name))
    return local.hour * 60 + local.minute, local.strftime("%A").lower()


def is_suppressed(rule: AlertRule, now: datetime) -> SuppressionDecision:
    """
    Decides whether notifications for a fired rule are suppressed at 'now'.

    Args:
        rule: The rule that fired.
        now: The current instant.

    Returns:
        SuppressionDecision: Whether notifications are suppressed, and why.
    """
    quiet_hours = rule.quiet_hours
    if not quiet_hours.enabled or not quiet_hours.start or not quiet_hours.end:
        return NOT_SUPPRESSED

    timezone_name = quiet_hours.timezone or DEFAULT_TIMEZONE
    try:
        current, weekday = local_minute_and_day(now, timezone_name)

        if quiet_hours.days and weekday not in {day.lower() for day in quiet_hours.days}:
            return NOT_SUPPRESSED

        start = parse_time_of_day(quiet_hours.start)
        end = parse_time_of_day(quiet_hours.end)
    except (pytz.UnknownTimeZoneError, ValueError) as e:
        logger.warning(f"Error checking quiet hours for rule {rule.id}: {e!r}")
        return NOT_SUPPRESSED

    if not in_window(current, start, end):
        return NOT_SUPPRESSED

    return SuppressionDecision(
        suppressed=True,
        reason=f"Quiet hours active ({quiet_hours.start[:5]}-{quiet_hours.end[:5]} {timezone_name})",
    )
