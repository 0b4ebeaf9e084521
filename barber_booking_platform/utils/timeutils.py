"""
Timezone helpers. All scheduling arithmetic happens on aware UTC datetimes.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Interpret naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def humanize_until(target: datetime, now: datetime) -> str:
    """Format the distance to a future instant as days, hours or minutes."""
    seconds = (ensure_utc(target) - ensure_utc(now)).total_seconds()
    hours = seconds / 3600
    if hours >= 24:
        return f"{int(hours // 24)} days"
    if hours >= 1:
        return f"{round(hours)} hours"
    return f"{round(seconds / 60)} minutes"
