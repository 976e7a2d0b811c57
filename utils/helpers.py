"""
============================================================================
DOMAIN HEALTH MONITOR - HELPERS UTILITY
============================================================================
Time helpers shared by the check orchestrators and the alert composer.

Day arithmetic is anchored to local midnight in the configured timezone,
so every call made during the same calendar day yields the same count.
============================================================================
"""

import math
from datetime import datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo


SECONDS_PER_DAY = 86400


# ============================================================================
# TIME UTILITIES
# ============================================================================

def utc_now() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def ensure_aware(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def local_midnight(now: Optional[datetime] = None, tz: str = "UTC") -> datetime:
    """
    Start of the current calendar day in ``tz``.

    Args:
        now: Reference instant (defaults to the current time)
        tz: IANA timezone name

    Returns:
        Aware datetime at 00:00 local time
    """
    zone = ZoneInfo(tz)
    local_now = ensure_aware(now or utc_now()).astimezone(zone)
    return datetime(local_now.year, local_now.month, local_now.day, tzinfo=zone)


def days_remaining(
    expiry: datetime,
    now: Optional[datetime] = None,
    tz: str = "UTC"
) -> int:
    """
    Whole days between local midnight today and ``expiry``, rounded up.

    Negative once the date has passed; 0 when it falls exactly on
    today's midnight.
    """
    delta = ensure_aware(expiry) - local_midnight(now, tz)
    return math.ceil(delta.total_seconds() / SECONDS_PER_DAY)


def add_days(now: datetime, days: int) -> datetime:
    return ensure_aware(now) + timedelta(days=days)


def format_timestamp(dt: datetime, tz: str = "UTC", fmt: str = "%Y-%m-%d %H:%M:%S %Z") -> str:
    """Render an instant in the configured timezone."""
    return ensure_aware(dt).astimezone(ZoneInfo(tz)).strftime(fmt)


def seconds_to_human_readable(seconds: float) -> str:
    """
    Convert seconds to human-readable format.

    Args:
        seconds: Number of seconds

    Returns:
        Human-readable string (e.g., "2h 30m 15s")
    """
    seconds = int(seconds)
    if seconds < 0:
        return "0s"

    days, remainder = divmod(seconds, 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes, secs = divmod(remainder, 60)

    parts = []
    if days > 0:
        parts.append(f"{days}d")
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    if secs > 0 or not parts:
        parts.append(f"{secs}s")

    return " ".join(parts)


def mask_secret(value: Optional[str], visible: int = 4) -> Optional[str]:
    """Show only the first characters of a credential."""
    if not value:
        return None
    if len(value) <= visible:
        return "*" * len(value)
    return value[:visible] + "*" * (len(value) - visible)
