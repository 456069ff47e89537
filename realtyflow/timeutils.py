"""Time helpers shared by the slot generator, the booking flow and the models.

Datetimes are stored naive-UTC in the database; everything above the
persistence layer works with timezone-aware values.
"""

from datetime import datetime, time, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def utcnow() -> datetime:
    """Naive UTC "now", the storage convention for DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def aware_now() -> datetime:
    return datetime.now(timezone.utc)


def to_utc_naive(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC. Naive input is assumed to be UTC already."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def from_utc_naive(value: datetime) -> datetime:
    """Attach UTC to a naive datetime loaded from the database."""
    if value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def get_zone(name: Optional[str], default: str = "UTC") -> ZoneInfo:
    """Resolve an IANA zone name, falling back to `default` for unknown names."""
    try:
        return ZoneInfo(name or default)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo(default)


def parse_hhmm(value: Optional[str]) -> Optional[time]:
    """Parse "HH:MM" into a time. Returns None for anything malformed."""
    if not value or not isinstance(value, str):
        return None
    parts = value.strip().split(":")
    if len(parts) != 2:
        return None
    try:
        hour, minute = int(parts[0]), int(parts[1])
    except ValueError:
        return None
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        return None
    return time(hour, minute)


def parse_datetime(value, tz_name: Optional[str] = None) -> Optional[datetime]:
    """Parse an ISO-8601 string (or pass through a datetime) into an aware datetime.

    Naive values are interpreted in `tz_name` (UTC when not given).
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=get_zone(tz_name))
    return parsed
