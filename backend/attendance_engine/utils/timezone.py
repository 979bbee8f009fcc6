# File: backend/attendance_engine/utils/timezone.py
"""Local wall-clock helpers.

Slot times are wall-clock values in the activity's time zone, so the engine
compares naive local datetimes. Aware instants are converted first.
"""
from datetime import datetime, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo

DEFAULT_TIMEZONE = 'Asia/Ho_Chi_Minh'


def local_now(tz_name: str = DEFAULT_TIMEZONE) -> datetime:
    """Current wall-clock time in the given zone, without tzinfo."""
    return datetime.now(ZoneInfo(tz_name)).replace(tzinfo=None)


def to_local(instant: datetime, tz_name: str = DEFAULT_TIMEZONE) -> datetime:
    """Convert an aware instant to naive local time; naive values pass through."""
    if instant.tzinfo is None:
        return instant
    return instant.astimezone(ZoneInfo(tz_name)).replace(tzinfo=None)


def parse_instant(value: Any, tz_name: str = DEFAULT_TIMEZONE) -> Optional[datetime]:
    """Parse an ISO-8601 instant (or {"$date": ...}) into naive local time."""
    if isinstance(value, datetime):
        return to_local(value, tz_name)
    if isinstance(value, dict) and '$date' in value:
        return parse_instant(value['$date'], tz_name)
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace('Z', '+00:00'))
    except ValueError:
        return None
    return to_local(parsed, tz_name)


def to_utc_iso(local: datetime, tz_name: str = DEFAULT_TIMEZONE) -> str:
    """ISO-8601 UTC string ("...Z") for a naive local wall-clock time."""
    if local.tzinfo is None:
        local = local.replace(tzinfo=ZoneInfo(tz_name))
    return local.astimezone(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')
