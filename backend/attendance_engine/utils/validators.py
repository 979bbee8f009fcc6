# File: backend/attendance_engine/utils/validators.py
"""Validation and lenient parsing utilities."""
import re
from datetime import date, datetime, time
from typing import Any, Dict, List, Optional

from attendance_engine.utils.timezone import DEFAULT_TIMEZONE, to_local

TIME_OF_DAY_PATTERN = re.compile(r'^\s*(\d{1,2}):(\d{2})\s*$')


class ValidationError(Exception):
    """Custom validation error."""
    pass


class Validator:
    """Validation helper class."""

    @staticmethod
    def validate_coordinates(latitude: Any, longitude: Any) -> bool:
        """Check that a latitude/longitude pair is numeric and in range."""
        try:
            lat = float(latitude)
            lng = float(longitude)
        except (TypeError, ValueError):
            return False
        if lat != lat or lng != lng:  # NaN
            return False
        return -90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0

    @staticmethod
    def parse_flag(value: Any, default: bool = True) -> bool:
        """Boolean from JSON; strings such as "false" or "0" count as False."""
        if value is None:
            return default
        if isinstance(value, str):
            return value.strip().lower() not in ('false', '0', 'no', 'off', '')
        return bool(value)

    @staticmethod
    def parse_time_of_day(value: Any) -> Optional[time]:
        """Parse a wall-clock "HH:MM" string, returning None when malformed."""
        if isinstance(value, time):
            return value
        if not isinstance(value, str):
            return None
        match = TIME_OF_DAY_PATTERN.match(value)
        if not match:
            return None
        hours, minutes = int(match.group(1)), int(match.group(2))
        if hours > 23 or minutes > 59:
            return None
        return time(hours, minutes)

    @staticmethod
    def parse_calendar_date(value: Any, tz_name: str = DEFAULT_TIMEZONE) -> Optional[date]:
        """Parse the calendar date formats the backend emits.

        Accepts date/datetime objects, ISO dates and datetimes,
        DD/MM/YYYY and Mongo-style {"$date": ...} wrappers. Aware datetimes
        give the local calendar date in tz_name.
        """
        if isinstance(value, datetime):
            return to_local(value, tz_name).date()
        if isinstance(value, date):
            return value
        if isinstance(value, dict) and '$date' in value:
            return Validator.parse_calendar_date(value['$date'], tz_name)
        if not isinstance(value, str) or not value.strip():
            return None

        text = value.strip()
        try:
            return to_local(datetime.fromisoformat(text.replace('Z', '+00:00')), tz_name).date()
        except ValueError:
            pass
        for fmt in ('%Y-%m-%d', '%d/%m/%Y', '%d-%m-%Y', '%Y/%m/%d'):
            try:
                return datetime.strptime(text[:10], fmt).date()
            except ValueError:
                continue
        return None

    @staticmethod
    def validate_required_fields(data: Dict, required_fields: List[str]) -> Dict[str, Any]:
        """Validate required fields in data."""
        errors = []

        for field in required_fields:
            if field not in data or data[field] in (None, ''):
                errors.append(f"{field} is required")

        return {
            "is_valid": len(errors) == 0,
            "errors": errors
        }
