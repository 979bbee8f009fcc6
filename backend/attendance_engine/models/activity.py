# File: backend/attendance_engine/models/activity.py
"""Activity, time slot and location models."""
import logging
import unicodedata
from dataclasses import dataclass, field
from datetime import date, time
from enum import Enum
from typing import Any, Dict, List, Optional

from attendance_engine.models.base import BaseModel
from attendance_engine.utils.validators import Validator

logger = logging.getLogger(__name__)

DEFAULT_RADIUS_METERS = 200


class ActivityType(Enum):
    """Activity kinds."""
    SINGLE_DAY = "single_day"
    MULTIPLE_DAYS = "multiple_days"

    @classmethod
    def parse(cls, value: Any) -> 'ActivityType':
        if isinstance(value, cls):
            return value
        text = str(value or '').strip().lower().replace('-', '_')
        if text in ('multiple_days', 'multi_day', 'multiple_day', 'multi_days'):
            return cls.MULTIPLE_DAYS
        return cls.SINGLE_DAY


class SlotKey(Enum):
    """Named periods of a day, in chronological order."""
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"

    @property
    def label(self) -> str:
        return SLOT_LABELS[self]

    @property
    def order(self) -> int:
        return list(type(self)).index(self)

    @classmethod
    def parse(cls, value: Any) -> Optional['SlotKey']:
        """Map a slot key or label ("Buổi Sáng", "morning", ...) to a SlotKey."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        text = unicodedata.normalize('NFC', value).strip().lower()
        if not text:
            return None
        for key in cls:
            if text == key.value or text == key.label.lower():
                return key
        for key, hints in SLOT_HINTS.items():
            if any(hint in text for hint in hints):
                return key
        return None


SLOT_LABELS = {
    SlotKey.MORNING: 'Buổi Sáng',
    SlotKey.AFTERNOON: 'Buổi Chiều',
    SlotKey.EVENING: 'Buổi Tối',
}

SLOT_HINTS = {
    SlotKey.MORNING: ('sáng', 'morning'),
    SlotKey.AFTERNOON: ('chiều', 'afternoon'),
    SlotKey.EVENING: ('tối', 'evening'),
}


class LocationSource(Enum):
    """Which precedence level a resolved location came from."""
    DAY_SLOT = "day_slot"
    DAY = "day"
    SLOT = "slot"
    GLOBAL = "global"


@dataclass(frozen=True)
class LocationSpec(BaseModel):
    """Geofence centre and radius."""
    latitude: float
    longitude: float
    radius_meters: float = DEFAULT_RADIUS_METERS
    address: Optional[str] = None

    @classmethod
    def build(
        cls,
        latitude: Any,
        longitude: Any,
        radius: Any = None,
        address: Any = None,
        default_radius: float = DEFAULT_RADIUS_METERS
    ) -> Optional['LocationSpec']:
        """Build a location, or None when the coordinates are unusable."""
        if not Validator.validate_coordinates(latitude, longitude):
            return None
        try:
            radius_value = float(radius) if radius not in (None, '') else default_radius
        except (TypeError, ValueError):
            radius_value = default_radius
        if not radius_value or radius_value != radius_value or radius_value <= 0:
            radius_value = default_radius
        address_text = address.strip() if isinstance(address, str) and address.strip() else None
        return cls(
            latitude=float(latitude),
            longitude=float(longitude),
            radius_meters=radius_value,
            address=address_text
        )

    @classmethod
    def from_dict(cls, raw: Any, default_radius: float = DEFAULT_RADIUS_METERS) -> Optional['LocationSpec']:
        """Accept {lat, lng, address, radius} or {location: {...}, radius}."""
        if not isinstance(raw, dict):
            return None
        nested = raw.get('location') if isinstance(raw.get('location'), dict) else {}
        return cls.build(
            raw.get('lat', nested.get('lat')),
            raw.get('lng', nested.get('lng')),
            raw.get('radius', nested.get('radius')),
            raw.get('address', nested.get('address')),
            default_radius=default_radius
        )


@dataclass(frozen=True)
class ResolvedLocation(BaseModel):
    """The single location that applies to a check-in context."""
    spec: LocationSpec
    source: LocationSource


@dataclass
class TimeSlot(BaseModel):
    """A single-day activity slot."""
    name: str
    slot_key: SlotKey
    start_time: time
    end_time: time
    is_active: bool = True
    description: Optional[str] = None
    detailed_location: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: Any) -> Optional['TimeSlot']:
        if not isinstance(raw, dict):
            return None
        name = raw.get('name') or ''
        slot_key = SlotKey.parse(raw.get('slotKey')) or SlotKey.parse(name)
        start = Validator.parse_time_of_day(raw.get('startTime'))
        end = Validator.parse_time_of_day(raw.get('endTime'))
        if slot_key is None or start is None or end is None:
            logger.debug("Dropping time slot %r: unrecognised name or times", raw)
            return None
        detailed = raw.get('detailedLocation')
        return cls(
            name=name or slot_key.label,
            slot_key=slot_key,
            start_time=start,
            end_time=end,
            is_active=Validator.parse_flag(raw.get('isActive')),
            description=raw.get('activities') or None,
            detailed_location=detailed if isinstance(detailed, str) and detailed else None
        )


@dataclass
class RawScheduleEntry(BaseModel):
    """One day of a multi-day schedule, before parsing its free text."""
    day_number: int
    calendar_date: Optional[date]
    activities: str = ''


@dataclass
class Activity(BaseModel):
    """Activity definition as supplied by the registration source."""
    id: str
    name: str
    activity_type: ActivityType
    activity_date: Optional[date] = None
    time_slots: List[TimeSlot] = field(default_factory=list)
    location: Optional[LocationSpec] = None
    slot_locations: Dict[SlotKey, LocationSpec] = field(default_factory=dict)
    schedule_entries: List[RawScheduleEntry] = field(default_factory=list)
    daily_locations: Dict[int, LocationSpec] = field(default_factory=dict)
    day_slot_locations: Dict[int, Dict[SlotKey, LocationSpec]] = field(default_factory=dict)

    @property
    def is_multi_day(self) -> bool:
        return self.activity_type == ActivityType.MULTIPLE_DAYS

    @classmethod
    def from_dict(cls, raw: Dict[str, Any], default_radius: float = DEFAULT_RADIUS_METERS) -> 'Activity':
        """Build an activity from the backend's camelCase document."""
        activity_id = raw.get('_id') or raw.get('id') or ''
        if isinstance(activity_id, dict):
            activity_id = activity_id.get('$oid', '')

        time_slots = []
        for slot_raw in raw.get('timeSlots') or []:
            slot = TimeSlot.from_dict(slot_raw)
            if slot is not None:
                time_slots.append(slot)

        slot_locations = {}
        for item in raw.get('multiTimeLocations') or []:
            if not isinstance(item, dict):
                continue
            slot_key = SlotKey.parse(item.get('timeSlot'))
            spec = LocationSpec.from_dict(item, default_radius)
            if slot_key is not None and spec is not None and slot_key not in slot_locations:
                slot_locations[slot_key] = spec

        schedule_entries = []
        for index, entry in enumerate(raw.get('schedule') or []):
            if not isinstance(entry, dict):
                continue
            try:
                day_number = int(entry.get('day') or index + 1)
            except (TypeError, ValueError, OverflowError):
                day_number = index + 1
            activities = entry.get('activities')
            schedule_entries.append(RawScheduleEntry(
                day_number=day_number,
                calendar_date=Validator.parse_calendar_date(entry.get('date')),
                activities=activities if isinstance(activities, str) else ''
            ))

        return cls(
            id=str(activity_id),
            name=raw.get('name') or '',
            activity_type=ActivityType.parse(raw.get('type')),
            activity_date=Validator.parse_calendar_date(raw.get('date')),
            time_slots=time_slots,
            location=LocationSpec.from_dict(raw.get('locationData'), default_radius),
            slot_locations=slot_locations,
            schedule_entries=schedule_entries,
            daily_locations=_parse_day_map(raw.get('dailyLocations'), default_radius),
            day_slot_locations=_parse_day_slot_map(raw.get('weeklySlotLocations'), default_radius)
        )


def _parse_day_number(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return None


def _parse_day_map(raw: Any, default_radius: float) -> Dict[int, LocationSpec]:
    result = {}
    if not isinstance(raw, dict):
        return result
    for day, value in raw.items():
        day_number = _parse_day_number(day)
        spec = LocationSpec.from_dict(value, default_radius)
        if day_number is not None and spec is not None:
            result[day_number] = spec
    return result


def _parse_day_slot_map(raw: Any, default_radius: float) -> Dict[int, Dict[SlotKey, LocationSpec]]:
    result = {}
    if not isinstance(raw, dict):
        return result
    for day, slots in raw.items():
        day_number = _parse_day_number(day)
        if day_number is None or not isinstance(slots, dict):
            continue
        for slot_name, value in slots.items():
            slot_key = SlotKey.parse(slot_name)
            spec = LocationSpec.from_dict(value, default_radius)
            if slot_key is not None and spec is not None:
                result.setdefault(day_number, {})[slot_key] = spec
    return result
