# File: backend/attendance_engine/services/schedule_service.py
"""Schedule resolution: free-text day descriptions into normalized slots."""
import logging
import re
import unicodedata
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, List, Optional, Tuple

from attendance_engine.models.activity import (
    DEFAULT_RADIUS_METERS, Activity, LocationSource, LocationSpec,
    ResolvedLocation, SlotKey
)
from attendance_engine.models.schedule import (
    ScheduleDay, ScheduleSlot, ScheduleWeek, SlotRef
)
from attendance_engine.utils.exceptions import SlotNotFound
from attendance_engine.utils.validators import Validator

logger = logging.getLogger(__name__)

NUMBER = r'-?\d+(?:\.\d+)?'

SLOT_LINE = re.compile(
    r'^\s*Buổi\s+(Sáng|Chiều|Tối)\s*\(\s*(\d{1,2}:\d{2})\s*-\s*(\d{1,2}:\d{2})\s*\)',
    re.IGNORECASE
)
SLOT_DESCRIPTION = re.compile(
    r'^\s*-\s*(?!Địa điểm|Bán kính)(.+?)(?=\s+-\s+(?:Địa điểm|Bán kính)|$)',
    re.IGNORECASE
)
DETAILED_LOCATION = re.compile(
    r'Địa điểm chi tiết:\s*(.+?)(?=\s+-\s+(?:Địa điểm map|Bán kính)|$)',
    re.IGNORECASE
)
MAP_COMPACT = re.compile(
    rf'Địa điểm map:\s*lat:\s*({NUMBER})\s*,\s*lng:\s*({NUMBER})\s*,'
    rf'\s*address:\s*(.*?)\s*,\s*radius:\s*({NUMBER})',
    re.IGNORECASE
)
MAP_VERBOSE = re.compile(
    rf'Địa điểm map:\s*(.*?)\s*\(\s*({NUMBER})\s*,\s*({NUMBER})\s*\)',
    re.IGNORECASE
)
MAP_MARKER = re.compile(r'Địa điểm map:', re.IGNORECASE)
RADIUS = re.compile(rf'Bán kính:\s*({NUMBER})\s*m', re.IGNORECASE)
DAY_LEVEL_PREFIX = re.compile(r'^\s*Địa điểm (?:chi tiết|map):', re.IGNORECASE)
MENTIONS_SLOT = re.compile(r'Buổi', re.IGNORECASE)


@dataclass
class ParsedSlot:
    """Slot fragment extracted from one line of free text."""
    slot_key: SlotKey
    start_time: object
    end_time: object
    description: Optional[str] = None
    detailed_location: Optional[str] = None
    location: Optional[LocationSpec] = None


@dataclass
class ParsedDay:
    """Everything recognised in one day's free text."""
    slots: List[ParsedSlot] = field(default_factory=list)
    location: Optional[LocationSpec] = None
    detailed_location: Optional[str] = None


class ScheduleResolver:
    """
    Turns an activity into normalized ScheduleDay values.

    Location precedence, most specific first:
    per-day-per-slot > per-day > per-slot (time of day) > global > none.

    Parsing is total. Unrecognised lines, malformed times and unusable
    location fragments are dropped and the next precedence level applies.
    """

    def __init__(self, default_radius_meters: float = DEFAULT_RADIUS_METERS):
        self.default_radius_meters = default_radius_meters

    def resolve(self, activity: Activity) -> List[ScheduleDay]:
        """Resolve an activity's schedule, sorted by day number."""
        if activity.is_multi_day:
            days = self._resolve_multi_day(activity)
        else:
            days = self._resolve_single_day(activity)
        return sorted(days, key=lambda d: d.day_number)

    # =================== SINGLE DAY ===================

    def _resolve_single_day(self, activity: Activity) -> List[ScheduleDay]:
        if activity.activity_date is None:
            logger.debug("Activity %s has no usable date; no schedule", activity.id)
            return []

        slots = []
        seen = set()
        for time_slot in activity.time_slots:
            if not time_slot.is_active or time_slot.slot_key in seen:
                continue
            seen.add(time_slot.slot_key)
            slots.append(ScheduleSlot(
                slot_key=time_slot.slot_key,
                start_time=time_slot.start_time,
                end_time=time_slot.end_time,
                location=self._fallback_location(activity, time_slot.slot_key),
                description=time_slot.description,
                detailed_location=time_slot.detailed_location
            ))

        slots.sort(key=lambda s: s.slot_key.order)
        return [ScheduleDay(day_number=1, calendar_date=activity.activity_date, slots=slots)]

    # =================== MULTIPLE DAYS ===================

    def _resolve_multi_day(self, activity: Activity) -> List[ScheduleDay]:
        days = []
        seen_days = set()

        for entry in activity.schedule_entries:
            if entry.day_number in seen_days:
                logger.warning(
                    "Activity %s lists day %s twice; keeping the first",
                    activity.id, entry.day_number
                )
                continue
            seen_days.add(entry.day_number)

            if entry.calendar_date is None:
                logger.debug("Day %s of activity %s has no usable date", entry.day_number, activity.id)
                continue

            parsed = self.parse_day_text(entry.activities)
            day_location = parsed.location or activity.daily_locations.get(entry.day_number)
            slot_overrides = activity.day_slot_locations.get(entry.day_number, {})

            slots = []
            for parsed_slot in parsed.slots:
                slots.append(ScheduleSlot(
                    slot_key=parsed_slot.slot_key,
                    start_time=parsed_slot.start_time,
                    end_time=parsed_slot.end_time,
                    location=self._multi_day_location(
                        activity,
                        parsed_slot.location or slot_overrides.get(parsed_slot.slot_key),
                        day_location,
                        parsed_slot.slot_key
                    ),
                    description=parsed_slot.description,
                    detailed_location=parsed_slot.detailed_location
                ))

            slots.sort(key=lambda s: s.slot_key.order)
            days.append(ScheduleDay(
                day_number=entry.day_number,
                calendar_date=entry.calendar_date,
                slots=slots,
                detailed_location=parsed.detailed_location
            ))

        return days

    def _multi_day_location(
        self,
        activity: Activity,
        day_slot_location: Optional[LocationSpec],
        day_location: Optional[LocationSpec],
        slot_key: SlotKey
    ) -> Optional[ResolvedLocation]:
        if day_slot_location is not None:
            return ResolvedLocation(day_slot_location, LocationSource.DAY_SLOT)
        if day_location is not None:
            return ResolvedLocation(day_location, LocationSource.DAY)
        return self._fallback_location(activity, slot_key)

    @staticmethod
    def _fallback_location(activity: Activity, slot_key: SlotKey) -> Optional[ResolvedLocation]:
        slot_location = activity.slot_locations.get(slot_key)
        if slot_location is not None:
            return ResolvedLocation(slot_location, LocationSource.SLOT)
        if activity.location is not None:
            return ResolvedLocation(activity.location, LocationSource.GLOBAL)
        return None

    # =================== FREE TEXT ===================

    def parse_day_text(self, text) -> ParsedDay:
        """Parse one day's activities text. Never raises."""
        parsed = ParsedDay()
        if not isinstance(text, str):
            return parsed

        seen = set()
        for raw_line in unicodedata.normalize('NFC', text).splitlines():
            line = raw_line.strip()
            if not line:
                continue

            slot = self._parse_slot_line(line)
            if slot is not None:
                if slot.slot_key in seen:
                    logger.debug("Duplicate %s slot ignored: %r", slot.slot_key.value, line)
                    continue
                seen.add(slot.slot_key)
                parsed.slots.append(slot)
                continue

            if DAY_LEVEL_PREFIX.match(line) and not MENTIONS_SLOT.search(line):
                detailed = DETAILED_LOCATION.search(line)
                if detailed and parsed.detailed_location is None:
                    parsed.detailed_location = detailed.group(1).strip()
                location = self.parse_map_fragment(line)
                if location is not None and parsed.location is None:
                    parsed.location = location
                continue

            logger.debug("Unrecognised schedule line dropped: %r", line)

        return parsed

    def _parse_slot_line(self, line: str) -> Optional[ParsedSlot]:
        match = SLOT_LINE.match(line)
        if not match:
            return None

        slot_key = SlotKey.parse(f"buổi {match.group(1)}")
        start = Validator.parse_time_of_day(match.group(2))
        end = Validator.parse_time_of_day(match.group(3))
        if slot_key is None or start is None or end is None:
            logger.debug("Slot line with invalid times dropped: %r", line)
            return None

        rest = line[match.end():]
        description = SLOT_DESCRIPTION.match(rest)
        detailed = DETAILED_LOCATION.search(rest)

        return ParsedSlot(
            slot_key=slot_key,
            start_time=start,
            end_time=end,
            description=description.group(1).strip() if description else None,
            detailed_location=detailed.group(1).strip() if detailed else None,
            location=self.parse_map_fragment(rest)
        )

    def parse_map_fragment(self, text: str) -> Optional[LocationSpec]:
        """Extract a map location from either supported notation."""
        if not MAP_MARKER.search(text):
            return None

        compact = MAP_COMPACT.search(text)
        if compact:
            location = LocationSpec.build(
                compact.group(1), compact.group(2), compact.group(4), compact.group(3),
                default_radius=self.default_radius_meters
            )
        else:
            verbose = MAP_VERBOSE.search(text)
            if not verbose:
                logger.debug("Map location without coordinates dropped: %r", text)
                return None
            radius = RADIUS.search(text)
            location = LocationSpec.build(
                verbose.group(2), verbose.group(3),
                radius.group(1) if radius else None,
                verbose.group(1),
                default_radius=self.default_radius_meters
            )

        if location is None:
            logger.debug("Map location with out-of-range coordinates dropped: %r", text)
        return location

    # =================== LOOKUPS ===================

    @staticmethod
    def find_slot(days: List[ScheduleDay], ref: SlotRef) -> Tuple[ScheduleDay, ScheduleSlot]:
        """Return (day, slot) for a reference.

        Raises:
            SlotNotFound: no such (day, slot) in the schedule
        """
        for day in days:
            if day.day_number == ref.day_number:
                slot = day.slot(ref.slot_key)
                if slot is not None:
                    return day, slot
        raise SlotNotFound(f'Không tìm thấy {ref.label()} trong lịch hoạt động.', {'slot': ref.to_dict()})

    @staticmethod
    def group_by_week(days: List[ScheduleDay]) -> List[ScheduleWeek]:
        """Bucket days into Monday-Sunday weeks sorted by date."""
        weeks: Dict = {}
        for day in sorted(days, key=lambda d: (d.calendar_date, d.day_number)):
            week_start = day.calendar_date - timedelta(days=day.calendar_date.weekday())
            weeks.setdefault(week_start, ScheduleWeek(week_start=week_start)).days.append(day)
        return [weeks[key] for key in sorted(weeks)]
