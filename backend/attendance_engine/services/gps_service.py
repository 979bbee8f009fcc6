# File: backend/attendance_engine/services/gps_service.py
"""GPS verification service."""
import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

from attendance_engine.models.activity import Activity, LocationSource, ResolvedLocation
from attendance_engine.models.attendance import Position
from attendance_engine.models.base import BaseModel
from attendance_engine.models.schedule import ScheduleDay, SlotRef
from attendance_engine.services.schedule_service import ScheduleResolver
from attendance_engine.utils.helpers import format_meters

logger = logging.getLogger(__name__)

NO_LOCATION_MESSAGE = 'Hoạt động không yêu cầu vị trí cụ thể'
NO_LOCATION_FOR_DAY_MESSAGE = 'Hoạt động không yêu cầu vị trí cụ thể cho ngày này'


@dataclass
class LocationContext:
    """Which (day, slot) the caller is checking against.

    `available` is the slot currently open for check-in; when set, validation
    is pinned to it and the other two are ignored.
    """
    available: Optional[SlotRef] = None
    target: Optional[SlotRef] = None
    selected: Optional[SlotRef] = None

    @property
    def effective(self) -> Optional[SlotRef]:
        return self.available or self.target or self.selected


@dataclass
class LocationCheck(BaseModel):
    """Geofence verdict."""
    valid: bool
    distance_meters: Optional[float] = None
    message: Optional[str] = None
    radius_meters: Optional[float] = None
    slot: Optional[SlotRef] = None
    source: Optional[LocationSource] = None


class GPSService:
    """Service for GPS and location verification."""

    EARTH_RADIUS_METERS = 6371000

    @staticmethod
    def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
        """Calculate distance between two GPS points in meters."""
        R = GPSService.EARTH_RADIUS_METERS

        lat1_rad = math.radians(lat1)
        lat2_rad = math.radians(lat2)
        delta_lat = math.radians(lat2 - lat1)
        delta_lon = math.radians(lon2 - lon1)

        a = (math.sin(delta_lat / 2) ** 2 +
             math.cos(lat1_rad) * math.cos(lat2_rad) *
             math.sin(delta_lon / 2) ** 2)
        c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

        return R * c

    @staticmethod
    def verify_location(position: Position, location: ResolvedLocation) -> Tuple[bool, float]:
        """Verify if a position is within a location's radius (boundary inclusive)."""
        spec = location.spec
        distance = GPSService.calculate_distance(
            position.latitude, position.longitude,
            spec.latitude, spec.longitude
        )
        return distance <= spec.radius_meters, distance

    @staticmethod
    def validate(
        position: Position,
        activity: Activity,
        days: List[ScheduleDay],
        context: Optional[LocationContext] = None
    ) -> LocationCheck:
        """
        Check a position against the location that applies to the context.

        Resolution:
            - a slot open for check-in pins validation to that slot only
            - otherwise the explicitly targeted slot, then the selected slot
            - without any slot, single-day activities check the global
              location (or the nearest slot location); multi-day activities
              require no location

        Raises:
            SlotNotFound: the context names a (day, slot) absent from the schedule
        """
        context = context or LocationContext()
        ref = context.effective

        if ref is not None:
            _, slot = ScheduleResolver.find_slot(days, ref)
            if slot.location is None:
                message = NO_LOCATION_FOR_DAY_MESSAGE if activity.is_multi_day else NO_LOCATION_MESSAGE
                return LocationCheck(valid=True, message=message, slot=ref)
            return GPSService._check(position, slot.location, ref, activity.is_multi_day)

        if activity.is_multi_day:
            return LocationCheck(valid=True, message=NO_LOCATION_FOR_DAY_MESSAGE)

        if activity.location is not None:
            return GPSService._check(
                position, ResolvedLocation(activity.location, LocationSource.GLOBAL), None, False
            )

        candidates = [
            (day.ref(slot), slot.location)
            for day in days for slot in day.slots if slot.location is not None
        ]
        if not candidates:
            return LocationCheck(valid=True, message=NO_LOCATION_MESSAGE)

        # Closest slot location wins when nothing narrows the choice
        checks = [GPSService._check(position, location, slot_ref, False)
                  for slot_ref, location in candidates]
        return min(checks, key=lambda check: check.distance_meters)

    @staticmethod
    def _check(
        position: Position,
        location: ResolvedLocation,
        ref: Optional[SlotRef],
        multi_day: bool
    ) -> LocationCheck:
        valid, distance = GPSService.verify_location(position, location)
        radius = location.spec.radius_meters

        message = None
        if not valid:
            message = (
                f"Bạn đang cách {GPSService.describe_location(location, ref, multi_day)} "
                f"{format_meters(distance)}m. Vui lòng đến đúng vị trí "
                f"(trong bán kính {format_meters(radius)}m) để điểm danh."
            )
            logger.info("Position %.6f,%.6f is %.1fm from %s (radius %sm)",
                        position.latitude, position.longitude, distance,
                        ref.label(multi_day) if ref else 'activity location', radius)

        return LocationCheck(
            valid=valid,
            distance_meters=distance,
            message=message,
            radius_meters=radius,
            slot=ref,
            source=location.source
        )

    @staticmethod
    def describe_location(location: ResolvedLocation, ref: Optional[SlotRef], multi_day: bool) -> str:
        """Name the location that was checked, for user-facing messages."""
        if ref is None:
            return 'vị trí hoạt động'
        if not multi_day:
            if location.source == LocationSource.SLOT:
                return f'vị trí {ref.slot_key.label}'
            return 'vị trí hoạt động'
        if location.source == LocationSource.DAY:
            return f'vị trí hoạt động (Ngày {ref.day_number})'
        return f'vị trí điểm danh ({ref.label()})'
