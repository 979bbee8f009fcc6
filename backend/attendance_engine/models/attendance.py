# File: backend/attendance_engine/models/attendance.py
"""Attendance record models."""
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from attendance_engine.models.activity import SlotKey
from attendance_engine.models.base import BaseModel
from attendance_engine.utils.timezone import DEFAULT_TIMEZONE, parse_instant
from attendance_engine.utils.validators import Validator

logger = logging.getLogger(__name__)

DAY_PREFIX_PATTERN = re.compile(r'Ngày\s*(\d+)', re.IGNORECASE)


class CheckInType(Enum):
    """Check-in direction."""
    START = "start"
    END = "end"

    @property
    def label(self) -> str:
        return 'đầu' if self is CheckInType.START else 'cuối'


class AttendanceStatus(Enum):
    """Record status; REJECTED is only ever set by the external reviewer."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    @classmethod
    def parse(cls, value: Any) -> 'AttendanceStatus':
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.PENDING


class CheckInWindowState(Enum):
    """Derived availability of a (slot, direction)."""
    NOT_STARTED = "not_started"
    AVAILABLE = "available"
    MISSED = "missed"
    DONE = "done"


@dataclass(frozen=True)
class Position(BaseModel):
    """A GPS reading."""
    latitude: float
    longitude: float
    accuracy_meters: Optional[float] = None

    @classmethod
    def from_dict(cls, raw: Any) -> Optional['Position']:
        if not isinstance(raw, dict):
            return None
        lat = raw.get('lat', raw.get('latitude'))
        lng = raw.get('lng', raw.get('longitude'))
        if not Validator.validate_coordinates(lat, lng):
            return None
        return cls(float(lat), float(lng))


@dataclass(frozen=True)
class RecordKey(BaseModel):
    """Canonical identity of an attendance record."""
    activity_id: str
    day_number: int
    slot_key: SlotKey
    check_in_type: CheckInType


@dataclass
class AttendanceRecord(BaseModel):
    """A submitted check-in as known to the attendance backend."""
    key: RecordKey
    check_in_time: datetime
    status: AttendanceStatus = AttendanceStatus.PENDING
    position: Optional[Position] = None
    address: Optional[str] = None
    photo_url: Optional[str] = None
    late_reason: Optional[str] = None
    verification_note: Optional[str] = None
    cancel_reason: Optional[str] = None
    verified_by: Optional[str] = None
    verified_at: Optional[datetime] = None
    record_id: Optional[str] = None
    updated_at: Optional[datetime] = None
    provisional: bool = False

    @property
    def freshness(self) -> datetime:
        return self.updated_at or self.check_in_time

    @classmethod
    def from_dict(
        cls,
        raw: Any,
        activity_id: str,
        tz_name: str = DEFAULT_TIMEZONE
    ) -> Optional['AttendanceRecord']:
        """Normalize a backend record; None when it cannot be keyed."""
        if not isinstance(raw, dict):
            return None

        time_slot = raw.get('timeSlot') or ''
        slot_key = SlotKey.parse(raw.get('slotKey')) or _slot_key_from_label(time_slot)
        try:
            check_in_type = CheckInType(raw.get('checkInType'))
        except ValueError:
            check_in_type = None
        check_in_time = parse_instant(raw.get('checkInTime'), tz_name)
        if slot_key is None or check_in_type is None or check_in_time is None:
            logger.debug("Skipping attendance record that cannot be keyed: %r", raw.get('_id'))
            return None

        location = raw.get('location') or {}
        verified_by = raw.get('verifiedBy')
        if isinstance(verified_by, dict):
            verified_by = verified_by.get('name') or verified_by.get('email') or verified_by.get('_id')

        return cls(
            key=RecordKey(
                activity_id=str(activity_id),
                day_number=_day_number(raw.get('dayNumber'), time_slot),
                slot_key=slot_key,
                check_in_type=check_in_type
            ),
            check_in_time=check_in_time,
            status=AttendanceStatus.parse(raw.get('status')),
            position=Position.from_dict(location),
            address=location.get('address') if isinstance(location, dict) else None,
            photo_url=raw.get('photoUrl'),
            late_reason=raw.get('lateReason'),
            verification_note=raw.get('verificationNote'),
            cancel_reason=raw.get('cancelReason'),
            verified_by=str(verified_by) if verified_by else None,
            verified_at=parse_instant(raw.get('verifiedAt'), tz_name),
            record_id=str(raw['_id']) if raw.get('_id') else None,
            updated_at=parse_instant(raw.get('updatedAt'), tz_name)
        )


def _slot_key_from_label(time_slot: str) -> Optional[SlotKey]:
    # "Ngày 2 - Buổi Sáng" and "Buổi Sáng" both carry the slot after the day prefix
    without_day = DAY_PREFIX_PATTERN.sub('', time_slot).strip(' -')
    return SlotKey.parse(without_day)


def _day_number(explicit: Any, time_slot: str) -> int:
    try:
        if explicit is not None:
            return int(explicit)
    except (TypeError, ValueError, OverflowError):
        pass
    match = DAY_PREFIX_PATTERN.search(time_slot or '')
    return int(match.group(1)) if match else 1
