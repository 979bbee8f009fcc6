"""Models package with all models."""
from .base import BaseModel
from .activity import (
    Activity, ActivityType, LocationSource, LocationSpec,
    RawScheduleEntry, ResolvedLocation, SlotKey, TimeSlot
)
from .attendance import (
    AttendanceRecord, AttendanceStatus, CheckInType, CheckInWindowState,
    Position, RecordKey
)
from .registration import Registration
from .schedule import ScheduleDay, ScheduleSlot, ScheduleWeek, SlotRef

__all__ = [
    'BaseModel', 'Activity', 'ActivityType', 'LocationSource', 'LocationSpec',
    'RawScheduleEntry', 'ResolvedLocation', 'SlotKey', 'TimeSlot',
    'AttendanceRecord', 'AttendanceStatus', 'CheckInType', 'CheckInWindowState',
    'Position', 'RecordKey', 'Registration',
    'ScheduleDay', 'ScheduleSlot', 'ScheduleWeek', 'SlotRef'
]
