# File: backend/attendance_engine/models/schedule.py
"""Normalized schedule models produced by the schedule resolver."""
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import List, Optional

from attendance_engine.models.activity import ResolvedLocation, SlotKey
from attendance_engine.models.attendance import CheckInType
from attendance_engine.models.base import BaseModel


@dataclass(frozen=True)
class SlotRef(BaseModel):
    """Identity of a (day, slot) pair within one activity."""
    day_number: int
    slot_key: SlotKey

    @property
    def sort_key(self):
        return (self.day_number, self.slot_key.order)

    def label(self, multi_day: bool = True) -> str:
        if multi_day:
            return f"Ngày {self.day_number} - {self.slot_key.label}"
        return self.slot_key.label


@dataclass
class ScheduleSlot(BaseModel):
    """A slot of a schedule day with its resolved check-in location."""
    slot_key: SlotKey
    start_time: time
    end_time: time
    location: Optional[ResolvedLocation] = None
    description: Optional[str] = None
    detailed_location: Optional[str] = None

    @property
    def name(self) -> str:
        return self.slot_key.label

    def target_instant(self, calendar_date: date, direction: CheckInType) -> datetime:
        """Nominal start or end instant; an end at/before the start rolls to the next day."""
        if direction == CheckInType.START:
            return datetime.combine(calendar_date, self.start_time)
        end = datetime.combine(calendar_date, self.end_time)
        if self.end_time <= self.start_time:
            end += timedelta(days=1)
        return end


@dataclass
class ScheduleDay(BaseModel):
    """One calendar day of an activity."""
    day_number: int
    calendar_date: date
    slots: List[ScheduleSlot] = field(default_factory=list)
    detailed_location: Optional[str] = None

    def slot(self, slot_key: SlotKey) -> Optional[ScheduleSlot]:
        for slot in self.slots:
            if slot.slot_key == slot_key:
                return slot
        return None

    def ref(self, slot: ScheduleSlot) -> SlotRef:
        return SlotRef(self.day_number, slot.slot_key)


@dataclass
class ScheduleWeek(BaseModel):
    """Monday-to-Sunday bucket of schedule days, for calendar display."""
    week_start: date
    days: List[ScheduleDay] = field(default_factory=list)

    @property
    def week_end(self) -> date:
        return self.week_start + timedelta(days=6)
