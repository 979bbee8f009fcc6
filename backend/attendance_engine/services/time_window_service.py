# File: backend/attendance_engine/services/time_window_service.py
"""Check-in time windows, classification and slot availability."""
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from attendance_engine.models.attendance import (
    AttendanceStatus, CheckInType, CheckInWindowState
)
from attendance_engine.models.base import BaseModel
from attendance_engine.models.registration import Registration
from attendance_engine.models.schedule import ScheduleDay, ScheduleSlot, SlotRef
from attendance_engine.services.attendance_store import AttendanceRecordStore

logger = logging.getLogger(__name__)


@dataclass
class CheckInWindow(BaseModel):
    """On-time and late bands around a target instant."""
    target: datetime
    on_time_start: datetime
    on_time_end: datetime
    late_end: datetime

    def contains(self, instant: datetime) -> bool:
        return self.on_time_start <= instant <= self.late_end


@dataclass
class TimeClassification(BaseModel):
    """Where an instant falls relative to a target.

    `minutes` is for messages only; decisions use the window boundaries.
    """
    is_valid: bool
    is_late: bool
    is_early: bool
    is_on_time: bool
    minutes: int
    in_late_window: bool = False

    @property
    def proposed_status(self) -> Optional[AttendanceStatus]:
        if self.is_on_time:
            return AttendanceStatus.APPROVED
        if self.in_late_window:
            return AttendanceStatus.PENDING
        return None


@dataclass
class AvailableSlot(BaseModel):
    """The slot/direction currently open for check-in."""
    ref: SlotRef
    check_in_type: CheckInType
    window: CheckInWindow


@dataclass
class SlotState(BaseModel):
    """Derived state of one registered (day, slot, direction)."""
    ref: SlotRef
    check_in_type: CheckInType
    state: CheckInWindowState
    window: CheckInWindow
    record_status: Optional[AttendanceStatus] = None
    label: Optional[str] = None


class TimeWindowService:
    """
    Time-window engine.

    For a target instant T:
        on-time  [T - on_time, T + on_time]      -> approved
        late     (T + on_time, T + late]         -> pending
        otherwise                                -> refused
    """

    ON_TIME_MINUTES = 15
    LATE_MINUTES = 30

    def __init__(self, on_time_minutes: int = ON_TIME_MINUTES, late_minutes: int = LATE_MINUTES):
        if late_minutes < on_time_minutes:
            raise ValueError("late window must not end before the on-time window")
        self.on_time = timedelta(minutes=on_time_minutes)
        self.late = timedelta(minutes=late_minutes)

    def window_for(self, day: ScheduleDay, slot: ScheduleSlot, check_in_type: CheckInType) -> CheckInWindow:
        return self.window_around(slot.target_instant(day.calendar_date, check_in_type))

    def window_around(self, target: datetime) -> CheckInWindow:
        return CheckInWindow(
            target=target,
            on_time_start=target - self.on_time,
            on_time_end=target + self.on_time,
            late_end=target + self.late
        )

    def classify(self, instant: datetime, target: datetime) -> TimeClassification:
        """Classify an instant (normally the photo capture instant) against T."""
        window = self.window_around(target)
        minutes = self.round_half_up(abs((instant - target).total_seconds()) / 60)

        if window.on_time_start <= instant <= window.on_time_end:
            return TimeClassification(True, False, False, True, minutes)
        if window.on_time_end < instant <= window.late_end:
            return TimeClassification(True, True, False, False, minutes, in_late_window=True)
        if instant < window.on_time_start:
            return TimeClassification(False, False, True, False, minutes)
        return TimeClassification(False, True, False, False, minutes)

    @staticmethod
    def availability_state(now: datetime, window: CheckInWindow, has_record: bool) -> CheckInWindowState:
        if has_record:
            return CheckInWindowState.DONE
        if now < window.on_time_start:
            return CheckInWindowState.NOT_STARTED
        if now <= window.late_end:
            return CheckInWindowState.AVAILABLE
        return CheckInWindowState.MISSED

    def slot_states(
        self,
        days: List[ScheduleDay],
        registration: Optional[Registration],
        now: datetime,
        store: AttendanceRecordStore,
        multi_day: bool = True
    ) -> List[SlotState]:
        """States of every registered (day, slot, direction) in schedule order."""
        states = []
        for day, slot in self._registered_slots(days, registration):
            ref = day.ref(slot)
            for check_in_type in (CheckInType.START, CheckInType.END):
                window = self.window_for(day, slot, check_in_type)
                record = store.record_for(ref, check_in_type)
                states.append(SlotState(
                    ref=ref,
                    check_in_type=check_in_type,
                    state=self.availability_state(now, window, record is not None),
                    window=window,
                    record_status=record.status if record else None,
                    label=ref.label(multi_day)
                ))
        return states

    def find_available_check_in_slot(
        self,
        days: List[ScheduleDay],
        registration: Optional[Registration],
        now: datetime,
        store: AttendanceRecordStore
    ) -> Optional[AvailableSlot]:
        """
        First registered slot/direction in state AVAILABLE.

        Order is ascending day, then morning, afternoon, evening, then start
        before end. Slots already done are skipped.
        """
        for day, slot in self._registered_slots(days, registration):
            ref = day.ref(slot)
            for check_in_type in (CheckInType.START, CheckInType.END):
                window = self.window_for(day, slot, check_in_type)
                state = self.availability_state(now, window, store.has_record(ref, check_in_type))
                if state == CheckInWindowState.AVAILABLE:
                    logger.debug("Slot %s/%s is open for check-in",
                                 ref.label(), check_in_type.value)
                    return AvailableSlot(ref=ref, check_in_type=check_in_type, window=window)
        return None

    @staticmethod
    def _registered_slots(days: List[ScheduleDay], registration: Optional[Registration]):
        if registration is None:
            return
        for day in sorted(days, key=lambda d: d.day_number):
            for slot in sorted(day.slots, key=lambda s: s.slot_key.order):
                if registration.allows(day.day_number, slot.slot_key):
                    yield day, slot

    @staticmethod
    def round_half_up(value: float) -> int:
        """Round to the nearest integer, halves upward."""
        return int(math.floor(value + 0.5))

    @staticmethod
    def format_minutes(minutes: int) -> str:
        """Human duration: X phút, X giờ or X giờ Y phút."""
        if minutes < 60:
            return f"{minutes} phút"
        hours, remaining = divmod(minutes, 60)
        if remaining == 0:
            return f"{hours} giờ"
        return f"{hours} giờ {remaining} phút"

    @staticmethod
    def rejection_message(classification: TimeClassification) -> str:
        minutes = TimeWindowService.format_minutes(classification.minutes)
        if classification.is_early:
            return f"Điểm danh quá sớm {minutes}. Vui lòng điểm danh trong khoảng thời gian cho phép."
        if classification.is_late:
            return f"Điểm danh quá trễ {minutes}. Thời gian điểm danh đã kết thúc."
        return 'Thời gian điểm danh không hợp lệ.'
