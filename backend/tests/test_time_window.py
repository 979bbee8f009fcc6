"""Test check-in time windows and slot availability."""
from datetime import datetime

import pytest

from attendance_engine.models.attendance import (
    AttendanceRecord, AttendanceStatus, CheckInType, CheckInWindowState
)
from attendance_engine.models.schedule import SlotRef
from attendance_engine.models.activity import SlotKey
from attendance_engine.services.attendance_store import AttendanceRecordStore
from attendance_engine.services.time_window_service import TimeWindowService

TARGET = datetime(2025, 3, 10, 8, 0)


def at(hour, minute, second=0):
    return datetime(2025, 3, 10, hour, minute, second)


def test_capture_before_start_is_on_time(time_windows):
    """Test 07:47 against an 08:00 start is auto-approved."""
    result = time_windows.classify(at(7, 47), TARGET)
    assert result.is_valid
    assert result.is_on_time
    assert not result.is_early
    assert result.minutes == 13
    assert result.proposed_status == AttendanceStatus.APPROVED


def test_capture_in_late_window_is_pending(time_windows):
    """Test 08:20 is accepted for review with minutes = 20."""
    result = time_windows.classify(at(8, 20), TARGET)
    assert result.is_valid
    assert result.is_late
    assert result.in_late_window
    assert not result.is_on_time
    assert result.minutes == 20
    assert result.proposed_status == AttendanceStatus.PENDING


def test_capture_too_early_is_refused(time_windows):
    """Test 07:40 is refused as early."""
    result = time_windows.classify(at(7, 40), TARGET)
    assert not result.is_valid
    assert result.is_early
    assert result.minutes == 20
    assert result.proposed_status is None
    assert TimeWindowService.rejection_message(result) == (
        'Điểm danh quá sớm 20 phút. Vui lòng điểm danh trong khoảng thời gian cho phép.'
    )


def test_capture_too_late_is_refused(time_windows):
    """Test 08:35 is refused as late."""
    result = time_windows.classify(at(8, 35), TARGET)
    assert not result.is_valid
    assert result.is_late
    assert not result.in_late_window
    assert result.minutes == 35
    assert TimeWindowService.rejection_message(result) == (
        'Điểm danh quá trễ 35 phút. Thời gian điểm danh đã kết thúc.'
    )


@pytest.mark.parametrize('instant, on_time, valid', [
    (at(7, 45), True, True),
    (at(8, 15), True, True),
    (at(8, 15, 1), False, True),
    (at(8, 30), False, True),
    (at(8, 30, 1), False, False),
    (at(7, 44, 59), False, False),
])
def test_window_boundaries_are_inclusive(time_windows, instant, on_time, valid):
    """Test window edges are decided on instants, not rounded minutes."""
    result = time_windows.classify(instant, TARGET)
    assert result.is_on_time == on_time
    assert result.is_valid == valid


def test_minutes_round_half_up(time_windows):
    """Test minutes are for display and round halves upward."""
    assert time_windows.classify(at(8, 2, 30), TARGET).minutes == 3
    assert time_windows.classify(at(7, 57, 29), TARGET).minutes == 3


def test_format_minutes():
    """Test human readable durations."""
    assert TimeWindowService.format_minutes(45) == '45 phút'
    assert TimeWindowService.format_minutes(60) == '1 giờ'
    assert TimeWindowService.format_minutes(135) == '2 giờ 15 phút'


def test_configurable_windows():
    """Test custom window widths and their validation."""
    service = TimeWindowService(on_time_minutes=5, late_minutes=10)
    assert service.classify(at(8, 6), TARGET).in_late_window
    assert not service.classify(at(8, 11), TARGET).is_valid

    with pytest.raises(ValueError):
        TimeWindowService(on_time_minutes=20, late_minutes=10)


def test_end_before_start_rolls_to_next_day(resolver, time_windows, multi_day_activity):
    """Test an overnight slot's end target falls on the following day."""
    days = resolver.resolve(multi_day_activity)
    slot = days[0].slot(SlotKey.MORNING)
    slot.end_time = slot.start_time.replace(hour=1)

    window = time_windows.window_for(days[0], slot, CheckInType.END)
    assert window.target == datetime(2025, 3, 11, 1, 0)


def test_availability_states(time_windows):
    """Test NOT_STARTED, AVAILABLE, MISSED and DONE."""
    window = time_windows.window_around(TARGET)
    assert time_windows.availability_state(at(7, 0), window, False) == CheckInWindowState.NOT_STARTED
    assert time_windows.availability_state(at(8, 25), window, False) == CheckInWindowState.AVAILABLE
    assert time_windows.availability_state(at(9, 0), window, False) == CheckInWindowState.MISSED
    assert time_windows.availability_state(at(9, 0), window, True) == CheckInWindowState.DONE


def test_find_available_slot_in_schedule_order(resolver, time_windows, multi_day_activity,
                                               multi_day_registration):
    """Test discovery returns the open registered slot and direction."""
    days = resolver.resolve(multi_day_activity)
    store = AttendanceRecordStore(multi_day_activity.id)

    available = time_windows.find_available_check_in_slot(days, multi_day_registration, at(7, 50), store)
    assert available.ref == SlotRef(1, SlotKey.MORNING)
    assert available.check_in_type == CheckInType.START

    available = time_windows.find_available_check_in_slot(days, multi_day_registration, at(11, 5), store)
    assert available.ref == SlotRef(1, SlotKey.MORNING)
    assert available.check_in_type == CheckInType.END

    assert time_windows.find_available_check_in_slot(days, multi_day_registration, at(12, 0), store) is None


def test_done_direction_is_skipped(resolver, time_windows, multi_day_activity, multi_day_registration):
    """Test a direction with a record is not offered again."""
    days = resolver.resolve(multi_day_activity)
    store = AttendanceRecordStore(multi_day_activity.id)
    ref = SlotRef(1, SlotKey.MORNING)
    store.put(AttendanceRecord(key=store.key(ref, CheckInType.START), check_in_time=at(7, 55)))

    assert time_windows.find_available_check_in_slot(days, multi_day_registration, at(8, 0), store) is None


def test_unregistered_slot_never_offered(resolver, time_windows, multi_day_activity,
                                         multi_day_registration):
    """Test day 2 afternoon is never available to a student without it."""
    days = resolver.resolve(multi_day_activity)
    store = AttendanceRecordStore(multi_day_activity.id)

    afternoon = datetime(2025, 3, 11, 13, 30)
    assert time_windows.find_available_check_in_slot(days, multi_day_registration, afternoon, store) is None

    states = time_windows.slot_states(days, multi_day_registration, afternoon, store)
    assert SlotRef(2, SlotKey.AFTERNOON) not in {state.ref for state in states}
    assert len(states) == 6


def test_slot_states_report_record_status(resolver, time_windows, multi_day_activity,
                                          multi_day_registration):
    """Test slot states carry the record status and label."""
    days = resolver.resolve(multi_day_activity)
    store = AttendanceRecordStore(multi_day_activity.id)
    ref = SlotRef(1, SlotKey.MORNING)
    store.put(AttendanceRecord(
        key=store.key(ref, CheckInType.START),
        check_in_time=at(7, 55),
        status=AttendanceStatus.APPROVED
    ))

    states = time_windows.slot_states(days, multi_day_registration, at(8, 0), store)
    first = states[0]
    assert first.ref == ref
    assert first.state == CheckInWindowState.DONE
    assert first.record_status == AttendanceStatus.APPROVED
    assert first.label == 'Ngày 1 - Buổi Sáng'
    assert states[1].state == CheckInWindowState.NOT_STARTED
