"""Test geofence validation and location precedence."""
import pytest

from attendance_engine.models.activity import Activity, LocationSource, SlotKey
from attendance_engine.models.attendance import Position
from attendance_engine.models.schedule import SlotRef
from attendance_engine.services.gps_service import (
    NO_LOCATION_FOR_DAY_MESSAGE, NO_LOCATION_MESSAGE, GPSService, LocationContext
)
from attendance_engine.utils.exceptions import SlotNotFound

from conftest import SINGLE_DAY_ACTIVITY


def single_day(radius):
    raw = dict(SINGLE_DAY_ACTIVITY, locationData={'lat': 10.0, 'lng': 106.0, 'radius': radius})
    return Activity.from_dict(raw)


def test_calculate_distance():
    """Test haversine distance along a meridian."""
    distance = GPSService.calculate_distance(10.0, 106.0, 10.0018, 106.0)
    assert distance == pytest.approx(200.15, abs=0.01)
    assert GPSService.calculate_distance(10.0, 106.0, 10.0, 106.0) == 0


def test_boundary_distance_is_valid(resolver):
    """Test a position exactly on the radius is inside the geofence."""
    position = Position(10.0018, 106.0)
    radius = GPSService.calculate_distance(10.0018, 106.0, 10.0, 106.0)
    activity = single_day(radius)

    check = GPSService.validate(position, activity, resolver.resolve(activity))
    assert check.valid
    assert check.message is None
    assert check.source == LocationSource.GLOBAL


def test_just_outside_radius_is_invalid(resolver):
    """Test 201m from a 200m geofence is refused with a message."""
    position = Position(10.0 + 0.0018076, 106.0)
    activity = single_day(200)

    check = GPSService.validate(position, activity, resolver.resolve(activity))
    assert not check.valid
    assert check.distance_meters == pytest.approx(201, abs=0.1)
    assert check.message == (
        'Bạn đang cách vị trí hoạt động 201m. '
        'Vui lòng đến đúng vị trí (trong bán kính 200m) để điểm danh.'
    )


def test_available_slot_pins_validation(resolver, multi_day_activity):
    """Test the open slot wins over target and selection."""
    days = resolver.resolve(multi_day_activity)
    at_school = Position(10.7769, 106.7009)
    context = LocationContext(
        available=SlotRef(1, SlotKey.MORNING),
        target=SlotRef(2, SlotKey.MORNING),
        selected=SlotRef(2, SlotKey.AFTERNOON)
    )

    check = GPSService.validate(at_school, multi_day_activity, days, context)
    assert check.valid
    assert check.slot == SlotRef(1, SlotKey.MORNING)
    assert check.source == LocationSource.DAY_SLOT
    assert check.radius_meters == 150


def test_day_location_message(resolver, multi_day_activity):
    """Test a day-scoped location is named by its day."""
    days = resolver.resolve(multi_day_activity)
    check = GPSService.validate(
        Position(10.7769, 106.7009), multi_day_activity, days,
        LocationContext(target=SlotRef(2, SlotKey.MORNING))
    )
    assert not check.valid
    assert check.source == LocationSource.DAY
    assert check.message.startswith('Bạn đang cách vị trí hoạt động (Ngày 2) ')
    assert 'trong bán kính 300m' in check.message


def test_day_slot_location_message(resolver, multi_day_activity):
    """Test a day-and-slot location is named by day and slot."""
    days = resolver.resolve(multi_day_activity)
    check = GPSService.validate(
        Position(10.80, 106.65), multi_day_activity, days,
        LocationContext(selected=SlotRef(1, SlotKey.MORNING))
    )
    assert not check.valid
    assert check.message.startswith('Bạn đang cách vị trí điểm danh (Ngày 1 - Buổi Sáng) ')


def test_slot_without_location_is_valid(resolver, multi_day_activity):
    """Test a multi-day slot with no location requires none."""
    days = resolver.resolve(multi_day_activity)
    check = GPSService.validate(
        Position(0.0, 0.0), multi_day_activity, days,
        LocationContext(target=SlotRef(1, SlotKey.AFTERNOON))
    )
    assert check.valid
    assert check.distance_meters is None
    assert check.message == NO_LOCATION_FOR_DAY_MESSAGE


def test_multi_day_without_context_requires_no_location(resolver, multi_day_activity):
    check = GPSService.validate(Position(0.0, 0.0), multi_day_activity, resolver.resolve(multi_day_activity))
    assert check.valid
    assert check.message == NO_LOCATION_FOR_DAY_MESSAGE


def test_single_day_nearest_slot_location(resolver):
    """Test the nearest per-slot location is used when nothing narrows the choice."""
    raw = dict(SINGLE_DAY_ACTIVITY)
    raw.pop('locationData')
    raw['multiTimeLocations'] = [
        {'timeSlot': 'Buổi Sáng', 'location': {'lat': 10.0, 'lng': 106.0, 'address': 'Sân A'}, 'radius': 100},
        {'timeSlot': 'Buổi Chiều', 'location': {'lat': 10.5, 'lng': 106.5, 'address': 'Sân B'}, 'radius': 100},
    ]
    activity = Activity.from_dict(raw)

    check = GPSService.validate(Position(10.49, 106.5), activity, resolver.resolve(activity))
    assert check.slot == SlotRef(1, SlotKey.AFTERNOON)
    assert check.source == LocationSource.SLOT
    assert check.message.startswith('Bạn đang cách vị trí Buổi Chiều ')


def test_single_day_without_any_location(resolver):
    raw = dict(SINGLE_DAY_ACTIVITY)
    raw.pop('locationData')
    activity = Activity.from_dict(raw)

    check = GPSService.validate(Position(1.0, 1.0), activity, resolver.resolve(activity))
    assert check.valid
    assert check.message == NO_LOCATION_MESSAGE


def test_unknown_slot_raises(resolver, multi_day_activity):
    """Test a context naming a slot absent from the schedule."""
    with pytest.raises(SlotNotFound):
        GPSService.validate(
            Position(10.0, 106.0), multi_day_activity, resolver.resolve(multi_day_activity),
            LocationContext(target=SlotRef(3, SlotKey.MORNING))
        )
