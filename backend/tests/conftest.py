"""Shared fixtures: sample activities, fake collaborators and the Flask app."""
import io
from datetime import datetime

import pytest
from PIL import Image
from flask_jwt_extended import create_access_token

from attendance_engine import create_app
from attendance_engine.models.activity import Activity
from attendance_engine.models.attendance import AttendanceRecord, AttendanceStatus
from attendance_engine.models.registration import Registration
from attendance_engine.services.backend_client import SubmissionResult
from attendance_engine.services.registry import CheckInServices
from attendance_engine.services.schedule_service import ScheduleResolver
from attendance_engine.services.time_window_service import TimeWindowService
from attendance_engine.services.watermark_service import WatermarkService
from attendance_engine.utils.exceptions import BackendUnavailable, SubmissionFailure, UploadFailure

STUDENT_ID = 'u1'

SINGLE_DAY_ACTIVITY = {
    '_id': 'act-single',
    'name': 'Hiến máu nhân đạo',
    'type': 'single_day',
    'date': '2025-03-10',
    'timeSlots': [
        {'name': 'Buổi Sáng', 'startTime': '08:00', 'endTime': '11:00', 'isActive': True},
        {'name': 'Buổi Chiều', 'startTime': '13:30', 'endTime': '17:00', 'isActive': True},
        {'name': 'Buổi Tối', 'startTime': '18:00', 'endTime': '20:00', 'isActive': False},
    ],
    'locationData': {'lat': 10.0, 'lng': 106.0, 'address': 'Nhà văn hóa Thanh Niên', 'radius': 200},
    'participants': [
        {'userId': {'_id': STUDENT_ID}, 'approvalStatus': 'approved'},
    ],
}

MULTI_DAY_ACTIVITY = {
    '_id': 'act-multi',
    'name': 'Mùa hè xanh',
    'type': 'multiple_days',
    'schedule': [
        {
            'day': 1,
            'date': '2025-03-10',
            'activities': (
                'Buổi Sáng (08:00-11:00) - Dọn vệ sinh - Địa điểm map: Trường THCS A '
                '(10.7769, 106.7009) - Bán kính: 150m\n'
                'Buổi Chiều (13:30-17:00) - Dạy học'
            ),
        },
        {
            'day': 2,
            'date': '2025-03-11',
            'activities': (
                'Buổi Sáng (08:00-11:00)\n'
                'Buổi Chiều (13:30-17:00)\n'
                'Địa điểm map: lat:10.80,lng:106.65,address:Công viên Gia Định,radius:300'
            ),
        },
    ],
    'participants': [
        {
            'userId': STUDENT_ID,
            'approvalStatus': 'approved',
            'registeredDaySlots': [
                {'day': 1, 'slot': 'morning'},
                {'day': 1, 'slot': 'afternoon'},
                {'day': 2, 'slot': 'morning'},
            ],
        },
    ],
}


def make_photo(size=(320, 240), color='navy', fmt='JPEG') -> bytes:
    """A small valid image."""
    buffer = io.BytesIO()
    Image.new('RGB', size, color).save(buffer, format=fmt)
    return buffer.getvalue()


class FakeClock:
    """Settable wall clock."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class FakeBackend:
    """In-memory attendance backend."""

    def __init__(self, *activities):
        self.activities = {raw['_id']: raw for raw in activities}
        self.raw_records = {}
        self.submissions = []
        self.verdict = None
        self.fail_submit = False
        self.fail_status = False

    def fetch_activity(self, activity_id):
        if activity_id not in self.activities:
            raise BackendUnavailable('Không tìm thấy hoạt động.', {'activity_id': activity_id})
        return self.activities[activity_id]

    def fetch_participant(self, activity_id, user_id, activity=None):
        activity = activity or self.fetch_activity(activity_id)
        for participant in activity.get('participants') or []:
            user = participant.get('userId')
            if isinstance(user, dict):
                user = user.get('_id')
            if str(user) == str(user_id):
                return participant
        return None

    def fetch_status(self, activity_id, user_id=None):
        if self.fail_status:
            raise BackendUnavailable('backend down')
        records = []
        for raw in self.raw_records.get(activity_id, []):
            record = AttendanceRecord.from_dict(raw, activity_id)
            if record is not None:
                records.append(record)
        return records

    def submit(self, activity_id, payload):
        if self.fail_submit:
            raise SubmissionFailure()
        self.submissions.append((activity_id, payload))
        status = self.verdict or AttendanceStatus.PENDING
        if status != AttendanceStatus.REJECTED:
            self.raw_records.setdefault(activity_id, []).append(dict(payload, status=status.value))
        return SubmissionResult(status=status, reason='Ảnh không rõ' if status == AttendanceStatus.REJECTED else None)


class FakePhotoStorage:
    """Keeps uploads in memory."""

    def __init__(self):
        self.uploads = []
        self.fail = False

    def upload(self, photo, filename):
        if self.fail:
            raise UploadFailure()
        self.uploads.append((photo, filename))
        return f"https://photos.test/{filename}"


class FakeGeocoder:
    def __init__(self, address='Số 1, Đường Lê Lợi, Phường Bến Nghé, Quận 1, Thành phố Hồ Chí Minh'):
        self.address = address
        self.calls = []

    def resolve_address(self, lat, lng):
        self.calls.append((lat, lng))
        return self.address


@pytest.fixture
def resolver():
    return ScheduleResolver()


@pytest.fixture
def time_windows():
    return TimeWindowService()


@pytest.fixture
def single_day_activity():
    return Activity.from_dict(SINGLE_DAY_ACTIVITY)


@pytest.fixture
def multi_day_activity():
    return Activity.from_dict(MULTI_DAY_ACTIVITY)


@pytest.fixture
def multi_day_registration(multi_day_activity):
    return Registration.from_participant(MULTI_DAY_ACTIVITY['participants'][0], multi_day_activity.activity_type)


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 3, 10, 8, 0))


@pytest.fixture
def backend():
    return FakeBackend(SINGLE_DAY_ACTIVITY, MULTI_DAY_ACTIVITY)


@pytest.fixture
def photo_storage():
    return FakePhotoStorage()


@pytest.fixture
def geocoder():
    return FakeGeocoder()


@pytest.fixture
def services(backend, photo_storage, geocoder, clock):
    return CheckInServices(
        resolver=ScheduleResolver(),
        time_windows=TimeWindowService(),
        watermark=WatermarkService(),
        geocoder=geocoder,
        backend=backend,
        photo_storage=photo_storage,
        clock=clock
    )


@pytest.fixture
def app(services):
    """Create test app."""
    app = create_app('testing', services=services)
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


def make_token(app, user_id=STUDENT_ID, role='student', name='Nguyễn Văn A'):
    with app.app_context():
        return create_access_token(
            identity=user_id,
            additional_claims={'role': role, 'name': name, 'email': f'{user_id}@example.com'}
        )


@pytest.fixture
def auth_headers(app):
    return {'Authorization': f'Bearer {make_token(app)}'}
