# File: backend/attendance_engine/services/check_in_service.py
"""Check-in orchestration: locate, capture, classify, submit, reconcile."""
import dataclasses
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Protocol

from attendance_engine.models.activity import Activity
from attendance_engine.models.attendance import (
    AttendanceRecord, AttendanceStatus, CheckInType, Position
)
from attendance_engine.models.base import BaseModel
from attendance_engine.models.registration import Registration
from attendance_engine.models.schedule import ScheduleDay, SlotRef
from attendance_engine.services.attendance_store import AttendanceRecordStore
from attendance_engine.services.backend_client import SubmissionResult
from attendance_engine.services.gps_service import GPSService, LocationCheck, LocationContext
from attendance_engine.services.schedule_service import ScheduleResolver
from attendance_engine.services.time_window_service import TimeClassification, TimeWindowService
from attendance_engine.services.watermark_service import WatermarkInfo, WatermarkService
from attendance_engine.utils.exceptions import (
    CaptureFailure, CheckInError, CheckInInProgress, NotRegistered, OutOfGeofence,
    OutOfTimeWindow, PositionUnavailable, SubmissionFailure
)
from attendance_engine.utils.timezone import DEFAULT_TIMEZONE, local_now, to_local, to_utc_iso

logger = logging.getLogger(__name__)


# =================== COLLABORATORS ===================

@dataclass
class CapturedFrame:
    """A raster frame and the instant it was taken."""
    photo: bytes
    captured_at: datetime


class PositionProvider(Protocol):
    def get_position(self) -> Position:
        """Current position; raises PositionUnavailable."""


class Camera(Protocol):
    def capture(self) -> CapturedFrame:
        """One frame; raises CaptureFailure."""


class Geocoder(Protocol):
    def resolve_address(self, lat: float, lng: float) -> Optional[str]:
        """Address or None; never raises."""


class PhotoStorage(Protocol):
    def upload(self, photo: bytes, filename: str) -> str:
        """Public URL; raises UploadFailure."""


class AttendanceBackend(Protocol):
    def submit(self, activity_id: str, payload: Dict[str, Any]) -> SubmissionResult:
        """Raises SubmissionFailure."""

    def fetch_status(self, activity_id: str, user_id: Optional[str] = None) -> List[AttendanceRecord]:
        """Raises BackendUnavailable."""


class StaticPositionProvider:
    """Position reported by the client alongside the request."""

    def __init__(self, position: Optional[Position]):
        self.position = position

    def get_position(self) -> Position:
        if self.position is None:
            raise PositionUnavailable()
        return self.position


class UploadedPhotoCamera:
    """Frame uploaded by the client with its reported capture instant."""

    MAX_CLOCK_SKEW = timedelta(minutes=2)

    def __init__(self, photo: Optional[bytes], captured_at: Optional[datetime],
                 tz_name: str = DEFAULT_TIMEZONE, clock: Optional[Callable[[], datetime]] = None):
        self.photo = photo
        self.captured_at = captured_at
        self.tz_name = tz_name
        self.clock = clock or (lambda: local_now(tz_name))

    def capture(self) -> CapturedFrame:
        if not self.photo:
            raise CaptureFailure('Chưa có ảnh chụp. Vui lòng chụp ảnh để điểm danh.')
        if self.captured_at is None:
            raise CaptureFailure('Thiếu thời điểm chụp ảnh. Vui lòng chụp lại.')

        captured_at = to_local(self.captured_at, self.tz_name)
        if captured_at > self.clock() + self.MAX_CLOCK_SKEW:
            raise CaptureFailure('Thời điểm chụp ảnh không hợp lệ. Vui lòng kiểm tra đồng hồ thiết bị.')
        return CapturedFrame(photo=self.photo, captured_at=captured_at)


# =================== VALUES ===================

@dataclass
class UserIdentity:
    """The student performing the check-in."""
    user_id: str
    name: Optional[str] = None
    email: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.email or 'N/A'


@dataclass
class CheckInRequest:
    """
    Everything the orchestrator needs for one attempt.

    `days` is the resolved schedule of `activity`. When `target` is None the
    slot currently open for check-in is used.
    """
    activity: Activity
    days: List[ScheduleDay]
    registration: Optional[Registration]
    user: UserIdentity
    target: Optional[SlotRef] = None
    check_in_type: Optional[CheckInType] = None
    late_reason: Optional[str] = None


@dataclass(frozen=True)
class PendingCheckIn:
    """State carried from capture to submission."""
    slot: SlotRef
    direction: CheckInType
    captured_at: datetime
    photo: bytes
    position: Position
    address: Optional[str] = None
    location_check: Optional[LocationCheck] = None


@dataclass
class CheckInOutcome(BaseModel):
    """Result of a completed submission."""
    status: AttendanceStatus
    slot: SlotRef
    check_in_type: CheckInType
    check_in_time: datetime
    classification: TimeClassification
    location_check: LocationCheck
    message: str
    photo_url: Optional[str] = None
    address: Optional[str] = None
    backend_status: Optional[AttendanceStatus] = None
    record: Optional[AttendanceRecord] = None
    provisional: bool = False

    @property
    def auto_approved(self) -> bool:
        return self.status == AttendanceStatus.APPROVED


# =================== ORCHESTRATOR ===================

class CheckInService:
    """
    Check-in state machine.

    Steps:
        1. pre-flight geofence check against the target or open slot
        2. capture; the capture instant becomes checkInTime
        3. classify the capture instant; refuse outside the windows
        4. re-check the position
        5. upload the photo and submit
        6. status: approved (on time) or pending (late window)
        7. refresh the record store from the backend

    Failures raise CheckInError subclasses; failures before step 5 leave no
    record behind.
    """

    _lock = threading.Lock()
    _in_flight = set()

    def __init__(
        self,
        positions: PositionProvider,
        camera: Camera,
        geocoder: Optional[Geocoder],
        photo_storage: PhotoStorage,
        backend: AttendanceBackend,
        watermark: Optional[WatermarkService] = None,
        time_windows: Optional[TimeWindowService] = None,
        tz_name: str = DEFAULT_TIMEZONE,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.positions = positions
        self.camera = camera
        self.geocoder = geocoder
        self.photo_storage = photo_storage
        self.backend = backend
        self.watermark = watermark or WatermarkService()
        self.time_windows = time_windows or TimeWindowService()
        self.tz_name = tz_name
        self.clock = clock or (lambda: local_now(tz_name))

    @classmethod
    def _acquire(cls, user_id: str):
        with cls._lock:
            if user_id in cls._in_flight:
                raise CheckInInProgress()
            cls._in_flight.add(user_id)

    @classmethod
    def _release(cls, user_id: str):
        with cls._lock:
            cls._in_flight.discard(user_id)

    def check_in(self, request: CheckInRequest, store: AttendanceRecordStore) -> CheckInOutcome:
        """Run one check-in attempt. Only one attempt per user runs at a time."""
        self._acquire(request.user.user_id)
        try:
            return self._run(request, store)
        finally:
            self._release(request.user.user_id)

    def _run(self, request: CheckInRequest, store: AttendanceRecordStore) -> CheckInOutcome:
        activity = request.activity
        ref, direction = self.resolve_target(request, store)
        day, slot = ScheduleResolver.find_slot(request.days, ref)
        context = LocationContext(available=ref)

        # 1. pre-flight location
        position = self.positions.get_position()
        check = GPSService.validate(position, activity, request.days, context)
        if not check.valid:
            logger.info("Check-in for %s refused before capture: outside geofence", ref.label())
            raise OutOfGeofence(check)

        # 2. capture
        pending = self.capture(request, ref, direction, position, check)
        logger.info("Captured photo for %s/%s at %s", ref.label(), direction.value,
                    pending.captured_at.isoformat())

        # 3. time classification against the capture instant
        target = slot.target_instant(day.calendar_date, direction)
        classification = self.time_windows.classify(pending.captured_at, target)
        if not classification.is_valid:
            logger.info("Check-in for %s/%s outside time window (%s min)",
                        ref.label(), direction.value, classification.minutes)
            raise OutOfTimeWindow(TimeWindowService.rejection_message(classification), classification)

        # 4. re-validate position
        position = self.positions.get_position()
        check = GPSService.validate(position, activity, request.days, context)
        if not check.valid:
            logger.info("Check-in for %s refused at submission: outside geofence", ref.label())
            raise OutOfGeofence(check)
        pending = dataclasses.replace(pending, position=position, location_check=check)

        # 5. upload and submit
        photo_url = self.photo_storage.upload(pending.photo, self._photo_filename(activity, request.user, pending))
        late_reason = request.late_reason if classification.in_late_window else None
        payload = self.build_payload(activity, request.user, pending, photo_url, late_reason)
        result = self.backend.submit(activity.id, payload)
        logger.info("Submitted %s/%s for user %s: backend status %s",
                    ref.label(), direction.value, request.user.user_id, result.status.value)

        # 6. status and 7. reconciliation
        status = classification.proposed_status
        local_record = AttendanceRecord(
            key=store.key(ref, direction),
            check_in_time=pending.captured_at,
            status=result.status,
            position=pending.position,
            address=pending.address,
            photo_url=photo_url,
            late_reason=late_reason
        )
        rejected = result.status == AttendanceStatus.REJECTED
        provisional = self.reconcile(store, activity.id, request.user.user_id, local_record,
                                     allow_provisional=not rejected)

        if rejected:
            raise SubmissionFailure(
                result.message or result.reason or 'Điểm danh đã bị từ chối.',
                {'status': AttendanceStatus.REJECTED.value, 'reason': result.reason}
            )

        return CheckInOutcome(
            status=status,
            slot=ref,
            check_in_type=direction,
            check_in_time=pending.captured_at,
            classification=classification,
            location_check=check,
            message=self.success_message(status, ref, direction, activity.is_multi_day),
            photo_url=photo_url,
            address=pending.address,
            backend_status=result.status,
            record=store.record_for(ref, direction),
            provisional=provisional
        )

    def resolve_target(self, request: CheckInRequest, store: AttendanceRecordStore):
        """The (slot, direction) this attempt is for."""
        registration = request.registration
        if request.target is None:
            available = self.time_windows.find_available_check_in_slot(
                request.days, registration, self.clock(), store
            )
            if available is None:
                raise OutOfTimeWindow('Hiện không có buổi nào đang trong thời gian điểm danh.')
            return available.ref, available.check_in_type

        ref = request.target
        day, slot = ScheduleResolver.find_slot(request.days, ref)
        if registration is None or not registration.allows(ref.day_number, ref.slot_key):
            raise NotRegistered(
                f'Bạn chưa đăng ký {ref.label(request.activity.is_multi_day)}.',
                {'slot': ref.to_dict()}
            )

        direction = request.check_in_type
        if direction is None:
            now = self.clock()
            direction = next(
                (d for d in (CheckInType.START, CheckInType.END)
                 if self.time_windows.window_for(day, slot, d).contains(now)),
                CheckInType.START
            )
        return ref, direction

    def capture(self, request: CheckInRequest, ref: SlotRef, direction: CheckInType,
                position: Position, check: LocationCheck) -> PendingCheckIn:
        """Take the photo and burn the evidence panel into it."""
        frame = self.camera.capture()
        address = None
        if self.geocoder is not None:
            address = self.geocoder.resolve_address(position.latitude, position.longitude)

        photo = self.watermark.render_bytes(frame.photo, WatermarkInfo(
            activity_name=request.activity.name,
            captured_at=frame.captured_at,
            user_name=request.user.display_name,
            user_id=request.user.user_id,
            address=address,
            position=position,
            distance_meters=check.distance_meters,
            is_valid=check.valid if check.distance_meters is not None else None
        ))

        return PendingCheckIn(
            slot=ref,
            direction=direction,
            captured_at=frame.captured_at,
            photo=photo,
            position=position,
            address=address,
            location_check=check
        )

    def build_payload(self, activity: Activity, user: UserIdentity, pending: PendingCheckIn,
                      photo_url: Optional[str], late_reason: Optional[str]) -> Dict[str, Any]:
        """Submission body in the backend's camelCase shape."""
        location = {'lat': pending.position.latitude, 'lng': pending.position.longitude}
        if pending.address:
            location['address'] = pending.address

        payload = {
            'userId': user.user_id,
            'checkedIn': True,
            'location': location,
            'timeSlot': pending.slot.label(activity.is_multi_day),
            'dayNumber': pending.slot.day_number,
            'checkInType': pending.direction.value,
            'checkInTime': to_utc_iso(pending.captured_at, self.tz_name)
        }
        if photo_url:
            payload['photoUrl'] = photo_url
        if late_reason and late_reason.strip():
            payload['lateReason'] = late_reason.strip()
        return payload

    def reconcile(self, store: AttendanceRecordStore, activity_id: str, user_id: str,
                  local_record: AttendanceRecord, allow_provisional: bool = True) -> bool:
        """Refresh the store from the backend; True when a provisional record had to be kept.

        A rejected submission is never held locally, so the slot stays open for a retry.
        """
        try:
            store.reconcile(self.backend.fetch_status(activity_id, user_id))
        except CheckInError as e:
            logger.warning("Could not refresh attendance after submission: %s", e.message)
            if not allow_provisional:
                return False
            store.mark_provisional(local_record)
            return True
        if allow_provisional and store.get(local_record.key) is None:
            store.mark_provisional(local_record)
            return True
        return False

    @staticmethod
    def _photo_filename(activity: Activity, user: UserIdentity, pending: PendingCheckIn) -> str:
        stamp = pending.captured_at.strftime('%Y%m%d%H%M%S')
        return f"attendance_{activity.id}_{user.user_id}_{stamp}.jpg"

    @staticmethod
    def success_message(status: AttendanceStatus, ref: SlotRef, direction: CheckInType,
                        multi_day: bool) -> str:
        what = f"{direction.label} {ref.label(multi_day).lower()}"
        if status == AttendanceStatus.APPROVED:
            return f"Đã điểm danh {what} và được tự động duyệt!"
        return f"Đã điểm danh {what}. Đang chờ xét duyệt."
