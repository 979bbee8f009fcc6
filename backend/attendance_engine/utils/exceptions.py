# File: backend/attendance_engine/utils/exceptions.py
"""Check-in error taxonomy.

Every failure in the check-in flow is recoverable: the exception carries a
user-facing message, the HTTP status used by the API layer, and whether the
student can simply try again.
"""
from typing import Any, Dict, Optional


class CheckInError(Exception):
    """Base class for all check-in failures."""

    status_code = 400
    retryable = True
    error_code = 'check_in_error'

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            'error_code': self.error_code,
            'retryable': self.retryable,
            **self.details
        }


class PositionUnavailable(CheckInError):
    """Permission denied, no signal or timeout while reading the position."""
    error_code = 'position_unavailable'

    def __init__(self, message: str = 'Không thể xác định vị trí. Vui lòng bật GPS và thử lại.',
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class OutOfGeofence(CheckInError):
    """Position is outside the radius of the resolved location."""
    status_code = 403
    error_code = 'out_of_geofence'

    def __init__(self, check):
        super().__init__(
            check.message or 'Vị trí của bạn không đúng. Vui lòng đến đúng vị trí hoạt động để điểm danh.',
            {'location_check': check.to_dict()}
        )
        self.check = check


class OutOfTimeWindow(CheckInError):
    """Capture instant is too early or too late for the slot."""
    status_code = 422
    error_code = 'out_of_time_window'

    def __init__(self, message: str, classification=None):
        details = {'classification': classification.to_dict()} if classification else {}
        super().__init__(message, details)
        self.classification = classification


class CaptureFailure(CheckInError):
    """Camera unavailable, permission denied or unreadable frame."""
    error_code = 'capture_failure'

    def __init__(self, message: str = 'Không thể chụp ảnh. Vui lòng thử lại.',
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class UploadFailure(CheckInError):
    """Photo storage rejected or did not answer."""
    status_code = 502
    error_code = 'upload_failure'

    def __init__(self, message: str = 'Lỗi khi tải ảnh. Vui lòng thử lại.',
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class SubmissionFailure(CheckInError):
    """Attendance backend rejected or did not answer the submission."""
    status_code = 502
    error_code = 'submission_failure'

    def __init__(self, message: str = 'Lỗi khi điểm danh. Vui lòng thử lại.',
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class BackendUnavailable(CheckInError):
    """Attendance backend could not be read."""
    status_code = 502
    error_code = 'backend_unavailable'


class NotRegistered(CheckInError):
    """The (day, slot) pair is not in the student's approved registration."""
    status_code = 403
    retryable = False
    error_code = 'not_registered'


class SlotNotFound(CheckInError):
    """The requested (day, slot) does not exist in the resolved schedule."""
    status_code = 404
    retryable = False
    error_code = 'slot_not_found'


class CheckInInProgress(CheckInError):
    """Another check-in submission is already running for this user."""
    status_code = 409
    error_code = 'check_in_in_progress'

    def __init__(self, message: str = 'Đang xử lý một lượt điểm danh khác. Vui lòng đợi.',
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
