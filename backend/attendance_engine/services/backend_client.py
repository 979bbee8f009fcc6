# File: backend/attendance_engine/services/backend_client.py
"""HTTP clients for the attendance backend and photo storage."""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from attendance_engine.models.attendance import AttendanceRecord, AttendanceStatus
from attendance_engine.models.registration import participant_user_id
from attendance_engine.utils.exceptions import (
    BackendUnavailable, SubmissionFailure, UploadFailure
)
from attendance_engine.utils.timezone import DEFAULT_TIMEZONE

logger = logging.getLogger(__name__)


@dataclass
class SubmissionResult:
    """Backend verdict on a submitted check-in."""
    status: AttendanceStatus
    message: Optional[str] = None
    reason: Optional[str] = None


def _payload(response: requests.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


class AttendanceBackendClient:
    """Client for the activity/attendance REST backend."""

    def __init__(self, base_url: str, token: Optional[str] = None, timeout: float = 10,
                 tz_name: str = DEFAULT_TIMEZONE, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.token = token
        self.timeout = timeout
        self.tz_name = tz_name
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        headers = {'Content-Type': 'application/json'}
        if self.token:
            headers['Authorization'] = f'Bearer {self.token}'
        return headers

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.get(url, params=params, headers=self._headers(), timeout=self.timeout)
        except requests.RequestException as e:
            logger.error("GET %s failed: %s", url, e)
            raise BackendUnavailable('Không thể kết nối máy chủ điểm danh. Vui lòng thử lại.') from e

        body = _payload(response)
        if not response.ok or body.get('success') is False:
            logger.error("GET %s returned %s: %s", url, response.status_code, body.get('message'))
            raise BackendUnavailable(
                body.get('message') or 'Không thể tải dữ liệu điểm danh. Vui lòng thử lại.',
                {'upstream_status': response.status_code}
            )
        return body.get('data') or {}

    def fetch_activity(self, activity_id: str) -> Dict[str, Any]:
        """Raw activity document."""
        activity = self._get(f"/api/activities/{activity_id}").get('activity')
        if not isinstance(activity, dict):
            raise BackendUnavailable('Không tìm thấy hoạt động.', {'activity_id': activity_id})
        return activity

    def fetch_participant(self, activity_id: str, user_id: str,
                          activity: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        """Raw participant entry of one user, or None if not registered."""
        if activity is None:
            activity = self.fetch_activity(activity_id)
        for participant in activity.get('participants') or []:
            if isinstance(participant, dict) and \
                    participant_user_id(participant.get('userId')) == str(user_id):
                return participant
        return None

    def fetch_status(self, activity_id: str, user_id: Optional[str] = None) -> List[AttendanceRecord]:
        """The student's attendance records for an activity, normalized."""
        data = self._get(
            f"/api/activities/{activity_id}/attendance/student",
            params={'userId': user_id} if user_id else None
        )
        records = []
        for raw in data.get('attendances') or []:
            record = AttendanceRecord.from_dict(raw, activity_id, self.tz_name)
            if record is not None:
                records.append(record)
        return records

    def submit(self, activity_id: str, payload: Dict[str, Any]) -> SubmissionResult:
        """Send a check-in. A backend-side rejection is returned, not raised."""
        url = f"{self.base_url}/api/activities/{activity_id}/attendance"
        try:
            response = self.session.patch(url, json=payload, headers=self._headers(), timeout=self.timeout)
        except requests.RequestException as e:
            logger.error("Attendance submission to %s failed: %s", url, e)
            raise SubmissionFailure() from e

        body = _payload(response)
        data = body.get('data') if isinstance(body.get('data'), dict) else {}

        if data.get('status') == AttendanceStatus.REJECTED.value:
            return SubmissionResult(
                status=AttendanceStatus.REJECTED,
                message=body.get('message'),
                reason=data.get('reason')
            )
        if not response.ok or not body.get('success'):
            logger.error("Attendance submission returned %s: %s", response.status_code, body.get('message'))
            raise SubmissionFailure(
                body.get('message') or body.get('error') or 'Lỗi khi điểm danh. Vui lòng thử lại.',
                {'upstream_status': response.status_code}
            )

        return SubmissionResult(
            status=AttendanceStatus.parse(data.get('status')),
            message=body.get('message'),
            reason=data.get('reason')
        )


class PhotoStorageClient:
    """Uploads check-in photos; returns the public URL."""

    FIELD_NAME = 'attendancePhoto'

    def __init__(self, upload_url: str, token: Optional[str] = None, timeout: float = 30,
                 session: Optional[requests.Session] = None):
        self.upload_url = upload_url
        self.token = token
        self.timeout = timeout
        self.session = session or requests.Session()

    def upload(self, photo: bytes, filename: str) -> str:
        headers = {'Authorization': f'Bearer {self.token}'} if self.token else {}
        try:
            response = self.session.post(
                self.upload_url,
                files={self.FIELD_NAME: (filename, photo, 'image/jpeg')},
                headers=headers,
                timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.error("Photo upload failed: %s", e)
            raise UploadFailure() from e

        body = _payload(response)
        if not response.ok or not body.get('success') or not body.get('url'):
            logger.error("Photo upload returned %s: %s", response.status_code, body.get('error'))
            raise UploadFailure(body.get('error') or 'Không thể tải ảnh lên')
        return body['url']
