# File: backend/attendance_engine/services/registry.py
"""Wiring of the engine's services and collaborators for the Flask app."""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Mapping, Optional

from flask import current_app

from attendance_engine.services.backend_client import AttendanceBackendClient, PhotoStorageClient
from attendance_engine.services.check_in_service import (
    AttendanceBackend, Camera, CheckInService, Geocoder, PhotoStorage, PositionProvider
)
from attendance_engine.services.geocoding_service import NominatimGeocoder
from attendance_engine.services.schedule_service import ScheduleResolver
from attendance_engine.services.time_window_service import TimeWindowService
from attendance_engine.services.watermark_service import WatermarkService
from attendance_engine.utils.timezone import DEFAULT_TIMEZONE, local_now

EXTENSION_KEY = 'attendance_engine'


@dataclass
class CheckInServices:
    """Long-lived services shared by all requests."""
    resolver: ScheduleResolver
    time_windows: TimeWindowService
    watermark: WatermarkService
    geocoder: Optional[Geocoder]
    backend: AttendanceBackend
    photo_storage: PhotoStorage
    tz_name: str = DEFAULT_TIMEZONE
    clock: Optional[Callable[[], datetime]] = None

    def now(self) -> datetime:
        return self.clock() if self.clock else local_now(self.tz_name)

    def check_in_service(self, positions: PositionProvider, camera: Camera) -> CheckInService:
        """Orchestrator bound to this request's position and photo."""
        return CheckInService(
            positions=positions,
            camera=camera,
            geocoder=self.geocoder,
            photo_storage=self.photo_storage,
            backend=self.backend,
            watermark=self.watermark,
            time_windows=self.time_windows,
            tz_name=self.tz_name,
            clock=self.now
        )


def build_services(config: Mapping[str, Any]) -> CheckInServices:
    """Build the default HTTP-backed services from app config."""
    tz_name = config.get('TIMEZONE', DEFAULT_TIMEZONE)
    token = config.get('ATTENDANCE_BACKEND_TOKEN')

    return CheckInServices(
        resolver=ScheduleResolver(config.get('DEFAULT_RADIUS_METERS', 200)),
        time_windows=TimeWindowService(
            config.get('CHECK_IN_ON_TIME_MINUTES', TimeWindowService.ON_TIME_MINUTES),
            config.get('CHECK_IN_LATE_MINUTES', TimeWindowService.LATE_MINUTES)
        ),
        watermark=WatermarkService(
            font_path=config.get('WATERMARK_FONT_PATH'),
            max_chars_per_line=config.get('WATERMARK_MAX_CHARS_PER_LINE', 60),
            jpeg_quality=config.get('PHOTO_JPEG_QUALITY', 90)
        ),
        geocoder=NominatimGeocoder(
            url=config.get('GEOCODER_URL'),
            timeout=config.get('GEOCODER_TIMEOUT', 5),
            user_agent=config.get('GEOCODER_USER_AGENT'),
            cache_size=config.get('GEOCODER_CACHE_SIZE', 1024)
        ) if config.get('GEOCODER_URL') else None,
        backend=AttendanceBackendClient(
            config.get('ATTENDANCE_BACKEND_URL', ''),
            token=token,
            timeout=config.get('ATTENDANCE_BACKEND_TIMEOUT', 10),
            tz_name=tz_name
        ),
        photo_storage=PhotoStorageClient(
            config.get('PHOTO_UPLOAD_URL', ''),
            token=token,
            timeout=config.get('ATTENDANCE_BACKEND_TIMEOUT', 10)
        ),
        tz_name=tz_name
    )


def get_services() -> CheckInServices:
    """Services of the current app."""
    return current_app.extensions[EXTENSION_KEY]
