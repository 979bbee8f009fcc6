# File: backend/config/base.py
"""Base configuration for the Attendance Engine."""
import os
from datetime import timedelta


class Config:
    """Base configuration."""
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'

    # JWT Configuration
    JWT_SECRET_KEY = os.environ.get('JWT_SECRET_KEY') or 'jwt-secret-key-change-in-production'
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=2)
    JWT_ALGORITHM = 'HS256'

    # CORS
    CORS_ORIGINS = ["http://localhost:*", "https://*.vercel.app", "http://127.0.0.1:*"]

    # Rate Limiting
    RATELIMIT_STORAGE_URI = os.environ.get('REDIS_URL') or 'memory://'
    RATELIMIT_DEFAULT = "200 per day, 50 per hour"
    RATELIMIT_ENABLED = True

    # Check-in windows (minutes around the slot start/end)
    CHECK_IN_ON_TIME_MINUTES = 15
    CHECK_IN_LATE_MINUTES = 30

    # Geofence
    DEFAULT_RADIUS_METERS = 200

    # Wall-clock slot times are local to this zone
    TIMEZONE = os.environ.get('TIMEZONE') or 'Asia/Ho_Chi_Minh'

    # Attendance backend
    ATTENDANCE_BACKEND_URL = os.environ.get('ATTENDANCE_BACKEND_URL') or 'http://localhost:5001'
    ATTENDANCE_BACKEND_TOKEN = os.environ.get('ATTENDANCE_BACKEND_TOKEN')
    ATTENDANCE_BACKEND_TIMEOUT = 10  # seconds
    PHOTO_UPLOAD_URL = os.environ.get('PHOTO_UPLOAD_URL') or 'http://localhost:5001/api/upload/attendance-photo'

    # Reverse geocoding
    GEOCODER_URL = os.environ.get('GEOCODER_URL') or 'https://nominatim.openstreetmap.org/reverse'
    GEOCODER_TIMEOUT = 5
    GEOCODER_USER_AGENT = 'AttendanceEngine/1.0'
    GEOCODER_CACHE_SIZE = int(os.environ.get('GEOCODER_CACHE_SIZE', 1024))

    # Watermark
    WATERMARK_MAX_CHARS_PER_LINE = 60
    WATERMARK_FONT_PATH = os.environ.get('WATERMARK_FONT_PATH')
    PHOTO_JPEG_QUALITY = 90

    # File Upload
    MAX_CONTENT_LENGTH = 16 * 1024 * 1024  # 16MB

    # Logging
    LOG_LEVEL = os.environ.get('LOG_LEVEL') or 'INFO'
    LOG_DIR = os.environ.get('LOG_DIR') or 'logs'
