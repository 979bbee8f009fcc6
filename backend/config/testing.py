# File: backend/config/testing.py
"""Testing configuration."""
from datetime import timedelta

from .base import Config


class TestingConfig(Config):
    """Testing configuration class."""
    DEBUG = False
    TESTING = True
    SECRET_KEY = 'test-secret-key'

    # JWT Configuration
    JWT_SECRET_KEY = 'test-jwt-secret-key-with-enough-bytes'
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(minutes=5)

    # Rate Limiting (disabled for testing)
    RATELIMIT_ENABLED = False
    RATELIMIT_STORAGE_URI = 'memory://'

    # Collaborators are replaced by fakes in tests
    ATTENDANCE_BACKEND_URL = 'http://backend.test'
    PHOTO_UPLOAD_URL = 'http://backend.test/api/upload/attendance-photo'
    GEOCODER_URL = None

    # File Upload
    MAX_CONTENT_LENGTH = 1 * 1024 * 1024  # 1MB for testing

    # Logging
    LOG_LEVEL = 'WARNING'
