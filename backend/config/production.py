# File: backend/config/production.py
"""Production configuration."""
import os

from .base import Config


class ProductionConfig(Config):
    """Production configuration class."""
    DEBUG = False
    TESTING = False
    SECRET_KEY = os.getenv('SECRET_KEY')  # Must be set in production
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY')

    # Enhanced security
    SESSION_COOKIE_SECURE = True
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'

    # Stricter limits
    RATELIMIT_DEFAULT = "100 per day, 20 per hour"

    # File Upload
    MAX_CONTENT_LENGTH = 8 * 1024 * 1024  # 8MB in production
