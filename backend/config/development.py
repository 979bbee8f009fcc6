# File: backend/config/development.py
"""Development configuration."""
from .base import Config


class DevelopmentConfig(Config):
    """Development configuration class."""
    DEBUG = True
    TESTING = False
    LOG_LEVEL = 'DEBUG'
