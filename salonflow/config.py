"""Environment-backed configuration for the SalonFlow backend."""
from __future__ import annotations

import os


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


class Config:
    SECRET_KEY = _getenv("SECRET_KEY", "change-me")
    APP_ENV = _getenv("APP_ENV", "development")

    SQLALCHEMY_DATABASE_URI = _getenv("DATABASE_URL", "sqlite:///salonflow.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Gates the admin account endpoints (create-auth-user, generate-session).
    SERVICE_ROLE_KEY = _getenv("SERVICE_ROLE_KEY")
    TOKEN_MAX_AGE_SECONDS = _getenv_int("TOKEN_MAX_AGE_SECONDS", 86400)

    RESEND_API_KEY = _getenv("RESEND_API_KEY")
    RESEND_FROM_EMAIL = _getenv("RESEND_FROM_EMAIL")
    DEV_EMAIL_RECIPIENT = _getenv("DEV_EMAIL_RECIPIENT")
    SITE_URL = _getenv("SITE_URL", "http://localhost:3000")

    AWS_S3_BUCKET = _getenv("AWS_S3_BUCKET", "salonflow-media")

    CORS_ORIGINS = [origin.strip() for origin in _getenv("CORS_ORIGINS", "*").split(",") if origin.strip()]
    LOG_LEVEL = _getenv("LOG_LEVEL", "INFO").upper()

    # file upload limits (10MB)
    MAX_CONTENT_LENGTH = 10 * 1024 * 1024


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret"
    APP_ENV = "testing"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SERVICE_ROLE_KEY = "test-service-role-key"
    RESEND_API_KEY = ""
    RESEND_FROM_EMAIL = ""
    DEV_EMAIL_RECIPIENT = "dev@salonflow.test"
    AWS_S3_BUCKET = "salonflow-test"
    LOG_LEVEL = "WARNING"
