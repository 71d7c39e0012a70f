"""App settings: loaded from environment."""
from __future__ import annotations

import os
from dotenv import load_dotenv

load_dotenv()


class Settings:
    # Self-call target for conversion attribution (POST /api/v1/conversions)
    HOST = os.getenv("HOST", "localhost")
    PORT = int(os.getenv("PORT", "5000"))

    # Database
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///cylink.db")

    # Public prefix for generated short URLs
    SHORT_URL_BASE = os.getenv("SHORT_URL_BASE", "https://cylink.id/")
    SHORT_CODE_LENGTH = int(os.getenv("SHORT_CODE_LENGTH", "6"))

    # Tracking ID signing (tamper-proof utm_content values)
    TRACKING_SIGNING_KEY = os.getenv(
        "TRACKING_SIGNING_KEY",
        "cylink-dev-tracking-key-change-in-prod"
    )

    # Impression deduplication window
    IMPRESSION_WINDOW_MINUTES = int(os.getenv("IMPRESSION_WINDOW_MINUTES", "30"))

    # Conversion attribution
    CONVERSION_DELAY_SECONDS = float(os.getenv("CONVERSION_DELAY_SECONDS", "0.1"))
    CONVERSION_TIMEOUT_SECONDS = float(os.getenv("CONVERSION_TIMEOUT_SECONDS", "5"))

    # CORS origins (comma-separated, or * for dev)
    CORS_ORIGINS = [
        o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",")
    ]

    # Observability
    SENTRY_DSN = os.getenv("SENTRY_DSN", "")
    SENTRY_ENVIRONMENT = os.getenv("SENTRY_ENVIRONMENT", "development")
    SENTRY_TRACES_SAMPLE_RATE = float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.1"))

    # Logging
    LOG_FORMAT = os.getenv("LOG_FORMAT", "text")  # "text" or "json"
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()
