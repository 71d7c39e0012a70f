"""Startup validation: catch misconfigurations before the app serves traffic."""
from __future__ import annotations

import logging
import sys

from config.settings import settings

logger = logging.getLogger(__name__)

_DEFAULT_SIGNING_KEY = "cylink-dev-tracking-key-change-in-prod"


def validate_settings() -> list[str]:
    """Validate configuration. Returns list of warnings (empty = all good).

    Raises SystemExit for critical misconfigurations in production.
    """
    warnings: list[str] = []
    is_prod = settings.DATABASE_URL and "sqlite" not in settings.DATABASE_URL

    # Critical: forged tracking IDs would let anyone fabricate conversions
    if is_prod and settings.TRACKING_SIGNING_KEY == _DEFAULT_SIGNING_KEY:
        logger.critical("TRACKING_SIGNING_KEY is still the default! Set a real key for production.")
        sys.exit(1)

    if is_prod and "*" in settings.CORS_ORIGINS:
        warnings.append("CORS_ORIGINS is set to *, restrict in production")

    if not settings.SHORT_URL_BASE:
        warnings.append("SHORT_URL_BASE not set, short_url fields will be bare codes")

    if settings.CONVERSION_DELAY_SECONDS > 5:
        warnings.append(
            f"CONVERSION_DELAY_SECONDS={settings.CONVERSION_DELAY_SECONDS}, attribution will lag redirects"
        )

    for w in warnings:
        logger.warning("⚠️  %s", w)

    if not warnings:
        logger.info("✅ All startup checks passed")

    return warnings
