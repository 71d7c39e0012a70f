"""Cylink API: URL shortener with click, impression and conversion analytics.

Routing order matters. Health probes and the /api/v1 routers are registered
first; the catch-all ``/{short_code}`` redirect router comes last.
"""
from __future__ import annotations

import logging

from cylink.logging_config import setup_logging
setup_logging()
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from cylink.api.errors import register_error_handlers
from cylink.db.engine import engine, get_session
from cylink.db.tables import Base
from cylink.services import background

logger = logging.getLogger(__name__)

VERSION = "1.0.0"

SHUTDOWN_DRAIN_SECONDS = 10


def _scrub_visitor_data(event, hint):
    """Strip forwarded client addresses and query strings (tracking IDs) from Sentry events."""
    request = event.get("request") or {}
    headers = request.get("headers") or {}
    for name in list(headers):
        if name.lower() in ("x-forwarded-for", "x-real-ip", "cf-connecting-ip"):
            headers[name] = "[scrubbed]"
    if request.get("query_string"):
        request["query_string"] = "[scrubbed]"
    return event


def init_sentry() -> None:
    if not settings.SENTRY_DSN:
        return
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.logging import LoggingIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.SENTRY_ENVIRONMENT,
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
        release=f"cylink@{VERSION}",
        integrations=[
            FastApiIntegration(),
            SqlalchemyIntegration(),
            # Analytics failures are logged at ERROR and should surface as events
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        send_default_pii=False,
        before_send=_scrub_visitor_data,
    )
    logger.info("Sentry enabled (%s)", settings.SENTRY_ENVIRONMENT)


init_sentry()


@asynccontextmanager
async def lifespan(app: FastAPI):
    from cylink.startup_checks import validate_settings
    validate_settings()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Schema ready on %s", engine.url.render_as_string(hide_password=True))

    yield

    # In-flight impressions and conversion calls would be lost with the pool
    pending = background.pending_count()
    if pending:
        logger.info("Waiting on %d analytics task(s) before shutdown", pending)
        await background.drain(timeout=SHUTDOWN_DRAIN_SECONDS)
    await engine.dispose()
    logger.info("Cylink stopped")


app = FastAPI(
    title="Cylink API",
    version=VERSION,
    description="URL shortener with campaign tracking and conversion attribution",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)

# Visitor device/browser/country for short-code requests
from cylink.middleware.click_info import ClickInfoMiddleware
app.add_middleware(ClickInfoMiddleware)

# Added last so it wraps everything else and every log line of a request shares the ID
from cylink.middleware.request_id import RequestIDMiddleware
app.add_middleware(RequestIDMiddleware)

register_error_handlers(app)


# ---- Probes ----

@app.get("/health")
async def health(session: AsyncSession = Depends(get_session)):
    """Liveness plus a round trip to the database."""
    try:
        await session.execute(text("SELECT 1"))
        db_ok = True
    except SQLAlchemyError:
        logger.warning("Health check DB probe failed", exc_info=True)
        db_ok = False
    return {
        "status": "ok" if db_ok else "degraded",
        "db": "connected" if db_ok else "error",
        "version": VERSION,
    }


@app.get("/ready")
async def readiness():
    return {"ready": True, "pending_analytics_tasks": background.pending_count()}


# ---- Routers ----

from cylink.api.links import router as links_router
from cylink.api.conversions import router as conversions_router
from cylink.api.redirect import router as redirect_router

app.include_router(links_router)
app.include_router(conversions_router)
app.include_router(redirect_router)  # catch-all, keep last
