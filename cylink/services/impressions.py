"""Impression deduplication.

A visit counts as a unique impression when the same IP has not hit the same
link within the trailing window (30 minutes by default).

The recency check and the insert are two separate statements, not one
transaction. Two near-simultaneous requests from one IP can both see "no recent
impression" and both be stored as unique. Reach metrics downstream are computed
with that behavior, so it is kept as is.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from urllib.parse import urlparse

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from cylink.db.engine import async_session
from cylink.db.repository import ImpressionRepository
from cylink.db.tables import ImpressionRow

logger = logging.getLogger(__name__)


def impression_window() -> timedelta:
    return timedelta(minutes=settings.IMPRESSION_WINDOW_MINUTES)


def traffic_source(referrer: str | None) -> str:
    """Referrer hostname, or the raw referrer when it does not parse as a URL."""
    if not referrer:
        return ""
    try:
        hostname = urlparse(referrer).hostname
    except ValueError:
        hostname = None
    return hostname or referrer


async def has_recent_impression(
    session: AsyncSession, url_id: int, ip_address: str | None, now: datetime | None = None,
) -> bool:
    return await ImpressionRepository(session).has_recent(
        url_id, ip_address, impression_window(), now=now,
    )


async def record_impression(
    session: AsyncSession,
    url_id: int,
    ip_address: str | None,
    user_agent: str | None,
    referrer: str | None,
    now: datetime | None = None,
) -> ImpressionRow:
    """Check recency, then append an impression carrying the computed flag."""
    is_unique = not await has_recent_impression(session, url_id, ip_address, now=now)

    fields = dict(
        ip_address=ip_address,
        user_agent=(user_agent or "")[:500],
        referrer=(referrer or "")[:1000],
        source=traffic_source(referrer)[:255],
        is_unique=is_unique,
    )
    if now is not None:
        fields["timestamp"] = now
    row = await ImpressionRepository(session).record(url_id, **fields)
    await session.commit()
    return row


async def track_impression(
    url_id: int, ip_address: str | None, user_agent: str | None, referrer: str | None,
) -> None:
    """Detached entry point: own session, outcome only logged."""
    try:
        async with async_session() as session:
            row = await record_impression(session, url_id, ip_address, user_agent, referrer)
        logger.info("Recorded impression for URL %s (unique=%s)", url_id, row.is_unique)
    except Exception as e:
        logger.error("Failed to record impression for URL %s: %s", url_id, e)
