"""
Conversion attribution trigger.

After a redirect to a link with a conversion goal, we ask our own conversions
endpoint to record the conversion for the click's tracking ID:

  POST http://{HOST}:{PORT}/api/v1/conversions
  {"tracking_id": "...", "goal_id": 3}
  → 2xx {"data": {"conversion_id": 17, ...}}

This runs detached from the request, after a short delay so it does not
contend with the click write. Every failure is logged and swallowed.
"""
from __future__ import annotations

import asyncio
import logging

import httpx

from config.settings import settings
from cylink.services import background

logger = logging.getLogger(__name__)

CONVERSIONS_PATH = "/api/v1/conversions"


def conversions_endpoint() -> str:
    return f"http://{settings.HOST}:{settings.PORT}{CONVERSIONS_PATH}"


async def auto_track_conversion(tracking_id: str, goal_id: int) -> None:
    """Record a conversion through the internal endpoint. Never raises."""
    try:
        async with httpx.AsyncClient(timeout=settings.CONVERSION_TIMEOUT_SECONDS) as client:
            resp = await client.post(
                conversions_endpoint(),
                json={"tracking_id": tracking_id, "goal_id": goal_id},
            )
    except httpx.HTTPError as e:
        logger.error("Error sending conversion request for %s: %s", tracking_id, e)
        return
    except Exception:
        logger.exception("Exception in conversion tracking for %s", tracking_id)
        return

    try:
        body = resp.json()
    except ValueError as e:
        logger.error("Error parsing conversion response (HTTP %s): %s", resp.status_code, e)
        return

    if 200 <= resp.status_code < 300:
        try:
            conversion_id = body["data"]["conversion_id"]
        except (KeyError, TypeError):
            logger.error("Malformed conversion response: %r", body)
            return
        logger.info(
            "Conversion tracked successfully: ID=%s, tracking_id=%s", conversion_id, tracking_id,
        )
    else:
        message = body.get("message") if isinstance(body, dict) else None
        logger.error(
            "Error tracking conversion (HTTP %s): %s", resp.status_code, message or "Unknown error",
        )


async def _delayed_conversion(tracking_id: str, goal_id: int, delay: float) -> None:
    if delay > 0:
        await asyncio.sleep(delay)
    await auto_track_conversion(tracking_id, goal_id)


def schedule_conversion(tracking_id: str, goal_id: int, delay: float | None = None) -> asyncio.Task:
    """Fire attribution after ``delay`` seconds without blocking the caller."""
    if delay is None:
        delay = settings.CONVERSION_DELAY_SECONDS
    return background.spawn(
        _delayed_conversion(tracking_id, goal_id, delay),
        name=f"conversion:{tracking_id}",
    )
