"""Short-code redirect: the catch-all route every visitor hits.

Flow:
  GET /{short_code} →
  record click + resolve (awaited, yields tracking ID) →
  impression dedup + insert (detached) →
  UTM-tag destination →
  conversion attribution if the link has a goal (detached, delayed) →
  301/302

Only resolving the link and recording the click can fail the request. Impression
and conversion analytics are best-effort and never change the response.

This router must be included after every explicit route.
"""
from __future__ import annotations

import ipaddress
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from cylink.api.errors import INTERNAL_ERROR_MESSAGE, envelope
from cylink.db.engine import get_session
from cylink.services import background, conversions, impressions
from cylink.services.links import (
    RESERVED_PREFIX, PERMANENT_REDIRECT, VisitorInfo,
    get_link_by_short_code, record_click_and_resolve,
)
from cylink.db.repository import GoalRepository

logger = logging.getLogger(__name__)
router = APIRouter(tags=["redirect"])

UTM_SOURCE = "cylink"
UTM_MEDIUM = "shortlink"
UTM_CAMPAIGN = "conversion"

NOT_FOUND_MESSAGE = "Short URL not found or has expired"


def is_short_code_candidate(path_segment: str) -> bool:
    """Single, non-empty segment that is not under the reserved API prefix."""
    return bool(path_segment) and "/" not in path_segment and not path_segment.startswith(RESERVED_PREFIX)


def client_ip(request: Request) -> str | None:
    """Extract client IP, respecting X-Forwarded-For behind proxy.

    The forwarded value is client-controlled; anything that is not a literal
    IPv4/IPv6 address is ignored in favour of the socket peer.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        candidate = forwarded.split(",")[0].strip()
        try:
            return str(ipaddress.ip_address(candidate))
        except ValueError:
            logger.debug("Ignoring malformed X-Forwarded-For entry: %.64r", candidate)
    return request.client.host if request.client else None


def visitor_from_request(request: Request) -> VisitorInfo:
    """Visitor metadata, preferring whatever upstream middleware already attached."""
    existing = getattr(request.state, "click_info", None)
    if isinstance(existing, VisitorInfo):
        return existing
    return VisitorInfo(
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
        referrer=request.headers.get("referer") or request.headers.get("referrer"),
    )


def build_tracked_url(original_url: str, tracking_id: str) -> str:
    """Append UTM parameters to the query string, keeping any #fragment last."""
    base, hash_mark, fragment = original_url.partition("#")
    separator = "&" if "?" in base else "?"
    return (
        f"{base}{separator}utm_source={UTM_SOURCE}&utm_medium={UTM_MEDIUM}"
        f"&utm_campaign={UTM_CAMPAIGN}&utm_content={tracking_id}{hash_mark}{fragment}"
    )


async def _first_goal_id(session: AsyncSession, url_id: int) -> int | None:
    try:
        goals = await GoalRepository(session).by_url(url_id)
    except Exception as e:
        logger.error("Error getting goals for URL %s: %s", url_id, e)
        return None
    if not goals:
        return None
    logger.info("Found conversion goal ID %s for URL ID %s", goals[0].id, url_id)
    return goals[0].id


@router.get("/{short_code}", include_in_schema=False)
async def redirect_short_code(
    short_code: str,
    request: Request,
    session: AsyncSession = Depends(get_session),
):
    if not is_short_code_candidate(short_code):
        raise HTTPException(404, "Not Found")

    try:
        visitor = visitor_from_request(request)

        result = await record_click_and_resolve(session, short_code, visitor, return_click_id=True)
        if result is None:
            logger.info("URL not found for short code: %s", short_code, extra={"short_code": short_code})
            return envelope(404, NOT_FOUND_MESSAGE)

        link = await get_link_by_short_code(session, short_code)
        status_code = 301 if link is not None and link.redirect_type == PERMANENT_REDIRECT else 302
        logger.info(
            "Redirecting %s to %s (%s)", short_code, result.original_url, status_code,
            extra={"short_code": short_code, "url_id": result.url_id},
        )

        try:
            background.spawn(
                impressions.track_impression(
                    result.url_id, visitor.ip_address, visitor.user_agent, visitor.referrer,
                ),
                name=f"impression:{result.url_id}",
            )
        except Exception as e:
            logger.error("Error tracking impression: %s", e)

        goal_id = await _first_goal_id(session, result.url_id)

        redirect_url = result.original_url
        if visitor.tracking_id:
            redirect_url = build_tracked_url(redirect_url, visitor.tracking_id)
            if goal_id is not None:
                try:
                    conversions.schedule_conversion(visitor.tracking_id, goal_id)
                except Exception as e:
                    logger.error("Error scheduling conversion tracking: %s", e)

        return RedirectResponse(url=redirect_url, status_code=status_code)
    except Exception:
        logger.exception("Redirect error for %s", short_code, extra={"short_code": short_code})
        return envelope(500, INTERNAL_ERROR_MESSAGE)
