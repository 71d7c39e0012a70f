"""Link management API: create, inspect, soft-delete, analytics, conversion goals."""
from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from cylink.api.errors import envelope
from cylink.db.engine import get_session
from cylink.db.repository import (
    LinkRepository, ClickRepository, ImpressionRepository, GoalRepository,
    ConversionRepository, as_utc,
)
from cylink.db.tables import ClickRow, ShortLinkRow, ConversionGoalRow
from cylink.services.links import (
    InvalidUrlError, ShortCodeTakenError, create_short_link, is_valid_custom_code, short_url_for,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["urls"])

DEFAULT_ANALYTICS_DAYS = 30


# ── Models ──────────────────────────────────────────────────────────────

class CreateUrlRequest(BaseModel):
    original_url: str = Field(..., max_length=2048)
    custom_code: str | None = None
    title: str | None = Field(None, max_length=500)
    expiry_date: datetime | None = None
    redirect_type: Literal["301", "302"] = "302"
    goal_name: str | None = Field(None, max_length=100)


class CreateGoalRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = None


def _iso(value: datetime | None) -> str | None:
    value = as_utc(value)
    return value.isoformat() if value else None


def _goal_dict(goal: ConversionGoalRow) -> dict:
    return {
        "id": goal.id,
        "url_id": goal.url_id,
        "name": goal.name,
        "description": goal.description,
        "created_at": _iso(goal.created_at),
    }


async def _require_link(session: AsyncSession, url_id: int) -> ShortLinkRow:
    link = await LinkRepository(session).get_by_id(url_id)
    if link is None:
        raise HTTPException(404, "URL not found")
    return link


# ── Create ──────────────────────────────────────────────────────────────

@router.post("/public/urls", status_code=201)
async def create_anonymous_url(req: CreateUrlRequest, session: AsyncSession = Depends(get_session)):
    """Shorten a URL without an account."""
    if req.custom_code is not None and not is_valid_custom_code(req.custom_code):
        return envelope(400, "Invalid custom code")

    expiry = as_utc(req.expiry_date)
    if expiry is not None and expiry <= datetime.now(timezone.utc):
        return envelope(400, "Expiry date must be in the future")

    try:
        link = await create_short_link(
            session,
            original_url=req.original_url,
            custom_code=req.custom_code,
            title=req.title,
            expiry_date=expiry,
            redirect_type=req.redirect_type,
            goal_name=req.goal_name,
        )
    except InvalidUrlError:
        return envelope(400, "Invalid URL provided")
    except ShortCodeTakenError:
        return envelope(409, "Custom code already in use")

    goals = await GoalRepository(session).by_url(link.id)
    data = {
        "id": link.id,
        "original_url": link.original_url,
        "short_code": link.short_code,
        "short_url": short_url_for(link.short_code),
        "title": link.title,
        "created_at": _iso(link.created_at),
        "expiry_date": _iso(link.expiry_date),
        "is_active": link.is_active,
        "redirect_type": link.redirect_type,
        "goal_id": goals[0].id if goals else None,
    }
    logger.info("Successfully created anonymous shortened URL: %s", data["short_url"])
    return envelope(201, "Successfully created shortened URL", data)


# ── Details / delete ────────────────────────────────────────────────────

@router.get("/urls/{identifier}")
async def get_url_details(identifier: str, session: AsyncSession = Depends(get_session)):
    """Look up by numeric ID or by short code."""
    links = LinkRepository(session)
    if identifier.isdigit():
        link = await links.get_by_id(int(identifier))
    else:
        link = await links.get_any_by_short_code(identifier)
    if link is None:
        raise HTTPException(404, "URL not found")

    clicks = ClickRepository(session)
    recent = await clicks.recent(link.id, limit=10)
    created = _iso(link.created_at)

    data = {
        "id": link.id,
        "original_url": link.original_url,
        "short_code": link.short_code,
        "short_url": short_url_for(link.short_code),
        "title": link.title,
        "clicks": await clicks.count_by_url(link.id),
        "created_at": created,
        "updated_at": _iso(link.updated_at) or created,
        "expiry_date": _iso(link.expiry_date),
        "is_active": link.is_active,
        "redirect_type": link.redirect_type,
        "analytics": {
            "browser_stats": await clicks.breakdown(link.id, ClickRow.browser),
            "device_stats": await clicks.breakdown(link.id, ClickRow.device_type),
            "recent_clicks": [
                {"timestamp": _iso(c.clicked_at), "device_type": c.device_type or "unknown"}
                for c in recent
            ],
        },
    }
    return envelope(200, "Successfully retrieved URL", data)


@router.delete("/urls/{url_id}")
async def delete_url(url_id: int, session: AsyncSession = Depends(get_session)):
    """Soft delete: the code stops redirecting but is never reissued."""
    links = LinkRepository(session)
    await _require_link(session, url_id)

    if not await links.soft_delete(url_id):
        raise HTTPException(404, "URL not found")
    await session.commit()

    deleted = await links.get_by_id(url_id, include_deleted=True)
    await session.refresh(deleted)
    logger.info("Successfully deleted URL with ID %s", url_id)
    return envelope(200, "Successfully deleted URL", {
        "id": deleted.id,
        "short_code": deleted.short_code,
        "deleted_at": _iso(deleted.deleted_at),
    })


# ── Analytics ───────────────────────────────────────────────────────────

def _parse_date(value: str | None, field: str) -> datetime | None:
    if not value:
        return None
    # fromisoformat only accepts a "Z" suffix from Python 3.11 on
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise HTTPException(400, f"Invalid {field} format. Use YYYY-MM-DD")
    return as_utc(parsed)


def _bucket(ts: datetime, group_by: str) -> str:
    if group_by == "month":
        return ts.strftime("%Y-%m")
    if group_by == "week":
        year, week, _ = ts.isocalendar()
        return f"{year}-W{week:02d}"
    return ts.strftime("%Y-%m-%d")


@router.get("/urls/{url_id}/analytics")
async def get_url_analytics(
    url_id: int,
    start_date: str | None = Query(None, description="ISO date, defaults to 30 days ago"),
    end_date: str | None = Query(None, description="ISO date, defaults to now"),
    group_by: Literal["day", "week", "month"] = "day",
    session: AsyncSession = Depends(get_session),
):
    """Clicks over time, impressions (total/unique), top sources and conversions."""
    await _require_link(session, url_id)

    until = _parse_date(end_date, "end_date") or datetime.now(timezone.utc)
    if end_date and len(end_date) == 10:
        until = until + timedelta(days=1) - timedelta(microseconds=1)  # inclusive end day
    since = _parse_date(start_date, "start_date") or (until - timedelta(days=DEFAULT_ANALYTICS_DAYS))
    if since > until:
        raise HTTPException(400, "start_date must be before end_date")

    clicks = ClickRepository(session)
    impressions = ImpressionRepository(session)

    total_clicks = await clicks.count_by_url(url_id, since=since, until=until)
    buckets = Counter(_bucket(ts, group_by) for ts in await clicks.timestamps(url_id, since, until))
    total_impressions, unique_impressions = await impressions.counts(url_id, since, until)
    conversions = await ConversionRepository(session).count_by_url(url_id, since, until)

    data = {
        "url_id": url_id,
        "period": {"start_date": since.isoformat(), "end_date": until.isoformat(), "group_by": group_by},
        "total_clicks": total_clicks,
        "impressions": {
            "total": total_impressions,
            "unique": unique_impressions,
        },
        "clicks_per_unique_impression": round(total_clicks / unique_impressions, 2) if unique_impressions else 0,
        "conversions": conversions,
        "conversion_rate": round(conversions / total_clicks * 100, 2) if total_clicks else 0,
        "clicks_over_time": [{"period": key, "clicks": buckets[key]} for key in sorted(buckets)],
        "top_sources": await impressions.top_sources(url_id, since, until),
    }
    return envelope(200, "Successfully retrieved URL analytics", data)


# ── Conversion goals ────────────────────────────────────────────────────

@router.post("/urls/{url_id}/goals", status_code=201)
async def create_goal(url_id: int, req: CreateGoalRequest, session: AsyncSession = Depends(get_session)):
    await _require_link(session, url_id)
    goal = await GoalRepository(session).create(url_id, req.name, req.description)
    await session.commit()
    return envelope(201, "Successfully created conversion goal", _goal_dict(goal))


@router.get("/urls/{url_id}/goals")
async def list_goals(url_id: int, session: AsyncSession = Depends(get_session)):
    await _require_link(session, url_id)
    goals = await GoalRepository(session).by_url(url_id)
    return envelope(200, "Successfully retrieved conversion goals", [_goal_dict(g) for g in goals])
