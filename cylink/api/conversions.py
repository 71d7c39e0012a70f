"""Conversion recording: target of the post-redirect attribution call."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from cylink.api.errors import envelope
from cylink.db.engine import get_session
from cylink.db.repository import ClickRepository, GoalRepository, ConversionRepository
from cylink.services.tracking import parse_tracking_id

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["conversions"])


class ConversionRequest(BaseModel):
    tracking_id: str = Field(..., min_length=1, max_length=64)
    goal_id: int | None = None
    conversion_value: float | None = Field(None, ge=0)


@router.post("/conversions", status_code=201)
async def record_conversion(req: ConversionRequest, session: AsyncSession = Depends(get_session)):
    """Attribute a conversion to the click behind a tracking ID."""
    parsed = parse_tracking_id(req.tracking_id)
    if parsed is None:
        raise HTTPException(400, "Invalid tracking ID")
    click_id, url_id = parsed

    click = await ClickRepository(session).get_by_id(click_id)
    if click is None or click.url_id != url_id:
        raise HTTPException(404, "Click not found")

    if req.goal_id is not None:
        goal = await GoalRepository(session).get_by_id(req.goal_id)
        if goal is None or goal.url_id != url_id:
            raise HTTPException(404, "Conversion goal not found")

    conversion = await ConversionRepository(session).record(
        click_id=click_id,
        url_id=url_id,
        goal_id=req.goal_id,
        tracking_id=req.tracking_id,
        conversion_value=req.conversion_value,
    )
    await session.commit()
    logger.info(
        "Recorded conversion %s for click %s (goal=%s)", conversion.id, click_id, req.goal_id,
    )

    return envelope(201, "Successfully recorded conversion", {
        "conversion_id": conversion.id,
        "tracking_id": req.tracking_id,
        "goal_id": req.goal_id,
    })
