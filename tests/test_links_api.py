"""Tests for the link management API."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select

from cylink.db.tables import ClickRow, ConversionGoalRow
from cylink.services import background
from cylink.services.tracking import generate_tracking_id
from tests.conftest import open_session, seed_link


async def _create(client, **payload):
    payload.setdefault("original_url", "https://example.com/landing")
    return await client.post("/api/v1/public/urls", json=payload)


# ── Create ──────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_create_generates_code(client):
    resp = await _create(client, title="Landing")
    assert resp.status_code == 201
    body = resp.json()
    assert body["status"] == 201
    data = body["data"]
    assert len(data["short_code"]) == 6
    assert data["short_url"].endswith(data["short_code"])
    assert data["redirect_type"] == "302"
    assert data["goal_id"] is None

    redirect = await client.get(f"/{data['short_code']}")
    assert redirect.status_code == 302


@pytest.mark.asyncio
async def test_create_with_custom_code_and_goal(client):
    resp = await _create(client, custom_code="spring-sale", redirect_type="301", goal_name="purchase")
    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["short_code"] == "spring-sale"
    assert data["redirect_type"] == "301"

    async with open_session() as session:
        goal = (await session.execute(select(ConversionGoalRow))).scalar_one()
    assert data["goal_id"] == goal.id
    assert goal.name == "purchase"


@pytest.mark.asyncio
async def test_create_rejects_invalid_url(client):
    resp = await _create(client, original_url="javascript:alert(1)")
    assert resp.status_code == 400
    assert resp.json() == {"status": 400, "message": "Invalid URL provided"}


@pytest.mark.asyncio
async def test_create_rejects_taken_code(client):
    await seed_link(short_code="taken1")
    resp = await _create(client, custom_code="taken1")
    assert resp.status_code == 409
    assert resp.json()["message"] == "Custom code already in use"


@pytest.mark.asyncio
async def test_deleted_code_is_never_reissued(client):
    await seed_link(short_code="ghost1", deleted_at=datetime.now(timezone.utc))
    resp = await _create(client, custom_code="ghost1")
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_create_rejects_reserved_and_malformed_codes(client):
    for code in ["api-v2", "ab", "has space", "x" * 31]:
        resp = await _create(client, custom_code=code)
        assert resp.status_code == 400, code
        assert resp.json()["message"] == "Invalid custom code"


@pytest.mark.asyncio
async def test_create_rejects_past_expiry(client):
    past = (datetime.now(timezone.utc) - timedelta(hours=1)).isoformat()
    resp = await _create(client, expiry_date=past)
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_create_rejects_unknown_redirect_type(client):
    resp = await _create(client, redirect_type="307")
    assert resp.status_code == 422


# ── Details / delete ────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_details_by_id_and_code(client):
    link = await seed_link(short_code="info01", title="Docs")
    ua = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/126.0 Safari/537.36"
    await client.get("/info01", headers={"User-Agent": ua})
    await background.drain()

    by_id = await client.get(f"/api/v1/urls/{link.id}")
    by_code = await client.get("/api/v1/urls/info01")
    assert by_id.status_code == by_code.status_code == 200
    assert by_id.json()["data"] == by_code.json()["data"]

    data = by_id.json()["data"]
    assert data["clicks"] == 1
    assert data["analytics"]["browser_stats"] == {"Chrome": 1}
    assert data["analytics"]["device_stats"] == {"desktop": 1}
    assert data["analytics"]["recent_clicks"][0]["device_type"] == "desktop"


@pytest.mark.asyncio
async def test_details_unknown_returns_404(client):
    resp = await client.get("/api/v1/urls/999")
    assert resp.status_code == 404
    assert resp.json() == {"status": 404, "message": "URL not found"}


@pytest.mark.asyncio
async def test_delete_stops_redirects(client):
    link = await seed_link(short_code="bye001")
    resp = await client.delete(f"/api/v1/urls/{link.id}")
    assert resp.status_code == 200
    assert resp.json()["data"]["deleted_at"] is not None

    assert (await client.get("/bye001")).status_code == 404
    assert (await client.get(f"/api/v1/urls/{link.id}")).status_code == 404
    assert (await client.delete(f"/api/v1/urls/{link.id}")).status_code == 404


# ── Analytics ───────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_analytics_counts_clicks_impressions_and_conversions(client):
    link = await seed_link(short_code="stat01")
    for ip in ["198.51.100.1", "198.51.100.1", "198.51.100.2"]:
        await client.get("/stat01", headers={"X-Forwarded-For": ip, "Referer": "https://t.co/x"})
        await background.drain()

    async with open_session() as session:
        click = (await session.execute(select(ClickRow).limit(1))).scalar_one()
    await client.post("/api/v1/conversions", json={"tracking_id": generate_tracking_id(click.id, link.id)})

    resp = await client.get(f"/api/v1/urls/{link.id}/analytics", params={"group_by": "month"})
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["total_clicks"] == 3
    assert data["impressions"] == {"total": 3, "unique": 2}
    assert data["clicks_per_unique_impression"] == 1.5
    assert data["conversions"] == 1
    assert data["conversion_rate"] == 33.33
    assert data["clicks_over_time"] == [
        {"period": datetime.now(timezone.utc).strftime("%Y-%m"), "clicks": 3},
    ]
    assert data["top_sources"][0] == {"source": "t.co", "visits": 3}


@pytest.mark.asyncio
async def test_analytics_empty_range(client):
    link = await seed_link()
    resp = await client.get(
        f"/api/v1/urls/{link.id}/analytics",
        params={"start_date": "2020-01-01", "end_date": "2020-01-31"},
    )
    data = resp.json()["data"]
    assert data["total_clicks"] == 0
    assert data["conversion_rate"] == 0
    assert data["clicks_over_time"] == []


@pytest.mark.asyncio
async def test_analytics_rejects_bad_dates(client):
    link = await seed_link()
    bad = await client.get(f"/api/v1/urls/{link.id}/analytics", params={"start_date": "yesterday"})
    assert bad.status_code == 400
    inverted = await client.get(
        f"/api/v1/urls/{link.id}/analytics",
        params={"start_date": "2024-02-01", "end_date": "2024-01-01"},
    )
    assert inverted.status_code == 400


@pytest.mark.asyncio
async def test_analytics_accepts_utc_z_suffix(client):
    link = await seed_link()
    resp = await client.get(
        f"/api/v1/urls/{link.id}/analytics",
        params={"start_date": "2024-12-01T00:00:00Z", "end_date": "2025-01-01T00:00:00Z"},
    )
    assert resp.status_code == 200
    period = resp.json()["data"]["period"]
    assert period["start_date"] == "2024-12-01T00:00:00+00:00"
    assert period["end_date"] == "2025-01-01T00:00:00+00:00"


# ── Goals ───────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_goals_create_and_list(client):
    link = await seed_link()
    first = await client.post(f"/api/v1/urls/{link.id}/goals", json={"name": "signup"})
    await client.post(f"/api/v1/urls/{link.id}/goals", json={"name": "purchase", "description": "paid"})
    assert first.status_code == 201

    resp = await client.get(f"/api/v1/urls/{link.id}/goals")
    names = [g["name"] for g in resp.json()["data"]]
    assert names == ["signup", "purchase"]


@pytest.mark.asyncio
async def test_goal_created_via_api_drives_attribution(client):
    link = await seed_link(short_code="goal99")
    goal = (await client.post(f"/api/v1/urls/{link.id}/goals", json={"name": "signup"})).json()["data"]

    tracker = AsyncMock()
    with patch("cylink.services.conversions.auto_track_conversion", new=tracker):
        await client.get("/goal99")
        await background.drain()
    assert tracker.await_args.args[1] == goal["id"]


@pytest.mark.asyncio
async def test_goals_for_unknown_link(client):
    resp = await client.post("/api/v1/urls/404/goals", json={"name": "signup"})
    assert resp.status_code == 404
