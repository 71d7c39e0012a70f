"""Repositories: async DB reads/writes used by the redirect path and the link API."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import select, func, update, case
from sqlalchemy.ext.asyncio import AsyncSession

from cylink.db.tables import (
    ShortLinkRow, ClickRow, ImpressionRow, ConversionGoalRow, ConversionRow,
)


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; everything we store is UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class LinkRepository:
    """Short link lookups and lifecycle writes."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_short_code(self, short_code: str) -> Optional[ShortLinkRow]:
        """Live link by code: active and not soft-deleted. Expiry is not checked here."""
        stmt = select(ShortLinkRow).where(
            ShortLinkRow.short_code == short_code,
            ShortLinkRow.is_active.is_(True),
            ShortLinkRow.deleted_at.is_(None),
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_id(self, url_id: int, include_deleted: bool = False) -> Optional[ShortLinkRow]:
        stmt = select(ShortLinkRow).where(ShortLinkRow.id == url_id)
        if not include_deleted:
            stmt = stmt.where(ShortLinkRow.deleted_at.is_(None))
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_any_by_short_code(self, short_code: str) -> Optional[ShortLinkRow]:
        """Any non-deleted link by code, active or not (management API)."""
        stmt = select(ShortLinkRow).where(
            ShortLinkRow.short_code == short_code,
            ShortLinkRow.deleted_at.is_(None),
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def short_code_exists(self, short_code: str) -> bool:
        """True if any row, deleted or not, owns the code (codes are never reused)."""
        stmt = select(func.count(ShortLinkRow.id)).where(ShortLinkRow.short_code == short_code)
        return (await self.session.execute(stmt)).scalar_one() > 0

    async def create(self, **fields) -> ShortLinkRow:
        row = ShortLinkRow(**fields)
        self.session.add(row)
        await self.session.flush()
        return row

    async def soft_delete(self, url_id: int) -> bool:
        now = datetime.now(timezone.utc)
        stmt = (
            update(ShortLinkRow)
            .where(ShortLinkRow.id == url_id, ShortLinkRow.deleted_at.is_(None))
            .values(deleted_at=now, is_active=False, updated_at=now)
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0


class ClickRepository:
    """Click inserts and per-link click reads."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def record(self, url_id: int, **visitor) -> ClickRow:
        row = ClickRow(url_id=url_id, **visitor)
        self.session.add(row)
        await self.session.flush()
        return row

    async def get_by_id(self, click_id: int) -> Optional[ClickRow]:
        result = await self.session.execute(select(ClickRow).where(ClickRow.id == click_id))
        return result.scalar_one_or_none()

    async def count_by_url(
        self, url_id: int, since: datetime | None = None, until: datetime | None = None,
    ) -> int:
        stmt = select(func.count(ClickRow.id)).where(ClickRow.url_id == url_id)
        if since is not None:
            stmt = stmt.where(ClickRow.clicked_at >= since)
        if until is not None:
            stmt = stmt.where(ClickRow.clicked_at <= until)
        return (await self.session.execute(stmt)).scalar_one()

    async def recent(self, url_id: int, limit: int = 10) -> list[ClickRow]:
        stmt = (
            select(ClickRow)
            .where(ClickRow.url_id == url_id)
            .order_by(ClickRow.clicked_at.desc(), ClickRow.id.desc())
            .limit(limit)
        )
        return list((await self.session.execute(stmt)).scalars().all())

    async def breakdown(self, url_id: int, column) -> dict[str, int]:
        """Click counts grouped by a ClickRow column (browser, device_type, ...)."""
        stmt = (
            select(column, func.count(ClickRow.id))
            .where(ClickRow.url_id == url_id)
            .group_by(column)
            .order_by(func.count(ClickRow.id).desc())
        )
        rows = (await self.session.execute(stmt)).all()
        return {(name or "unknown"): count for name, count in rows}

    async def timestamps(self, url_id: int, since: datetime, until: datetime) -> list[datetime]:
        stmt = select(ClickRow.clicked_at).where(
            ClickRow.url_id == url_id,
            ClickRow.clicked_at >= since,
            ClickRow.clicked_at <= until,
        )
        return [as_utc(ts) for ts in (await self.session.execute(stmt)).scalars().all()]


class ImpressionRepository:
    """Append-only impression log."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def has_recent(
        self, url_id: int, ip_address: str | None, window: timedelta, now: datetime | None = None,
    ) -> bool:
        cutoff = (now or datetime.now(timezone.utc)) - window
        stmt = select(func.count(ImpressionRow.id)).where(
            ImpressionRow.url_id == url_id,
            ImpressionRow.ip_address == ip_address,
            ImpressionRow.timestamp >= cutoff,
        )
        return (await self.session.execute(stmt)).scalar_one() > 0

    async def record(self, url_id: int, **fields) -> ImpressionRow:
        row = ImpressionRow(url_id=url_id, **fields)
        self.session.add(row)
        await self.session.flush()
        return row

    async def list_for_url(self, url_id: int) -> list[ImpressionRow]:
        stmt = select(ImpressionRow).where(ImpressionRow.url_id == url_id).order_by(ImpressionRow.id)
        return list((await self.session.execute(stmt)).scalars().all())

    async def counts(self, url_id: int, since: datetime, until: datetime) -> tuple[int, int]:
        """(total, unique) impressions in the range."""
        stmt = select(
            func.count(ImpressionRow.id),
            func.sum(case((ImpressionRow.is_unique.is_(True), 1), else_=0)),
        ).where(
            ImpressionRow.url_id == url_id,
            ImpressionRow.timestamp >= since,
            ImpressionRow.timestamp <= until,
        )
        total, unique = (await self.session.execute(stmt)).one()
        return total or 0, unique or 0

    async def top_sources(self, url_id: int, since: datetime, until: datetime, limit: int = 10) -> list[dict]:
        stmt = (
            select(ImpressionRow.source, func.count(ImpressionRow.id).label("visits"))
            .where(
                ImpressionRow.url_id == url_id,
                ImpressionRow.timestamp >= since,
                ImpressionRow.timestamp <= until,
            )
            .group_by(ImpressionRow.source)
            .order_by(func.count(ImpressionRow.id).desc())
            .limit(limit)
        )
        rows = (await self.session.execute(stmt)).all()
        return [{"source": source or "direct", "visits": visits} for source, visits in rows]


class GoalRepository:
    """Conversion goals per link. Read-only from the redirect path."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def by_url(self, url_id: int) -> list[ConversionGoalRow]:
        stmt = (
            select(ConversionGoalRow)
            .where(ConversionGoalRow.url_id == url_id)
            .order_by(ConversionGoalRow.id)
        )
        return list((await self.session.execute(stmt)).scalars().all())

    async def get_by_id(self, goal_id: int) -> Optional[ConversionGoalRow]:
        result = await self.session.execute(
            select(ConversionGoalRow).where(ConversionGoalRow.id == goal_id)
        )
        return result.scalar_one_or_none()

    async def create(self, url_id: int, name: str, description: str | None = None) -> ConversionGoalRow:
        row = ConversionGoalRow(url_id=url_id, name=name, description=description)
        self.session.add(row)
        await self.session.flush()
        return row


class ConversionRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def record(self, **fields) -> ConversionRow:
        row = ConversionRow(**fields)
        self.session.add(row)
        await self.session.flush()
        return row

    async def count_by_url(self, url_id: int, since: datetime, until: datetime) -> int:
        stmt = select(func.count(ConversionRow.id)).where(
            ConversionRow.url_id == url_id,
            ConversionRow.created_at >= since,
            ConversionRow.created_at <= until,
        )
        return (await self.session.execute(stmt)).scalar_one()
