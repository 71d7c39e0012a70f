"""Shared fixtures: a fresh SQLite file per test for the app, its detached tasks and the tests.

Each session gets its own connection, so a detached impression write commits
independently of the request session, as it does against PostgreSQL.
"""
from __future__ import annotations

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

import cylink.db.engine as engine_module
import cylink.services.impressions as impressions_module
from config.settings import settings
from cylink.db.engine import get_session
from cylink.db.tables import Base, ConversionGoalRow, ShortLinkRow
from cylink.api.main import app
from cylink.services import background


def open_session() -> AsyncSession:
    """Session on the current test's database, for seeding and assertions."""
    return engine_module.async_session()


async def _test_session():
    async with open_session() as session:
        yield session


app.dependency_overrides[get_session] = _test_session


async def seed_link(**fields) -> ShortLinkRow:
    """Insert a short link: active, 302, no expiry unless overridden."""
    fields.setdefault("short_code", "abc123")
    fields.setdefault("original_url", "https://example.com/page")
    async with open_session() as session:
        row = ShortLinkRow(**fields)
        session.add(row)
        await session.commit()
        return row


async def seed_goal(url_id: int, name: str = "signup") -> ConversionGoalRow:
    async with open_session() as session:
        row = ConversionGoalRow(url_id=url_id, name=name)
        session.add(row)
        await session.commit()
        return row


@pytest_asyncio.fixture(autouse=True)
async def setup_db(tmp_path, monkeypatch):
    """Fresh schema per test; attribution fires without its production delay."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'cylink.db'}", poolclass=NullPool)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    monkeypatch.setattr(engine_module, "engine", engine)
    monkeypatch.setattr(engine_module, "async_session", factory)
    monkeypatch.setattr(impressions_module, "async_session", factory)
    monkeypatch.setattr(settings, "CONVERSION_DELAY_SECONDS", 0)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    # Detached tasks must finish before their database goes away
    await background.drain(timeout=5)
    await engine.dispose()


@pytest_asyncio.fixture
async def client():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
