"""Async SQLAlchemy engine + session factory.

SQLite (aiosqlite) in dev and tests, PostgreSQL (asyncpg) in prod. The redirect
path and the detached analytics tasks draw from the same pool, so it is sized
for one awaited click write plus a couple of background writes per request.
"""
from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from config.settings import settings

_ASYNC_DRIVERS = {
    "postgres://": "postgresql+asyncpg://",
    "postgresql://": "postgresql+asyncpg://",
    "sqlite://": "sqlite+aiosqlite://",
}


def async_database_url(url: str) -> str:
    """Rewrite plain driver URLs (as hosting platforms hand them out) to async ones."""
    for prefix, replacement in _ASYNC_DRIVERS.items():
        if url.startswith(prefix):
            return replacement + url[len(prefix):]
    return url


def sync_database_url(url: str) -> str:
    """Inverse of ``async_database_url``, for Alembic's synchronous engine."""
    return (
        url.replace("sqlite+aiosqlite://", "sqlite://", 1)
        .replace("postgresql+asyncpg://", "postgresql://", 1)
    )


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"echo": False}
    return {
        "echo": False,
        "pool_size": 10,
        "max_overflow": 20,
        "pool_timeout": 30,
        "pool_recycle": 1800,
        "pool_pre_ping": True,
    }


_db_url = async_database_url(settings.DATABASE_URL)

engine = create_async_engine(_db_url, **_engine_options(_db_url))

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_session() -> AsyncSession:
    """FastAPI dependency: one session per request, closed after the response."""
    async with async_session() as session:
        yield session
