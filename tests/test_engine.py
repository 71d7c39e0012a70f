"""Tests for database URL handling."""
from cylink.db.engine import async_database_url, sync_database_url


class TestDatabaseUrls:
    def test_plain_postgres_gets_asyncpg(self):
        assert async_database_url("postgres://u:p@db/cylink") == "postgresql+asyncpg://u:p@db/cylink"
        assert async_database_url("postgresql://u:p@db/cylink") == "postgresql+asyncpg://u:p@db/cylink"

    def test_plain_sqlite_gets_aiosqlite(self):
        assert async_database_url("sqlite:///cylink.db") == "sqlite+aiosqlite:///cylink.db"

    def test_async_urls_untouched(self):
        url = "sqlite+aiosqlite:///cylink.db"
        assert async_database_url(url) == url

    def test_sync_url_for_migrations(self):
        assert sync_database_url("postgresql+asyncpg://db/cylink") == "postgresql://db/cylink"
        assert sync_database_url("sqlite+aiosqlite:///cylink.db") == "sqlite:///cylink.db"
