"""
Tests for mentorflow/database/connection.py
"""

import pytest
from sqlalchemy import select

from mentorflow.database.connection import Database, normalize_database_url
from mentorflow.database.models import UserDB


class TestNormalizeDatabaseUrl:
    """Tests for driver rewriting of configured URLs."""

    def test_postgres_scheme(self):
        assert normalize_database_url("postgres://u:p@db/mentor") == "postgresql+asyncpg://u:p@db/mentor"

    def test_postgresql_scheme(self):
        assert normalize_database_url("postgresql://u:p@db/mentor") == "postgresql+asyncpg://u:p@db/mentor"

    def test_async_urls_untouched(self):
        assert normalize_database_url("sqlite+aiosqlite:///tmp/m.db") == "sqlite+aiosqlite:///tmp/m.db"
        assert normalize_database_url("postgresql+asyncpg://db/m") == "postgresql+asyncpg://db/m"


class TestDatabase:
    """Tests for the Database wrapper against SQLite."""

    @pytest.mark.asyncio
    async def test_health_check(self, tmp_path):
        db = Database(f"sqlite+aiosqlite:///{tmp_path / 'health.db'}")
        try:
            assert await db.initialize() is True
            health = await db.health_check()
            assert health["status"] == "healthy"
            assert health["dialect"] == "sqlite"
        finally:
            await db.close()

    @pytest.mark.asyncio
    async def test_session_rolls_back_on_error(self, tmp_path):
        db = Database(f"sqlite+aiosqlite:///{tmp_path / 'rollback.db'}")
        try:
            with pytest.raises(RuntimeError):
                async with db.session() as session:
                    session.add(UserDB(name="Rae", email="rae@example.com", role="mentor"))
                    await session.flush()
                    raise RuntimeError("boom")

            async with db.session() as session:
                result = await session.execute(select(UserDB))
                assert result.scalars().all() == []
        finally:
            await db.close()
