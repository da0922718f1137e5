"""Tests for database engine helpers."""

import pytest

from storefront.infrastructure.config import settings
from storefront.infrastructure.database import engine_options, ping


class TestEngineOptions:
    def test_postgres_gets_pool_sizing(self) -> None:
        options = engine_options("postgresql+asyncpg://shop:secret@db:5432/shop")

        assert options["pool_pre_ping"] is True
        assert options["pool_size"] == settings.db_pool_size
        assert options["max_overflow"] == settings.db_max_overflow

    def test_sqlite_has_no_pool_sizing(self) -> None:
        options = engine_options("sqlite+aiosqlite:///./storefront.db")

        assert "pool_size" not in options
        assert "max_overflow" not in options
        assert options["echo"] == settings.debug


class TestPing:
    @pytest.mark.asyncio
    async def test_ping_round_trips(self, session) -> None:
        await ping(session)
