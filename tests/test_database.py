"""Tests for database session helpers."""

import pytest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from upkeep.services import database


class TestSessions:
    """init_db / get_db / close_db lifecycle."""

    @pytest.mark.asyncio
    async def test_get_db_requires_init(self, monkeypatch):
        monkeypatch.setattr(database, "async_session_maker", None)

        with pytest.raises(RuntimeError):
            await database.get_db().__anext__()

    @pytest.mark.asyncio
    async def test_get_db_yields_session_after_init(self):
        await database.init_db("sqlite+aiosqlite:///:memory:")
        sessions = database.get_db()
        try:
            db = await sessions.__anext__()
            assert isinstance(db, AsyncSession)
            assert (await db.execute(text("SELECT 1"))).scalar() == 1
        finally:
            await sessions.aclose()
            await database.close_db()

        assert database.engine is None
        assert database.async_session_maker is None

    @pytest.mark.asyncio
    async def test_session_scope_uses_given_factory(self, session_factory):
        async with database.session_scope(session_factory) as db:
            assert (await db.execute(text("SELECT 1"))).scalar() == 1
