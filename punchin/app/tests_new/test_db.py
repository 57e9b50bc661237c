import asyncio
from types import SimpleNamespace

import pytest

from punchin.app.core import db


def test_get_engine_uses_env_and_sets_factory(monkeypatch):
    db._reset_engine_for_tests()

    stub_engine = SimpleNamespace(sync_engine="sync")

    def fake_make_engine(url: str):
        assert url == "fake-url"
        return stub_engine

    def fake_async_sessionmaker(engine, expire_on_commit=False):
        assert engine is stub_engine
        assert expire_on_commit is False
        return "factory"

    monkeypatch.setenv("DATABASE_URL", "fake-url")
    monkeypatch.setattr(db, "_make_engine", fake_make_engine)
    monkeypatch.setattr(db, "async_sessionmaker", fake_async_sessionmaker)

    engine = db.get_engine()
    assert engine is stub_engine
    assert db.get_engine() is stub_engine
    assert db.get_session_factory() == "factory"

    db._reset_engine_for_tests()


def test_reset_engine_clears_state():
    db._engine = "e"
    db._session_factory = "sf"

    db._reset_engine_for_tests()

    assert db._engine is None
    assert db._session_factory is None


def test_init_db_creates_schema(monkeypatch, tmp_path):
    pytest.importorskip("aiosqlite")
    from sqlalchemy import inspect

    db._reset_engine_for_tests()
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'init.db'}")

    async def scenario():
        await db.init_db()
        await db.init_db(force=True)
        async with db.get_engine().connect() as conn:
            names = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())
        await db.dispose_engine()
        return names

    names = asyncio.run(scenario())
    assert {"studios", "rooms", "bookings", "availability_entries", "booking_changes"} <= set(names)
    assert db._engine is None
