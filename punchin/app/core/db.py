"""Async SQLAlchemy database helpers.

Single authoritative module providing:
    * get_engine / get_session_factory
    * init_db(force=...)
    * _reset_engine_for_tests (used in test isolation)

Services never import this module: they receive a store built on
``get_session_factory()`` from the process entry point.
"""

import os

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ..domain.models import Base
from .constants import DATABASE_URL

DATABASE_URL_ENV = "DATABASE_URL"

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _make_engine(url: str) -> AsyncEngine:
    """Create an async engine."""
    return create_async_engine(url, echo=False, future=True)


def get_engine() -> AsyncEngine:
    global _engine, _session_factory
    if _engine is None:
        url = os.getenv(DATABASE_URL_ENV) or DATABASE_URL
        _engine = _make_engine(url)
        _session_factory = async_sessionmaker(_engine, expire_on_commit=False)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    get_engine()
    assert _session_factory is not None
    return _session_factory


async def init_db(force: bool = False) -> None:
    """Create database schema (development and tests; production uses Alembic)."""
    engine = get_engine()
    async with engine.begin() as conn:
        if force:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


def _reset_engine_for_tests() -> None:
    """Reset engine references (fast, synchronous)."""
    global _engine, _session_factory
    _engine = None
    _session_factory = None


__all__ = [
    "get_engine",
    "get_session_factory",
    "init_db",
    "dispose_engine",
    "_reset_engine_for_tests",
]
