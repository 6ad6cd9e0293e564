"""Async SQLAlchemy database helpers.

Single authoritative module providing:
    * get_engine / get_session_factory
    * init_db(force=..., on_create=...)
    * configure_engine (explicit URL, used by tests and the API factory)
    * _reset_engine_for_tests (used in test isolation)
"""

import os
from typing import Any, Callable

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from ..domain.models import Base


# =====================================================
# 🔧 ENV + Static configuration
# =====================================================
DATABASE_URL_ENV = "DATABASE_URL"
DEFAULT_URL = "postgresql+asyncpg://booking_user:booking_pass@db:5432/booking_db"

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


# =====================================================
# ⚙️ Engine / Session factory
# =====================================================
def _make_engine(url: str) -> AsyncEngine:
    """Create an async engine.

    In-memory SQLite needs a single shared connection, otherwise every
    session would see its own empty database.
    """
    kwargs: dict[str, Any] = {"echo": False}
    if url.startswith("sqlite") and (":memory:" in url or url.rstrip("/").endswith("sqlite+aiosqlite:")):
        kwargs["poolclass"] = StaticPool
        kwargs["connect_args"] = {"check_same_thread": False}
    return create_async_engine(url, **kwargs)


def get_engine() -> AsyncEngine:
    global _engine, _session_factory
    if _engine is None:
        url = os.getenv(DATABASE_URL_ENV, DEFAULT_URL)
        _engine = _make_engine(url)
        _session_factory = async_sessionmaker(_engine, expire_on_commit=False)
    return _engine


def configure_engine(url: str) -> AsyncEngine:
    """Replace the module engine with one bound to ``url``."""
    global _engine, _session_factory
    _engine = _make_engine(url)
    _session_factory = async_sessionmaker(_engine, expire_on_commit=False)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    get_engine()
    assert _session_factory is not None
    return _session_factory


# =====================================================
# 🧩 DB Init / Reset helpers
# =====================================================
async def init_db(
    force: bool = False, on_create: Callable[[AsyncEngine], None] | None = None
) -> None:
    """Create database schema."""
    engine = get_engine()
    async with engine.begin() as conn:
        if force:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    if on_create:
        on_create(engine)


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


# =====================================================
# 📦 Export
# =====================================================
__all__ = [
    "get_engine",
    "configure_engine",
    "get_session_factory",
    "init_db",
    "dispose_engine",
    "_reset_engine_for_tests",
]
