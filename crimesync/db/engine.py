"""Async SQLAlchemy engine + session factory for the local cache.

SQLite (aiosqlite) on device; any async SQLAlchemy URL works for tests/tools.
"""
from __future__ import annotations

from sqlalchemy.ext.asyncio import (
    AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine,
)
from sqlalchemy.pool import StaticPool

from config.settings import settings


def create_cache_engine(url: str | None = None) -> AsyncEngine:
    """Build an engine for the cache database (defaults to settings)."""
    url = url or settings.CACHE_DATABASE_URL
    engine_kwargs: dict = {
        "echo": False,
        "future": True,
    }
    if url.startswith("sqlite"):
        engine_kwargs["connect_args"] = {"check_same_thread": False}
        # In-memory databases vanish per connection unless the pool pins one
        if ":memory:" in url or "mode=memory" in url:
            engine_kwargs["poolclass"] = StaticPool
    return create_async_engine(url, **engine_kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
