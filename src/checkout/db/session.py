"""Process-wide async engine and session factory for the order store."""

from __future__ import annotations

from typing import Any

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from checkout.core.config import Settings, get_settings

_ENGINE: AsyncEngine | None = None
_SESSION_FACTORY: async_sessionmaker[AsyncSession] | None = None


def _engine_options(settings: Settings) -> dict[str, Any]:
    database = settings.database
    options: dict[str, Any] = {"echo": database.echo}
    # SQLite uses a static per-thread pool that rejects sizing arguments.
    if make_url(database.dsn).get_backend_name() != "sqlite":
        options.update(
            pool_pre_ping=True,
            pool_size=database.pool_size,
            max_overflow=database.max_overflow,
        )
    return options


def get_engine(settings: Settings | None = None) -> AsyncEngine:
    global _ENGINE
    if _ENGINE is None:
        settings = settings or get_settings()
        _ENGINE = create_async_engine(
            settings.database.dsn, **_engine_options(settings)
        )
    return _ENGINE


def get_session_factory(
    settings: Settings | None = None,
) -> async_sessionmaker[AsyncSession]:
    global _SESSION_FACTORY
    if _SESSION_FACTORY is None:
        _SESSION_FACTORY = async_sessionmaker(
            get_engine(settings), expire_on_commit=False, autoflush=False
        )
    return _SESSION_FACTORY


async def dispose_engine() -> None:
    global _ENGINE, _SESSION_FACTORY
    engine, _ENGINE, _SESSION_FACTORY = _ENGINE, None, None
    if engine is not None:
        await engine.dispose()
