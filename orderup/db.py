"""Async SQLAlchemy engine used by the database-backed order store."""

from __future__ import annotations

import logging

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from orderup.config import settings

logger = logging.getLogger(__name__)

Base = declarative_base()

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _ensure_async_driver(raw_url: str) -> str:
    """Rewrite plain ``postgres://`` style URLs to use asyncpg."""

    url = make_url(raw_url)
    if url.get_backend_name() in {"postgresql", "postgres"} and "+asyncpg" not in url.drivername:
        url = url.set(drivername="postgresql+asyncpg")
    return url.render_as_string(hide_password=False)


if settings.database_url:
    _engine = create_async_engine(
        _ensure_async_driver(settings.database_url),
        pool_pre_ping=True,
        echo=settings.database_echo,
    )
    _session_factory = async_sessionmaker(_engine, expire_on_commit=False)


def get_session_factory() -> async_sessionmaker[AsyncSession] | None:
    """Return the session factory, or ``None`` when running without a database."""

    return _session_factory


async def init_models() -> None:
    """Create missing tables for shops, menus, orders and selections."""

    if _engine is None:
        logger.info("DATABASE_URL not set; keeping orders in memory")
        return

    # Mappings register themselves on Base at import time.
    from orderup.services import store  # noqa: F401

    async with _engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    if _engine is not None:
        await _engine.dispose()
