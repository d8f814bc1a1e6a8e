"""Declarative base and the process-wide async engine for the backend store."""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.core.config import get_settings


class Base(DeclarativeBase):
    pass


_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def session_factory_for(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Rows are handed back to route handlers after commit
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_tables(engine: AsyncEngine) -> None:
    """Create ``payments`` and ``subscriptions`` if they do not exist."""
    import app.db.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_db(url: str | None = None) -> None:
    """Connect to the backend store named by ``url`` or ``DATABASE_URL``. Idempotent."""
    global _engine, _session_factory

    if _engine is not None:
        return

    settings = get_settings()
    engine = create_async_engine(url or settings.database_url, echo=settings.debug, pool_pre_ping=True)
    await create_tables(engine)

    _engine = engine
    _session_factory = session_factory_for(engine)


async def close_db() -> None:
    global _engine, _session_factory

    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _session_factory = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the session factory bound by init_db().

    Raises RuntimeError if the store is not connected.
    """
    if _session_factory is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _session_factory


async def ping_db() -> None:
    """Round-trip a trivial query; raises if the store is unreachable."""
    async with get_session_factory()() as session:
        await session.execute(text("SELECT 1"))
