"""
NoteMitra Backend — Database Engine Management
================================================

What:  Async SQLAlchemy engine/session factory construction and the ORM base.
How:   Engines are built on demand from settings (the durable store is only
       used when the startup probe in notemitra.storage selects it), with
       connection pooling for server databases.
Who:   Used by SqlCatalogStore, Alembic and the health check.

Connection Pooling Strategy:
    pool_size=20:      Persistent connections for normal load
    max_overflow=10:   Temporary connections for traffic spikes (total max = 30)
    pool_pre_ping:     Validates connections before use (catches stale connections)
    pool_recycle=3600: Recycles connections every hour

    SQLite URLs (used by the test-suite) skip the pool arguments; the
    aiosqlite dialect manages its own pool.
"""

from typing import Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from notemitra.config import settings


# ── Base Model ────────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    All tables register with this metadata; Alembic and the startup
    `create_all` both read it.
    """
    pass


# ── Engine Configuration ──────────────────────────────────────────────────
def create_engine_from_settings(database_url: Optional[str] = None) -> AsyncEngine:
    """
    Build an async engine for the given URL (defaults to settings.database_url).

    Echoes SQL when LOG_LEVEL=DEBUG.
    """
    url = database_url or settings.database_url
    options = {"echo": settings.log_level == "DEBUG"}
    if not url.startswith("sqlite"):
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=settings.db_pool_pre_ping,
            pool_recycle=3600,
        )
    return create_async_engine(url, **options)


# ── Session Factory ───────────────────────────────────────────────────────
def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Creates new AsyncSession instances with consistent configuration.

    expire_on_commit=False: attributes stay readable after commit, which the
    adapter relies on when converting rows into records.
    """
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


# ── Lifecycle Helpers ─────────────────────────────────────────────────────
async def create_tables(engine: AsyncEngine) -> None:
    """Create every registered table that does not exist yet."""
    # Import models so their tables are registered on Base.metadata
    from notemitra import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine(engine: Optional[AsyncEngine]) -> None:
    """
    Gracefully closes all connections in the pool.

    Called during application shutdown (lifespan handler) and after a
    failed startup probe.
    """
    if engine is not None:
        await engine.dispose()
