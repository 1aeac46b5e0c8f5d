"""
Convo Backend — Database Engine & Session Factory
==================================================

What:  Async SQLAlchemy engine, session factory, and the declarative Base.
How:   Creates an async engine with connection pooling. Unlike a classic
       session-per-request setup, sessions here are opened by the record
       store for each single primitive (see convo/store/table.py), which is
       how the hosted store behaves: every call commits on its own.
Who:   Used by the record tables, the health check and Alembic.
"""

from typing import Any, Dict

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from convo.config import settings


def _engine_options(url: str) -> Dict[str, Any]:
    """
    Pool options for the configured backend.

    SQLite (used by the test suite) gets no pool at all: pooled aiosqlite
    connections would outlive the event loop of the test that opened them.
    """
    options: Dict[str, Any] = {
        "pool_pre_ping": settings.db_pool_pre_ping,
        "echo": settings.log_level == "DEBUG",
    }
    if url.startswith("sqlite"):
        options["poolclass"] = NullPool
    else:
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_recycle=3600,
        )
    return options


# ── Engine Configuration ──────────────────────────────────────────────────
engine = create_async_engine(settings.database_url, **_engine_options(settings.database_url))

# ── Session Factory ───────────────────────────────────────────────────────
# expire_on_commit=False: records are converted to dicts after commit
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models (shared metadata for Alembic)."""
    pass


# ── Lifecycle Helpers ─────────────────────────────────────────────────────
async def create_tables() -> None:
    """
    Creates every table known to the metadata.

    Used by the test suite; deployments run `alembic upgrade head` instead.
    """
    import convo.models  # noqa: F401  (registers the models on Base.metadata)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_tables() -> None:
    """Drops every table known to the metadata (test teardown)."""
    import convo.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def dispose_engine() -> None:
    """
    Gracefully closes all connections in the pool.

    Called during application shutdown (lifespan handler).
    """
    await engine.dispose()
