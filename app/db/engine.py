"""Async SQLAlchemy engine, session factory and database health check.

When DATABASE_URL is configured, provides:
- async engine for PostgreSQL via asyncpg
- async session factory; one session per request backs every repository
  in the request's Repositories bundle
- ping_database() for /health and /ready
- FastAPI lifespan hook for startup/shutdown

When DATABASE_URL is None, all exports are None and app/repos/registry.py
hands out the process-wide in-memory repositories instead.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.core.config import SETTINGS
from app.core.errors import LedgerConsistencyError

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all table models."""


if SETTINGS.database_url:
    engine = create_async_engine(
        SETTINGS.database_url,
        echo=SETTINGS.is_dev,
        pool_size=5,
        max_overflow=10,
    )
    async_session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
else:
    engine = None
    async_session_factory = None


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """Open a request-scoped async session.

    Commits on success, rolls back on exception.  Enrollment transitions
    and their audit entries land in the same transaction.

    ``LedgerConsistencyError`` is the exception: the transition stands and
    its audit entry is already parked in the reconciliation backlog, so the
    session commits before the error propagates.
    """
    if async_session_factory is None:
        raise RuntimeError(
            "DATABASE_URL is not configured, cannot create database session"
        )
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except LedgerConsistencyError:
            await session.commit()
            raise
        except Exception:
            await session.rollback()
            raise


async def ping_database() -> str:
    """Return "not_configured", "ok" or "degraded"."""
    if engine is None:
        return "not_configured"
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception:
        logger.warning("Database ping failed", exc_info=True)
        return "degraded"
    return "ok"


@asynccontextmanager
async def lifespan_db():
    if engine is None:
        logger.info("No DATABASE_URL configured, using in-memory repositories")
        yield
        return

    logger.info("Database engine created: %s", engine.url.render_as_string())
    yield
    await engine.dispose()
    logger.info("Database engine disposed")
