"""
AsyncEngine factory and standalone session context manager.

NullPool because PgBouncer owns connection pooling; merge calls are
short-lived request handlers and never hold a connection between steps.
"""

from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from services.listings.config import settings


def create_engine(database_url: str | None = None) -> AsyncEngine:
    """
    Create async engine for use with PgBouncer transaction-mode pooling.

    The asyncpg driver is selected by rewriting the plain postgresql:// URL.
    """
    url = (database_url or settings.database_url).replace(
        "postgresql://", "postgresql+asyncpg://", 1
    )
    return create_async_engine(
        url,
        poolclass=NullPool,
        echo=settings.debug and settings.environment == "development",
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """
    expire_on_commit=False: the merge engine commits after every step and
    keeps reading row mappings afterwards.
    """
    return async_sessionmaker(engine, expire_on_commit=False)


@asynccontextmanager
async def standalone_session(database_url: str | None = None):
    """
    For scripts (find_duplicates.py) that run outside a request handler.
    Handles engine lifecycle to prevent connection leaks with NullPool.
    """
    engine = create_engine(database_url)
    factory = create_session_factory(engine)
    try:
        async with factory() as session:
            yield session
    finally:
        await engine.dispose()
