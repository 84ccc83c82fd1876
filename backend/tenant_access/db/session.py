from __future__ import annotations

from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from tenant_access.core.config import settings


def create_engine_for(url: str, **kwargs: Any) -> AsyncEngine:
    """
    Postgres (asyncpg) gets pre-ping and periodic recycling; SQLite, used for
    tests and local runs, gets the driver defaults.
    """
    if url.startswith("sqlite"):
        return create_async_engine(url, future=True, echo=False, **kwargs)
    return create_async_engine(
        url,
        future=True,
        echo=False,
        pool_pre_ping=True,  # detects dead connections before using them
        pool_recycle=300,    # seconds
        **kwargs,
    )


def make_sessionmaker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False: store results are read after the session closes
    return async_sessionmaker(bind=bind, class_=AsyncSession, expire_on_commit=False, autoflush=False)


# Use the CLEAN URL: asyncpg rejects sslmode/channel_binding query params.
engine: AsyncEngine = create_engine_for(settings.DATABASE_URL_ASYNC_CLEAN)

AsyncSessionLocal = make_sessionmaker(engine)
