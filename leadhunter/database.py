"""Async database engine and session management.

Uses SQLAlchemy 2.0 async with the asyncpg driver in production.
Unlike a best-effort cache, the credit ledger lives here: if PostgreSQL is
unavailable at startup the failure is reported and new searches are refused with HTTP 503.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from leadhunter.config import settings

logger = logging.getLogger(__name__)


def build_engine(url: str) -> AsyncEngine:
    """Create an engine; pool options only apply to server databases."""
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=False)
    return create_async_engine(
        url,
        echo=False,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
    )


engine = build_engine(settings.database_url)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def init_db(target: AsyncEngine | None = None) -> bool:
    """Create tables if they don't exist. Returns True on success."""
    from leadhunter.models import Base  # noqa: F811

    try:
        async with (target or engine).begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database initialized successfully")
        return True
    except Exception as e:
        logger.error("Database unavailable, searches disabled: %s", str(e)[:200])
        return False


async def close_db():
    """Dispose engine connections on shutdown."""
    await engine.dispose()
    logger.info("Database connections closed")
