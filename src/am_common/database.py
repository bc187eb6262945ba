"""Async SQLAlchemy engine and session factory.

There is no ORM layer: SqlListingStore runs raw text() SQL through sessions
from async_session_factory and owns each transaction itself.
"""

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from config.settings import settings
from src.am_common.errors import StoreUnavailableError

engine: AsyncEngine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
    pool_pre_ping=True,
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def check_database() -> None:
    """Round-trip SELECT 1; raise StoreUnavailableError if PostgreSQL is unreachable."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        raise StoreUnavailableError(f"Database unavailable: {e}") from e
