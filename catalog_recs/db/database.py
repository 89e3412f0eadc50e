"""Async engine and session factory shared by the SQL-backed ranking stores."""

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base

from catalog_recs.config import get_settings

settings = get_settings()

# Projection loads read the whole catalog; keep statement echo off
engine = create_async_engine(
    settings.database_url,
    pool_size=settings.database_pool_size,
    max_overflow=settings.database_max_overflow,
    echo=False,
    pool_pre_ping=True,
    pool_recycle=300,
)

# Every repository call opens its own session; a personalized request holds up
# to seven at once while its loads run concurrently.
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

Base = declarative_base()


async def init_db():
    """Create catalog and signal tables that do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all, checkfirst=True)
