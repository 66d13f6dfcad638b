"""
Database Configuration Module
Async engine + session factory for the priority store
"""
import os
from typing import Optional

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

# postgresql+asyncpg://... in production
DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise ValueError("DATABASE_URL environment variable is not set")

DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "5"))
DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "10"))
DB_ECHO = os.getenv("DB_ECHO", "0") == "1"


def build_engine(url: str, **overrides) -> AsyncEngine:
    """
    Async engine for the priority store.

    Pool sizing only applies to server databases; SQLite keeps the
    dialect's own pool.
    """
    options = {"echo": DB_ECHO, "pool_pre_ping": True}
    if make_url(url).get_backend_name() != "sqlite":
        options.update(
            pool_size=DB_POOL_SIZE,
            max_overflow=DB_MAX_OVERFLOW,
            pool_recycle=3600,       # Recycle connections after 1 hour
        )
    options.update(overrides)
    return create_async_engine(url, **options)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Services hand ORM rows back after the UoW has committed
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = build_engine(DATABASE_URL)
AsyncSessionLocal = build_session_factory(engine)

Base = declarative_base()


async def create_schema(bind: Optional[AsyncEngine] = None) -> None:
    """Create the priorities table (dev / tests). Production uses migrations."""
    import models  # noqa: F401  register mappers

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db_connections() -> None:
    """
    Gracefully close all database connections.
    Call this on application shutdown.
    """
    await engine.dispose()
