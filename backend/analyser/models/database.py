"""
Database configuration and session management
"""
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from analyser.config import settings
from analyser.logger import logger

# Base class for models
Base = declarative_base()


def _ensure_sqlite_dir(db_url: str) -> None:
    """Create the parent directory of a file-backed SQLite database."""
    if not db_url.startswith("sqlite") or ":memory:" in db_url:
        return
    db_path = Path(db_url.split("///", 1)[-1])
    db_path.parent.mkdir(parents=True, exist_ok=True)


def create_engine_for(db_url: str) -> AsyncEngine:
    """Build an async engine for the given URL."""
    _ensure_sqlite_dir(db_url)
    return create_async_engine(
        db_url,
        echo=False,
        pool_pre_ping=True,
    )


engine = create_engine_for(settings.DATABASE.url)

SessionLocal = async_sessionmaker(
    bind=engine,
    autoflush=False,
    expire_on_commit=False,
)


@asynccontextmanager
async def get_db(session_factory: async_sessionmaker = None) -> AsyncIterator[AsyncSession]:
    """
    Provide a transactional database session

    Yields:
        AsyncSession: Database session, committed on success and rolled back on error
    """
    factory = session_factory or SessionLocal
    session = factory()
    try:
        yield session
        await session.commit()
    except Exception as e:
        await session.rollback()
        logger.error(f"Database session error: {e}")
        raise
    finally:
        await session.close()


async def init_db(db_engine: AsyncEngine = None):
    """Initialize database tables"""
    # Import models so they register on Base.metadata
    from analyser.models import schemas  # noqa: F401

    async with (db_engine or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialized")


async def close_db(db_engine: AsyncEngine = None):
    """Close database connections"""
    await (db_engine or engine).dispose()
    logger.info("Database connections closed")
