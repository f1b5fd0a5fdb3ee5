"""
Database connection and session management using SQLAlchemy.
"""
from pathlib import Path
from typing import AsyncGenerator
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    create_async_engine,
    async_sessionmaker
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool

from keyhub.core.config import settings

# Create declarative base for models
Base = declarative_base()

if settings.database_type == "sqlite":
    engine = create_async_engine(
        settings.database_url,
        echo=settings.app_debug,
        poolclass=NullPool,  # SQLite doesn't support connection pooling well
        connect_args={"check_same_thread": False}
    )
else:
    # Health updates are short independent transactions, keep the pool warm
    engine = create_async_engine(
        settings.database_url,
        echo=settings.app_debug,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,
        pool_recycle=3600,
    )

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency function to get database session.
    
    Yields:
        AsyncSession: Database session
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """
    Initialize database tables.
    Creates all tables defined in models.
    """
    # Import models so they register on Base.metadata
    import keyhub.models  # noqa: F401
    
    if settings.database_type == "sqlite":
        database = make_url(settings.database_url).database
        if database and database != ":memory:":
            Path(database).parent.mkdir(parents=True, exist_ok=True)
    
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_db() -> None:
    """
    Drop all database tables.
    Warning: This will delete all data!
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def close_db() -> None:
    """Close database engine and connections."""
    await engine.dispose()
