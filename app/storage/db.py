# ==== DATABASE CONNECTION AND SESSION MANAGEMENT ==== #

"""
Database connection and session management for Elina progress tracking.

This module provides async SQLAlchemy connectivity, the declarative base for
all models, and session lifecycle management that commits on success and
rolls back on any error.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from app.observability.metrics import db_sessions_active
from app.settings import settings


# ==== SQLALCHEMY CONFIGURATION ==== #

# SQLAlchemy base for model definitions
Base = declarative_base()

# Global engine and session factory instances
engine: AsyncEngine | None = None
SessionLocal: async_sessionmaker[AsyncSession] | None = None


# ==== DATABASE INITIALIZATION ==== #

def normalize_database_url(db_url: str) -> str:
    """Force the asyncpg driver for PostgreSQL URLs."""
    if db_url.startswith("postgresql+asyncpg://"):
        return db_url
    db_url = db_url.replace("postgresql+psycopg://", "postgresql+asyncpg://")
    db_url = db_url.replace("postgresql://", "postgresql+asyncpg://")
    # asyncpg spells the SSL parameter differently
    return db_url.replace("sslmode=require", "ssl=require")


def init_database(db_url: str | None = None) -> AsyncEngine:
    """
    Initialize database engine and session factory.

    Args:
        db_url: Override for ``settings.DATABASE_URL``

    Returns:
        AsyncEngine: The process-wide engine
    """
    global engine, SessionLocal

    if engine is not None:
        return engine

    url = normalize_database_url(db_url or settings.DATABASE_URL)
    engine_kwargs = {"echo": settings.DATABASE_ECHO}
    if url.startswith("postgresql+asyncpg://"):
        engine_kwargs.update(
            isolation_level="READ COMMITTED",
            pool_pre_ping=True,
            connect_args={
                "server_settings": {
                    "application_name": settings.SERVICE_NAME,
                    "timezone": "UTC",
                }
            },
        )

    engine = create_async_engine(url, **engine_kwargs)

    SessionLocal = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    return engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory, initializing the engine on first use."""
    if SessionLocal is None:
        init_database()
    return SessionLocal


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session with automatic commit, rollback and cleanup.

    Yields:
        AsyncSession: Database session
    """
    factory = get_session_factory()

    async with factory() as session:
        try:
            db_sessions_active.inc()
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            db_sessions_active.dec()


async def create_all() -> None:
    """Create all tables; used by local tooling and integration tests."""
    if engine is None:
        init_database()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_database() -> None:
    """Close database connections on shutdown."""
    global engine, SessionLocal
    if engine is not None:
        await engine.dispose()
        engine = None
        SessionLocal = None
