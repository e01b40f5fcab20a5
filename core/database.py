"""
Database Management and Configuration.

This module owns the asynchronous database engine that backs the realtime store
(reactions, comments and the activity feed). It uses SQLAlchemy's asyncio
support with SQLModel table definitions.

Key Components:
- `init_engine`: Builds the async engine from `DATABASE_URL` (or an explicit
  URL). SQLite runs through `aiosqlite`; an in-memory SQLite database uses a
  `StaticPool` so every session sees the same data; PostgreSQL runs through
  `asyncpg` with a bounded connection pool.
- `get_session_factory`: The `async_sessionmaker` handed to the store.
- `create_db_and_tables`: Startup hook creating all SQLModel tables.
- `dispose_engine`: Shutdown hook releasing pooled connections.
- `get_database_info`: Diagnostic information for health endpoints.
"""

import os
import logging
from typing import Any, Dict, Optional
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

# Registers the table models on SQLModel.metadata
from core import models  # noqa: F401
from core.exceptions import DatabaseConnectionError

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./gallery_live.db"

logger = logging.getLogger(__name__)

engine: Optional[AsyncEngine] = None
async_session: Optional[async_sessionmaker] = None
database_url: str = DEFAULT_DATABASE_URL


def init_engine(url: Optional[str] = None) -> AsyncEngine:
    """Create the async engine and session factory"""
    global engine, async_session, database_url

    database_url = url or os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)

    if database_url.startswith("sqlite"):
        kwargs: Dict[str, Any] = {
            "connect_args": {"check_same_thread": False},
            "echo": False,
        }
        if ":memory:" in database_url or database_url.endswith("://"):
            kwargs["poolclass"] = StaticPool
        engine = create_async_engine(database_url, **kwargs)
    else:
        engine = create_async_engine(
            database_url,
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,  # Validate connections before use
            echo=False,
        )

    async_session = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )
    logger.info(f"Database engine initialized ({_database_type()})")
    return engine


def get_session_factory() -> async_sessionmaker:
    """Session factory for the store, initializing the engine on first use"""
    if async_session is None:
        init_engine()
    return async_session


async def create_db_and_tables():
    """
    Initialize the database and create all tables.
    Called during application startup.
    """
    if engine is None:
        init_engine()
    try:
        async with engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
        logger.info("Gallery database tables created successfully")
    except Exception as e:
        logger.error(f"Failed to create gallery database tables: {e}")
        raise DatabaseConnectionError("create_tables", str(e)) from e


async def dispose_engine():
    """Release pooled connections on shutdown"""
    global engine, async_session
    if engine is not None:
        await engine.dispose()
        logger.info("Database engine disposed")
    engine = None
    async_session = None


def _database_type() -> str:
    return "postgresql" if "postgresql" in database_url else "sqlite"


async def get_database_info() -> Dict[str, Any]:
    """
    Get basic database information for health checks.
    """
    connection_healthy = False
    if engine is not None:
        try:
            async with engine.connect() as conn:
                result = await conn.execute(text("SELECT 1"))
                connection_healthy = result.scalar() == 1
        except Exception as e:
            logger.error(f"Database health check failed: {e}")

    return {
        # Hide credentials
        "database_url": database_url.split("@")[1] if "@" in database_url else "masked",
        "connection_healthy": connection_healthy,
        "database_type": _database_type(),
    }
