"""
Database Initialization

Async SQLAlchemy engine and session factory over SQLite (aiosqlite), plus
table creation from the ORM metadata.
"""
import logging
from pathlib import Path
from typing import Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from ..config import settings
from .models import Base

logger = logging.getLogger(__name__)


def create_engine(database_path: Optional[str] = None) -> AsyncEngine:
    """
    Create an async engine for a SQLite file.

    WAL mode and a busy timeout are set on every connection so concurrent
    sessions wait for the write lock instead of failing.
    """
    path = database_path or settings.database_path
    Path(path).parent.mkdir(parents=True, exist_ok=True)

    engine = create_async_engine(
        f"sqlite+aiosqlite:///{path}",
        echo=False,
        connect_args={
            "timeout": 30,  # 30 second timeout for lock acquisition
            "check_same_thread": False
        },
        pool_pre_ping=True,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _set_sqlite_pragmas(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA busy_timeout=30000")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()

    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def initialize_database(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Database initialized at {engine.url.database}")


# ============================================================================
# Application-wide engine for FastAPI
# ============================================================================

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker] = None


def configure_database(database_path: Optional[str] = None) -> async_sessionmaker:
    """Build (or rebuild) the global engine and session factory."""
    global _engine, _session_factory
    _engine = create_engine(database_path)
    _session_factory = create_session_factory(_engine)
    return _session_factory


def get_engine() -> AsyncEngine:
    if _engine is None:
        configure_database()
    return _engine


def get_session_factory() -> async_sessionmaker:
    if _session_factory is None:
        configure_database()
    return _session_factory


async def dispose_database() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None
