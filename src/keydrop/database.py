"""Shared async SQLAlchemy engine for the ledger, plus schema management."""

from typing import Optional, Tuple

from loguru import logger
from sqlalchemy import event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .config import Config
from .models import Base

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def create_engine(url: Optional[str] = None) -> AsyncEngine:
    """
    Build an async engine for the ledger database.

    SQLite (used for local runs and tests) has no row locks, so its
    transactions are opened with ``BEGIN IMMEDIATE``: a second writer waits
    on the database lock until the first commits, which gives redemption the
    same serialization a ``FOR UPDATE`` row lock gives on PostgreSQL.
    """
    url = Config.normalize_database_url(url or Config.DATABASE_URL)
    if url.startswith("sqlite"):
        engine = create_async_engine(url, echo=Config.DATABASE_ECHO)
        _begin_immediate_on_sqlite(engine)
        return engine
    return create_async_engine(
        url,
        echo=Config.DATABASE_ECHO,
        pool_size=Config.DATABASE_POOL_SIZE,
        pool_pre_ping=True,
    )


def _begin_immediate_on_sqlite(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Rows handed back to callers must stay readable after commit.
    return async_sessionmaker(engine, expire_on_commit=False)


def get_engine() -> AsyncEngine:
    """Get or create the process-wide ledger engine."""
    global _engine
    if _engine is None:
        _engine = create_engine()
        logger.debug("Ledger engine created for dialect {}", _engine.dialect.name)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create the process-wide session factory bound to the shared engine."""
    global _session_factory
    if _session_factory is None:
        _session_factory = make_session_factory(get_engine())
    return _session_factory


async def close_database() -> None:
    """Dispose the shared engine and its connection pool."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
    _session_factory = None


async def create_schema(engine: AsyncEngine) -> None:
    """Create the catalog and issued-link tables if they do not exist."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Ledger schema ready")


async def check_database_health(engine: AsyncEngine) -> Tuple[bool, str]:
    """Run ``SELECT 1`` against the ledger and return status."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True, "ok"
    except SQLAlchemyError as exc:
        return False, f"error: {exc.__class__.__name__}"
    except OSError as exc:
        return False, f"connection failed: {exc}"
