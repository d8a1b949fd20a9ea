"""
Async engine, session factory and the transaction boundary used by services.

Every write operation of the booking core runs inside `atomic()`: one
transaction that commits on success and rolls back on any exception.
Component helpers (capacity, entitlements) never commit on their own.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from parkpass.core.config import get_settings
from parkpass.core.errors import PersistenceFailure
from parkpass.core.logging import get_logger

logger = get_logger(__name__)


def _configure_sqlite(engine: AsyncEngine) -> None:
    """
    SQLite has no row locks. Opening every transaction with BEGIN IMMEDIATE
    takes the database write lock up front, so concurrent writers queue on the
    busy timeout instead of deadlocking on a SHARED -> RESERVED upgrade.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Take over transaction control from the driver.
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(database_url: str) -> AsyncEngine:
    settings = get_settings()
    url = make_url(database_url)

    if url.get_backend_name() == "sqlite":
        engine = create_async_engine(
            url,
            echo=settings.DEBUG,
            connect_args={"timeout": settings.SQLITE_BUSY_TIMEOUT},
        )
        _configure_sqlite(engine)
        return engine

    return create_async_engine(
        url,
        echo=settings.DEBUG,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_recycle=settings.DB_POOL_RECYCLE,
        pool_pre_ping=True,
    )


def build_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(get_settings().DATABASE_URL)
AsyncSessionLocal = build_sessionmaker(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session per request. Services own the commit."""
    async with AsyncSessionLocal() as session:
        yield session


@asynccontextmanager
async def atomic(db: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    Run the enclosed block as a single transaction.

    Domain errors propagate unchanged after the rollback; raw storage errors
    are wrapped in PersistenceFailure so callers see one typed failure.
    """
    try:
        yield db
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("transaction_failed", error=str(exc), error_type=type(exc).__name__)
        raise PersistenceFailure("Storage error, please retry") from exc
    except Exception:
        await db.rollback()
        raise
