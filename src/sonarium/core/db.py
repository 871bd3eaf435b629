from typing import Any, AsyncGenerator

from loguru import logger
from sqlalchemy import Engine, event
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from sonarium.core.config import settings
from sonarium.core.models import Base

# busy_timeout (ms) allows SQLite to wait instead of failing immediately with "database is locked"
engine = create_async_engine(
    settings.DB_URL,
    echo=settings.DB_ECHO,
    connect_args={"check_same_thread": False, "timeout": 30},
)


@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_connection: Any, connection_record: Any) -> None:
    """Sets WAL mode and foreign key enforcement for SQLite connections.

    WAL lets the API read scan job progress while the scan worker holds a
    write transaction for a cleaning chunk.
    """
    if settings.DB_URL.startswith("sqlite"):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.execute("PRAGMA busy_timeout=30000")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# Session Factory
AsyncSessionLocal = async_sessionmaker(
    bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for getting DB session.

    Yields a scoped session to the FastAPI dependency injection system,
    ensuring each request gets a clean transaction.
    """
    async with AsyncSessionLocal() as session:
        yield session


async def init_db() -> None:
    """Create missing library and scan job tables; existing rows are kept."""
    settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Database ready at {settings.DB_PATH}.")
