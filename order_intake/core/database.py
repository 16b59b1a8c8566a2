"""Async SQLAlchemy engine, session factory and database client.

The case store lives here: ``order_cases`` projections, the append-only
``case_events`` log and the ``order_fingerprints`` idempotency table.
Production schemas are managed by Alembic; ``create_all`` is only used when
the API starts in development.
"""

from collections.abc import AsyncGenerator
from typing import Any, Dict

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from order_intake.core.config import settings
from order_intake.utils.logging import get_logger

LOGGER = get_logger(__name__)


class Base(DeclarativeBase):
    """Declarative base for the case store tables."""


engine = create_async_engine(
    settings.database_url,
    pool_size=settings.database_pool_size,
    max_overflow=settings.database_max_overflow,
    echo=settings.database_echo,
    # PgBouncer in transaction mode cannot keep prepared statements
    connect_args={"statement_cache_size": 0},
)

async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding one session per request."""
    async with async_session_maker() as session:
        yield session


class DatabaseClient:
    """Owns the engine lifecycle for the API process."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self.connected = False

    async def ping(self) -> bool:
        async with self.engine.connect() as conn:
            ok = await conn.scalar(text("SELECT 1")) == 1
        self.connected = ok
        return ok

    async def ensure_schema(self) -> None:
        """Create any missing case store tables."""
        from order_intake.database import models  # noqa: F401  registers tables on Base

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        LOGGER.info("Case store tables verified", extra={"tables": sorted(Base.metadata.tables)})

    async def dispose(self) -> None:
        await self.engine.dispose()
        self.connected = False
        LOGGER.info("Database engine disposed")

    async def health_check(self) -> Dict[str, Any]:
        try:
            ok = await self.ping()
        except Exception as e:
            self.connected = False
            LOGGER.error("Database health check failed", extra={"error": str(e)})
            return {"status": "unhealthy", "connected": False, "error": str(e)}
        return {"status": "healthy" if ok else "unhealthy", "connected": ok, "database": "postgresql"}


db_client = DatabaseClient(engine)


async def init_database(create_schema: bool = False) -> None:
    """Verify connectivity and, in development, create missing tables."""
    LOGGER.info("Connecting to the case store")
    try:
        await db_client.ping()
        if create_schema:
            await db_client.ensure_schema()
    except Exception:
        LOGGER.error("Database initialization failed", exc_info=True)
        raise


async def close_database() -> None:
    await db_client.dispose()
