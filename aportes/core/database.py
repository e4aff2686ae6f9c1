"""Async engine, session factory and ledger database client.

The schema is owned by Alembic. ``DatabaseClient.create_tables`` exists for
local setups and tests against a throwaway database.
"""

from typing import Dict, List, Optional

from sqlalchemy import inspect, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from aportes.core.config import settings
from aportes.core.exceptions import DatabaseError
from aportes.utils.logging import get_logger

LOGGER = get_logger(__name__)

LEDGER_TABLES = (
    "institutions",
    "members",
    "periods",
    "documents",
    "contribution_lines",
    "transfers",
)


class Base(DeclarativeBase):
    pass


def build_engine(url: Optional[str] = None, **overrides) -> AsyncEngine:
    """Create an async engine from settings; keyword overrides win."""
    options = {
        "pool_size": settings.database_pool_size,
        "max_overflow": settings.database_max_overflow,
        "echo": settings.database_echo,
        "pool_pre_ping": True,
    }
    options.update(overrides)
    return create_async_engine(url or settings.database_url, **options)


engine = build_engine()

async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


def _table_names(sync_conn) -> List[str]:
    return inspect(sync_conn).get_table_names()


class DatabaseClient:
    """Connectivity and schema checks for the ledger database."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        """Open a connection and run ``SELECT 1``.

        Raises:
            DatabaseError: If the database cannot be reached
        """
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as e:
            self._connected = False
            LOGGER.error("Database connection failed", exc_info=True)
            raise DatabaseError("Could not connect to the ledger database", e)

        self._connected = True
        LOGGER.info("Database connection successful")

    async def missing_tables(self) -> List[str]:
        """Ledger tables not present in the connected database."""
        async with self.engine.connect() as conn:
            existing = set(await conn.run_sync(_table_names))
        return [table for table in LEDGER_TABLES if table not in existing]

    async def create_tables(self) -> None:
        # Registers the models on Base.metadata
        from aportes.database import models  # noqa: F401

        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as e:
            LOGGER.error("Failed to create ledger tables", exc_info=True)
            raise DatabaseError("Could not create ledger tables", e)
        LOGGER.info("Ledger tables created/verified")

    async def health_check(self) -> Dict:
        """Report connectivity and whether the ledger schema is complete.

        Returns:
            ``status`` is ``healthy``, ``degraded`` (reachable but tables are
            missing) or ``unhealthy`` (unreachable)
        """
        try:
            missing = await self.missing_tables()
        except (SQLAlchemyError, OSError) as e:
            self._connected = False
            LOGGER.error("Database health check failed", extra={"error": str(e)})
            return {"status": "unhealthy", "connected": False, "error": str(e)}

        self._connected = True
        return {
            "status": "degraded" if missing else "healthy",
            "connected": True,
            "missing_tables": missing,
        }

    async def disconnect(self) -> None:
        await self.engine.dispose()
        self._connected = False
        LOGGER.info("Database connection closed")


db_client = DatabaseClient(engine)


async def init_database(create_tables: bool = False, client: Optional[DatabaseClient] = None) -> None:
    """Connect and verify the ledger schema.

    Args:
        create_tables: Create missing tables instead of only warning about them
        client: Client to use; the module-level one by default
    """
    client = client or db_client
    await client.connect()

    missing = await client.missing_tables()
    if missing and create_tables:
        await client.create_tables()
    elif missing:
        LOGGER.warning(
            "Ledger tables missing; run `alembic upgrade head`",
            extra={"missing_tables": missing}
        )
    LOGGER.info("Database initialization completed")


async def close_database(client: Optional[DatabaseClient] = None) -> None:
    await (client or db_client).disconnect()
