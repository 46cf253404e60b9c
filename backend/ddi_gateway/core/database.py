"""
Database configuration and connection management for the DDI gateway
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncSession, create_async_engine
from sqlalchemy.orm import declarative_base

from .config import Settings, get_settings
from .logging_config import get_logger

Base = declarative_base()

# Session variable consulted by the row-level-security policies
TENANT_SETTING = "app.current_tenant_id"

logger = get_logger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Database connection manager

    Every unit of work runs on a single pooled connection. When a tenant is
    given, the tenant session variable is set on that connection before the
    first statement and reset in ``finally`` before the connection goes back
    to the pool, whether or not the work raised.
    """

    def __init__(self, url: Optional[str] = None, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.url = url or settings.async_database_url
        self.is_postgres = self.url.startswith("postgresql")

        engine_kwargs = {"echo": settings.DATABASE_ECHO, "future": True}
        if self.is_postgres:
            engine_kwargs.update(pool_size=settings.DATABASE_POOL_SIZE, pool_pre_ping=True)

        self.engine = create_async_engine(self.url, **engine_kwargs)
        if self.url.startswith("sqlite"):
            event.listen(self.engine.sync_engine, "connect", _enable_sqlite_foreign_keys)

    async def _set_tenant(self, conn: AsyncConnection, tenant_id: Optional[str]) -> None:
        """Bind the tenant to the connection for row-level security"""
        if tenant_id is None or not self.is_postgres:
            return
        await conn.execute(
            text("SELECT set_config(:setting, :tenant_id, false)"),
            {"setting": TENANT_SETTING, "tenant_id": str(tenant_id)}
        )
        await conn.commit()

    async def _reset_tenant(self, conn: AsyncConnection, tenant_id: Optional[str]) -> None:
        """Clear the tenant binding before the connection is released"""
        if tenant_id is None or not self.is_postgres:
            return
        if conn.in_transaction():
            await conn.rollback()
        await conn.execute(text(f"RESET {TENANT_SETTING}"))
        await conn.commit()

    @asynccontextmanager
    async def tenant_session(self, tenant_id: Optional[str]) -> AsyncIterator[AsyncSession]:
        """Yield a session scoped to one connection and one tenant"""
        async with self.engine.connect() as conn:
            await self._set_tenant(conn, tenant_id)
            session = AsyncSession(bind=conn, expire_on_commit=False)
            try:
                yield session
            finally:
                await session.close()
                await self._reset_tenant(conn, tenant_id)

    @asynccontextmanager
    async def transaction(self, tenant_id: Optional[str]) -> AsyncIterator[AsyncSession]:
        """Yield a tenant session that commits on success and rolls back on any error"""
        async with self.tenant_session(tenant_id) as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def ping(self) -> None:
        """Run ``SELECT 1``; raises when the database is unreachable"""
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def create_all(self) -> None:
        """Create all tables (development and test bootstrapping)"""
        from ..models import dns, audit  # noqa: F401  registers the models

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created")

    async def close(self) -> None:
        """Dispose of the connection pool"""
        await self.engine.dispose()
        logger.info("Database connection closed")
