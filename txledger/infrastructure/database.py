"""Database Manager: async engine lifecycle, API session dependency and health checks.

Invariants:
    - One engine per DatabaseManager; the manager owns dispose()
    - session() auto-rolls-back on exception and maps SQLAlchemy errors to DatabaseError
      (API boundary only: the transactional core never wraps driver errors)
    - Connection pool uses pool_pre_ping for stale connection detection

Design Decisions:
    - Singleton db_manager initialized on startup: FastAPI lifespan manages lifecycle
    - expire_on_commit=False: prevents lazy-load issues in async context
    - Pool sizing is passed straight to SQLAlchemy; SQLite URLs skip it (no QueuePool args)
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import inspect, text
from sqlalchemy.exc import (
    DBAPIError, IntegrityError, OperationalError, SQLAlchemyError,
)
from sqlalchemy.ext.asyncio import (
    AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine,
)

from txledger.core.errors import DatabaseError

logger = logging.getLogger(__name__)

# Subclasses before DBAPIError: first isinstance match wins.
_FAILURE_KINDS = (
    (IntegrityError, "Integrity constraint violated", "commit"),
    (OperationalError, "Connection or operational error", "execute"),
    (DBAPIError, "Database driver error", "query"),
)


def _classify(error: SQLAlchemyError) -> tuple[str, str]:
    for kind, message, operation in _FAILURE_KINDS:
        if isinstance(error, kind):
            return message, operation
    return "Database operation failed", "unknown"


class DatabaseManager:
    """Owns the async engine and hands out sessions with rollback and error mapping."""

    def __init__(
        self,
        database_url: str,
        pool_size: int = 20,
        max_overflow: int = 10,
    ):
        engine_kwargs: dict = {"pool_pre_ping": True}
        if not database_url.startswith("sqlite"):
            engine_kwargs.update(
                pool_size=pool_size, max_overflow=max_overflow, pool_recycle=3600,
            )
        self.engine: AsyncEngine = create_async_engine(database_url, **engine_kwargs)
        self._session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Provide session with auto-rollback on exception."""
        session = self._session_factory()
        try:
            yield session
        except SQLAlchemyError as e:
            await session.rollback()
            message, operation = _classify(e)
            logger.error(
                f"DB {operation} failed: {e}", extra={"error_code": "DATABASE_ERROR"},
            )
            raise DatabaseError(message, operation) from e
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def health_check(self) -> bool:
        """Check database connectivity (for readiness probes)."""
        try:
            async with self.session() as db:
                await db.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"DB health check failed: {e}")
            return False

    async def has_table(self, name: str) -> bool:
        async with self.engine.connect() as conn:
            return await conn.run_sync(
                lambda sync_conn: inspect(sync_conn).has_table(name),
            )

    async def dispose(self) -> None:
        await self.engine.dispose()


# Singleton (initialized on startup)
db_manager: DatabaseManager | None = None


def init_db(database_url: str, **kwargs) -> DatabaseManager:
    global db_manager
    db_manager = DatabaseManager(database_url, **kwargs)
    return db_manager


def get_db_manager() -> DatabaseManager:
    """FastAPI dependency for the engine owner."""
    if not db_manager:
        raise RuntimeError("Database not initialized")
    return db_manager
