"""Transaction Coordinator: open a transaction around a callback, or reuse the open one.

Invariants:
    - Handle already in a transaction -> callback(handle) directly, no BEGIN/COMMIT,
      isolation level ignored
    - Otherwise exactly one BEGIN and one COMMIT-or-ROLLBACK per call
    - Callback exceptions (CancelledError included) roll back and re-raise unchanged
    - A failing ROLLBACK is logged, never raised over the callback's exception
    - COMMIT failures propagate unchanged

Design Decisions:
    - AsyncEngine is the "pooled handle": a connection is checked out for the
      transaction and returned afterwards. AsyncConnection / AsyncSession are begun in place.
    - Isolation level goes through SQLAlchemy execution options, never raw SET statements
"""

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, AsyncSession

from txledger.core.domain_types import IsolationLevel, TransactionSettings
from txledger.core.errors import UnsupportedConnectionError
from txledger.core.storage_protocols import DatabaseConnection

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_transaction(db: DatabaseConnection) -> bool:
    """True when db is a handle with an open transaction."""
    if isinstance(db, AsyncEngine):
        return False
    if isinstance(db, (AsyncConnection, AsyncSession)):
        return db.in_transaction()
    raise UnsupportedConnectionError(type(db).__name__)


async def run_in_transaction(
    db: DatabaseConnection,
    callback: Callable[[AsyncConnection | AsyncSession], Awaitable[T]],
    settings: TransactionSettings | None = None,
) -> T:
    """Run callback inside a transaction on db, reusing an open one."""
    level = settings.isolation_level if settings else None

    if is_transaction(db):
        logger.debug(
            "Reusing open transaction",
            extra={"reused": True, "isolation_level": level.value if level else None},
        )
        return await callback(db)

    if isinstance(db, AsyncEngine):
        engine = db.execution_options(isolation_level=level.value) if level else db
        async with engine.connect() as conn:
            return await _run_new_transaction(conn, callback)

    if isinstance(db, AsyncConnection) and level:
        previous = await db.get_isolation_level()
        await db.execution_options(isolation_level=level.value)
        try:
            return await _run_new_transaction(db, callback)
        finally:
            await db.execution_options(isolation_level=previous)

    return await _run_new_transaction(db, callback, level)


async def _run_new_transaction(
    handle: AsyncConnection | AsyncSession,
    callback: Callable[[AsyncConnection | AsyncSession], Awaitable[T]],
    session_level: IsolationLevel | None = None,
) -> T:
    trans = await handle.begin()
    if session_level is not None:
        # Session binds its connection lazily; options apply to this transaction only.
        await handle.connection(
            execution_options={"isolation_level": session_level.value},
        )
    logger.debug("Transaction opened", extra={"reused": False})

    try:
        result = await callback(handle)
    except BaseException:
        await _rollback_preserving_error(trans)
        raise

    await trans.commit()
    logger.debug("Transaction committed")
    return result


async def _rollback_preserving_error(trans) -> None:
    try:
        await trans.rollback()
    except Exception:
        logger.error("Rollback failed; surfacing the original error", exc_info=True)
    else:
        logger.debug("Transaction rolled back")
