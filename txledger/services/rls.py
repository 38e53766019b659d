"""Security Context Scope: transaction-local session variables for row-level security.

Invariants:
    - Variables are set with set_config(name, value, is_local => true): the database
      clears them at COMMIT/ROLLBACK, so they never outlive the transaction
    - Variables are applied sequentially in context order, before the callback runs
    - Nested scopes on an open transaction ADD variables; outer ones stay visible
    - The whole context is validated before any transaction is opened
    - No knowledge of SQL policies: only "variables set, transaction scoped"
"""

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncSession

from txledger.core.domain_types import TransactionSettings
from txledger.core.session_variables import (
    DEFAULT_PREFIX, RlsContext, build_assignments, variable_name,
)
from txledger.core.storage_protocols import DatabaseConnection
from txledger.services.transaction import run_in_transaction

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SET_LOCAL = text("SELECT set_config(:name, :value, true)")
_CURRENT_SETTING = text("SELECT current_setting(:name, true)")


class RlsBypass:
    """Marker context: run in a transaction without setting any variable."""

    def __repr__(self) -> str:
        return "RLS_BYPASS"


RLS_BYPASS = RlsBypass()


async def with_rls_context(
    db: DatabaseConnection,
    context: RlsContext | RlsBypass,
    callback: Callable[[AsyncConnection | AsyncSession], Awaitable[T]],
    *,
    prefix: str = DEFAULT_PREFIX,
    settings: TransactionSettings | None = None,
) -> T:
    """Run callback in a transaction whose session variables reflect context."""
    assignments = [] if context is RLS_BYPASS else build_assignments(context, prefix)

    async def scoped(trx: AsyncConnection | AsyncSession) -> T:
        await apply_session_variables(trx, assignments)
        return await callback(trx)

    return await run_in_transaction(db, scoped, settings)


async def apply_session_variables(
    trx: AsyncConnection | AsyncSession, assignments: list[tuple[str, str]],
) -> None:
    for name, value in assignments:
        await trx.execute(_SET_LOCAL, {"name": name, "value": value})
    if assignments:
        logger.debug(
            "Session variables applied",
            extra={"variable_count": len(assignments)},
        )


async def read_session_variable(
    trx: AsyncConnection | AsyncSession, key: str, prefix: str = DEFAULT_PREFIX,
) -> str | None:
    """Current value of {prefix}.{key} as the database sees it (None or '' when unset)."""
    result = await trx.execute(
        _CURRENT_SETTING, {"name": variable_name(prefix, key)},
    )
    return result.scalar_one_or_none()
