"""Audited Execution: run a business handler with its audit trail, atomically when possible.

Invariants:
    - No audit storage -> no Auditor; the handler runs with the plain db and its
      result is returned unmodified
    - Shared mode (storage has a database AND both declared service names are set
      and equal): handler, declarative audits and flush run in ONE transaction;
      commit only after all succeed, any failure rolls back business writes and
      audit rows together
    - Separate mode: handler runs on its own; flush happens afterwards, outside any
      shared transaction. A flush failure here leaves business work committed.
    - A handler exception always short-circuits before any flush
    - Steps run sequentially in the caller's task; nothing is flushed in the background
    - The auditor is bound to the shared transaction only while it is open
    - A caller-supplied auditor whose storage is not the configured one never
      joins the business transaction (separate mode)

Design Decisions:
    - Explicit injection: already-resolved database / storage plus their declared
      names are handed in; no registry lookups happen here
    - Service-name equality is the caller-visible opt-in to atomicity: two independently
      acquired connections are never joined into one transaction
"""

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from txledger.config import Settings
from txledger.core.domain_types import ServiceName, TransactionSettings
from txledger.core.session_variables import DEFAULT_PREFIX, RlsContext
from txledger.core.storage_protocols import AuditStorage, DatabaseConnection
from txledger.schemas.audit import AuditActor, EntityId
from txledger.services.auditor import Auditor
from txledger.services.rls import RlsBypass, with_rls_context
from txledger.services.transaction import run_in_transaction

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class HandlerContext:
    """What a business handler receives: its db handle and, when auditing, the auditor."""
    db: DatabaseConnection | None = None
    auditor: Auditor | None = None


@dataclass(frozen=True)
class MappedAudit(Generic[R]):
    """Declarative audit derived from the handler's result after it succeeds."""
    type: str
    payload: Callable[[R], Any]
    when: Callable[[R], bool] | None = None
    entity_id: Callable[[R], EntityId] | None = None
    table: str | None = None


def record_mapped_audits(
    auditor: Auditor, audits: Sequence[MappedAudit], result: Any,
) -> None:
    for mapped in audits:
        if mapped.when is not None and not mapped.when(result):
            logger.debug(
                "Declarative audit skipped by condition",
                extra={"audit_type": mapped.type},
            )
            continue
        auditor.audit(
            mapped.type,
            mapped.payload(result),
            entity_id=mapped.entity_id(result) if mapped.entity_id else None,
            table=mapped.table,
        )


class AuditedExecution:
    """Wiring for one handler: business database, audit storage and their declared names."""

    def __init__(
        self,
        *,
        database: DatabaseConnection | None = None,
        database_service_name: ServiceName | None = None,
        audit_storage: AuditStorage | None = None,
        audit_storage_service_name: ServiceName | None = None,
        rls_prefix: str = DEFAULT_PREFIX,
        settings: TransactionSettings | None = None,
    ):
        self.database = database
        self.database_service_name = database_service_name
        self.audit_storage = audit_storage
        self.audit_storage_service_name = audit_storage_service_name
        self.rls_prefix = rls_prefix
        self.settings = settings

    @classmethod
    def from_settings(cls, config: Settings, **wiring: Any) -> "AuditedExecution":
        """Wiring that uses the configured RLS prefix and default isolation level."""
        level = config.default_isolation_level
        return cls(
            rls_prefix=config.rls_prefix,
            settings=TransactionSettings(level) if level else None,
            **wiring,
        )

    @property
    def shares_transaction(self) -> bool:
        """True when business and audit writes commit in the same transaction."""
        return (
            self.audit_storage is not None
            and self.audit_storage.get_database() is not None
            and self.database_service_name is not None
            and self.database_service_name == self.audit_storage_service_name
        )

    def create_auditor(
        self,
        actor: AuditActor | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Auditor | None:
        if self.audit_storage is None:
            return None
        return Auditor(self.audit_storage, actor=actor, metadata=metadata)

    async def run(
        self,
        handler: Callable[[HandlerContext], Awaitable[T]],
        *,
        actor: AuditActor | None = None,
        metadata: dict[str, Any] | None = None,
        auditor: Auditor | None = None,
        audits: Sequence[MappedAudit] = (),
        rls_context: RlsContext | RlsBypass | None = None,
    ) -> T:
        """Execute handler once, sequencing handler, audit flush and commit/rollback."""
        auditor = auditor or self.create_auditor(actor, metadata)

        if auditor is None:
            if audits:
                logger.warning("Declarative audits configured but no audit storage available")
            return await self._on_business_db(
                rls_context, lambda db: handler(HandlerContext(db=db)),
            )

        # Only the named storage can join the business transaction.
        if self.shares_transaction and auditor.storage is self.audit_storage:
            return await self._run_shared(handler, auditor, audits, rls_context)
        return await self._run_separate(handler, auditor, audits, rls_context)

    async def _run_shared(
        self,
        handler: Callable[[HandlerContext], Awaitable[T]],
        auditor: Auditor,
        audits: Sequence[MappedAudit],
        rls_context: RlsContext | RlsBypass | None,
    ) -> T:
        connection = (
            self.database if self.database is not None
            else self.audit_storage.get_database()
        )
        logger.debug("Executing handler", extra={"mode": "shared"})

        async def in_transaction(trx) -> T:
            auditor.set_transaction(trx)
            result = await handler(HandlerContext(db=trx, auditor=auditor))
            record_mapped_audits(auditor, audits, result)
            await auditor.flush(trx)
            return result

        previous = auditor.get_transaction()
        try:
            if rls_context is not None:
                return await with_rls_context(
                    connection, rls_context, in_transaction,
                    prefix=self.rls_prefix, settings=self.settings,
                )
            return await run_in_transaction(connection, in_transaction, self.settings)
        finally:
            # The binding must not outlive the transaction it points at.
            auditor.set_transaction(previous)

    async def _run_separate(
        self,
        handler: Callable[[HandlerContext], Awaitable[T]],
        auditor: Auditor,
        audits: Sequence[MappedAudit],
        rls_context: RlsContext | RlsBypass | None,
    ) -> T:
        logger.debug("Executing handler", extra={"mode": "separate"})
        result = await self._on_business_db(
            rls_context, lambda db: handler(HandlerContext(db=db, auditor=auditor)),
        )
        record_mapped_audits(auditor, audits, result)
        # Business work is already committed here; a flush failure cannot undo it.
        logger.debug(
            "Flushing audit records outside the business transaction",
            extra={"mode": "separate", "record_count": len(auditor.get_records())},
        )
        await auditor.flush()
        return result

    async def _on_business_db(
        self,
        rls_context: RlsContext | RlsBypass | None,
        call: Callable[[DatabaseConnection | None], Awaitable[T]],
    ) -> T:
        if self.database is not None and rls_context is not None:
            return await with_rls_context(
                self.database, rls_context, call,
                prefix=self.rls_prefix, settings=self.settings,
            )
        return await call(self.database)
