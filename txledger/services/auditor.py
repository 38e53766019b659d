"""Auditor: in-memory, append-only buffer of audit records for one invocation.

Invariants:
    - audit()/record() are synchronous, in-memory, never fail, never validate payloads
    - get_records() returns a snapshot; mutating it cannot touch the buffer
    - flush() writes pending records in one storage.write() call, then clears them
    - A failed flush leaves the buffer intact and re-raises: audit data is never dropped
    - An empty buffer never reaches storage.write()

Design Decisions:
    - One Auditor per invocation, discarded afterwards: no cross-request state
    - Transaction binding (set_transaction) lets flush() join the handler's transaction
      without the caller passing it around
"""

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from txledger.core.domain_types import AuditOperation, AuditRecordId
from txledger.core.storage_protocols import AuditStorage, DatabaseConnection
from txledger.schemas.audit import SYSTEM_ACTOR, AuditActor, AuditRecord, EntityId

logger = logging.getLogger(__name__)


def _new_id() -> AuditRecordId:
    return AuditRecordId(str(uuid.uuid4()))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Auditor:
    """Collects audit records during a handler run and flushes them to storage."""

    def __init__(
        self,
        storage: AuditStorage,
        actor: AuditActor | None = None,
        metadata: dict[str, Any] | None = None,
        id_factory: Callable[[], AuditRecordId] = _new_id,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.storage = storage
        self.actor = actor or SYSTEM_ACTOR
        self._metadata: dict[str, Any] = dict(metadata or {})
        self._id_factory = id_factory
        self._clock = clock
        self._pending: list[AuditRecord] = []
        self._transaction: DatabaseConnection | None = None

    def audit(
        self,
        type: str,
        payload: Any = None,
        *,
        entity_id: EntityId | None = None,
        table: str | None = None,
        operation: AuditOperation = AuditOperation.CUSTOM,
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
    ) -> None:
        """Append a record of a business-significant action."""
        self.record(
            type,
            operation=operation,
            payload=payload,
            entity_id=entity_id,
            table=table,
            old_values=old_values,
            new_values=new_values,
        )

    def record(
        self,
        type: str,
        *,
        operation: AuditOperation = AuditOperation.CUSTOM,
        payload: Any = None,
        entity_id: EntityId | None = None,
        table: str | None = None,
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Raw form of audit(): record metadata is merged over the auditor's."""
        merged = {**self._metadata, **(metadata or {})}
        self._pending.append(AuditRecord(
            id=self._id_factory(),
            type=type,
            operation=operation,
            payload=payload,
            entity_id=entity_id,
            table=table,
            old_values=old_values,
            new_values=new_values,
            timestamp=self._clock(),
            actor=self.actor,
            metadata=merged or None,
        ))

    def get_records(self) -> tuple[AuditRecord, ...]:
        return tuple(self._pending)

    def clear(self) -> None:
        """Drop pending records without writing them."""
        self._pending.clear()

    def add_metadata(self, **metadata: Any) -> None:
        """Merge metadata into every record audited from now on."""
        self._metadata.update(metadata)

    def set_transaction(self, db: DatabaseConnection | None) -> None:
        self._transaction = db

    def get_transaction(self) -> DatabaseConnection | None:
        return self._transaction

    async def flush(self, db: DatabaseConnection | None = None) -> None:
        """Write pending records to storage; clear them only if the write succeeds."""
        if not self._pending:
            return
        target = db if db is not None else self._transaction
        batch = list(self._pending)
        logger.debug(
            "Flushing audit records",
            extra={"record_count": len(batch), "in_transaction": target is not None},
        )
        await self.storage.write(batch, target)
        del self._pending[:len(batch)]
