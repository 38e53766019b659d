"""SQL Audit Storage: audit backend writing into the audit_logs table.

Invariants:
    - write(records, db) inserts through db when given (joins that transaction);
      otherwise it opens and commits its own transaction on the storage engine
    - One INSERT round-trip per write() call; an empty batch touches nothing
    - get_database() returns the storage engine: this storage CAN share a
      business transaction when the orchestrator's service names match
    - Timestamps read back are always timezone-aware (UTC)

Design Decisions:
    - Core Table (from the AuditLog model) over ORM objects: bulk insert, no identity map
    - Custom table names get a copy of the AuditLog table under a fresh MetaData
"""

import logging
from collections.abc import Sequence
from datetime import timezone
from typing import Any

from sqlalchemy import MetaData, Select, Table, func, insert, select
from sqlalchemy.ext.asyncio import AsyncEngine

from txledger.core.audit_query import canonical_entity_id, parse_entity_id
from txledger.core.domain_types import AuditOrderField, OrderDirection
from txledger.core.storage_protocols import DatabaseConnection
from txledger.models.audit_log import AuditLog
from txledger.schemas.audit import AuditActor, AuditQuery, AuditRecord

logger = logging.getLogger(__name__)

DEFAULT_TABLE_NAME = AuditLog.__tablename__


def audit_table(table_name: str = DEFAULT_TABLE_NAME) -> Table:
    if table_name == DEFAULT_TABLE_NAME:
        return AuditLog.__table__
    table = AuditLog.__table__.to_metadata(MetaData(), name=table_name)
    # Index names are schema-global; keep them unique per audit table.
    for index in table.indexes:
        index.name = index.name.replace(DEFAULT_TABLE_NAME, table_name, 1)
    return table


class SqlAuditStorage:
    """Audit storage backed by a SQL table on the given engine."""

    def __init__(self, db: AsyncEngine, table_name: str = DEFAULT_TABLE_NAME):
        self._db = db
        self.table = audit_table(table_name)

    def get_database(self) -> AsyncEngine:
        return self._db

    async def write(
        self, records: Sequence[AuditRecord], db: DatabaseConnection | None = None,
    ) -> None:
        if not records:
            return
        rows = [to_row(record) for record in records]
        if db is None or isinstance(db, AsyncEngine):
            async with (db or self._db).begin() as conn:
                await conn.execute(insert(self.table), rows)
        else:
            await db.execute(insert(self.table), rows)
        logger.debug(
            "Audit records written",
            extra={"record_count": len(rows), "table": self.table.name},
        )

    async def query(self, query: AuditQuery) -> list[AuditRecord]:
        column = (
            self.table.c.type if query.order_by == AuditOrderField.TYPE
            else self.table.c.timestamp
        )
        order = column.asc() if query.order_direction == OrderDirection.ASC else column.desc()
        stmt = self._filter(select(self.table), query).order_by(order)
        if query.offset is not None:
            stmt = stmt.offset(query.offset)
        if query.limit is not None:
            stmt = stmt.limit(query.limit)

        async with self._db.connect() as conn:
            rows = (await conn.execute(stmt)).mappings().all()
        return [from_row(row) for row in rows]

    async def count(self, query: AuditQuery) -> int:
        stmt = self._filter(select(func.count()).select_from(self.table), query)
        async with self._db.connect() as conn:
            return (await conn.execute(stmt)).scalar_one()

    def _filter(self, stmt: Select, query: AuditQuery) -> Select:
        c = self.table.c
        if query.type is not None:
            if isinstance(query.type, str):
                stmt = stmt.where(c.type == query.type)
            else:
                stmt = stmt.where(c.type.in_(query.type))
        if query.entity_id is not None:
            stmt = stmt.where(c.entity_id == canonical_entity_id(query.entity_id))
        if query.table is not None:
            stmt = stmt.where(c.table == query.table)
        if query.actor_id is not None:
            stmt = stmt.where(c.actor_id == query.actor_id)
        if query.date_from is not None:
            stmt = stmt.where(c.timestamp >= query.date_from)
        if query.date_to is not None:
            stmt = stmt.where(c.timestamp <= query.date_to)
        return stmt


def to_row(record: AuditRecord) -> dict[str, Any]:
    data = record.model_dump(mode="json")
    actor = record.actor
    return {
        "id": record.id,
        "type": record.type,
        "operation": record.operation.value,
        "table": record.table,
        "entity_id": canonical_entity_id(record.entity_id),
        "old_values": data["old_values"],
        "new_values": data["new_values"],
        "payload": data["payload"],
        "timestamp": record.timestamp,
        "actor_id": actor.id if actor else None,
        "actor_type": actor.type if actor else None,
        "actor_data": (actor.extra_data() or None) if actor else None,
        "metadata": data["metadata"],
    }


def from_row(row) -> AuditRecord:
    actor = None
    if row["actor_id"] is not None or row["actor_type"] is not None:
        actor = AuditActor(
            id=row["actor_id"], type=row["actor_type"], **(row["actor_data"] or {}),
        )
    timestamp = row["timestamp"]
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return AuditRecord(
        id=row["id"],
        type=row["type"],
        operation=row["operation"],
        table=row["table"],
        entity_id=parse_entity_id(row["entity_id"]),
        old_values=row["old_values"],
        new_values=row["new_values"],
        payload=row["payload"],
        timestamp=timestamp,
        actor=actor,
        metadata=row["metadata"],
    )
