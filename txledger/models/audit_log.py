"""AuditLog ORM: append-only table of audit records.

Invariants:
    - Rows are only ever inserted by SqlAuditStorage.write(); never updated
    - entity_id holds a plain string or canonical JSON for composite keys
    - actor_id/actor_type are split out of the actor for indexed filtering;
      remaining actor fields go to actor_data

Design Decisions:
    - String primary key: ids come from the Auditor's id factory, not the database
    - JSON columns for payload/values/metadata: schema varies per audit type
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from txledger.db.base import Base


class AuditLog(Base):
    """One persisted audit record."""
    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_type", "type"),
        Index("ix_audit_logs_entity", "table", "entity_id"),
        Index("ix_audit_logs_actor_id", "actor_id"),
        Index("ix_audit_logs_timestamp", "timestamp"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    type: Mapped[str] = mapped_column(String(255), nullable=False)
    operation: Mapped[str] = mapped_column(String(16), nullable=False)
    table: Mapped[str | None] = mapped_column(String(255), nullable=True)
    entity_id: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    old_values: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    new_values: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    payload: Mapped[Any] = mapped_column(JSON, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )
    actor_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    actor_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    actor_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    metadata_: Mapped[dict | None] = mapped_column(
        "metadata", JSON, nullable=True,
    )
