"""Audit Schemas: Pydantic models for audit records, actors and queries.

Invariants:
    - AuditRecord and AuditActor are frozen: a record never changes after audit()
    - AuditActor keeps unknown fields (extra="allow") so callers can attach claims
    - AuditQuery.limit/offset are non-negative; date range is inclusive on both ends

Design Decisions:
    - Pydantic over dataclasses: the same models serialize straight into API responses
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from txledger.core.domain_types import (
    AuditOperation, AuditOrderField, OrderDirection,
)

EntityId = str | dict[str, Any]


class AuditActor(BaseModel):
    """Who performed an audited action (user, service, system...)."""
    model_config = ConfigDict(frozen=True, extra="allow")

    id: str | None = None
    type: str | None = None

    def extra_data(self) -> dict[str, Any]:
        """Everything except id/type, as stored in actor_data."""
        return dict(self.model_extra or {})


SYSTEM_ACTOR = AuditActor(id="system", type="system")


class AuditRecord(BaseModel):
    """One immutable audit fact."""
    model_config = ConfigDict(frozen=True)

    id: str
    type: str
    operation: AuditOperation = AuditOperation.CUSTOM
    payload: Any = None
    entity_id: EntityId | None = None
    table: str | None = None
    old_values: dict[str, Any] | None = None
    new_values: dict[str, Any] | None = None
    timestamp: datetime
    actor: AuditActor | None = None
    metadata: dict[str, Any] | None = None


class AuditQuery(BaseModel):
    """Filters, ordering and pagination for reading audit records back."""
    type: str | list[str] | None = None
    entity_id: EntityId | None = None
    table: str | None = None
    actor_id: str | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    limit: int | None = Field(None, ge=0)
    offset: int | None = Field(None, ge=0)
    order_by: AuditOrderField = AuditOrderField.TIMESTAMP
    order_direction: OrderDirection = OrderDirection.DESC

    @field_validator("date_from", "date_to")
    @classmethod
    def assume_utc(cls, v: datetime | None) -> datetime | None:
        """Naive datetimes are read as UTC so they compare with stored timestamps."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @model_validator(mode="after")
    def check_date_range(self) -> "AuditQuery":
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValueError("date_from must not be after date_to")
        return self

    def without_pagination(self) -> "AuditQuery":
        return self.model_copy(update={"limit": None, "offset": None})


class AuditLogPage(BaseModel):
    """Response body for GET /api/v1/audit-logs."""
    records: list[AuditRecord]
    total: int
    limit: int | None = None
    offset: int | None = None
