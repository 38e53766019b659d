"""Audit Log Route: read-only listing of persisted audit records.

Invariants:
    - Read-only: audit rows are written only through the Auditor flush path
    - total counts every matching row, ignoring limit/offset
"""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError

import txledger.infrastructure.database as database
from txledger.config import get_settings
from txledger.core.domain_types import AuditOrderField, OrderDirection
from txledger.core.errors import AuditStorageNotConfiguredError
from txledger.schemas.audit import AuditLogPage, AuditQuery
from txledger.services.sql_audit_storage import SqlAuditStorage

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/audit-logs", tags=["audit-logs"])


def get_audit_storage() -> SqlAuditStorage:
    manager = database.db_manager
    if manager is None:
        raise AuditStorageNotConfiguredError()
    return SqlAuditStorage(manager.engine, get_settings().audit_table_name)


@router.get("", response_model=AuditLogPage)
async def list_audit_logs(
    type: list[str] | None = Query(None),
    entity_id: str | None = None,
    table: str | None = None,
    actor_id: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    limit: int = Query(50, ge=0, le=500),
    offset: int = Query(0, ge=0),
    order_by: AuditOrderField = AuditOrderField.TIMESTAMP,
    order_direction: OrderDirection = OrderDirection.DESC,
    storage: SqlAuditStorage = Depends(get_audit_storage),
):
    """List audit records matching the filters, newest first by default."""
    try:
        query = AuditQuery(
            type=type or None,
            entity_id=entity_id,
            table=table,
            actor_id=actor_id,
            date_from=date_from,
            date_to=date_to,
            limit=limit,
            offset=offset,
            order_by=order_by,
            order_direction=order_direction,
        )
    except ValidationError as e:
        raise RequestValidationError(e.errors()) from e

    records = await storage.query(query)
    total = await storage.count(query.without_pagination())
    return AuditLogPage(records=records, total=total, limit=limit, offset=offset)
