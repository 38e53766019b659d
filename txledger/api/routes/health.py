"""Health & Readiness Probes.

Invariants:
    - GET /api/v1/health/ returns 200 while the process is up (liveness)
    - GET /api/v1/health/ready returns 503 unless the database answers AND the
      configured audit table exists (audit flushes would fail otherwise)
"""

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

import txledger.infrastructure.database as database
from txledger.config import get_settings

router = APIRouter(prefix="/api/v1/health", tags=["health"])


def _not_ready(reason: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "not_ready", "reason": reason},
    )


@router.get("/", status_code=status.HTTP_200_OK)
async def health_check():
    return {"status": "healthy", "service": "txledger"}


@router.get("/ready")
async def readiness_check():
    """Readiness probe: database connectivity plus audit table presence."""
    manager = database.db_manager
    if manager is None or not await manager.health_check():
        return _not_ready("database_unavailable")

    table_name = get_settings().audit_table_name
    if not await manager.has_table(table_name):
        return _not_ready("audit_table_missing")
    return {
        "status": "ready",
        "checks": {"database": "healthy", "audit_table": table_name},
    }
