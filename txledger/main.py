"""txledger API: FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map TxLedgerError -> structured JSON responses
    - Database initialized on startup, disposed on shutdown, via lifespan
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from txledger.api.error_handlers import register_error_handlers
from txledger.api.routes import audit_logs, health
from txledger.config import get_settings
from txledger.infrastructure.database import init_db
from txledger.infrastructure.observability import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format, sql_echo=settings.database_echo)
    manager = init_db(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    logger.info("txledger API started")
    yield
    await manager.dispose()
    logger.info("txledger API shutting down")


app = FastAPI(title="txledger API", version="0.1.0", lifespan=lifespan)

app.include_router(health.router)
app.include_router(audit_logs.router)

register_error_handlers(app)
