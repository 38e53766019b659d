"""Service test fixtures — file-backed SQLite engines with session-variable emulation.

Invariants:
    - Every test gets fresh database files under tmp_path
    - audit_logs and the orders business table exist before the test runs
    - set_config/current_setting behave transaction-locally (see sqlite_settings)
    - tx_counts only sees transactions opened after schema creation
    - client talks to the app in-process; db_manager is swapped for api_db and restored

Design Decisions:
    - File-backed SQLite over :memory: so that every pooled connection sees the same data
      (reads after commit go through a fresh connection)
    - Two engines (engine, audit_engine) model separately registered services
"""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from tests.services.business_schema import business_metadata
from tests.services.sqlite_settings import count_transactions, install_session_settings
from txledger.db.base import Base
import txledger.infrastructure.database as db_module
from txledger.infrastructure.database import DatabaseManager
from txledger.main import app
import txledger.models  # noqa: F401  (registers audit_logs on Base.metadata)
from txledger.services.memory_audit_storage import InMemoryAuditStorage


async def _create_engine(path) -> AsyncEngine:
    engine = create_async_engine(f"sqlite+aiosqlite:///{path}", echo=False)
    install_session_settings(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await conn.run_sync(business_metadata.create_all)
    return engine


@pytest.fixture
async def engine(tmp_path):
    engine = await _create_engine(tmp_path / "business.db")
    yield engine
    await engine.dispose()


@pytest.fixture
async def audit_engine(tmp_path):
    """Second database, standing in for an audit service registered separately."""
    engine = await _create_engine(tmp_path / "audit.db")
    yield engine
    await engine.dispose()


@pytest.fixture
def tx_counts(engine):
    return count_transactions(engine)


@pytest.fixture
def memory_storage():
    return InMemoryAuditStorage()


@pytest.fixture
async def api_db(tmp_path):
    """DatabaseManager on its own SQLite file, installed as the app singleton."""
    manager = DatabaseManager(f"sqlite+aiosqlite:///{tmp_path / 'api.db'}")
    async with manager.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    original_manager = db_module.db_manager
    db_module.db_manager = manager
    yield manager
    db_module.db_manager = original_manager
    await manager.dispose()


@pytest.fixture
async def client(api_db):
    """FastAPI test client backed by api_db."""
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c
