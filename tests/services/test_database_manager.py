"""Database Manager — verifies session error mapping and singleton lifecycle."""

import pytest
from sqlalchemy import text

import txledger.infrastructure.database as db_module
from txledger.core.errors import DatabaseError
from txledger.infrastructure.database import get_db_manager, init_db


async def test_session_maps_operational_errors(api_db):
    with pytest.raises(DatabaseError) as exc_info:
        async with api_db.session() as session:
            await session.execute(text("SELECT * FROM no_such_table"))

    assert exc_info.value.operation == "execute"
    assert exc_info.value.http_status == 503


async def test_session_leaves_other_errors_alone(api_db):
    with pytest.raises(KeyError):
        async with api_db.session():
            raise KeyError("not a database problem")


async def test_health_check(api_db):
    assert await api_db.health_check() is True


async def test_init_db_installs_singleton(monkeypatch, tmp_path):
    monkeypatch.setattr(db_module, "db_manager", None)
    with pytest.raises(RuntimeError, match="not initialized"):
        get_db_manager()

    manager = init_db(f"sqlite+aiosqlite:///{tmp_path / 'x.db'}", pool_size=5)
    try:
        assert get_db_manager() is manager
    finally:
        await manager.dispose()


async def test_has_table(api_db):
    assert await api_db.has_table("audit_logs") is True
    assert await api_db.has_table("orders") is False
