"""Transaction Coordinator — verifies begin/commit/rollback and transaction reuse.

Invariants:
    - Pooled handle (engine): exactly one BEGIN and one COMMIT per call
    - Handle already in a transaction: callback gets the SAME object, no BEGIN
    - Isolation level applies to new transactions only, ignored on reuse
    - Callback exceptions roll back and re-raise the very same exception object
    - A failing rollback is logged; the callback's exception still surfaces
"""

import asyncio
import logging

import pytest
from sqlalchemy.ext.asyncio import AsyncTransaction, async_sessionmaker

from tests.services.business_schema import count_rows, insert_order, orders
from txledger.core.domain_types import IsolationLevel, TransactionSettings
from txledger.core.errors import UnsupportedConnectionError
from txledger.services.transaction import is_transaction, run_in_transaction


# -- New transactions ------------------------------------------------------------


async def test_engine_handle_commits_once(engine, tx_counts):
    async def callback(trx):
        await insert_order(trx)
        return "done"

    result = await run_in_transaction(engine, callback)

    assert result == "done"
    assert tx_counts["begin"] == 1
    assert tx_counts["commit"] == 1
    assert await count_rows(engine, orders) == 1


async def test_callback_receives_a_handle_in_transaction(engine):
    seen = []

    async def callback(trx):
        seen.append(is_transaction(trx))

    await run_in_transaction(engine, callback)
    assert seen == [True]


async def test_session_handle_is_begun_in_place(engine, tx_counts):
    factory = async_sessionmaker(engine, expire_on_commit=False)
    async with factory() as session:
        received = []

        async def callback(trx):
            received.append(trx)
            await insert_order(trx)

        await run_in_transaction(session, callback)

        assert received == [session]
        assert not session.in_transaction()
    assert tx_counts["begin"] == 1
    assert await count_rows(engine, orders) == 1


async def test_connection_handle_is_begun_in_place(engine):
    async with engine.connect() as conn:
        assert not is_transaction(conn)

        async def callback(trx):
            assert trx is conn
            await insert_order(trx)

        await run_in_transaction(conn, callback)
        assert not conn.in_transaction()
    assert await count_rows(engine, orders) == 1


# -- Reuse ----------------------------------------------------------------------


async def test_open_transaction_is_reused(engine, tx_counts):
    async with engine.connect() as conn:
        async with conn.begin():
            received = []

            async def callback(trx):
                received.append(trx)
                await insert_order(trx)

            await run_in_transaction(conn, callback)
            await run_in_transaction(conn, callback)

            assert received == [conn, conn]
            assert conn.in_transaction()

    assert tx_counts["begin"] == 1
    assert tx_counts["commit"] == 1
    assert await count_rows(engine, orders) == 2


async def test_nested_calls_share_outer_transaction(engine, tx_counts):
    async def inner(trx):
        await insert_order(trx, amount=2)

    async def outer(trx):
        await insert_order(trx, amount=1)
        await run_in_transaction(trx, inner)

    await run_in_transaction(engine, outer)

    assert tx_counts["begin"] == 1
    assert await count_rows(engine, orders) == 2


async def test_isolation_level_ignored_on_reuse(engine):
    levels = []

    async def inner(trx):
        levels.append(await trx.get_isolation_level())

    async def outer(trx):
        await run_in_transaction(
            trx, inner, TransactionSettings(IsolationLevel.READ_UNCOMMITTED),
        )

    await run_in_transaction(engine, outer)
    assert levels == ["SERIALIZABLE"]


async def test_inner_failure_rolls_back_outer_work(engine):
    async def inner(trx):
        await insert_order(trx, amount=2)
        raise ValueError("inner failed")

    async def outer(trx):
        await insert_order(trx, amount=1)
        await run_in_transaction(trx, inner)

    with pytest.raises(ValueError, match="inner failed"):
        await run_in_transaction(engine, outer)
    assert await count_rows(engine, orders) == 0


# -- Isolation level ------------------------------------------------------------


async def test_isolation_level_applied_to_new_transaction(engine):
    levels = []

    async def callback(trx):
        levels.append(await trx.get_isolation_level())

    await run_in_transaction(
        engine, callback, TransactionSettings(IsolationLevel.READ_UNCOMMITTED),
    )
    assert levels == ["READ UNCOMMITTED"]


async def test_connection_isolation_level_restored_afterwards(engine):
    async with engine.connect() as conn:
        before = await conn.get_isolation_level()
        levels = []

        async def callback(trx):
            levels.append(await trx.get_isolation_level())

        await run_in_transaction(
            conn, callback, TransactionSettings(IsolationLevel.READ_UNCOMMITTED),
        )

        assert levels == ["READ UNCOMMITTED"]
        assert await conn.get_isolation_level() == before


async def test_no_settings_uses_database_default(engine):
    levels = []

    async def callback(trx):
        levels.append(await trx.get_isolation_level())

    await run_in_transaction(engine, callback, TransactionSettings())
    assert levels == ["SERIALIZABLE"]


# -- Failure paths --------------------------------------------------------------


async def test_callback_error_rolls_back_and_propagates_same_object(engine, tx_counts):
    error = ValueError("business rule violated")

    async def callback(trx):
        await insert_order(trx)
        raise error

    with pytest.raises(ValueError) as exc_info:
        await run_in_transaction(engine, callback)

    assert exc_info.value is error
    assert tx_counts["rollback"] == 1
    assert tx_counts["commit"] == 0
    assert await count_rows(engine, orders) == 0


async def test_cancellation_rolls_back(engine, tx_counts):
    async def callback(trx):
        await insert_order(trx)
        raise asyncio.CancelledError()

    with pytest.raises(asyncio.CancelledError):
        await run_in_transaction(engine, callback)

    assert tx_counts["commit"] == 0
    assert await count_rows(engine, orders) == 0


async def test_rollback_failure_is_logged_not_raised(engine, monkeypatch, caplog):
    async def failing_rollback(self):
        raise RuntimeError("connection lost during rollback")

    monkeypatch.setattr(AsyncTransaction, "rollback", failing_rollback)

    async def callback(trx):
        raise ValueError("original")

    with caplog.at_level(logging.ERROR, logger="txledger.services.transaction"):
        with pytest.raises(ValueError, match="original"):
            await run_in_transaction(engine, callback)

    assert any("Rollback failed" in r.getMessage() for r in caplog.records)


async def test_commit_failure_propagates(engine, monkeypatch):
    async def failing_commit(self):
        raise RuntimeError("serialization failure")

    monkeypatch.setattr(AsyncTransaction, "commit", failing_commit)

    async def callback(trx):
        await insert_order(trx)

    with pytest.raises(RuntimeError, match="serialization failure"):
        await run_in_transaction(engine, callback)

    monkeypatch.undo()
    assert await count_rows(engine, orders) == 0


async def test_unsupported_handle_raises_before_callback():
    called = []

    async def callback(trx):
        called.append(trx)

    with pytest.raises(UnsupportedConnectionError) as exc_info:
        await run_in_transaction(object(), callback)

    assert exc_info.value.connection_type == "object"
    assert called == []


async def test_engine_is_never_in_transaction(engine):
    assert is_transaction(engine) is False
