"""Business Schema — a tiny orders table standing in for application data."""

from sqlalchemy import Column, Integer, MetaData, String, Table, func, select
from sqlalchemy.ext.asyncio import AsyncEngine

business_metadata = MetaData()

orders = Table(
    "orders",
    business_metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("tenant_id", String(50), nullable=False),
    Column("amount", Integer, nullable=False),
)


async def insert_order(db, tenant_id: str = "t1", amount: int = 10) -> int:
    result = await db.execute(
        orders.insert().values(tenant_id=tenant_id, amount=amount),
    )
    return result.inserted_primary_key[0]


async def count_rows(engine: AsyncEngine, table) -> int:
    """Row count through a fresh connection: only committed data is visible."""
    async with engine.connect() as conn:
        return (await conn.execute(select(func.count()).select_from(table))).scalar_one()
