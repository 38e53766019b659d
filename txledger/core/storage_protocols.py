"""Boundary Protocols: contracts between the transactional core and audit backends.

Invariants:
    - Core NEVER imports a concrete storage; storages are injected by the caller
    - get_database() is REQUIRED: None means "simple storage", a connection means
      "storage backed by that database". There is no optional-attribute probing.
    - write(records, db) must use db when given so the write joins that transaction

Design Decisions:
    - Protocol over ABC: structural subtyping, no inheritance hierarchy
    - Async in Protocol: boundary methods are async because implementations do IO
"""

from collections.abc import Sequence
from typing import Protocol, Union, runtime_checkable

from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, AsyncSession

from txledger.schemas.audit import AuditQuery, AuditRecord

DatabaseConnection = Union[AsyncEngine, AsyncConnection, AsyncSession]


class AuditStorage(Protocol):
    """Contract every audit backend implements."""
    async def write(
        self, records: Sequence[AuditRecord], db: DatabaseConnection | None = None,
    ) -> None: ...

    def get_database(self) -> DatabaseConnection | None: ...


@runtime_checkable
class QueryableAuditStorage(Protocol):
    """Storages that can read audit records back (API listing, tests)."""
    async def query(self, query: AuditQuery) -> list[AuditRecord]: ...
    async def count(self, query: AuditQuery) -> int: ...
