"""In-Memory Audit Storage: process-local audit backend for tests and local runs.

Invariants:
    - write() appends in call order; an empty batch is a no-op
    - get_database() is None: this storage can never share a business transaction
"""

from collections.abc import Sequence

from txledger.core.audit_query import apply_query, count_matching
from txledger.core.storage_protocols import DatabaseConnection
from txledger.schemas.audit import AuditQuery, AuditRecord


class InMemoryAuditStorage:
    """Keeps written audit records in a list."""

    def __init__(self) -> None:
        self._records: list[AuditRecord] = []

    async def write(
        self, records: Sequence[AuditRecord], db: DatabaseConnection | None = None,
    ) -> None:
        self._records.extend(records)

    def get_database(self) -> None:
        return None

    async def query(self, query: AuditQuery) -> list[AuditRecord]:
        return apply_query(self._records, query)

    async def count(self, query: AuditQuery) -> int:
        return count_matching(self._records, query)

    def get_records(self) -> tuple[AuditRecord, ...]:
        return tuple(self._records)

    def clear(self) -> None:
        self._records.clear()
