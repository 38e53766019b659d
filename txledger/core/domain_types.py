"""Domain Types: rich types that replace bare primitives across the codebase.

Invariants:
    - AuditRecordId wraps str, ServiceName wraps str: never mix them with free text
    - All valid states encoded as Enums, no raw string matching
    - IsolationLevel values are the exact SQL spellings SQLAlchemy accepts

Design Decisions:
    - NewType over dataclass wrappers: zero runtime cost, full type-checker support
    - str Enums: serialize to JSON without custom encoders
"""

from dataclasses import dataclass
from enum import Enum
from typing import NewType


# ─── Identity Types ──────────────────────────────────────────────

AuditRecordId = NewType("AuditRecordId", str)
ServiceName = NewType("ServiceName", str)


# ─── Enums ───────────────────────────────────────────────────────

class IsolationLevel(str, Enum):
    """Transaction isolation levels, passed to SQLAlchemy execution options."""
    READ_UNCOMMITTED = "READ UNCOMMITTED"
    READ_COMMITTED = "READ COMMITTED"
    REPEATABLE_READ = "REPEATABLE READ"
    SERIALIZABLE = "SERIALIZABLE"


class AuditOperation(str, Enum):
    """Kind of change an audit record describes. CUSTOM for manual audits."""
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    CUSTOM = "CUSTOM"


class OrderDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class AuditOrderField(str, Enum):
    TIMESTAMP = "timestamp"
    TYPE = "type"


# ─── Value Types ─────────────────────────────────────────────────

@dataclass(frozen=True)
class TransactionSettings:
    """Options honoured only when a new transaction is opened."""
    isolation_level: IsolationLevel | None = None
