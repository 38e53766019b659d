"""Error Hierarchy: typed, categorized exceptions raised by txledger itself.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - Caller-input errors (400-level) are recoverable; infrastructure errors (500-level) are critical
    - to_response() produces the REST envelope
    - Driver, handler and storage exceptions are NEVER wrapped in these types:
      they reach the caller unchanged. This hierarchy covers what txledger detects itself.

Design Decisions:
    - Single hierarchy with TxLedgerError base: FastAPI global handler catches all
    - ErrorContext as dataclass: rich observability without coupling to logging framework
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    VALIDATION = "validation"
    CONFIGURATION = "configuration"
    DATABASE = "database"
    INTERNAL = "internal"


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    service_name: str | None = None
    variable_name: str | None = None
    user_message: str | None = None
    debug_info: dict[str, Any] | None = None


class TxLedgerError(Exception):
    """Base exception for all txledger errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status

    def to_response(self) -> dict:
        """Convert to standardized REST error response."""
        return {
            "error": {
                "code": self.code,
                "message": self.context.user_message or self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "service_name": self.context.service_name,
                    "variable_name": self.context.variable_name,
                },
            }
        }


# ─── Caller Errors (400-level) ──────────────────────────────────

class InvalidSessionVariableError(TxLedgerError):
    """RLS context key, prefix or value cannot become a session variable."""
    def __init__(self, message: str, name: str, context: ErrorContext | None = None):
        ctx = context or ErrorContext()
        ctx.variable_name = name
        super().__init__(
            message, "INVALID_SESSION_VARIABLE", ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, ctx, 400,
        )
        self.name = name


# ─── Infrastructure Errors (500-level) ──────────────────────────

class UnsupportedConnectionError(TxLedgerError):
    """Object handed in as a database connection is not a SQLAlchemy async handle."""
    def __init__(self, connection_type: str, context: ErrorContext | None = None):
        super().__init__(
            f"Unsupported database connection type: {connection_type}",
            "UNSUPPORTED_CONNECTION", ErrorCategory.CONFIGURATION,
            ErrorSeverity.CRITICAL, context, 500,
        )
        self.connection_type = connection_type


class AuditStorageNotConfiguredError(TxLedgerError):
    """An audit read path was requested but no storage is wired up."""
    def __init__(self, context: ErrorContext | None = None):
        super().__init__(
            "Audit storage is not configured",
            "AUDIT_STORAGE_NOT_CONFIGURED", ErrorCategory.CONFIGURATION,
            ErrorSeverity.CRITICAL, context, 503,
        )


class DatabaseError(TxLedgerError):
    """Database operation failed outside the transactional core (API session / health)."""
    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Database {operation} failed: {message}",
            "DATABASE_ERROR", ErrorCategory.DATABASE,
            ErrorSeverity.CRITICAL, context, 503,
        )
        self.operation = operation
