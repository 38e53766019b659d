"""Error Hierarchy — verifies codes, categories, HTTP status and response envelope."""

from txledger.core.errors import (
    AuditStorageNotConfiguredError, DatabaseError, ErrorCategory, ErrorContext,
    ErrorSeverity, InvalidSessionVariableError, TxLedgerError,
    UnsupportedConnectionError,
)


def test_invalid_session_variable_is_caller_error():
    err = InvalidSessionVariableError("bad key", "app.bad-key")
    assert isinstance(err, TxLedgerError)
    assert err.http_status == 400
    assert err.category == ErrorCategory.VALIDATION
    assert err.context.variable_name == "app.bad-key"


def test_unsupported_connection_is_configuration_error():
    err = UnsupportedConnectionError("dict")
    assert err.code == "UNSUPPORTED_CONNECTION"
    assert err.category == ErrorCategory.CONFIGURATION
    assert err.severity == ErrorSeverity.CRITICAL
    assert "dict" in str(err)


def test_storage_not_configured_is_503():
    assert AuditStorageNotConfiguredError().http_status == 503


def test_database_error_names_operation():
    err = DatabaseError("timeout", "execute")
    assert err.operation == "execute"
    assert err.message == "Database execute failed: timeout"


def test_to_response_envelope():
    err = InvalidSessionVariableError("bad key", "app.x")
    body = err.to_response()["error"]
    assert body["code"] == "INVALID_SESSION_VARIABLE"
    assert body["message"] == "bad key"
    assert body["category"] == "validation"
    assert body["severity"] == "error"
    assert body["context"]["variable_name"] == "app.x"


def test_user_message_overrides_message():
    ctx = ErrorContext(user_message="Try again later")
    err = DatabaseError("pool exhausted", "connect", context=ctx)
    assert err.to_response()["error"]["message"] == "Try again later"
