"""Error Handlers: map exceptions reaching the API edge to JSON error envelopes.

Invariants:
    - TxLedgerError -> its own http_status and to_response() body
    - RequestValidationError (FastAPI params or AuditQuery rules) -> 400 with one
      entry per offending parameter
    - Anything else -> 500 INTERNAL_ERROR; the exception text is logged, never returned
    - Log level follows error severity: caller mistakes are warnings, not errors
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from txledger.core.errors import ErrorCategory, ErrorSeverity, TxLedgerError

logger = logging.getLogger(__name__)

_LOG_LEVELS = {
    ErrorSeverity.INFO: logging.INFO,
    ErrorSeverity.WARNING: logging.WARNING,
    ErrorSeverity.ERROR: logging.WARNING,
    ErrorSeverity.CRITICAL: logging.ERROR,
}

# Location prefixes FastAPI adds; clients only know the parameter name.
_PARAM_SOURCES = {"query", "path", "header", "body"}


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TxLedgerError, _handle_txledger_error)
    app.add_exception_handler(RequestValidationError, _handle_validation_error)
    app.add_exception_handler(Exception, _handle_unexpected_error)


async def _handle_txledger_error(request: Request, exc: TxLedgerError) -> JSONResponse:
    logger.log(
        _LOG_LEVELS[exc.severity],
        f"{type(exc).__name__}: {exc.message}",
        extra={"error_code": exc.code, "path": request.url.path},
    )
    return JSONResponse(status_code=exc.http_status, content=exc.to_response())


async def _handle_validation_error(
    request: Request, exc: RequestValidationError,
) -> JSONResponse:
    details = [_describe(error) for error in exc.errors()]
    logger.warning(
        f"Rejected request parameters: {[d['field'] for d in details]}",
        extra={"error_code": "VALIDATION_ERROR", "path": request.url.path},
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_envelope(
            "VALIDATION_ERROR", "Invalid request parameters",
            ErrorCategory.VALIDATION, ErrorSeverity.ERROR, details=details,
        ),
    )


async def _handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"Unhandled {type(exc).__name__} on {request.url.path}",
        exc_info=exc,
        extra={"error_code": "INTERNAL_ERROR", "path": request.url.path},
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_envelope(
            "INTERNAL_ERROR", "An unexpected error occurred",
            ErrorCategory.INTERNAL, ErrorSeverity.CRITICAL,
        ),
    )


def _describe(error: dict) -> dict:
    loc = [str(part) for part in error.get("loc", ())]
    if loc and loc[0] in _PARAM_SOURCES:
        loc = loc[1:]
    return {
        "field": ".".join(loc) or None,
        "message": error["msg"],
        "type": error["type"],
    }


def _envelope(
    code: str,
    message: str,
    category: ErrorCategory,
    severity: ErrorSeverity,
    details: list[dict] | None = None,
) -> dict:
    body = {
        "code": code,
        "message": message,
        "category": category.value,
        "severity": severity.value,
    }
    if details is not None:
        body["details"] = details
    return {"error": body}
