"""Structured Logging: JSON lines for transaction, RLS and audit events.

Invariants:
    - Every line carries timestamp, level, logger and message
    - Only whitelisted extras are emitted (record_count, mode, reused, ...);
      RLS variable VALUES are never logged, only their count
    - setup_logging() is idempotent: calling it again replaces its own handler

Design Decisions:
    - JSONFormatter on stdlib logging: no logging dependency beyond the stdlib
    - SQL echo is routed through the "sqlalchemy.engine" logger, not engine echo=True,
      so it follows the same format as everything else
"""

import json
import logging
from datetime import datetime, timezone

_EXTRA_FIELDS = (
    "error_code", "path", "mode", "reused", "isolation_level",
    "variable_count", "record_count", "in_transaction", "audit_type", "table",
)

_HANDLER_NAME = "txledger"
_TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        log = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log.update(
            (key, record.__dict__[key]) for key in _EXTRA_FIELDS
            if record.__dict__.get(key) is not None
        )
        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)
        return json.dumps(log, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", fmt: str = "json", sql_echo: bool = False) -> None:
    """Install the txledger handler on the root logger (replacing a previous one)."""
    root = logging.getLogger()
    for existing in [h for h in root.handlers if h.get_name() == _HANDLER_NAME]:
        root.removeHandler(existing)

    handler = logging.StreamHandler()
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(JSONFormatter() if fmt == "json" else logging.Formatter(_TEXT_FORMAT))
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if sql_echo else logging.WARNING,
    )
