"""Structured JSON audit logging for tool invocations and debate lifecycle."""

import json
import logging
import sys
from datetime import UTC, datetime

from .config import config

_audit_logger = logging.getLogger("dialectic_mcp.audit")


class _JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: dict = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "event": record.getMessage(),
        }
        if hasattr(record, "audit_data"):
            entry.update(record.audit_data)
        return json.dumps(entry)


def _setup_audit_logger() -> None:
    """Configure the audit logger with JSON formatting to stdout."""
    if _audit_logger.handlers:
        return  # Already configured

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_JSONFormatter())
    _audit_logger.addHandler(handler)
    _audit_logger.setLevel(logging.INFO)
    _audit_logger.propagate = False


def audit_event(event: str, **fields: str) -> None:
    """Log a structured audit event (no-op if audit_log is disabled)."""
    if not config.audit_log:
        return
    _setup_audit_logger()
    record = _audit_logger.makeRecord(_audit_logger.name, logging.INFO, "", 0, event, (), None)
    record.audit_data = fields  # type: ignore[attr-defined]
    _audit_logger.handle(record)
