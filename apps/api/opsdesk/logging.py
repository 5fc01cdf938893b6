from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

from opsdesk.context import get_correlation_id

# Structured ``extra`` keys copied into the ``fields`` object of each line.
LOG_FIELDS = (
    "method",
    "path",
    "status_code",
    "duration_ms",
    "user_id",
    "step",
    "entity_type",
    "entity_id",
    "task_id",
    "request_no",
    "status",
    "error",
)
_MAX_ERROR_LENGTH = 500

_base_record_factory = logging.getLogRecordFactory()


def _correlated_record_factory(*args: Any, **kwargs: Any) -> logging.LogRecord:
    record = _base_record_factory(*args, **kwargs)
    record.correlation_id = get_correlation_id()
    return record


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line: envelope keys first, workflow fields under ``fields``."""

    def format(self, record: logging.LogRecord) -> str:
        fields: dict[str, Any] = {}
        for key in LOG_FIELDS:
            value = record.__dict__.get(key)
            if value is not None:
                fields[key] = value

        error = fields.get("error")
        if isinstance(error, str) and len(error) > _MAX_ERROR_LENGTH:
            fields["error"] = error[:_MAX_ERROR_LENGTH]
        if record.exc_info:
            fields["exception"] = self.formatException(record.exc_info)

        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", None) or get_correlation_id(),
            "fields": fields,
        }
        return json.dumps(payload, default=str)


def configure_logging(level_name: str | None = None) -> None:
    """Route every logger through a single stdout JSON handler. Repeated calls are no-ops."""
    root_logger = logging.getLogger()
    if getattr(root_logger, "_opsdesk_configured", False):
        return

    level = logging.getLevelName((level_name or os.getenv("LOG_LEVEL", "INFO")).upper())
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(JsonLogFormatter())

    logging.setLogRecordFactory(_correlated_record_factory)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
    root_logger._opsdesk_configured = True  # type: ignore[attr-defined]
