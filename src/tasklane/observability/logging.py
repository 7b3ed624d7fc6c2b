"""JSON log lines on stdout, one object per event.

Every line carries the envelope keys (timestamp, level, logger, message,
correlationId, exception). Call sites add context through
``extra={"extra_fields": {...}}``; a context key that collides with an
envelope key is written as ``field_<key>`` so the envelope stays intact.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

from .correlation import get_correlation_id

COLLISION_PREFIX = "field_"


def _log_level_from_env() -> int:
    level_name = os.environ.get("LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_name, logging.INFO)


class JsonFormatter(logging.Formatter):
    """Formats records as JSON objects with correlation ID and extra_fields."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation_id = get_correlation_id()
        if correlation_id:
            log_obj["correlationId"] = correlation_id

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        extra_fields = getattr(record, "extra_fields", None) or {}
        envelope = set(log_obj)
        for key, value in extra_fields.items():
            log_obj[COLLISION_PREFIX + key if key in envelope else key] = value

        return json.dumps(log_obj, default=str)


def get_logger(name: str) -> logging.Logger:
    """Logger writing JSON to stdout at LOG_LEVEL (default INFO)."""
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JsonFormatter())
        logger.addHandler(handler)
        logger.setLevel(_log_level_from_env())
        logger.propagate = False

    return logger
