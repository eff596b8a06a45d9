#!/usr/bin/env python3
"""
Sensu Puppet Handler - Logging Utilities

Text or NDJSON (newline-delimited JSON) logging for the handler process.
All output goes to stderr: Sensu captures it as the handler's diagnostic
stream, and stdout stays free.

Usage:
    from logging_utils import setup_json_logging, CorrelationID

    logger = setup_json_logging(service_name="sensu-puppet-handler", version="1.0.0")
    CorrelationID.set(event.id)
    logger.info("Processing event")

Environment Variables:
    LOG_JSON_ENABLED: Enable JSON logging (default: false)
    LOG_LEVEL: Logging level (default: INFO)
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, TextIO

TEXT_FORMAT = "%(asctime)s - %(levelname)s - [%(correlation_id)s] - %(message)s"

# LogRecord attributes that are not user supplied `extra` fields
_RESERVED_ATTRS = frozenset([
    "name", "msg", "args", "created", "filename", "funcName", "levelname",
    "levelno", "lineno", "module", "msecs", "message", "pathname", "process",
    "processName", "relativeCreated", "thread", "threadName", "exc_info",
    "exc_text", "stack_info", "taskName", "correlation_id",
])


class CorrelationID:
    """Process-wide correlation id; one event per process."""
    _value = 'system'

    @staticmethod
    def set(cid: Optional[str]) -> None:
        CorrelationID._value = cid or 'system'

    @staticmethod
    def get() -> str:
        return CorrelationID._value


class CorrelationIdFilter(logging.Filter):
    """Automatically adds correlation ID to all log records."""
    def filter(self, record):
        record.correlation_id = CorrelationID.get()
        return True


class NDJSONFormatter(logging.Formatter):
    """
    Formats each record as a single JSON object on one line.

    Fields: timestamp, level, message, logger, module, function, line,
    service, version, correlation_id, error (when exc_info is set) and any
    `extra` fields passed to the log call.
    """

    def __init__(self, service_name: str, version: str):
        super().__init__()
        self.service_name = service_name
        self.version = version

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "service": self.service_name,
            "version": self.version,
            "correlation_id": getattr(record, "correlation_id", None) or "system",
        }

        if record.exc_info:
            log_entry["error"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info),
            }

        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key in log_entry:
                continue
            try:
                json.dumps(value)
                log_entry[key] = value
            except (TypeError, ValueError):
                log_entry[key] = str(value)

        return json.dumps(log_entry, default=str)


def setup_json_logging(
    service_name: str,
    version: str,
    level: str = "INFO",
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """
    Configure the root logger for the handler process.

    Idempotent: existing root handlers are replaced.

    Args:
        service_name: Name reported in JSON records
        version: Version reported in JSON records
        level: Default level, overridden by LOG_LEVEL
        stream: Output stream (default: sys.stderr)

    Returns:
        The root logger
    """
    json_enabled = os.getenv("LOG_JSON_ENABLED", "false").lower() in ("true", "1", "yes", "on")
    log_level = os.getenv("LOG_LEVEL", level).upper()

    logger = logging.getLogger()
    logger.handlers.clear()
    logger.setLevel(getattr(logging, log_level, logging.INFO))

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(logger.level)
    handler.addFilter(CorrelationIdFilter())

    if json_enabled:
        handler.setFormatter(NDJSONFormatter(service_name=service_name, version=version))
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    logger.addHandler(handler)
    logger.debug(f"Logging configured for service={service_name} json={json_enabled}")
    return logger
