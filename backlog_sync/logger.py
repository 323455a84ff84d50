"""
Structured Logging for backlog-sync.
Outputs JSON-formatted logs for machine readability and observability.
"""

import json
import sys
import logging
from datetime import datetime, timezone

# Configure package logger
logger = logging.getLogger("BacklogSync")
logger.setLevel(logging.INFO)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stdout)
    logger.addHandler(handler)
else:
    handler = logger.handlers[0]


class JsonFormatter(logging.Formatter):
    """JSON formatter that dynamically extracts all extra fields."""

    # Standard LogRecord attributes to exclude (these are Python logging internals)
    STANDARD_ATTRS = {
        'name', 'msg', 'args', 'created', 'filename', 'funcName', 'levelname',
        'levelno', 'lineno', 'module', 'msecs', 'message', 'pathname', 'process',
        'processName', 'relativeCreated', 'thread', 'threadName', 'exc_info',
        'exc_text', 'stack_info', 'asctime', 'taskName'
    }

    # Never emitted even if a caller passes them as fields
    REDACTED_KEYS = {'token', 'auth', 'authorization', 'password'}

    def format(self, record):
        log_record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
            "module": record.module,
        }

        for key, value in record.__dict__.items():
            if key in self.STANDARD_ATTRS or key.startswith('_'):
                continue
            if key.lower() in self.REDACTED_KEYS:
                log_record[key] = "***"
                continue
            try:
                json.dumps(value)
                log_record[key] = value
            except (TypeError, ValueError):
                # Non-serializable (e.g., Exception objects) - convert to string
                log_record[key] = str(value)

        return json.dumps(log_record)


handler.setFormatter(JsonFormatter())


def get_logger(component: str = "SYSTEM"):
    return ComponentLogger(component)


class ComponentLogger:
    def __init__(self, component):
        self.component = component
        self.logger = logging.getLogger("BacklogSync")

    def _extra(self, item_id, kwargs):
        extra = {"component": self.component}
        if item_id is not None:
            extra["item_id"] = item_id
        extra.update(kwargs)
        return extra

    def debug(self, msg, item_id=None, **kwargs):
        self.logger.debug(msg, extra=self._extra(item_id, kwargs), stacklevel=2)

    def info(self, msg, item_id=None, **kwargs):
        self.logger.info(msg, extra=self._extra(item_id, kwargs), stacklevel=2)

    def warning(self, msg, item_id=None, **kwargs):
        self.logger.warning(msg, extra=self._extra(item_id, kwargs), stacklevel=2)

    def error(self, msg, item_id=None, **kwargs):
        self.logger.error(msg, extra=self._extra(item_id, kwargs), stacklevel=2)
