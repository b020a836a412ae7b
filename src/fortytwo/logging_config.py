"""Structured logging configuration for the fortytwo client.

- JSON structured logging with StructuredFormatter
- Logger hierarchy under the ``fortytwo`` namespace
- Environment variable control (FORTYTWO_LOG_LEVEL, FORTYTWO_LOG_FORMAT)
"""

import json
import logging
import os
from datetime import datetime, timezone
from typing import Optional

ROOT_LOGGER = "fortytwo"

# Extras with these keys never reach the log sink in clear text
SENSITIVE_KEYS = {
    "password", "token", "secret", "client_secret", "access_token",
    "authorization", "credential", "bearer",
}

_STANDARD_FIELDS = {
    "name",
    "msg",
    "args",
    "created",
    "filename",
    "funcName",
    "levelname",
    "levelno",
    "lineno",
    "module",
    "msecs",
    "message",
    "pathname",
    "process",
    "processName",
    "relativeCreated",
    "thread",
    "threadName",
    "exc_info",
    "exc_text",
    "stack_info",
    "taskName",
}


class StructuredFormatter(logging.Formatter):
    """JSON log formatter.

    Outputs one JSON object per record with:
    - timestamp: UTC ISO 8601 with 'Z' suffix
    - level: Log level name (INFO, ERROR, etc.)
    - logger: Logger name (fortytwo hierarchy)
    - message: Log message
    - context: extras passed through ``extra=``

    Sensitive keys (token, secret, authorization, ...) are redacted.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON.

        Args:
            record: LogRecord to format

        Returns:
            JSON string with structured log data
        """
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        extras = {
            k: ("[REDACTED]" if k.lower() in SENSITIVE_KEYS else v)
            for k, v in record.__dict__.items()
            if k not in _STANDARD_FIELDS and not k.startswith("_")
        }

        if extras:
            log_data["context"] = extras

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable formatter, selected with FORTYTWO_LOG_FORMAT=text."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


def configure_logging(level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """Configure logging for the ``fortytwo`` logger hierarchy.

    Args:
        level: Optional log level override. Defaults to FORTYTWO_LOG_LEVEL
               (or WARNING when unset, so a library import stays quiet).
        log_format: Optional format override ("json" or "text"). Defaults to
               FORTYTWO_LOG_FORMAT (or json).
    """
    if level is None:
        level = os.getenv("FORTYTWO_LOG_LEVEL", "WARNING")
    log_level = getattr(logging, level.upper(), logging.WARNING)

    if log_format is None:
        log_format = os.getenv("FORTYTWO_LOG_FORMAT", "json")

    if log_format.lower() == "text":
        formatter = TextFormatter()
    else:
        formatter = StructuredFormatter()

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(log_level)

    # Only one handler, however often this is called
    if not logger.handlers:
        handler = logging.StreamHandler()
        logger.addHandler(handler)
    for handler in logger.handlers:
        handler.setFormatter(formatter)

    logger.propagate = False
