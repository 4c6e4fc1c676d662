"""Log output for the engine and its CLI.

Per-session messages carry the session key and port as structured context.
The JSON format emits them as fields, the text format appends them in brackets.
"""

import sys
import json
import logging
from typing import Any, Dict, Optional
from datetime import datetime, timezone

from .registry import session_port

CONTEXT_ATTR = "context"


def _context_of(record: logging.LogRecord) -> Dict[str, Any]:
    context = getattr(record, CONTEXT_ATTR, None)
    return context if isinstance(context, dict) else {}


class JSONFormatter(logging.Formatter):
    """One JSON object per record.

    Example output:
        {"timestamp": "2025-10-24T23:30:00.123000+00:00", "level": "INFO",
         "logger": "autoaccept.connector", "message": "Connected to page 9000:ABC",
         "context": {"key": "9000:ABC", "port": 9000}}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = _context_of(record)
        if context:
            log_data["context"] = context

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable lines with session context appended.

    Example output:
        2025-10-24 23:30:00 [INFO] autoaccept.connector: Connected to page 9000:ABC [key=9000:ABC port=9000]
    """

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = _context_of(record)
        if not context:
            return line

        fields = " ".join(f"{name}={value}" for name, value in context.items())
        head, sep, tail = line.partition("\n")
        return f"{head} [{fields}]{sep}{tail}"


def setup_logging(format_type: str = "text", level: Optional[str] = None) -> None:
    """Send log records to stderr in the given format.

    Args:
        format_type: "json" or "text"
        level: Level name for the root and package loggers (default: INFO)
    """
    log_level = getattr(logging, level.upper(), logging.INFO) if level else logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(log_level)
    handler.setFormatter(JSONFormatter() if format_type == "json" else TextFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    logging.getLogger("autoaccept").setLevel(log_level)

    # websockets logs every frame at DEBUG
    if log_level > logging.DEBUG:
        logging.getLogger("websockets").setLevel(logging.WARNING)


def log_with_context(logger: logging.Logger, level: int, message: str, **fields: Any) -> None:
    """Log message with structured context fields, e.g. port=9000."""
    logger.log(level, message, extra={CONTEXT_ATTR: fields})


def log_session(logger: logging.Logger, level: int, message: str, key: str, **fields: Any) -> None:
    """Log a per-session message tagged with the session key and its port."""
    log_with_context(logger, level, message, key=key, port=session_port(key), **fields)
